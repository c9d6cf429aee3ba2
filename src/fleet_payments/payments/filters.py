"""Filter and search over fact_transactions.

All predicates are combined with AND and evaluated against the full frame
each time, so applying them in one pass or one after another gives the same
rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Union

import pandas as pd

from fleet_payments.utils import local_midnight, resolve_tz

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ("paid", "pending", "failed", "refunded", "partial-refund")

# Window name -> days back from local midnight today (None: no lower bound)
DATE_WINDOWS: dict[str, int | None] = {
    "all": None,
    "today": 0,
    "week": 7,
    "last-7-days": 7,
    "month": 30,
    "last-30-days": 30,
    "custom": None,
}

SEARCH_COLUMNS = [
    "booking_reference",
    "customer_name",
    "customer_email",
    "transaction_id",
    "bus_plate",
    "route",
]

DateLike = Union[str, date, datetime, None]


@dataclass
class TransactionFilter:
    """User-selected predicates for the transactions table.

    Attributes:
        bus_id: Only this bus. None or "" means all buses.
        status: "all" or a payment status, matched case-insensitively.
        date_window: One of DATE_WINDOWS.
        start_date: First day of a "custom" window (inclusive).
        end_date: Last day of a "custom" window (inclusive to 23:59:59.999).
        search: Case-insensitive substring over SEARCH_COLUMNS.
    """

    bus_id: str | None = None
    status: str = "all"
    date_window: str = "all"
    start_date: DateLike = None
    end_date: DateLike = None
    search: str = ""

    def __post_init__(self) -> None:
        self.status = (self.status or "all").strip().lower()
        self.date_window = (self.date_window or "all").strip().lower()
        if self.status != "all" and self.status not in PAYMENT_STATUSES:
            raise ValueError(
                f"Invalid status '{self.status}'. Must be 'all' or one of {PAYMENT_STATUSES}."
            )
        if self.date_window not in DATE_WINDOWS:
            raise ValueError(
                f"Invalid date window '{self.date_window}'. Must be one of {list(DATE_WINDOWS)}."
            )

    @property
    def is_empty(self) -> bool:
        return (
            not self.bus_id
            and self.status == "all"
            and (self.date_window == "all" or self._custom_without_bounds)
            and not (self.search or "").strip()
        )

    @property
    def _custom_without_bounds(self) -> bool:
        return self.date_window == "custom" and self.start_date is None and self.end_date is None


def _to_day(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pd.Timestamp(str(value)).date()
    except ValueError as e:
        raise ValueError(f"Invalid date format: {value!r}") from e


def date_bounds(
    criteria: TransactionFilter,
    now: pd.Timestamp | datetime | None = None,
    timezone: str | None = None,
) -> tuple[pd.Timestamp | None, pd.Timestamp | None]:
    """Resolve the date window to tz-aware (start, end) bounds, both inclusive.

    "today", "week" and "month" are measured from local midnight of ``now``
    and have no upper bound. A "custom" window with no dates has no bounds.
    """
    tz = resolve_tz(timezone)
    if now is None:
        now = pd.Timestamp.now(tz=tz)

    window = criteria.date_window
    if window == "custom":
        start = end = None
        if criteria.start_date is not None:
            start = local_midnight(datetime.combine(_to_day(criteria.start_date), datetime.min.time()), tz)
        if criteria.end_date is not None:
            end_midnight = local_midnight(
                datetime.combine(_to_day(criteria.end_date), datetime.min.time()), tz
            )
            end = end_midnight + timedelta(days=1) - timedelta(milliseconds=1)
        return start, end

    days_back = DATE_WINDOWS[window]
    if days_back is None:
        return None, None
    return local_midnight(now, tz, days_back=days_back), None


def filter_transactions(
    transactions: pd.DataFrame,
    criteria: TransactionFilter | None = None,
    *,
    now: pd.Timestamp | datetime | None = None,
    timezone: str | None = None,
) -> pd.DataFrame:
    """Apply the filter predicates to fact_transactions.

    Args:
        transactions: fact_transactions frame.
        criteria: Predicates to apply. None returns every row.
        now: Reference instant for relative windows (defaults to the current time).
        timezone: Timezone for local midnight (system local when None).

    Returns:
        Matching rows in their original order, with a fresh index.

    Examples:
        >>> rows = filter_transactions(df, TransactionFilter(status="paid", date_window="today"))

    """
    if criteria is None or criteria.is_empty or transactions.empty:
        return transactions.reset_index(drop=True)

    mask = pd.Series(True, index=transactions.index)

    if criteria.bus_id:
        mask &= transactions["bus_id"].astype(str) == str(criteria.bus_id)

    if criteria.status != "all":
        mask &= transactions["payment_status"].astype(str).str.lower() == criteria.status

    start, end = date_bounds(criteria, now=now, timezone=timezone)
    if start is not None or end is not None:
        booked = pd.to_datetime(transactions["booking_date"], utc=True)
        if start is not None:
            mask &= booked >= start
        if end is not None:
            mask &= booked <= end

    term = (criteria.search or "").strip().lower()
    if term:
        hit = pd.Series(False, index=transactions.index)
        for col in SEARCH_COLUMNS:
            if col in transactions.columns:
                hit |= (
                    transactions[col].fillna("").astype(str).str.lower().str.contains(term, regex=False)
                )
        mask &= hit

    result = transactions[mask].reset_index(drop=True)
    logger.debug("Filter kept %d of %d transaction(s)", len(result), len(transactions))
    return result
