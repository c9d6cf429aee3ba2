"""Gold layer: per-bus and per-day payment summaries.

Both marts are recomputed from the full fact_transactions frame on every
call; nothing is updated incrementally.

Partition rule: every transaction counts toward ``total_revenue`` and
``transaction_count``. Only "paid" and "pending" transactions also land in
their own bucket, so failed and refunded amounts appear in the totals but in
neither bucket.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from fleet_payments.exceptions import DataQualityError
from fleet_payments.payments.reference import BusLookup, BusRef
from fleet_payments.utils import resolve_tz

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "bus_id",
    "license_plate",
    "bus_type",
    "status",
    "total_revenue",
    "paid_revenue",
    "pending_revenue",
    "transaction_count",
    "paid_count",
    "pending_count",
    "last_transaction",
]

DAILY_COLUMNS = [
    "date",
    "total_revenue",
    "paid_revenue",
    "pending_revenue",
    "transaction_count",
    "paid_count",
    "pending_count",
]

MONEY_COLUMNS = ["total_revenue", "paid_revenue", "pending_revenue"]
COUNT_COLUMNS = ["transaction_count", "paid_count", "pending_count"]

REQUIRED_COLUMNS = ["bus_id", "bus_plate", "bus_type", "total_amount", "payment_status", "booking_date"]


@dataclass(frozen=True)
class PaymentTotals:
    """Headline figures over a set of transactions.

    Attributes:
        total: Sum of all amounts.
        paid: Sum of amounts with payment_status "paid".
        pending: Sum of amounts with payment_status "pending".
        count: Number of transactions.
        paid_count: Number of paid transactions.
    """

    total: float
    paid: float
    pending: float
    count: int
    paid_count: int


def _require_columns(df: pd.DataFrame, columns: list[str]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataQualityError(
            f"Missing required columns in transactions: {missing}. Required: {columns}"
        )


def _bucket_frame(transactions: pd.DataFrame) -> pd.DataFrame:
    """Per-row revenue and count contributions for each bucket."""
    amount = transactions["total_amount"].astype("float64")
    status = transactions["payment_status"].astype(str).str.lower()
    is_paid = (status == "paid").to_numpy()
    is_pending = (status == "pending").to_numpy()
    return pd.DataFrame(
        {
            "total_revenue": amount.to_numpy(),
            "paid_revenue": np.where(is_paid, amount.to_numpy(), 0.0),
            "pending_revenue": np.where(is_pending, amount.to_numpy(), 0.0),
            "transaction_count": np.ones(len(transactions), dtype="int64"),
            "paid_count": is_paid.astype("int64"),
            "pending_count": is_pending.astype("int64"),
        },
        index=transactions.index,
    )


def aggregate_by_bus(
    transactions: pd.DataFrame,
    buses: Iterable[Mapping[str, Any] | BusRef] | BusLookup | None = None,
) -> pd.DataFrame:
    """Fold fact_transactions into mart_bus_payments.

    One summary is seeded for every bus in ``buses`` (zeros, the bus's own
    status). Transactions with a non-empty bus_id are folded into their bus;
    a bus id missing from the fleet list gets a summary created on demand
    with status "inactive" and the plate/type the transaction carries.

    Args:
        transactions: fact_transactions frame.
        buses: Fleet list (documents, BusRef values, or a BusLookup).

    Returns:
        DataFrame with SUMMARY_COLUMNS, sorted by total_revenue descending.
        Equal totals keep seed order, then on-demand creation order.

    Raises:
        DataQualityError: If required transaction columns are missing.

    """
    _require_columns(transactions, REQUIRED_COLUMNS)
    lookup = buses if isinstance(buses, BusLookup) else BusLookup(buses)

    rows = [
        {
            "bus_id": bus.bus_id,
            "license_plate": bus.license_plate,
            "bus_type": bus.bus_type,
            "status": bus.status,
        }
        for bus in lookup.buses()
    ]
    seeded = {row["bus_id"] for row in rows}

    tx = transactions[transactions["bus_id"].fillna("").astype(str) != ""]
    for _, first in tx.drop_duplicates(subset="bus_id", keep="first").iterrows():
        if first["bus_id"] in seeded:
            continue
        rows.append(
            {
                "bus_id": first["bus_id"],
                "license_plate": first["bus_plate"],
                "bus_type": first["bus_type"],
                "status": "inactive",
            }
        )
    created = len(rows) - len(seeded)
    if created:
        logger.info("Created %d on-demand summary(ies) for buses missing from the fleet list", created)

    if not rows:
        return _empty_summaries()

    base = pd.DataFrame(rows, columns=SUMMARY_COLUMNS[:4])
    contributions = _bucket_frame(tx)
    contributions["bus_id"] = tx["bus_id"].astype(str)
    contributions["last_transaction"] = tx["booking_date"]
    grouped = contributions.groupby("bus_id", sort=False).agg(
        total_revenue=("total_revenue", "sum"),
        paid_revenue=("paid_revenue", "sum"),
        pending_revenue=("pending_revenue", "sum"),
        transaction_count=("transaction_count", "sum"),
        paid_count=("paid_count", "sum"),
        pending_count=("pending_count", "sum"),
        last_transaction=("last_transaction", "max"),
    )

    out = base.merge(grouped, how="left", left_on="bus_id", right_index=True)
    out[MONEY_COLUMNS] = out[MONEY_COLUMNS].fillna(0.0).astype("float64")
    out[COUNT_COLUMNS] = out[COUNT_COLUMNS].fillna(0).astype("int64")
    out["last_transaction"] = pd.to_datetime(out["last_transaction"], utc=True).astype(
        "datetime64[ns, UTC]"
    )

    out = out[SUMMARY_COLUMNS].sort_values("total_revenue", ascending=False, kind="mergesort")
    return out.reset_index(drop=True)


def _empty_summaries() -> pd.DataFrame:
    df = pd.DataFrame(columns=SUMMARY_COLUMNS)
    df[MONEY_COLUMNS] = df[MONEY_COLUMNS].astype("float64")
    df[COUNT_COLUMNS] = df[COUNT_COLUMNS].astype("int64")
    df["last_transaction"] = pd.to_datetime(df["last_transaction"], utc=True)
    return df


def payment_totals(transactions: pd.DataFrame) -> PaymentTotals:
    """Compute the headline totals shown above the transactions table."""
    _require_columns(transactions, ["total_amount", "payment_status"])
    if transactions.empty:
        return PaymentTotals(total=0.0, paid=0.0, pending=0.0, count=0, paid_count=0)
    buckets = _bucket_frame(transactions)
    return PaymentTotals(
        total=float(buckets["total_revenue"].sum()),
        paid=float(buckets["paid_revenue"].sum()),
        pending=float(buckets["pending_revenue"].sum()),
        count=int(len(buckets)),
        paid_count=int(buckets["paid_count"].sum()),
    )


def aggregate_daily(transactions: pd.DataFrame, timezone: str | None = None) -> pd.DataFrame:
    """Aggregate fact_transactions into mart_payments_daily.

    One row per local calendar day that has at least one transaction, with
    the same bucket rules as the per-bus mart.

    Args:
        transactions: fact_transactions frame.
        timezone: Timezone defining calendar days (system local when None).

    Returns:
        DataFrame with DAILY_COLUMNS sorted by date ascending. ``date`` holds
        ``datetime.date`` values.

    """
    _require_columns(transactions, ["total_amount", "payment_status", "booking_date"])
    if transactions.empty:
        df = pd.DataFrame(columns=DAILY_COLUMNS)
        df[MONEY_COLUMNS] = df[MONEY_COLUMNS].astype("float64")
        df[COUNT_COLUMNS] = df[COUNT_COLUMNS].astype("int64")
        return df

    tz = resolve_tz(timezone)
    buckets = _bucket_frame(transactions)
    buckets["date"] = pd.to_datetime(transactions["booking_date"], utc=True).dt.tz_convert(tz).dt.date
    daily = buckets.groupby("date", sort=True)[MONEY_COLUMNS + COUNT_COLUMNS].sum().reset_index()
    daily[COUNT_COLUMNS] = daily[COUNT_COLUMNS].astype("int64")
    return daily[DAILY_COLUMNS]
