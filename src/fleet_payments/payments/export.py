"""CSV export of the currently filtered transactions."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import pandas as pd

from fleet_payments.utils import format_short_date, resolve_tz

logger = logging.getLogger(__name__)

# Export header -> fact_transactions column
EXPORT_COLUMNS = {
    "Reference": "booking_reference",
    "Customer": "customer_name",
    "Bus": "bus_plate",
    "Origin": "origin",
    "Destination": "destination",
    "Amount": "total_amount",
    "Date": "booking_date",
    "Status": "payment_status",
    "Method": "payment_method",
    "TransactionId": "transaction_id",
}


def _format_amount(value: object) -> str:
    amount = float(value)  # type: ignore[arg-type]
    return str(int(amount)) if amount.is_integer() else repr(amount)


def to_export_frame(transactions: pd.DataFrame, timezone: str | None = None) -> pd.DataFrame:
    """Project fact_transactions onto the export layout (all values as text)."""
    tz = resolve_tz(timezone)
    out = pd.DataFrame(index=transactions.index)
    for header, col in EXPORT_COLUMNS.items():
        if col == "total_amount":
            out[header] = transactions[col].map(_format_amount)
        elif col == "booking_date":
            out[header] = transactions[col].map(lambda ts: format_short_date(ts, tz))
        else:
            out[header] = transactions[col].fillna("").astype(str)
    return out.reset_index(drop=True)


def export_csv(transactions: pd.DataFrame, timezone: str | None = None) -> str:
    """Serialize transactions to CSV text.

    Fields containing commas, quotes or line breaks are quoted, so free-text
    values such as customer names survive a round trip.

    Args:
        transactions: Filtered fact_transactions rows, in display order.
        timezone: Timezone for the local short date (system local when None).

    Returns:
        CSV text: one header line plus one line per transaction, "\\n" separated.

    """
    frame = to_export_frame(transactions, timezone)
    return frame.to_csv(index=False, lineterminator="\n")


def export_filename(now: datetime | None = None) -> str:
    """Default download name, e.g. payments-2025-01-31.csv."""
    now = now or datetime.now()
    return f"payments-{now.strftime('%Y-%m-%d')}.csv"


def write_csv(transactions: pd.DataFrame, path: Path, timezone: str | None = None) -> Path:
    """Write the export to ``path`` as UTF-8 with BOM (Excel friendly)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_csv(transactions, timezone), encoding="utf-8-sig", newline="")
    logger.info("Exported %d transaction(s) to %s", len(transactions), path)
    return path
