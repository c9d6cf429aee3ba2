"""Payments domain module.

This module turns booking documents into the payment dashboard's tables:

- **Bronze (reference)**: `payments.extract` - schedule providers (Firestore REST, in-memory)
- **Silver (core)**: `payments.transform.enrich()` - fact_transactions
  (one row per booking, route and bus resolved)
- **Gold (marts)**: `payments.aggregate` - mart_bus_payments (one row per bus)
  and mart_payments_daily (one row per local day)

Example:
    >>> from fleet_payments.payments import PaymentPipeline, TransactionFilter, export_csv
    >>> from fleet_payments.payments.extract import StaticScheduleSource
    >>>
    >>> pipeline = PaymentPipeline(StaticScheduleSource(schedules))
    >>> result = pipeline.rebuild(bookings, buses)
    >>> rows = result.snapshot.view(TransactionFilter(status="paid", date_window="week"))
    >>> csv_text = export_csv(rows)
"""

from fleet_payments.payments.aggregate import (
    PaymentTotals,
    aggregate_by_bus,
    aggregate_daily,
    payment_totals,
)
from fleet_payments.payments.api import (
    Fresh,
    PaymentPipeline,
    PaymentSnapshot,
    RebuildResult,
    Superseded,
)
from fleet_payments.payments.export import export_csv, export_filename, write_csv
from fleet_payments.payments.filters import TransactionFilter, filter_transactions
from fleet_payments.payments.gate import ChangeDetectionGate, fingerprint
from fleet_payments.payments.reference import (
    BusLookup,
    BusRef,
    FetchReport,
    ReferenceCache,
    ScheduleRef,
    ScheduleSource,
)
from fleet_payments.payments.transform import LOADING, NOT_AVAILABLE, enrich

__all__ = [
    "LOADING",
    "NOT_AVAILABLE",
    "BusLookup",
    "BusRef",
    "ChangeDetectionGate",
    "FetchReport",
    "Fresh",
    "PaymentPipeline",
    "PaymentSnapshot",
    "PaymentTotals",
    "RebuildResult",
    "ReferenceCache",
    "ScheduleRef",
    "ScheduleSource",
    "Superseded",
    "TransactionFilter",
    "aggregate_by_bus",
    "aggregate_daily",
    "enrich",
    "export_csv",
    "export_filename",
    "filter_transactions",
    "fingerprint",
    "payment_totals",
    "write_csv",
]
