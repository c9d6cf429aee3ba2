"""Fleet Payments - payment aggregation for a bus company's dashboard.

This package turns booking documents into the tables a company's payment
dashboard shows, without re-fetching reference data it already holds:

- **Transactions**: each booking joined with its schedule (route) and bus (plate)
- **Bus summaries**: per-bus total, paid and pending revenue and counts
- **Daily mart**: per-day revenue rollup
- **Filters and export**: status, date window, bus and free-text filters, CSV export

Module Structure:
    fleet_payments.payments: Pipeline stages (reference, gate, transform, aggregate,
        filters, export) and the PaymentPipeline orchestrator
    fleet_payments.qa: Consistency checks for the produced tables
    fleet_payments.config: PipelineConfig and FirestoreSettings
    fleet_payments.cli: Command-line entry point

Quick Start:
    >>> from fleet_payments import PipelineConfig
    >>> from fleet_payments.payments import Fresh, PaymentPipeline, TransactionFilter
    >>> from fleet_payments.payments.extract import StaticScheduleSource
    >>>
    >>> pipeline = PaymentPipeline(StaticScheduleSource(schedules), PipelineConfig())
    >>> result = pipeline.rebuild(bookings, buses)
    >>> if isinstance(result, Fresh):
    ...     print(result.snapshot.bus_summaries.head())

Grain Reference:
    - fact_transactions: one row per booking
    - mart_bus_payments: one row per bus
    - mart_payments_daily: one row per local calendar day
"""

__version__ = "0.1.0"

from fleet_payments.config import FirestoreSettings, PipelineConfig
from fleet_payments.exceptions import (
    ConfigError,
    DataQualityError,
    FleetPaymentsError,
    PipelineError,
    ReferenceFetchError,
)

__all__ = [
    "ConfigError",
    "DataQualityError",
    "FirestoreSettings",
    "FleetPaymentsError",
    "PipelineConfig",
    "PipelineError",
    "ReferenceFetchError",
    "__version__",
]
