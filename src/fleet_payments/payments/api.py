"""Public API for the payment aggregation pipeline.

``PaymentPipeline`` owns the session state (reference cache, change gate,
bus lookup) and turns the latest bookings and fleet list into a
``PaymentSnapshot``. Rebuilds run one at a time, so a rebuild never reads
a cache that another rebuild is still filling. Each rebuild takes a version
number on entry; one that is overtaken by a newer call returns
``Superseded`` so callers never publish stale results.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence, Union

import pandas as pd

from fleet_payments.config import PipelineConfig
from fleet_payments.exceptions import ReferenceFetchError
from fleet_payments.payments.aggregate import PaymentTotals, aggregate_by_bus, payment_totals
from fleet_payments.payments.filters import TransactionFilter, filter_transactions
from fleet_payments.payments.gate import ChangeDetectionGate
from fleet_payments.payments.reference import BusLookup, BusRef, ReferenceCache, ScheduleSource
from fleet_payments.payments.transform import enrich

logger = logging.getLogger(__name__)

BusList = Sequence[Union[Mapping[str, Any], BusRef]]


@dataclass
class PaymentSnapshot:
    """Result of one rebuild.

    Attributes:
        transactions: fact_transactions, sorted by booking_date descending.
        bus_summaries: mart_bus_payments, sorted by total_revenue descending.
        fingerprint: Booking fingerprint the snapshot was built from.
        fetched_at: When the booking set was first seen.
        errors: Messages of reference fetch failures whose ids are still
            unresolved for this booking set.
        timezone: Timezone used for relative date windows.
    """

    transactions: pd.DataFrame
    bus_summaries: pd.DataFrame
    fingerprint: str
    fetched_at: pd.Timestamp
    errors: list[str] = field(default_factory=list)
    timezone: str | None = None

    @property
    def error_banner(self) -> str | None:
        """First fetch failure message, for a single error banner."""
        return self.errors[0] if self.errors else None

    def view(self, criteria: TransactionFilter | None = None, now: Any = None) -> pd.DataFrame:
        """Filtered transaction rows for display or export."""
        return filter_transactions(self.transactions, criteria, now=now, timezone=self.timezone)

    def totals(self, criteria: TransactionFilter | None = None, now: Any = None) -> PaymentTotals:
        """Headline totals over the filtered rows."""
        return payment_totals(self.view(criteria, now=now))


@dataclass
class Fresh:
    """Rebuild finished and is the latest one started."""

    version: int
    snapshot: PaymentSnapshot


@dataclass
class Superseded:
    """Rebuild finished after a newer rebuild had started; discard it."""

    version: int
    latest: int


RebuildResult = Union[Fresh, Superseded]


class PaymentPipeline:
    """Session-scoped payment aggregation pipeline.

    Examples:
        >>> pipeline = PaymentPipeline(StaticScheduleSource(schedules))
        >>> result = pipeline.rebuild(bookings, buses)
        >>> if isinstance(result, Fresh):
        ...     print(result.snapshot.bus_summaries.head())

    """

    def __init__(
        self,
        source: ScheduleSource | None,
        config: PipelineConfig | None = None,
        gate: ChangeDetectionGate | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.cache = ReferenceCache(source, self.config)
        self.gate = gate or ChangeDetectionGate()
        self._bus_list: object = None
        self._bus_lookup = BusLookup()
        self._version = 0
        self._fetch_errors: list[ReferenceFetchError] = []
        self._lock = threading.Lock()
        self._rebuild_lock = threading.Lock()

    @property
    def latest_version(self) -> int:
        with self._lock:
            return self._version

    def _begin(self) -> int:
        with self._lock:
            self._version += 1
            return self._version

    def _lookup_for(self, buses: BusList | None) -> BusLookup:
        # Rebuilt only when a different list object is supplied
        with self._lock:
            if buses is not self._bus_list:
                self._bus_list = buses
                self._bus_lookup = BusLookup(buses)
                logger.debug("Bus lookup rebuilt with %d bus(es)", len(self._bus_lookup))
            return self._bus_lookup

    def rebuild(
        self,
        bookings: Sequence[Mapping[str, Any]],
        buses: BusList | None = None,
    ) -> RebuildResult:
        """Rebuild transactions and per-bus summaries.

        Rebuilds run one at a time. A call that is waiting while a newer call
        starts returns ``Superseded`` without doing any work. If the booking
        fingerprint changed, schedule ids missing from the cache are fetched
        first; otherwise only the pure join and fold run again from the
        existing cache. Fetch failures are collected on the snapshot and
        never raised. They stay on later snapshots of the same booking set
        while their ids remain unresolved.

        Args:
            bookings: Current booking documents for the company.
            buses: Current fleet list. Pass the same object to reuse the lookup.

        Returns:
            Fresh with the snapshot, or Superseded if a newer rebuild started
            before this one finished.

        """
        version = self._begin()
        with self._rebuild_lock:
            latest = self.latest_version
            if version != latest:
                logger.debug("Rebuild %d superseded by %d before it started", version, latest)
                return Superseded(version=version, latest=latest)

            lookup = self._lookup_for(buses)
            changed = self.gate.update(bookings)
            fp = self.gate.current or ""
            fetched_at = self.gate.fetched_at

            if changed:
                self._fetch_errors = []
            if not bookings:
                logger.debug("No bookings; skipping reference fetch")
            elif changed:
                schedule_ids = {str(b.get("scheduleId") or "") for b in bookings}
                missing = self.cache.missing(schedule_ids)
                if missing:
                    self._fetch_errors = self.cache.resolve_schedules(missing).errors
            errors = [str(e) for e in self._fetch_errors if self.cache.missing(e.schedule_ids)]

            transactions = enrich(
                bookings, self.cache, lookup, fetched_at, timezone=self.config.timezone
            )
            summaries = aggregate_by_bus(transactions, lookup)

        latest = self.latest_version
        if version != latest:
            logger.info("Rebuild %d superseded by %d; discarding result", version, latest)
            return Superseded(version=version, latest=latest)

        logger.info(
            "Rebuild %d: %d transaction(s), %d bus summary(ies)",
            version,
            len(transactions),
            len(summaries),
        )
        return Fresh(
            version=version,
            snapshot=PaymentSnapshot(
                transactions=transactions,
                bus_summaries=summaries,
                fingerprint=fp,
                fetched_at=fetched_at,
                errors=errors,
                timezone=self.config.timezone,
            ),
        )

    def preload_schedules(self, schedules: Iterable[Mapping[str, Any]]) -> int:
        """Seed the cache from schedule documents already in hand.

        Returns:
            Number of entries stored.
        """
        count = 0
        for doc in schedules:
            sid = doc.get("id")
            if sid:
                self.cache.put(str(sid), doc)
                count += 1
        return count
