"""Reference data: schedule cache and bus lookup.

Schedules and buses are treated as immutable for the lifetime of a
pipeline. Schedule entries are fetched lazily, in chunks no larger than the
provider's "in" query limit, with all chunks of a batch in flight together.
A failed chunk only leaves its own ids unresolved.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from fleet_payments.config import PipelineConfig
from fleet_payments.exceptions import ReferenceFetchError
from fleet_payments.utils import iter_chunks

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class ScheduleRef:
    """Display fields of a schedule, keyed by schedule id in the cache."""

    schedule_id: str
    bus_id: str = ""
    origin: str = ""
    destination: str = ""
    departure_time: str = ""

    @classmethod
    def from_record(cls, schedule_id: str, record: Mapping[str, Any]) -> ScheduleRef:
        """Build from a schedule document (camelCase keys)."""
        departure = record.get("departureTime")
        if departure is None:
            departure = record.get("departureDateTime")
        return cls(
            schedule_id=schedule_id,
            bus_id=_text(record.get("busId")),
            origin=_text(record.get("origin")),
            destination=_text(record.get("destination")),
            departure_time=_text(departure),
        )


@dataclass(frozen=True)
class BusRef:
    """Display fields of a bus from the fleet list."""

    bus_id: str
    license_plate: str = ""
    bus_type: str = ""
    status: str = "inactive"

    @classmethod
    def from_record(cls, record: Mapping[str, Any] | BusRef) -> BusRef:
        """Build from a bus document (camelCase keys) or return a BusRef as is."""
        if isinstance(record, BusRef):
            return record
        status = _text(record.get("status")).lower() or "inactive"
        return cls(
            bus_id=_text(record.get("id", record.get("busId"))),
            license_plate=_text(record.get("licensePlate")),
            bus_type=_text(record.get("busType")),
            status=status,
        )


class ScheduleSource(Protocol):
    """Provider of schedule documents by id.

    ``fetch_schedules`` receives one chunk of ids and returns the documents it
    found keyed by id. Ids it does not know are simply left out. Any raised
    exception fails the whole chunk.
    """

    def fetch_schedules(self, schedule_ids: list[str]) -> dict[str, Mapping[str, Any]]: ...


@dataclass
class FetchReport:
    """Outcome of one resolve_schedules batch.

    Attributes:
        requested: Ids that were missing and requested.
        resolved: Ids now present in the cache.
        chunk_sizes: Size of each chunk issued, in issue order.
        errors: One ReferenceFetchError per failed or timed-out chunk.
    """

    requested: list[str] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    chunk_sizes: list[int] = field(default_factory=list)
    errors: list[ReferenceFetchError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ReferenceCache:
    """Write-once cache of schedule references.

    Entries are added by resolve_schedules and never evicted implicitly.
    Call ``invalidate`` to drop an entry; the next rebuild of a changed
    booking set will fetch it again.
    """

    def __init__(self, source: ScheduleSource | None, config: PipelineConfig | None = None) -> None:
        self.source = source
        self.config = config or PipelineConfig()
        self._schedules: dict[str, ScheduleRef] = {}
        self._lock = threading.Lock()

    def __contains__(self, schedule_id: object) -> bool:
        return schedule_id in self._schedules

    def __len__(self) -> int:
        return len(self._schedules)

    def get(self, schedule_id: str) -> ScheduleRef | None:
        return self._schedules.get(schedule_id)

    def missing(self, schedule_ids: Iterable[str]) -> set[str]:
        """Return the non-empty ids that have no cache entry."""
        return {sid for sid in schedule_ids if sid and sid not in self._schedules}

    def put(self, schedule_id: str, record: Mapping[str, Any] | ScheduleRef) -> None:
        """Store an entry directly, e.g. from a pre-loaded schedule list."""
        ref = record if isinstance(record, ScheduleRef) else ScheduleRef.from_record(schedule_id, record)
        with self._lock:
            self._schedules[schedule_id] = ref

    def invalidate(self, schedule_id: str) -> bool:
        """Drop one entry. Returns True if it was present."""
        with self._lock:
            return self._schedules.pop(schedule_id, None) is not None

    def _fetch_chunk(self, chunk: list[str]) -> dict[str, Mapping[str, Any]]:
        assert self.source is not None
        return self.source.fetch_schedules(chunk)

    def resolve_schedules(self, missing_ids: Iterable[str]) -> FetchReport:
        """Fetch the given schedule ids and merge them into the cache.

        Ids are sorted and split into chunks of ``config.chunk_size``. Every
        chunk gets its own worker, so all of them start together and the batch
        is awaited together, up to ``config.fetch_timeout`` seconds. With
        ``config.max_workers`` set, chunks run in waves of that size and each
        wave adds ``fetch_timeout`` to the deadline. Chunks that raise or miss
        the deadline are logged and reported; their ids stay absent.

        Args:
            missing_ids: Schedule ids to fetch. Ids already cached are skipped.

        Returns:
            FetchReport describing the batch.

        """
        ids = sorted(self.missing(missing_ids))
        report = FetchReport(requested=ids)
        if not ids:
            return report
        if self.source is None:
            error = ReferenceFetchError("No schedule source configured", ids)
            logger.error("Cannot resolve %d schedule(s): %s", len(ids), error)
            report.errors.append(error)
            return report

        chunks = list(iter_chunks(ids, self.config.chunk_size))
        report.chunk_sizes = [len(c) for c in chunks]
        logger.info("Fetching %d schedule(s) in %d chunk(s)", len(ids), len(chunks))

        workers = len(chunks)
        if self.config.max_workers is not None:
            workers = min(workers, self.config.max_workers)
        deadline = self.config.fetch_timeout * math.ceil(len(chunks) / workers)

        pool = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="schedule-fetch",
        )
        try:
            futures: dict[Future, list[str]] = {
                pool.submit(self._fetch_chunk, chunk): chunk for chunk in chunks
            }
            done, not_done = wait(futures, timeout=deadline)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        fetched: dict[str, ScheduleRef] = {}
        for future, chunk in futures.items():
            if future in not_done:
                error = ReferenceFetchError(
                    f"Timed out after {deadline:g}s fetching {len(chunk)} schedule(s)",
                    chunk,
                )
            else:
                exc = future.exception()
                if exc is None:
                    for sid, record in future.result().items():
                        fetched[str(sid)] = ScheduleRef.from_record(str(sid), record)
                    continue
                if isinstance(exc, ReferenceFetchError):
                    error = exc
                    if not error.schedule_ids:
                        error.schedule_ids = list(chunk)
                else:
                    error = ReferenceFetchError(f"Error fetching schedules: {exc}", chunk)
            logger.error("Schedule chunk of %d id(s) failed: %s", len(chunk), error)
            report.errors.append(error)

        with self._lock:
            for sid, ref in fetched.items():
                self._schedules.setdefault(sid, ref)

        report.resolved = [sid for sid in ids if sid in self._schedules]
        unresolved = len(ids) - len(report.resolved)
        if unresolved:
            logger.warning("%d schedule(s) remain unresolved", unresolved)
        return report


class BusLookup:
    """Synchronous busId -> BusRef map over an externally supplied fleet list."""

    def __init__(self, buses: Iterable[Mapping[str, Any] | BusRef] | None = None) -> None:
        self._buses: dict[str, BusRef] = {}
        for record in buses or []:
            bus = BusRef.from_record(record)
            if bus.bus_id:
                self._buses.setdefault(bus.bus_id, bus)

    def __len__(self) -> int:
        return len(self._buses)

    def __contains__(self, bus_id: object) -> bool:
        return bus_id in self._buses

    def lookup(self, bus_id: str) -> BusRef | None:
        """Return the bus entry, or None if the id is unknown."""
        return self._buses.get(bus_id) if bus_id else None

    def buses(self) -> list[BusRef]:
        """Entries in fleet-list order."""
        return list(self._buses.values())
