"""Tests for the schedule reference cache and the bus lookup."""

from __future__ import annotations

import threading
import time
from typing import Any

import pytest
from conftest import RecordingSource

from fleet_payments.config import PipelineConfig
from fleet_payments.exceptions import ReferenceFetchError
from fleet_payments.payments.reference import BusLookup, BusRef, ReferenceCache, ScheduleRef


class BarrierSource:
    """Source whose chunks only complete once ``parties`` chunks are in flight together."""

    def __init__(self, parties: int) -> None:
        self.barrier = threading.Barrier(parties, timeout=3)
        self.sizes: list[int] = []
        self._lock = threading.Lock()

    def fetch_schedules(self, schedule_ids: list[str]) -> dict[str, dict[str, Any]]:
        with self._lock:
            self.sizes.append(len(schedule_ids))
        self.barrier.wait()
        return {sid: {"busId": "B1", "origin": "A", "destination": "B"} for sid in schedule_ids}


def test_65_missing_ids_issue_three_concurrent_chunks() -> None:
    """65 ids split into chunks of 30, 30 and 5, all in flight at the same time."""
    source = BarrierSource(parties=3)
    cache = ReferenceCache(source, PipelineConfig(fetch_timeout=5.0))
    ids = {f"S{i:03d}" for i in range(65)}

    report = cache.resolve_schedules(ids)

    assert report.ok, report.errors
    assert report.chunk_sizes == [30, 30, 5]
    assert sorted(source.sizes) == [5, 30, 30]
    assert len(cache) == 65
    assert sorted(report.resolved) == sorted(ids)


def test_every_chunk_gets_its_own_worker() -> None:
    """Nine chunks complete only if all nine run at the same time."""
    source = BarrierSource(parties=9)
    cache = ReferenceCache(source, PipelineConfig(chunk_size=1, fetch_timeout=5.0))

    report = cache.resolve_schedules({f"S{i}" for i in range(9)})

    assert report.ok, report.errors
    assert len(source.sizes) == 9
    assert len(cache) == 9


def test_worker_cap_extends_deadline_per_wave() -> None:
    class SleepySource:
        def fetch_schedules(self, schedule_ids: list[str]) -> dict[str, dict[str, Any]]:
            time.sleep(0.3)
            return {sid: {"busId": "B1"} for sid in schedule_ids}

    config = PipelineConfig(chunk_size=1, fetch_timeout=0.5, max_workers=2)
    cache = ReferenceCache(SleepySource(), config)

    report = cache.resolve_schedules({"a", "b", "c", "d"})

    assert report.ok, report.errors
    assert len(cache) == 4


def test_failed_chunk_leaves_only_its_ids_unresolved() -> None:
    schedules = {f"S{i:02d}": {"busId": "B1", "origin": "A", "destination": "B"} for i in range(40)}
    source = RecordingSource(schedules, fail_on={"S35"})
    cache = ReferenceCache(source, PipelineConfig(chunk_size=30))

    report = cache.resolve_schedules(schedules)

    assert len(report.errors) == 1
    error = report.errors[0]
    assert isinstance(error, ReferenceFetchError)
    assert "permission denied" in str(error)
    assert error.schedule_ids == [f"S{i:02d}" for i in range(30, 40)]
    assert len(cache) == 30
    assert "S00" in cache
    assert "S35" not in cache


def test_timed_out_chunk_is_reported_and_discarded() -> None:
    release = threading.Event()

    class SlowSource:
        def fetch_schedules(self, schedule_ids: list[str]) -> dict[str, dict[str, Any]]:
            if "slow" in schedule_ids:
                release.wait(timeout=5)
            return {sid: {"busId": "B1"} for sid in schedule_ids}

    cache = ReferenceCache(SlowSource(), PipelineConfig(chunk_size=1, fetch_timeout=0.2))
    try:
        report = cache.resolve_schedules({"fast", "slow"})
    finally:
        release.set()

    assert len(report.errors) == 1
    assert "Timed out" in str(report.errors[0])
    assert report.errors[0].schedule_ids == ["slow"]
    assert "fast" in cache
    assert "slow" not in cache


def test_cached_ids_are_not_fetched_again(source: RecordingSource, config: PipelineConfig) -> None:
    cache = ReferenceCache(source, config)
    cache.put("S1", source.schedules["S1"])

    report = cache.resolve_schedules({"S1", "S2", ""})

    assert report.requested == ["S2"]
    assert source.calls == [["S2"]]


def test_nothing_missing_issues_no_request(cache: ReferenceCache, source: RecordingSource) -> None:
    report = cache.resolve_schedules({"S1", "S2"})
    assert report.requested == []
    assert report.chunk_sizes == []
    assert source.calls == []


def test_missing_source_reports_error_without_raising() -> None:
    cache = ReferenceCache(None)
    report = cache.resolve_schedules({"S1"})
    assert not report.ok
    assert report.errors[0].schedule_ids == ["S1"]


def test_entries_are_write_once_until_invalidated(cache: ReferenceCache) -> None:
    original = cache.get("S1")
    cache.resolve_schedules({"S1"})
    assert cache.get("S1") is original

    assert cache.invalidate("S1") is True
    assert "S1" not in cache
    assert cache.invalidate("S1") is False


def test_schedule_ref_from_record() -> None:
    ref = ScheduleRef.from_record(
        "S9", {"busId": "B1", "origin": "A", "destination": "B", "departureDateTime": "2025-01-01T08:00:00Z"}
    )
    assert ref == ScheduleRef("S9", "B1", "A", "B", "2025-01-01T08:00:00Z")


class TestBusLookup:
    def test_lookup_known_and_unknown(self, buses: list[dict[str, Any]]) -> None:
        lookup = BusLookup(buses)
        assert lookup.lookup("B1") == BusRef("B1", "MW-1001", "Luxury", "active")
        assert lookup.lookup("nope") is None
        assert lookup.lookup("") is None
        assert len(lookup) == 3

    def test_keeps_fleet_order_and_first_duplicate(self) -> None:
        lookup = BusLookup(
            [
                {"id": "B2", "licensePlate": "X"},
                {"id": "B1", "licensePlate": "Y"},
                {"id": "B2", "licensePlate": "Z"},
            ]
        )
        assert [b.bus_id for b in lookup.buses()] == ["B2", "B1"]
        assert lookup.lookup("B2").license_plate == "X"

    def test_missing_status_defaults_to_inactive(self) -> None:
        assert BusRef.from_record({"id": "B1"}).status == "inactive"

    def test_accepts_bus_refs(self) -> None:
        ref = BusRef("B7", "MW-7", "AC", "active")
        assert BusLookup([ref]).lookup("B7") is ref


def test_chunk_size_must_be_positive() -> None:
    from fleet_payments.exceptions import ConfigError

    with pytest.raises(ConfigError):
        PipelineConfig(chunk_size=0)
