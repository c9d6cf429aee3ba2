"""Shared fixtures: booking, bus and schedule documents as the booking system stores them."""

from __future__ import annotations

import threading
from typing import Any, Callable

import pandas as pd
import pytest

from fleet_payments.config import PipelineConfig
from fleet_payments.payments.reference import BusLookup, ReferenceCache


class RecordingSource:
    """In-memory schedule source that records every chunk it is asked for."""

    def __init__(self, schedules: dict[str, dict[str, Any]], fail_on: set[str] | None = None) -> None:
        self.schedules = schedules
        self.fail_on = fail_on or set()
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()

    def fetch_schedules(self, schedule_ids: list[str]) -> dict[str, dict[str, Any]]:
        with self._lock:
            self.calls.append(list(schedule_ids))
        if self.fail_on.intersection(schedule_ids):
            raise RuntimeError("permission denied")
        return {sid: self.schedules[sid] for sid in schedule_ids if sid in self.schedules}


@pytest.fixture
def schedules() -> dict[str, dict[str, Any]]:
    return {
        "S1": {"busId": "B1", "origin": "Lilongwe", "destination": "Blantyre", "departureTime": "08:00"},
        "S2": {"busId": "B2", "origin": "Blantyre", "destination": "Zomba", "departureTime": "10:30"},
        "S3": {"busId": "B9", "origin": "Mzuzu", "destination": "Lilongwe", "departureTime": "14:00"},
        "S4": {"busId": "", "origin": "Zomba", "destination": "Mangochi", "departureTime": "16:00"},
    }


@pytest.fixture
def buses() -> list[dict[str, Any]]:
    return [
        {"id": "B1", "licensePlate": "MW-1001", "busType": "Luxury", "status": "active"},
        {"id": "B2", "licensePlate": "MW-2002", "busType": "Economy", "status": "maintenance"},
        {"id": "B3", "licensePlate": "MW-3003", "busType": "AC", "status": "inactive"},
    ]


@pytest.fixture
def make_booking() -> Callable[..., dict[str, Any]]:
    """Factory for booking documents with sensible defaults."""

    def _make(
        booking_id: str,
        schedule_id: str = "S1",
        amount: Any = 100.0,
        status: str = "paid",
        date: Any = "2025-01-15T10:00:00Z",
        **extra: Any,
    ) -> dict[str, Any]:
        booking = {
            "id": booking_id,
            "bookingReference": f"REF-{booking_id}",
            "scheduleId": schedule_id,
            "companyId": "C1",
            "passengerDetails": [{"name": f"Passenger {booking_id}", "email": f"{booking_id}@example.com"}],
            "seatNumbers": ["1A"],
            "totalAmount": amount,
            "paymentStatus": status,
            "bookingStatus": "confirmed",
            "paymentMethod": "mobile_money",
            "bookingDate": date,
            "transactionReference": f"TX-{booking_id}",
        }
        booking.update(extra)
        return booking

    return _make


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(timezone="UTC", fetch_timeout=5.0)


@pytest.fixture
def source(schedules: dict[str, dict[str, Any]]) -> RecordingSource:
    return RecordingSource(schedules)


@pytest.fixture
def cache(source: RecordingSource, config: PipelineConfig) -> ReferenceCache:
    ref = ReferenceCache(source, config)
    ref.resolve_schedules(source.schedules)
    source.calls.clear()
    return ref


@pytest.fixture
def lookup(buses: list[dict[str, Any]]) -> BusLookup:
    return BusLookup(buses)


@pytest.fixture
def fetched_at() -> pd.Timestamp:
    return pd.Timestamp("2025-02-01T00:00:00Z")
