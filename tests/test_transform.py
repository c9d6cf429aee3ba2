"""Tests for booking enrichment into fact_transactions."""

from __future__ import annotations

import pandas as pd
import pytest

from fleet_payments.payments.reference import BusLookup, ReferenceCache
from fleet_payments.payments.transform import (
    LOADING,
    NOT_AVAILABLE,
    TRANSACTION_COLUMNS,
    enrich,
)


def test_resolved_booking(make_booking, cache, lookup, fetched_at) -> None:
    df = enrich([make_booking("b1", "S1", amount=2500)], cache, lookup, fetched_at, timezone="UTC")

    assert list(df.columns) == TRANSACTION_COLUMNS
    row = df.iloc[0]
    assert row["bus_id"] == "B1"
    assert row["bus_plate"] == "MW-1001"
    assert row["bus_type"] == "Luxury"
    assert row["route"] == "Lilongwe → Blantyre"
    assert row["departure_time"] == "08:00"
    assert row["total_amount"] == 2500.0
    assert row["customer_name"] == "Passenger b1"
    assert row["customer_email"] == "b1@example.com"
    assert row["transaction_id"] == "TX-b1"
    assert row["seats"] == 1
    assert row["booking_date"] == pd.Timestamp("2025-01-15T10:00:00Z")


def test_unknown_schedule_reads_not_available(make_booking, lookup, fetched_at) -> None:
    empty_cache = ReferenceCache(None)
    row = enrich([make_booking("b1", "S1")], empty_cache, lookup, fetched_at).iloc[0]

    assert row["route"] == NOT_AVAILABLE
    assert row["origin"] == NOT_AVAILABLE
    assert row["destination"] == NOT_AVAILABLE
    assert row["bus_id"] == ""
    assert row["bus_plate"] == NOT_AVAILABLE


def test_bus_not_in_fleet_list_reads_loading(make_booking, cache, lookup, fetched_at) -> None:
    # S3 runs on B9, which the fleet list does not contain
    row = enrich([make_booking("b1", "S3")], cache, lookup, fetched_at).iloc[0]
    assert row["bus_id"] == "B9"
    assert row["bus_plate"] == LOADING
    assert row["route"] == "Mzuzu → Lilongwe"


def test_schedule_without_bus_reads_not_available(make_booking, cache, lookup, fetched_at) -> None:
    row = enrich([make_booking("b1", "S4")], cache, lookup, fetched_at).iloc[0]
    assert row["bus_id"] == ""
    assert row["bus_plate"] == NOT_AVAILABLE


@pytest.mark.parametrize(
    "extra, expected",
    [
        ({}, "Passenger b1"),
        ({"passengerDetails": [], "contactName": "Chikondi"}, "Chikondi"),
        ({"passengerDetails": [{"name": ""}], "customerName": "Thoko"}, "Thoko"),
        ({"passengerDetails": None}, NOT_AVAILABLE),
    ],
)
def test_customer_name_fallbacks(make_booking, cache, lookup, fetched_at, extra, expected) -> None:
    row = enrich([make_booking("b1", **extra)], cache, lookup, fetched_at).iloc[0]
    assert row["customer_name"] == expected


def test_malformed_booking_gets_defaults(make_booking, cache, lookup, fetched_at) -> None:
    booking = make_booking("b1", amount="oops", date=None)
    del booking["paymentStatus"]
    del booking["transactionReference"]
    del booking["seatNumbers"]

    row = enrich([booking], cache, lookup, fetched_at).iloc[0]

    assert row["total_amount"] == 0.0
    assert row["booking_date"] == fetched_at
    assert row["payment_status"] == "pending"
    assert row["transaction_id"] == NOT_AVAILABLE
    assert row["seats"] == 0


def test_created_at_used_when_booking_date_missing(make_booking, cache, lookup, fetched_at) -> None:
    booking = make_booking("b1", date=None, createdAt={"seconds": 1736935200, "nanoseconds": 0})
    row = enrich([booking], cache, lookup, fetched_at).iloc[0]
    assert row["booking_date"] == pd.Timestamp("2025-01-15T10:00:00Z")


def test_epoch_milliseconds_and_naive_dates(make_booking, cache, lookup, fetched_at) -> None:
    df = enrich(
        [
            make_booking("ms", date=1736935200000),
            make_booking("naive", date="2025-01-15 12:00:00"),
        ],
        cache,
        lookup,
        fetched_at,
        timezone="Africa/Blantyre",
    )
    dates = dict(zip(df["id"], df["booking_date"]))
    assert dates["ms"] == pd.Timestamp("2025-01-15T10:00:00Z")
    # Blantyre is UTC+2
    assert dates["naive"] == pd.Timestamp("2025-01-15T10:00:00Z")


def test_sorted_descending_with_stable_ties(make_booking, cache, lookup, fetched_at) -> None:
    bookings = [
        make_booking("old", date="2025-01-01T00:00:00Z"),
        make_booking("tie-a", date="2025-01-10T00:00:00Z"),
        make_booking("new", date="2025-01-20T00:00:00Z"),
        make_booking("tie-b", date="2025-01-10T00:00:00Z"),
    ]
    df = enrich(bookings, cache, lookup, fetched_at)
    assert list(df["id"]) == ["new", "tie-a", "tie-b", "old"]


def test_empty_bookings_give_typed_empty_frame(cache, fetched_at) -> None:
    df = enrich([], cache, BusLookup(), fetched_at)
    assert df.empty
    assert list(df.columns) == TRANSACTION_COLUMNS
    assert str(df["booking_date"].dtype) == "datetime64[ns, UTC]"
