"""Tests for the transactions CSV export."""

from __future__ import annotations

import csv
import io
from datetime import datetime

import pandas as pd
import pytest

from fleet_payments.payments.export import (
    EXPORT_COLUMNS,
    export_csv,
    export_filename,
    to_export_frame,
    write_csv,
)
from fleet_payments.payments.transform import empty_transactions, enrich


@pytest.fixture
def transactions(make_booking, cache, lookup, fetched_at) -> pd.DataFrame:
    bookings = [
        make_booking("a", "S1", amount=2500, date="2025-03-07T12:00:00Z"),
        make_booking(
            "b",
            "S2",
            amount=99.5,
            status="pending",
            date="2025-03-06T12:00:00Z",
            passengerDetails=[{"name": 'Banda, "Jr"', "email": "b@example.com"}],
        ),
    ]
    return enrich(bookings, cache, lookup, fetched_at, timezone="UTC")


def _parse(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


def test_header_and_one_line_per_row(transactions) -> None:
    text = export_csv(transactions, timezone="UTC")
    rows = _parse(text)

    assert text.count("\n") == 3
    assert rows[0] == list(EXPORT_COLUMNS)
    assert len(rows) == 3
    assert all(len(r) == 10 for r in rows)


def test_values_are_raw_amounts_and_short_dates(transactions) -> None:
    first, second = _parse(export_csv(transactions, timezone="UTC"))[1:]

    assert first == [
        "REF-a",
        "Passenger a",
        "MW-1001",
        "Lilongwe",
        "Blantyre",
        "2500",
        "3/7/2025",
        "paid",
        "mobile_money",
        "TX-a",
    ]
    assert second[5] == "99.5"
    assert second[6] == "3/6/2025"


def test_fields_with_commas_and_quotes_are_quoted(transactions) -> None:
    text = export_csv(transactions, timezone="UTC")
    assert '"Banda, ""Jr"""' in text
    assert _parse(text)[2][1] == 'Banda, "Jr"'


def test_short_date_uses_local_day(transactions) -> None:
    late = transactions.copy()
    late["booking_date"] = pd.Timestamp("2025-03-07T23:30:00Z")
    frame = to_export_frame(late, timezone="Africa/Blantyre")
    assert set(frame["Date"]) == {"3/8/2025"}


def test_empty_export_is_header_only() -> None:
    text = export_csv(empty_transactions(), timezone="UTC")
    assert text == ",".join(EXPORT_COLUMNS) + "\n"


def test_export_filename() -> None:
    assert export_filename(datetime(2025, 1, 31, 18, 45)) == "payments-2025-01-31.csv"


def test_write_csv_adds_bom(transactions, tmp_path) -> None:
    path = write_csv(transactions, tmp_path / "out" / "payments.csv", timezone="UTC")
    raw = path.read_bytes()
    assert raw.startswith(b"\xef\xbb\xbf")
    assert raw.decode("utf-8-sig").splitlines()[0] == ",".join(EXPORT_COLUMNS)
