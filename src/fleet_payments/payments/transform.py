"""Transaction enrichment: raw booking documents -> fact_transactions.

The output is one row per booking with the schedule's route and the bus
plate resolved from the reference data. Missing references never leave
empty values behind: unresolved schedules read "N/A", and a bus id whose
fleet record has not arrived reads "Loading…".
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import pandas as pd

from fleet_payments.payments.gate import booking_id
from fleet_payments.payments.reference import BusLookup, ReferenceCache
from fleet_payments.utils import coerce_amount, coerce_instant, resolve_tz

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
LOADING = "Loading…"

TRANSACTION_COLUMNS = [
    "id",
    "booking_reference",
    "customer_name",
    "customer_email",
    "company_id",
    "user_id",
    "schedule_id",
    "bus_id",
    "bus_plate",
    "bus_type",
    "origin",
    "destination",
    "route",
    "departure_time",
    "total_amount",
    "payment_status",
    "booking_status",
    "payment_method",
    "seats",
    "seat_numbers",
    "transaction_id",
    "booking_date",
]


def empty_transactions() -> pd.DataFrame:
    """Return an empty fact_transactions frame with the proper dtypes."""
    return _apply_dtypes(pd.DataFrame(columns=TRANSACTION_COLUMNS))


def _apply_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    df["total_amount"] = df["total_amount"].astype("float64")
    df["seats"] = df["seats"].astype("int64")
    df["booking_date"] = pd.to_datetime(df["booking_date"], utc=True).astype("datetime64[ns, UTC]")
    return df


def _first_text(*values: Any) -> str | None:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _first_passenger(booking: Mapping[str, Any]) -> Mapping[str, Any]:
    passengers = booking.get("passengerDetails")
    if isinstance(passengers, list) and passengers and isinstance(passengers[0], Mapping):
        return passengers[0]
    return {}


def _enrich_one(
    booking: Mapping[str, Any],
    cache: ReferenceCache,
    bus_lookup: BusLookup,
    booking_date: pd.Timestamp,
    amount: float,
) -> dict[str, Any]:
    passenger = _first_passenger(booking)
    seat_numbers = booking.get("seatNumbers")
    seat_numbers = tuple(str(s) for s in seat_numbers) if isinstance(seat_numbers, list) else ()

    schedule_id = _first_text(booking.get("scheduleId")) or ""
    ref = cache.get(schedule_id) if schedule_id else None
    if ref is None:
        bus_id = ""
        origin = destination = route = NOT_AVAILABLE
        departure_time = ""
        bus_plate = bus_type = NOT_AVAILABLE
    else:
        bus_id = ref.bus_id
        origin = ref.origin or NOT_AVAILABLE
        destination = ref.destination or NOT_AVAILABLE
        route = f"{origin} → {destination}"
        departure_time = ref.departure_time
        bus = bus_lookup.lookup(bus_id)
        if bus is not None:
            bus_plate = bus.license_plate or NOT_AVAILABLE
            bus_type = bus.bus_type or NOT_AVAILABLE
        elif bus_id:
            bus_plate, bus_type = LOADING, NOT_AVAILABLE
        else:
            bus_plate = bus_type = NOT_AVAILABLE

    return {
        "id": booking_id(booking),
        "booking_reference": _first_text(booking.get("bookingReference")) or NOT_AVAILABLE,
        "customer_name": _first_text(
            passenger.get("name"), booking.get("contactName"), booking.get("customerName")
        )
        or NOT_AVAILABLE,
        "customer_email": _first_text(
            passenger.get("email"), booking.get("customerEmail"), booking.get("contactEmail")
        )
        or NOT_AVAILABLE,
        "company_id": _first_text(booking.get("companyId")) or "",
        "user_id": _first_text(booking.get("userId")),
        "schedule_id": schedule_id,
        "bus_id": bus_id,
        "bus_plate": bus_plate,
        "bus_type": bus_type,
        "origin": origin,
        "destination": destination,
        "route": route,
        "departure_time": departure_time,
        "total_amount": amount,
        "payment_status": (_first_text(booking.get("paymentStatus")) or "pending").lower(),
        "booking_status": (_first_text(booking.get("bookingStatus")) or "pending").lower(),
        "payment_method": _first_text(booking.get("paymentMethod")) or "Not specified",
        "seats": len(seat_numbers),
        "seat_numbers": seat_numbers,
        "transaction_id": _first_text(
            booking.get("transactionReference"), booking.get("transactionId")
        )
        or NOT_AVAILABLE,
        "booking_date": booking_date,
    }


def enrich(
    bookings: Sequence[Mapping[str, Any]],
    cache: ReferenceCache,
    bus_lookup: BusLookup,
    fetched_at: pd.Timestamp,
    timezone: str | None = None,
) -> pd.DataFrame:
    """Join bookings against the reference data into fact_transactions.

    Args:
        bookings: Booking documents (camelCase keys, ``id`` included).
        cache: Schedule reference cache.
        bus_lookup: Fleet lookup for plates and bus types.
        fetched_at: Instant used for bookings with no usable date.
        timezone: Timezone for naive booking dates (system local when None).

    Returns:
        DataFrame with TRANSACTION_COLUMNS, sorted by booking_date descending.
        Rows with equal dates keep their input order.

    """
    if not bookings:
        return empty_transactions()

    tz = resolve_tz(timezone)
    rows = []
    defaulted_amounts = 0
    defaulted_dates = 0
    for booking in bookings:
        amount = coerce_amount(booking.get("totalAmount"))
        if amount is None:
            defaulted_amounts += 1
            amount = 0.0

        raw_date = booking.get("bookingDate")
        if raw_date is None:
            raw_date = booking.get("createdAt")
        booking_date = coerce_instant(raw_date, tz)
        if booking_date is None:
            defaulted_dates += 1
            booking_date = fetched_at

        rows.append(_enrich_one(booking, cache, bus_lookup, booking_date, amount))

    if defaulted_amounts:
        logger.warning("%d booking(s) had no usable totalAmount; using 0", defaulted_amounts)
    if defaulted_dates:
        logger.warning(
            "%d booking(s) had no usable bookingDate/createdAt; using fetch time %s",
            defaulted_dates,
            fetched_at.isoformat(),
        )

    df = _apply_dtypes(pd.DataFrame(rows, columns=TRANSACTION_COLUMNS))
    df = df.sort_values("booking_date", ascending=False, kind="mergesort")
    return df.reset_index(drop=True)
