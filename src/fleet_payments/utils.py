"""Shared utilities for the payment pipeline.

This module provides the value coercions applied to raw booking documents
and the chunking and timezone helpers used across the payments stages:

- Instant coercion: Firestore timestamps, datetimes, ISO strings, epoch numbers
- Amount coercion: numeric strings and numbers, rejecting NaN and booleans
- Chunking: fixed-size id batches for provider queries
- Local time: timezone resolution, local midnight and short date formatting

Examples:
    >>> coerce_instant({"seconds": 1700000000, "nanoseconds": 0})
    Timestamp('2023-11-14 22:13:20+0000', tz='UTC')
    >>> list(iter_chunks(["a", "b", "c"], 2))
    [['a', 'b'], ['c']]

"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator
from datetime import date, datetime, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd

from fleet_payments.exceptions import ConfigError

# Epoch values above this are milliseconds (1e11 seconds is year 5138)
_EPOCH_MS_THRESHOLD = 1e11


def resolve_tz(name: str | None = None) -> tzinfo:
    """Resolve an IANA timezone name, or the system local timezone for None.

    Raises:
        ConfigError: If the timezone name is unknown.
    """
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown timezone {name!r}") from e
    local = datetime.now().astimezone().tzinfo
    assert local is not None
    return local


def _to_utc(ts: pd.Timestamp, tz: tzinfo) -> pd.Timestamp:
    if ts.tzinfo is None:
        ts = ts.tz_localize(tz)
    return ts.tz_convert("UTC")


def coerce_instant(value: Any, tz: tzinfo | None = None) -> pd.Timestamp | None:
    """Coerce a timestamp-like value to a tz-aware UTC Timestamp.

    Naive values are interpreted in ``tz`` (system local when None).

    Args:
        value: datetime, date, pandas Timestamp, ISO string, epoch seconds or
            milliseconds, or a Firestore timestamp mapping with
            ``seconds``/``nanoseconds`` (``_seconds``/``_nanoseconds`` in the
            admin SDK JSON form).
        tz: Timezone for naive values.

    Returns:
        UTC Timestamp, or None if the value is missing or unparseable.

    Examples:
        >>> coerce_instant("2025-01-15T10:00:00Z")
        Timestamp('2025-01-15 10:00:00+0000', tz='UTC')
        >>> coerce_instant("not a date") is None
        True

    """
    if value is None or isinstance(value, bool):
        return None
    if tz is None:
        tz = resolve_tz()

    try:
        if isinstance(value, pd.Timestamp):
            return None if pd.isna(value) else _to_utc(value, tz)
        if isinstance(value, datetime):
            return _to_utc(pd.Timestamp(value), tz)
        if isinstance(value, date):
            return _to_utc(pd.Timestamp(datetime(value.year, value.month, value.day)), tz)
        if isinstance(value, dict):
            seconds = value.get("seconds", value.get("_seconds"))
            if seconds is None:
                return None
            nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
            return pd.to_datetime(int(seconds) * 10**9 + int(nanos), unit="ns", utc=True)
        if isinstance(value, (int, float)):
            if isinstance(value, float) and math.isnan(value):
                return None
            unit = "ms" if abs(value) >= _EPOCH_MS_THRESHOLD else "s"
            return pd.to_datetime(value, unit=unit, utc=True)
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            ts = pd.Timestamp(text)
            return None if pd.isna(ts) else _to_utc(ts, tz)
    except (ValueError, TypeError, OverflowError):
        return None

    return None


def coerce_amount(value: Any) -> float | None:
    """Coerce a money amount to float.

    Returns:
        The amount, or None if it is missing, boolean, NaN or non-numeric.

    Examples:
        >>> coerce_amount("1500")
        1500.0
        >>> coerce_amount(None) is None
        True

    """
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount):
        return None
    return amount


def iter_chunks(items: Iterable[str], size: int) -> Iterator[list[str]]:
    """Yield consecutive lists of at most ``size`` items.

    Args:
        items: Items to split, consumed in order.
        size: Maximum chunk length (must be at least 1).

    Yields:
        Lists covering ``items`` without overlap. Only the last may be shorter.

    Raises:
        ValueError: If size is less than 1.

    """
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    chunk: list[str] = []
    for item in items:
        chunk.append(item)
        if len(chunk) == size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def local_midnight(now: pd.Timestamp | datetime, tz: tzinfo, days_back: int = 0) -> pd.Timestamp:
    """Return local midnight of ``now``'s calendar day, minus ``days_back`` days.

    The result is tz-aware in ``tz``.
    """
    ts = pd.Timestamp(now)
    ts = ts.tz_localize(tz) if ts.tzinfo is None else ts.tz_convert(tz)
    day = ts.date() - timedelta(days=days_back)
    return pd.Timestamp(datetime(day.year, day.month, day.day)).tz_localize(tz)


def format_short_date(ts: pd.Timestamp | None, tz: tzinfo) -> str:
    """Format an instant as a local short date, M/D/YYYY.

    Examples:
        >>> from datetime import timezone
        >>> format_short_date(pd.Timestamp("2025-03-07T12:00:00Z"), timezone.utc)
        '3/7/2025'

    """
    if ts is None or pd.isna(ts):
        return ""
    local = pd.Timestamp(ts).tz_convert(tz)
    return f"{local.month}/{local.day}/{local.year}"
