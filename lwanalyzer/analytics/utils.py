"""
Shared Helpers for the Analytics Module
=======================================

Small pure functions used across the pipeline: timestamp handling,
calendar-day keys, numeric guards and catalog key normalisation.

All calendar arithmetic is done in UTC. A "date key" is the
"YYYY-MM-DD" string of a timestamp's UTC date.

    >>> to_date_key(datetime(2024, 5, 1, 23, 59, tzinfo=timezone.utc))
    '2024-05-01'
    >>> freq_key(868.1)
    '868.1'
    >>> freq_key(868.0)
    '868'
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

DAY = timedelta(days=1)


def is_valid_number(value: Any) -> bool:
    """True for int/float values that are not NaN (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a datetime or ISO-8601 string into an aware UTC datetime.

    Returns None for anything that cannot be parsed.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """UTC ISO-8601 with milliseconds and a Z suffix, or None."""
    if value is None:
        return None
    utc = ensure_utc(value)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def to_date_key(value: datetime) -> str:
    """UTC calendar date of a timestamp as YYYY-MM-DD."""
    return ensure_utc(value).date().isoformat()


def date_key_range(start_key: str, end_key: str) -> List[str]:
    """Every date key from start_key to end_key inclusive."""
    start = date.fromisoformat(start_key)
    end = date.fromisoformat(end_key)
    days = (end - start).days + 1
    return [(start + i * DAY).isoformat() for i in range(max(days, 0))]


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def median(values: Iterable[float]) -> Optional[float]:
    """Median of values, None when empty."""
    ordered = sorted(values)
    if not ordered:
        return None
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def freq_key(frequency: Any) -> str:
    """
    Normalise a frequency to its catalog key.

    Integral values lose the trailing ".0" so 868 and 868.0 share a key.
    """
    if frequency is None:
        return "null"
    try:
        number = float(frequency)
    except (TypeError, ValueError):
        return str(frequency)
    if math.isnan(number) or math.isinf(number):
        return str(frequency)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def uniq_sorted_numeric(values: Iterable[Any]) -> List[float]:
    """Unique numeric values in ascending order; non-numbers dropped."""
    seen = set()
    for v in values:
        if v is None or v == "":
            continue
        try:
            number = float(v)
        except (TypeError, ValueError):
            continue
        if math.isnan(number):
            continue
        seen.add(number)
    return sorted(seen)


def round_or_none(value: Optional[float], digits: int = 2) -> Optional[float]:
    if value is None:
        return None
    return round(value, digits)
