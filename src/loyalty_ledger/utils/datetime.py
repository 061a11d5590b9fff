"""Date-time helpers for expiry and renewal cycle calculations.

All persisted timestamps are naive UTC.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as a naive UTC timestamp."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime | None) -> datetime:
    """Normalise an optional timestamp to naive UTC, defaulting to now."""

    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def cycle_end(year: int) -> datetime:
    """Return the last second of the annual cycle for ``year``."""

    return datetime(year, 12, 31, 23, 59, 59)


def next_cycle_end(now: datetime) -> datetime:
    """Return the first cycle end strictly after ``now``."""

    current = as_naive_utc(now)
    end = cycle_end(current.year)
    if end <= current:
        end = cycle_end(current.year + 1)
    return end


def to_timestamp(value: datetime) -> int:
    """Convert a naive UTC or aware timestamp to integer epoch seconds."""

    return int(as_naive_utc(value).replace(tzinfo=timezone.utc).timestamp())
