"""Timestamp and calendar-day helpers.

Every timestamp column stores naive UTC. Callers think in local calendar
dates, so date windows are converted here at day start / day end.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "UTC"

TimestampInput = Union[str, datetime, None]


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive input is assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: TimestampInput) -> Optional[datetime]:
    """Parse a webhook or user supplied timestamp into naive UTC.

    Accepts ISO 8601 with either ``T`` or a space separator, a trailing
    ``Z``, and offsets such as ``+00:00`` (the automation tool sends
    ``"2025-10-14 17:50:33.104655+00:00"``). Returns None when the value is
    empty or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None

    return to_naive_utc(parsed)


def is_valid_timestamp(value: object) -> bool:
    """Whether a stored start time is usable."""
    if isinstance(value, datetime):
        return True
    if isinstance(value, str):
        return parse_timestamp(value) is not None
    return False


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """Look up an IANA zone name.

    Raises:
        ValueError: If the zone is unknown.
    """
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone '{name}'") from e


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` calendar date.

    Raises:
        ValueError: If the value is not a valid date.
    """
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"invalid date '{value}', expected YYYY-MM-DD") from e


def day_start_utc(day: date, tz: ZoneInfo) -> datetime:
    """First instant of a local calendar day, as naive UTC."""
    return to_naive_utc(datetime.combine(day, time.min, tzinfo=tz))


def day_end_utc(day: date, tz: ZoneInfo) -> datetime:
    """Last instant of a local calendar day, as naive UTC."""
    return to_naive_utc(datetime.combine(day, time.max, tzinfo=tz))


def local_date(value: datetime, tz: ZoneInfo) -> date:
    """Local calendar date of a naive UTC timestamp."""
    return value.replace(tzinfo=timezone.utc).astimezone(tz).date()


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
