import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Default clock for every component."""
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int((value - _EPOCH) / timedelta(milliseconds=1))


def from_millis(millis: float) -> datetime:
    return _EPOCH + timedelta(milliseconds=float(millis))


def coerce_datetime(value: Any) -> Optional[datetime]:
    """
    Normalize a timestamp field from a snapshot payload.

    Accepts aware/naive datetimes, epoch milliseconds, ISO-8601 strings and
    store timestamp objects exposing ``to_datetime()``. Anything else yields
    None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return from_millis(value)
        except (OverflowError, ValueError):
            logger.debug(f"Timestamp out of range: {value!r}")
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            logger.debug(f"Unparseable timestamp string: {value!r}")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    to_datetime = getattr(value, 'to_datetime', None)
    if callable(to_datetime):
        return coerce_datetime(to_datetime())
    return None


def clean_text(value: Any) -> Optional[str]:
    """Return a stripped string, or None for blanks and non-strings."""
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None
