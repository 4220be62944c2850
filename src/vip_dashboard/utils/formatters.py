"""Formatting and parsing helpers for timestamps and display values."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_iso(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``, an explicit offset, fractional seconds, or
    an existing datetime. Naive values are taken to be UTC. Returns None
    for None/empty input and raises ValueError for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO-8601 UTC with a trailing ``Z``.

    Microseconds are always written so stored values sort lexically.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def to_query_iso(value: datetime) -> str:
    """Format a datetime for the ``updated_since`` query parameter."""
    value = value.astimezone(timezone.utc)
    if value.microsecond:
        return value.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_http_date(value: str) -> Optional[datetime]:
    """Parse an RFC 7231 HTTP-date, returning None if it is not one."""
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def later_of(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    """Return the later of two optional datetimes."""
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def mask_token(token: str) -> str:
    """Mask a credential for display, keeping four characters each side."""
    if len(token) <= 8:
        return "•" * max(3, len(token))
    return f"{token[:4]}…{token[-4:]}"
