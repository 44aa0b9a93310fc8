"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

__all__ = [
    "serialize_datetime",
    "parse_datetime",
    "ensure_utc",
    "retention_cutoff",
    "format_imap_date",
]

_IMAP_MONTHS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` in UTC, treating naive values as already UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to an ISO 8601 UTC string that sorts lexically."""
    normalized = ensure_utc(value)
    if normalized is None:
        return None
    return normalized.isoformat(timespec="seconds")


def parse_datetime(value: str | None, *, assume_utc: bool = False) -> datetime | None:
    """Parse an ISO 8601 string into a ``datetime`` instance."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None and assume_utc:
        return parsed.replace(tzinfo=UTC)
    return parsed


def retention_cutoff(now: datetime, retention_days: int) -> datetime:
    """Return the oldest timestamp still inside the retention window."""
    reference = ensure_utc(now) or now
    return reference - timedelta(days=retention_days)


def format_imap_date(value: datetime) -> str:
    """Format ``value`` as an IMAP ``date`` (``dd-Mon-yyyy``), locale independent."""
    return f"{value.day:02d}-{_IMAP_MONTHS[value.month - 1]}-{value.year}"
