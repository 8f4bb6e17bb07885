"""
Signal Triage Time Formatters

UTC helpers shared by the decision core and the CLI. Persisted timestamps are
ISO-8601 strings with a trailing "Z".
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def get_utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime with UTC timezone
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """
    Format datetime for persistence and display.

    Args:
        dt: datetime object (naive values are treated as UTC)

    Returns:
        ISO format string like "2026-01-15T12:30:00Z" (microseconds kept when set)
    """
    dt = ensure_utc(dt)
    if dt.microsecond:
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_datetime(value: Optional[str | datetime]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts datetimes unchanged (normalized to UTC), "Z" suffixed strings and
    explicit offsets.

    Raises:
        ValueError: If the string is not ISO-8601
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO timestamp string, got {type(value).__name__}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_optional(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime that may be missing."""
    return format_datetime(dt) if dt is not None else None


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now().replace(microsecond=0))


def parse_required_datetime(value: Optional[str | datetime]) -> datetime:
    """
    Parse a timestamp that must be present.

    Raises:
        ValueError: If the value is missing or not ISO-8601
    """
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError("Timestamp is required")
    return parsed
