"""
Quiet Hours.

Timezone-aware quiet hours checking using zoneinfo for DST handling. The window is
half-open (start inclusive, end exclusive) and wraps past midnight when start > end.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.logging import get_logger

logger = get_logger(__name__)

_TIME_PATTERN = re.compile(r"^\d{1,2}:\d{2}$")

# datetime.weekday() values
WEEKEND_DAYS = frozenset({5, 6})


def parse_hhmm(time_str: str | None) -> time:
    """
    Parse an HH:MM string to a time object.

    Malformed values parse as midnight.
    """
    if not time_str or not isinstance(time_str, str):
        return time(0, 0)
    parts = time_str.split(":")
    if len(parts) < 2:
        return time(0, 0)
    try:
        hour = int(parts[0])
        minute = int(parts[1])
        return time(hour=hour, minute=minute)
    except ValueError:
        return time(0, 0)


def validate_hhmm(label: str, value: Any) -> list[str]:
    """Check an HH:MM value, returning error messages."""
    if not isinstance(value, str) or not _TIME_PATTERN.match(value):
        return [f"{label} must be HH:MM, got {value!r}"]
    hour, minute = (int(p) for p in value.split(":"))
    if hour > 23 or minute > 59:
        return [f"{label} out of range: {value}"]
    return []


def validate_timezone(name: str) -> list[str]:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return [f"Unknown timezone: {name}"]
    return []


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Look up a zoneinfo timezone, falling back to UTC."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def in_window(current: time, start: time, end: time) -> bool:
    """Check a time of day against a half-open [start, end) window."""
    if start > end:
        # Spans midnight (e.g., 22:00 to 08:00)
        return current >= start or current < end
    return start <= current < end


@dataclass
class QuietHoursConfig:
    """
    Quiet hours configuration.

    Uses zoneinfo-compatible timezone strings.
    """

    enabled: bool = True
    start: str = "22:00"  # HH:MM format
    end: str = "08:00"  # HH:MM format
    timezone: str = "UTC"
    allow_critical_override: bool = True
    weekends_only: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, default_timezone: str = "UTC") -> QuietHoursConfig:
        """Create from configuration dict."""
        if not data:
            return cls(timezone=default_timezone)
        return cls(
            enabled=bool(data.get("enabled", True)),
            start=data.get("start", "22:00"),
            end=data.get("end", "08:00"),
            timezone=data.get("timezone") or default_timezone,
            allow_critical_override=bool(data.get("allow_critical_override", True)),
            weekends_only=bool(data.get("weekends_only", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "start": self.start,
            "end": self.end,
            "timezone": self.timezone,
            "allow_critical_override": self.allow_critical_override,
            "weekends_only": self.weekends_only,
        }

    def validate(self) -> list[str]:
        """
        Validate the quiet hours configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = validate_hhmm("Quiet hours start", self.start)
        errors.extend(validate_hhmm("Quiet hours end", self.end))
        errors.extend(validate_timezone(self.timezone))
        return errors


@dataclass
class QuietHoursChecker:
    """
    Checks if a moment falls within quiet hours.

    Uses zoneinfo for proper DST handling: local wall-clock time decides.
    """

    config: QuietHoursConfig

    def __post_init__(self) -> None:
        """Parse time strings to time objects."""
        self._start_time = parse_hhmm(self.config.start)
        self._end_time = parse_hhmm(self.config.end)
        self._timezone = resolve_timezone(self.config.timezone)

    def _localize(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            # Naive datetime - interpret in configured timezone
            return now.replace(tzinfo=self._timezone)
        return now.astimezone(self._timezone)

    def is_quiet_time(self, now: datetime) -> bool:
        """
        Check if the given time is within quiet hours.

        Args:
            now: Moment to check

        Returns:
            True if within quiet hours, False otherwise
        """
        if not self.config.enabled:
            return False

        local = self._localize(now)
        if self.config.weekends_only and local.weekday() not in WEEKEND_DAYS:
            return False

        return in_window(local.time(), self._start_time, self._end_time)

    def next_active_time(self, now: datetime) -> datetime | None:
        """
        Get the next time when notifications will be active.

        Returns:
            Datetime when quiet hours end, or None if not in quiet period
        """
        if not self.is_quiet_time(now):
            return None

        local = self._localize(now)
        end_dt = local.replace(
            hour=self._end_time.hour,
            minute=self._end_time.minute,
            second=0,
            microsecond=0,
        )

        # If end time is before current time, it's tomorrow
        if end_dt <= local:
            end_dt = end_dt + timedelta(days=1)

        return end_dt
