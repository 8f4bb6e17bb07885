"""
Focus Zones.

A focus zone is a named domain allow-list. While one is active, signals outside its
domains are deferred as batched instead of delivered. Expiry is evaluated on read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..core.formatters import (
    format_datetime,
    format_optional,
    parse_datetime,
    parse_required_datetime,
)
from .models import Domain
from .quiet_hours import in_window, parse_hhmm, resolve_timezone


@dataclass
class FocusSchedule:
    """
    Recurring focus window.

    days_of_week uses 0=Sunday ... 6=Saturday.
    """

    days_of_week: list[int]
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    timezone: str = "UTC"

    def is_active(self, now: datetime) -> bool:
        """Check whether `now` falls inside the scheduled window."""
        local = now.astimezone(resolve_timezone(self.timezone))
        # weekday() is Monday=0; schedules count from Sunday=0
        day = (local.weekday() + 1) % 7
        if day not in self.days_of_week:
            return False
        return in_window(local.time(), parse_hhmm(self.start_time), parse_hhmm(self.end_time))

    def to_dict(self) -> dict[str, Any]:
        return {
            "days_of_week": list(self.days_of_week),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FocusSchedule:
        return cls(
            days_of_week=[int(d) for d in data["days_of_week"]],
            start_time=data["start_time"],
            end_time=data["end_time"],
            timezone=data.get("timezone", "UTC"),
        )

    def validate(self) -> list[str]:
        """
        Validate the schedule.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors: list[str] = []
        if not self.days_of_week:
            errors.append("Focus schedule needs at least one day")
        if any(d < 0 or d > 6 for d in self.days_of_week):
            errors.append("Focus schedule days must be 0 (Sunday) to 6 (Saturday)")
        return errors


@dataclass
class FocusZone:
    """Named subset of domains that may become the sole active focus."""

    id: str
    name: str
    domains: list[Domain]
    created_at: datetime
    schedule: FocusSchedule | None = None

    def allows(self, domain: Domain) -> bool:
        return domain in self.domains

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "domains": [d.value for d in self.domains],
            "created_at": format_datetime(self.created_at),
            "schedule": self.schedule.to_dict() if self.schedule else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FocusZone:
        """
        Create from a persisted dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        schedule = data.get("schedule")
        return cls(
            id=data["id"],
            name=data["name"],
            domains=[Domain(d) for d in data["domains"]],
            created_at=parse_required_datetime(data["created_at"]),
            schedule=FocusSchedule.from_dict(schedule) if schedule else None,
        )


@dataclass
class ActiveFocus:
    """
    The currently active focus zone.

    `scheduled` marks a focus derived from a zone schedule rather than a manual
    activation; it is never persisted.
    """

    zone: FocusZone
    started_at: datetime
    ends_at: datetime | None = None
    signals_collected: int = 0
    scheduled: bool = field(default=False, compare=False)

    def is_expired(self, now: datetime) -> bool:
        return self.ends_at is not None and now > self.ends_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "zone": self.zone.to_dict(),
            "started_at": format_datetime(self.started_at),
            "ends_at": format_optional(self.ends_at),
            "signals_collected": self.signals_collected,
            "scheduled": self.scheduled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActiveFocus:
        return cls(
            zone=FocusZone.from_dict(data["zone"]),
            started_at=parse_required_datetime(data["started_at"]),
            ends_at=parse_datetime(data.get("ends_at")),
            signals_collected=int(data.get("signals_collected", 0)),
        )
