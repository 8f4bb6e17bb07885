"""
Notification Decision Core Data Models.

Enums, the inbound Signal value object, the delivered IntelligentSignal entity,
clusters, and the result types returned by the guards.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..core.formatters import (
    format_datetime,
    format_optional,
    get_utc_now,
    parse_datetime,
    parse_required_datetime,
)


class Domain(str, Enum):
    """Signal domain."""

    COMPETITIVE = "COMPETITIVE"  # Competitor moves, products, M&A
    REGULATORY = "REGULATORY"  # Regulations and policy
    TECHNOLOGY = "TECHNOLOGY"  # Technology shifts
    MARKET = "MARKET"  # Funding, M&A, market trends
    NEWS = "NEWS"  # General news


class Priority(str, Enum):
    """Signal priority, ranked critical > high > medium > low."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Ordinal rank: critical=4 ... low=1."""
        return PRIORITY_RANK[self]


class Urgency(str, Enum):
    """Delivery urgency, ordered immediate < timely < batched < digest."""

    IMMEDIATE = "immediate"
    TIMELY = "timely"
    BATCHED = "batched"
    DIGEST = "digest"

    @property
    def order(self) -> int:
        """Index in URGENCY_ORDER (lower is more urgent)."""
        return URGENCY_ORDER.index(self)

    def escalate(self, other: Urgency) -> Urgency:
        """Return the more urgent of the two; never de-escalates."""
        return other if other.order < self.order else self


class BatchMode(str, Enum):
    """Persona batching mode."""

    REALTIME = "realtime"
    SMART = "smart"
    DIGEST = "digest"


PRIORITY_RANK: dict[Priority, int] = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}

URGENCY_ORDER: list[Urgency] = [
    Urgency.IMMEDIATE,
    Urgency.TIMELY,
    Urgency.BATCHED,
    Urgency.DIGEST,
]

ALL_DOMAINS: list[Domain] = list(Domain)


class SignalValidationError(ValueError):
    """Raised when an inbound signal is missing identity, domain or priority."""


# =============================================================================
# Inbound Signal
# =============================================================================


@dataclass(frozen=True)
class Signal:
    """
    Externally supplied signal.

    Only domain, priority, relevance_score and published_at feed scoring; the
    remaining fields pass through to the delivered signal and to rule matching.
    """

    id: str
    domain: Domain
    priority: Priority
    relevance_score: float
    published_at: datetime
    title: str = ""
    summary: str = ""
    url: str | None = None
    source_id: str | None = None
    signal_type: str | None = None
    companies: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: datetime | None = None) -> Signal:
        """Create from a raw dict; see validate_signal."""
        return validate_signal(data, now=now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "domain": self.domain.value,
            "priority": self.priority.value,
            "relevance_score": self.relevance_score,
            "published_at": format_datetime(self.published_at),
            "title": self.title,
            "summary": self.summary,
            "url": self.url,
            "source_id": self.source_id,
            "signal_type": self.signal_type,
            "companies": list(self.companies),
            "topics": list(self.topics),
        }


def _string_tuple(signal_id: Any, field_name: str, value: Any) -> tuple[str, ...]:
    """Normalize a list-valued signal field; a bare string counts as one element."""
    if value is None or value == "":
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    raise SignalValidationError(
        f"Signal {signal_id} has invalid {field_name}: expected a list, got {type(value).__name__}"
    )


def validate_signal(data: Any, now: datetime | None = None) -> Signal:
    """
    Validate a raw signal dict and build a Signal.

    Required: id, domain, priority. relevance_score defaults to 0.5 and is clamped
    to [0, 1]; published_at defaults to `now`.

    Raises:
        SignalValidationError: If a required field is missing or not recognized
    """
    if isinstance(data, Signal):
        return data
    if not isinstance(data, dict):
        raise SignalValidationError(f"Signal must be a mapping, got {type(data).__name__}")

    signal_id = data.get("id")
    if not signal_id:
        raise SignalValidationError("Signal is missing 'id'")

    try:
        domain = Domain(str(data.get("domain", "")).upper())
    except ValueError:
        raise SignalValidationError(f"Signal {signal_id} has unknown domain {data.get('domain')!r}")

    try:
        priority = Priority(str(data.get("priority", "")).lower())
    except ValueError:
        raise SignalValidationError(
            f"Signal {signal_id} has unknown priority {data.get('priority')!r}"
        )

    raw_relevance = data.get("relevance_score", 0.5)
    try:
        relevance = max(0.0, min(1.0, float(raw_relevance)))
    except (TypeError, ValueError):
        raise SignalValidationError(f"Signal {signal_id} has invalid relevance_score")

    try:
        published_at = parse_datetime(data.get("published_at"))
    except ValueError:
        raise SignalValidationError(f"Signal {signal_id} has invalid published_at")
    if published_at is None:
        published_at = now if now is not None else get_utc_now()

    return Signal(
        id=str(signal_id),
        domain=domain,
        priority=priority,
        relevance_score=relevance,
        published_at=published_at,
        title=data.get("title") or "",
        summary=data.get("summary") or "",
        url=data.get("url"),
        source_id=data.get("source_id"),
        signal_type=data.get("signal_type"),
        companies=_string_tuple(signal_id, "companies", data.get("companies")),
        topics=_string_tuple(signal_id, "topics", data.get("topics")),
    )


# =============================================================================
# Delivered Signal
# =============================================================================


@dataclass
class IntelligentSignal:
    """
    A scored signal, either delivered or waiting in the deferred queue.

    Mutated only by read/dismiss/feedback actions and cluster assignment.
    """

    id: str
    signal_id: str
    title: str
    summary: str
    domain: Domain
    priority: Priority
    sis: int
    urgency: Urgency
    created_at: datetime
    overrides_quiet_hours: bool = False
    sound: bool = False
    highlighted: bool = False
    cluster_id: str | None = None
    cluster_count: int | None = None
    read_at: datetime | None = None
    dismissed_at: datetime | None = None
    feedback_score: int | None = None
    source_url: str | None = None
    companies: list[str] = field(default_factory=list)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    @property
    def is_dismissed(self) -> bool:
        return self.dismissed_at is not None

    @property
    def is_unread(self) -> bool:
        """Neither read nor dismissed."""
        return self.read_at is None and self.dismissed_at is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "signal_id": self.signal_id,
            "title": self.title,
            "summary": self.summary,
            "domain": self.domain.value,
            "priority": self.priority.value,
            "sis": self.sis,
            "urgency": self.urgency.value,
            "created_at": format_datetime(self.created_at),
            "overrides_quiet_hours": self.overrides_quiet_hours,
            "sound": self.sound,
            "highlighted": self.highlighted,
            "cluster_id": self.cluster_id,
            "cluster_count": self.cluster_count,
            "read_at": format_optional(self.read_at),
            "dismissed_at": format_optional(self.dismissed_at),
            "feedback_score": self.feedback_score,
            "source_url": self.source_url,
            "companies": list(self.companies),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IntelligentSignal:
        """
        Create from a persisted dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        return cls(
            id=data["id"],
            signal_id=data["signal_id"],
            title=data.get("title", ""),
            summary=data.get("summary", ""),
            domain=Domain(data["domain"]),
            priority=Priority(data["priority"]),
            sis=int(data["sis"]),
            urgency=Urgency(data["urgency"]),
            created_at=parse_required_datetime(data["created_at"]),
            overrides_quiet_hours=bool(data.get("overrides_quiet_hours", False)),
            sound=bool(data.get("sound", False)),
            highlighted=bool(data.get("highlighted", False)),
            cluster_id=data.get("cluster_id"),
            cluster_count=data.get("cluster_count"),
            read_at=parse_datetime(data.get("read_at")),
            dismissed_at=parse_datetime(data.get("dismissed_at")),
            feedback_score=data.get("feedback_score"),
            source_url=data.get("source_url"),
            companies=list(data.get("companies") or []),
        )


@dataclass
class NotificationCluster:
    """
    Domain-scoped, time-windowed group of up to 5 signals.

    Urgency is the most urgent member's urgency.
    """

    id: str
    title: str
    domain: Domain
    signals: list[IntelligentSignal]
    top_sis: int
    urgency: Urgency
    created_at: datetime

    @property
    def size(self) -> int:
        return len(self.signals)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "title": self.title,
            "domain": self.domain.value,
            "signals": [s.to_dict() for s in self.signals],
            "top_sis": self.top_sis,
            "urgency": self.urgency.value,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationCluster:
        """Create from a persisted dict."""
        return cls(
            id=data["id"],
            title=data["title"],
            domain=Domain(data["domain"]),
            signals=[IntelligentSignal.from_dict(s) for s in data.get("signals", [])],
            top_sis=int(data["top_sis"]),
            urgency=Urgency(data["urgency"]),
            created_at=parse_required_datetime(data["created_at"]),
        )


# =============================================================================
# Guard Results
# =============================================================================


@dataclass
class BudgetStatus:
    """Remaining delivery budget."""

    hourly: int
    daily: int
    percent_used: int  # Share of the daily limit used, 0-100

    def to_dict(self) -> dict[str, Any]:
        return {"hourly": self.hourly, "daily": self.daily, "percent_used": self.percent_used}


@dataclass
class FatigueCheckResult:
    """Outcome of a fatigue budget check."""

    allowed: bool
    budget_remaining: BudgetStatus
    reason: str | None = None
    next_delivery_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "budget_remaining": self.budget_remaining.to_dict(),
            "next_delivery_at": format_optional(self.next_delivery_at),
        }


@dataclass
class NotifyDecision:
    """
    Outcome of the preference gates.

    `urgency_override` routes a denied signal (batched for focus, digest for
    persona threshold) or escalates an allowed one (matched alert rule).
    """

    allowed: bool
    reason: str | None = None
    gate: str | None = None  # snooze, quiet_hours, focus, persona_domain, persona_priority
    urgency_override: Urgency | None = None
    matched_rule_ids: list[str] = field(default_factory=list)
    sound: bool = False
    highlight: bool = False
    override_quiet_hours: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "gate": self.gate,
            "urgency_override": self.urgency_override.value if self.urgency_override else None,
            "matched_rule_ids": list(self.matched_rule_ids),
            "sound": self.sound,
            "highlight": self.highlight,
            "override_quiet_hours": self.override_quiet_hours,
        }


def make_id(prefix: str, now: datetime) -> str:
    """Build a record id like ``rule_1768384800000_3fa9c1``."""
    return f"{prefix}_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"
