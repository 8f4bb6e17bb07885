"""
Behavior Learner.

Tracks per-domain read and dismiss rates as exponential moving averages and keeps a
preferred-domain ranking derived from them. The ranking feeds the history component
of the Signal Intelligence Score on the next scored signal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Literal

from ..core.formatters import format_optional, get_utc_now, parse_datetime
from ..core.logging import get_logger
from .models import ALL_DOMAINS, Domain

logger = get_logger(__name__)

NEUTRAL_RATE = 0.5
DEFAULT_LEARNING_WEIGHT = 0.1

InteractionAction = Literal["read", "dismiss", "feedback"]


def _neutral_rates() -> dict[Domain, float]:
    return {domain: NEUTRAL_RATE for domain in ALL_DOMAINS}


@dataclass
class UserBehaviorData:
    """
    Learned engagement profile for the single user.

    Created lazily on the first interaction with neutral rates for every domain.
    """

    read_rates: dict[Domain, float] = field(default_factory=_neutral_rates)
    dismiss_rates: dict[Domain, float] = field(default_factory=_neutral_rates)
    preferred_domains: list[Domain] = field(default_factory=lambda: list(ALL_DOMAINS))
    helpful_count: int = 0
    not_helpful_count: int = 0
    total_interactions: int = 0
    last_updated: datetime | None = None

    def read_rate(self, domain: Domain) -> float:
        """Read rate for a domain, neutral when unknown or zero."""
        return self.read_rates.get(domain) or NEUTRAL_RATE

    def preference_index(self, domain: Domain) -> int | None:
        """Position of a domain in the preference ranking, None if absent."""
        try:
            return self.preferred_domains.index(domain)
        except ValueError:
            return None

    def resort_preferences(self) -> None:
        """Re-rank every tracked domain by descending read rate (stable on ties)."""
        self.preferred_domains = sorted(
            self.read_rates, key=lambda d: self.read_rates[d], reverse=True
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "read_rates": {d.value: r for d, r in self.read_rates.items()},
            "dismiss_rates": {d.value: r for d, r in self.dismiss_rates.items()},
            "preferred_domains": [d.value for d in self.preferred_domains],
            "helpful_count": self.helpful_count,
            "not_helpful_count": self.not_helpful_count,
            "total_interactions": self.total_interactions,
            "last_updated": format_optional(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserBehaviorData:
        """
        Create from a persisted dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        read_rates = {Domain(k): float(v) for k, v in data["read_rates"].items()}
        dismiss_rates = {Domain(k): float(v) for k, v in data["dismiss_rates"].items()}
        for domain in ALL_DOMAINS:
            read_rates.setdefault(domain, NEUTRAL_RATE)
            dismiss_rates.setdefault(domain, NEUTRAL_RATE)

        return cls(
            read_rates=read_rates,
            dismiss_rates=dismiss_rates,
            preferred_domains=[Domain(d) for d in data.get("preferred_domains", [])],
            helpful_count=int(data.get("helpful_count", 0)),
            not_helpful_count=int(data.get("not_helpful_count", 0)),
            total_interactions=int(data.get("total_interactions", 0)),
            last_updated=parse_datetime(data.get("last_updated")),
        )


class BehaviorLearner:
    """
    Applies user interactions to a UserBehaviorData profile.

    Example:
        learner = BehaviorLearner()
        behavior = learner.record(None, Domain.REGULATORY, "read")
        behavior.read_rates[Domain.REGULATORY]  # 0.55
    """

    def __init__(
        self,
        weight: float = DEFAULT_LEARNING_WEIGHT,
        clock: Callable[[], datetime] = get_utc_now,
    ) -> None:
        self.weight = weight
        self._clock = clock

    def _ema(self, current: float) -> float:
        return current * (1 - self.weight) + 1 * self.weight

    def record(
        self,
        behavior: UserBehaviorData | None,
        domain: Domain,
        action: InteractionAction,
        feedback_score: int | None = None,
    ) -> UserBehaviorData:
        """
        Apply one interaction and return the updated profile.

        Args:
            behavior: Current profile (None on the first interaction)
            domain: Domain of the signal acted on
            action: "read", "dismiss" or "feedback"
            feedback_score: -1, 0 or 1 for feedback actions

        Returns:
            The updated profile (mutated in place when one was given)
        """
        if behavior is None:
            behavior = UserBehaviorData()

        if action == "read":
            behavior.read_rates[domain] = self._ema(
                behavior.read_rates.get(domain, NEUTRAL_RATE)
            )
        elif action == "dismiss":
            behavior.dismiss_rates[domain] = self._ema(
                behavior.dismiss_rates.get(domain, NEUTRAL_RATE)
            )
        elif action == "feedback":
            if feedback_score == 1:
                behavior.helpful_count += 1
            elif feedback_score == -1:
                behavior.not_helpful_count += 1
        else:
            logger.warning("Ignoring unknown interaction action: %s", action)
            return behavior

        behavior.resort_preferences()
        behavior.total_interactions += 1
        behavior.last_updated = self._clock()

        logger.debug(
            "Recorded %s on %s (interactions=%d)",
            action,
            domain.value,
            behavior.total_interactions,
        )
        return behavior
