"""
Signal Intelligence Score.

Weighted blend of four 0-100 sub-scores:
- base relevance (35%): per-domain importance blended with the signal's own relevance
- priority (30%): fixed lookup per priority level
- recency (15%): exponential decay with a 24 hour half-life
- user history (20%): read rate and preference rank from learned behavior
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from ..core.formatters import ensure_utc, get_utc_now
from .behavior import UserBehaviorData
from .models import Domain, Priority, Signal, Urgency

SIS_WEIGHTS: dict[str, float] = {
    "base_relevance": 0.35,
    "priority": 0.30,
    "recency": 0.15,
    "user_history": 0.20,
}

PRIORITY_SCORES: dict[Priority, int] = {
    Priority.CRITICAL: 100,
    Priority.HIGH: 75,
    Priority.MEDIUM: 50,
    Priority.LOW: 25,
}

DOMAIN_BASE_RELEVANCE: dict[Domain, int] = {
    Domain.COMPETITIVE: 90,
    Domain.REGULATORY: 85,
    Domain.TECHNOLOGY: 70,
    Domain.MARKET: 65,
    Domain.NEWS: 50,
}

RECENCY_HALF_LIFE_HOURS = 24.0
NEUTRAL_HISTORY_SCORE = 50.0

# Urgency thresholds on SIS for non-critical signals
IMMEDIATE_THRESHOLD = 80
TIMELY_THRESHOLD = 60
BATCHED_THRESHOLD = 40


@dataclass(frozen=True)
class SISBreakdown:
    """Sub-scores behind a Signal Intelligence Score."""

    base_relevance: float
    priority: float
    recency: float
    user_history: float
    sis: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "sis": self.sis,
            "components": {
                "base_relevance": round(self.base_relevance, 2),
                "priority": round(self.priority, 2),
                "recency": round(self.recency, 2),
                "user_history": round(self.user_history, 2),
            },
            "weights": dict(SIS_WEIGHTS),
        }


class SignalScorer:
    """
    Computes SIS and urgency for signals.

    Scoring is a pure function of the signal, the behavior snapshot and the clock.
    """

    def __init__(self, clock: Callable[[], datetime] = get_utc_now) -> None:
        self._clock = clock

    def _recency(self, published_at: datetime) -> float:
        age_hours = (self._clock() - ensure_utc(published_at)).total_seconds() / 3600
        return 100 * 0.5 ** (age_hours / RECENCY_HALF_LIFE_HOURS)

    @staticmethod
    def _history(domain: Domain, behavior: UserBehaviorData | None) -> float:
        if behavior is None:
            return NEUTRAL_HISTORY_SCORE

        index = behavior.preference_index(domain)
        boost = (5 - min(index, 4)) * 10 if index is not None else 0
        return behavior.read_rate(domain) * 50 + boost

    def explain(self, signal: Signal, behavior: UserBehaviorData | None = None) -> SISBreakdown:
        """Compute every sub-score and the resulting SIS."""
        base = DOMAIN_BASE_RELEVANCE[signal.domain] * 0.4 + signal.relevance_score * 100 * 0.6
        priority = float(PRIORITY_SCORES[signal.priority])
        recency = self._recency(signal.published_at)
        history = self._history(signal.domain, behavior)

        raw = (
            base * SIS_WEIGHTS["base_relevance"]
            + priority * SIS_WEIGHTS["priority"]
            + recency * SIS_WEIGHTS["recency"]
            + history * SIS_WEIGHTS["user_history"]
        )
        # Half-up rounding; future-dated signals push recency above 100
        sis = min(100, max(0, math.floor(raw + 0.5)))
        return SISBreakdown(
            base_relevance=base,
            priority=priority,
            recency=recency,
            user_history=history,
            sis=sis,
        )

    def calculate_sis(self, signal: Signal, behavior: UserBehaviorData | None = None) -> int:
        """
        Calculate the Signal Intelligence Score.

        Args:
            signal: Validated inbound signal
            behavior: Learned behavior snapshot, None for neutral history

        Returns:
            Integer score in [0, 100]
        """
        return self.explain(signal, behavior).sis

    @staticmethod
    def determine_urgency(
        sis: int,
        priority: Priority,
        behavior: UserBehaviorData | None = None,
    ) -> Urgency:
        """
        Map a score to an urgency tier.

        Critical priority is always immediate; otherwise SIS thresholds apply.
        """
        if priority == Priority.CRITICAL:
            return Urgency.IMMEDIATE
        if sis >= IMMEDIATE_THRESHOLD:
            return Urgency.IMMEDIATE
        if sis >= TIMELY_THRESHOLD:
            return Urgency.TIMELY
        if sis >= BATCHED_THRESHOLD:
            return Urgency.BATCHED
        return Urgency.DIGEST
