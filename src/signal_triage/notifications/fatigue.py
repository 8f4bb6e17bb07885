"""
Fatigue Guard.

Rolling hourly/daily delivery budget plus a minimum gap between deliveries. Windows
reset wholesale once their reset time has passed, evaluated lazily on read; there is
no continuously sliding window and no background timer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from ..core.formatters import format_datetime, format_optional, get_utc_now, parse_datetime
from ..core.logging import get_logger
from .models import BudgetStatus, FatigueCheckResult, Urgency

if TYPE_CHECKING:
    from .repositories import CountersRepository

logger = get_logger(__name__)

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)

# Above this share of the hourly budget only timely signals get through
BUDGET_PRESERVATION_THRESHOLD = 0.8

REASON_RAPID = "Rate limiting: too many rapid notifications"
REASON_MIN_GAP = "Minimum gap between notifications"
REASON_PRESERVATION = "Budget preservation: batching lower priority signals"


@dataclass(frozen=True)
class DeliveryBudget:
    """Delivery caps and the minimum gap between two deliveries."""

    hourly_limit: int = 8
    daily_limit: int = 30
    minimum_gap_seconds: float = 120.0

    @property
    def minimum_gap(self) -> timedelta:
        return timedelta(seconds=self.minimum_gap_seconds)

    @classmethod
    def from_settings(cls, settings: Any) -> DeliveryBudget:
        return cls(
            hourly_limit=settings.hourly_limit,
            daily_limit=settings.daily_limit,
            minimum_gap_seconds=settings.minimum_gap_seconds,
        )


DEFAULT_BUDGET = DeliveryBudget()


@dataclass
class DeliveryCounters:
    """Hourly and daily counters with absolute reset times."""

    hourly_count: int
    hourly_reset_at: datetime
    daily_count: int
    daily_reset_at: datetime
    last_delivery: datetime | None = None

    @classmethod
    def fresh(cls, now: datetime) -> DeliveryCounters:
        return cls(
            hourly_count=0,
            hourly_reset_at=now + HOUR,
            daily_count=0,
            daily_reset_at=now + DAY,
        )

    def roll(self, now: datetime) -> bool:
        """
        Reset any window whose reset time has passed.

        Returns:
            True if a window was reset
        """
        rolled = False
        if now > self.hourly_reset_at:
            self.hourly_count = 0
            self.hourly_reset_at = now + HOUR
            rolled = True
        if now > self.daily_reset_at:
            self.daily_count = 0
            self.daily_reset_at = now + DAY
            rolled = True
        return rolled

    def to_dict(self) -> dict[str, Any]:
        return {
            "hourly": {"count": self.hourly_count, "reset_at": format_datetime(self.hourly_reset_at)},
            "daily": {"count": self.daily_count, "reset_at": format_datetime(self.daily_reset_at)},
            "last_delivery": format_optional(self.last_delivery),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeliveryCounters:
        """
        Create from a persisted dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        hourly_reset = parse_datetime(data["hourly"]["reset_at"])
        daily_reset = parse_datetime(data["daily"]["reset_at"])
        if hourly_reset is None or daily_reset is None:
            raise ValueError("Counter reset times are required")
        return cls(
            hourly_count=int(data["hourly"]["count"]),
            hourly_reset_at=hourly_reset,
            daily_count=int(data["daily"]["count"]),
            daily_reset_at=daily_reset,
            last_delivery=parse_datetime(data.get("last_delivery")),
        )


class FatigueGuard:
    """
    Decides whether any delivery is permitted right now, regardless of content.

    Immediate urgency bypasses the caps but still waits half the minimum gap.
    Callers must call record_delivery() exactly once per delivered signal.
    """

    def __init__(
        self,
        counters: CountersRepository,
        budget: DeliveryBudget = DEFAULT_BUDGET,
        clock: Callable[[], datetime] = get_utc_now,
    ) -> None:
        self._counters = counters
        self.budget = budget
        self._clock = clock

    def _load(self) -> DeliveryCounters:
        now = self._clock()
        counters = self._counters.load()
        if counters is None:
            return DeliveryCounters.fresh(now)
        counters.roll(now)
        return counters

    @staticmethod
    def _status(counters: DeliveryCounters, budget: DeliveryBudget) -> BudgetStatus:
        percent = (
            round(counters.daily_count / budget.daily_limit * 100) if budget.daily_limit else 100
        )
        return BudgetStatus(
            hourly=max(0, budget.hourly_limit - counters.hourly_count),
            daily=max(0, budget.daily_limit - counters.daily_count),
            percent_used=percent,
        )

    def check(self, urgency: Urgency, budget: DeliveryBudget | None = None) -> FatigueCheckResult:
        """
        Check the delivery budget for a signal of the given urgency.

        Args:
            urgency: Effective urgency of the candidate signal
            budget: Budget override (persona caps), defaults to the guard's budget

        Returns:
            FatigueCheckResult with a reason and next delivery time when denied
        """
        budget = budget or self.budget
        now = self._clock()
        counters = self._load()
        status = self._status(counters, budget)
        since_last = now - counters.last_delivery if counters.last_delivery else None

        if urgency == Urgency.IMMEDIATE:
            half_gap = budget.minimum_gap / 2
            if since_last is not None and since_last < half_gap:
                return FatigueCheckResult(
                    allowed=False,
                    reason=REASON_RAPID,
                    budget_remaining=status,
                    next_delivery_at=counters.last_delivery + half_gap,
                )
            return FatigueCheckResult(allowed=True, budget_remaining=status)

        if counters.hourly_count >= budget.hourly_limit:
            return FatigueCheckResult(
                allowed=False,
                reason=f"Hourly limit reached ({budget.hourly_limit})",
                budget_remaining=status,
                next_delivery_at=counters.hourly_reset_at,
            )

        if counters.daily_count >= budget.daily_limit:
            return FatigueCheckResult(
                allowed=False,
                reason=f"Daily limit reached ({budget.daily_limit})",
                budget_remaining=status,
                next_delivery_at=counters.daily_reset_at,
            )

        if since_last is not None and since_last < budget.minimum_gap:
            return FatigueCheckResult(
                allowed=False,
                reason=REASON_MIN_GAP,
                budget_remaining=status,
                next_delivery_at=counters.last_delivery + budget.minimum_gap,
            )

        hourly_usage = counters.hourly_count / budget.hourly_limit
        if hourly_usage > BUDGET_PRESERVATION_THRESHOLD and urgency != Urgency.TIMELY:
            return FatigueCheckResult(
                allowed=False,
                reason=REASON_PRESERVATION,
                budget_remaining=status,
            )

        return FatigueCheckResult(allowed=True, budget_remaining=status)

    def record_delivery(self) -> DeliveryCounters:
        """Consume one unit of hourly and daily budget."""
        counters = self._load()
        counters.hourly_count += 1
        counters.daily_count += 1
        counters.last_delivery = self._clock()
        self._counters.save(counters)
        logger.debug(
            "Delivery recorded (hourly=%d, daily=%d)",
            counters.hourly_count,
            counters.daily_count,
        )
        return counters

    def get_budget_status(self, budget: DeliveryBudget | None = None) -> BudgetStatus:
        """Remaining budget; idempotent, safe to poll."""
        return self._status(self._load(), budget or self.budget)
