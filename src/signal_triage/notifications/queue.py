"""
Deferred Signal Queue.

Holds signals denied by the fatigue guard or the preference gates. Drains take the
highest SIS first and re-check only the fatigue guard; denied signals stay queued.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.logging import get_logger
from .models import IntelligentSignal
from .repositories import rank_by_sis

if TYPE_CHECKING:
    from .fatigue import DeliveryBudget, FatigueGuard
    from .repositories import QueueRepository

logger = get_logger(__name__)


class SignalQueue:
    """Deferred signals backed by a QueueRepository."""

    def __init__(self, repository: QueueRepository, fatigue: FatigueGuard) -> None:
        self._repo = repository
        self._fatigue = fatigue

    def enqueue(self, signal: IntelligentSignal) -> None:
        queue = self._repo.load()
        queue.append(signal)
        self._repo.save(queue)
        logger.debug("Queued %s (sis=%d, urgency=%s)", signal.id, signal.sis, signal.urgency.value)

    def get_queue(self) -> list[IntelligentSignal]:
        """Queued signals in drain order."""
        return rank_by_sis(self._repo.load())

    def size(self) -> int:
        return len(self._repo.load())

    def clear(self) -> int:
        """Drop every queued signal; returns how many were dropped."""
        count = len(self._repo.load())
        self._repo.clear()
        return count

    def drain(self, budget: DeliveryBudget | None = None) -> list[IntelligentSignal]:
        """
        Deliver queued signals the fatigue guard now allows.

        Each delivered signal consumes one budget unit. Undelivered signals keep
        their original queue position.

        Returns:
            Delivered signals in descending SIS order
        """
        queue = self._repo.load()
        if not queue:
            return []

        delivered: list[IntelligentSignal] = []
        for signal in rank_by_sis(queue):
            result = self._fatigue.check(signal.urgency, budget)
            if not result.allowed:
                continue
            self._fatigue.record_delivery()
            delivered.append(signal)

        if delivered:
            delivered_ids = {id(s) for s in delivered}
            self._repo.save([s for s in queue if id(s) not in delivered_ids])
            logger.info("Delivered %d queued signal(s), %d remain", len(delivered), len(queue) - len(delivered))

        return delivered
