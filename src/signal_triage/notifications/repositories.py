"""
Aggregate Repositories.

One typed gateway per persisted aggregate. Each hides its key, JSON encoding and
recovery behavior:
- Reads fall back to the default state on missing, undecodable or malformed data
- Writes that exceed store capacity are retried once with a truncated payload
- A second failure is logged and swallowed
"""

from __future__ import annotations

import json
from typing import Any, Callable

from ..core.logging import get_logger
from .behavior import UserBehaviorData
from .fatigue import DeliveryCounters
from .models import IntelligentSignal, NotificationCluster
from .preferences import IntelligentPreferences
from .store import KeyValueStore, StoreCapacityError, StoreError

logger = get_logger(__name__)

PREFERENCES_KEY = "triage_preferences"
SIGNALS_KEY = "triage_signals"
BEHAVIOR_KEY = "triage_behavior"
COUNTERS_KEY = "triage_counters"
QUEUE_KEY = "triage_queue"
CLUSTERS_KEY = "triage_clusters"

# Raised by from_dict on malformed records
_SHAPE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def rank_by_sis(signals: list[IntelligentSignal]) -> list[IntelligentSignal]:
    """Descending SIS; among equal scores the newest first."""
    return sorted(signals, key=lambda s: (s.sis, s.created_at), reverse=True)


def keep_best(signals: list[IntelligentSignal], limit: int) -> list[IntelligentSignal]:
    """Keep the `limit` highest-SIS signals, preserving their original order."""
    if len(signals) <= limit:
        return list(signals)
    kept = {id(s) for s in rank_by_sis(signals)[:limit]}
    return [s for s in signals if id(s) in kept]


class _JsonRepository:
    """Shared read/write plumbing over a KeyValueStore."""

    key: str = ""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def _read(self) -> Any | None:
        try:
            raw = self._store.get(self.key)
        except StoreError as e:
            logger.warning("Failed to read %s: %s", self.key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt %s state, using defaults: %s", self.key, e)
            return None

    def _write(self, payload: Any, truncate: Callable[[], Any] | None = None) -> bool:
        """
        Write a payload, retrying once with `truncate()` on a capacity failure.

        Returns:
            True if either attempt was stored
        """
        try:
            self._store.set(self.key, json.dumps(payload))
            return True
        except StoreCapacityError as e:
            if truncate is None:
                logger.error("Store full, %s not saved: %s", self.key, e)
                return False
            logger.warning("Store full writing %s, retrying with truncated payload", self.key)
        except StoreError as e:
            logger.error("Failed to save %s: %s", self.key, e)
            return False

        try:
            self._store.set(self.key, json.dumps(truncate()))
            return True
        except StoreError as e:
            logger.error("Failed to save truncated %s: %s", self.key, e)
            return False

    def clear(self) -> None:
        try:
            self._store.delete(self.key)
        except StoreError as e:
            logger.error("Failed to clear %s: %s", self.key, e)


class PreferencesRepository(_JsonRepository):
    """The IntelligentPreferences aggregate."""

    key = PREFERENCES_KEY

    def __init__(self, store: KeyValueStore, default_timezone: str = "UTC") -> None:
        super().__init__(store)
        self.default_timezone = default_timezone

    def load(self) -> IntelligentPreferences:
        data = self._read()
        if data is None:
            return IntelligentPreferences.default(self.default_timezone)
        try:
            return IntelligentPreferences.from_dict(data, self.default_timezone)
        except _SHAPE_ERRORS as e:
            logger.warning("Invalid preferences, using defaults: %s", e)
            return IntelligentPreferences.default(self.default_timezone)

    def save(self, prefs: IntelligentPreferences) -> bool:
        def truncate() -> dict[str, Any]:
            # Rules are appended, so the newest half sits at the end
            keep = len(prefs.alert_rules) // 2
            payload = prefs.to_dict()
            payload["alert_rules"] = payload["alert_rules"][-keep:] if keep else []
            return payload

        return self._write(prefs.to_dict(), truncate)


class _SignalListRepository(_JsonRepository):
    """List of IntelligentSignal records; malformed records are skipped."""

    def load(self) -> list[IntelligentSignal]:
        data = self._read()
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Invalid %s state, using defaults", self.key)
            return []

        signals = []
        for record in data:
            try:
                signals.append(IntelligentSignal.from_dict(record))
            except _SHAPE_ERRORS as e:
                logger.warning("Skipping malformed record in %s: %s", self.key, e)
        return signals


class SignalsRepository(_SignalListRepository):
    """
    Delivered signals, kept sorted by descending SIS.

    Retention keeps `max_signals`, dropping to `degraded_max_signals` when the
    store is out of capacity.
    """

    key = SIGNALS_KEY

    def __init__(
        self,
        store: KeyValueStore,
        max_signals: int = 200,
        degraded_max_signals: int = 100,
    ) -> None:
        super().__init__(store)
        self.max_signals = max_signals
        self.degraded_max_signals = degraded_max_signals

    def save(self, signals: list[IntelligentSignal]) -> bool:
        ranked = rank_by_sis(signals)[: self.max_signals]
        return self._write(
            [s.to_dict() for s in ranked],
            lambda: [s.to_dict() for s in ranked[: self.degraded_max_signals]],
        )


class QueueRepository(_SignalListRepository):
    """Deferred signals in arrival order, capped by SIS at `max_queue`."""

    key = QUEUE_KEY

    def __init__(self, store: KeyValueStore, max_queue: int = 500) -> None:
        super().__init__(store)
        self.max_queue = max_queue

    def save(self, queue: list[IntelligentSignal]) -> bool:
        kept = keep_best(queue, self.max_queue)
        if len(kept) < len(queue):
            kept_ids = {id(s) for s in kept}
            evicted = [s.signal_id for s in queue if id(s) not in kept_ids]
            logger.warning(
                "Queue over capacity (%d), evicted %d lowest-SIS signal(s): %s",
                self.max_queue,
                len(evicted),
                ", ".join(evicted),
            )
        return self._write(
            [s.to_dict() for s in kept],
            lambda: [s.to_dict() for s in keep_best(kept, max(1, self.max_queue // 2))],
        )


class BehaviorRepository(_JsonRepository):
    key = BEHAVIOR_KEY

    def load(self) -> UserBehaviorData | None:
        data = self._read()
        if data is None:
            return None
        try:
            return UserBehaviorData.from_dict(data)
        except _SHAPE_ERRORS as e:
            logger.warning("Invalid behavior data, starting fresh: %s", e)
            return None

    def save(self, behavior: UserBehaviorData) -> bool:
        return self._write(behavior.to_dict())


class CountersRepository(_JsonRepository):
    key = COUNTERS_KEY

    def load(self) -> DeliveryCounters | None:
        data = self._read()
        if data is None:
            return None
        try:
            return DeliveryCounters.from_dict(data)
        except _SHAPE_ERRORS as e:
            logger.warning("Invalid delivery counters, resetting: %s", e)
            return None

    def save(self, counters: DeliveryCounters) -> bool:
        return self._write(counters.to_dict())


class ClustersRepository(_JsonRepository):
    """Most recent clusters, `max_clusters` normally and half that under pressure."""

    key = CLUSTERS_KEY

    def __init__(self, store: KeyValueStore, max_clusters: int = 50) -> None:
        super().__init__(store)
        self.max_clusters = max_clusters

    def load(self) -> list[NotificationCluster]:
        data = self._read()
        if not isinstance(data, list):
            if data is not None:
                logger.warning("Invalid %s state, using defaults", self.key)
            return []

        clusters = []
        for record in data:
            try:
                clusters.append(NotificationCluster.from_dict(record))
            except _SHAPE_ERRORS as e:
                logger.warning("Skipping malformed cluster: %s", e)
        return clusters

    def save(self, clusters: list[NotificationCluster]) -> bool:
        recent = clusters[-self.max_clusters :]
        return self._write(
            [c.to_dict() for c in recent],
            lambda: [c.to_dict() for c in recent[-max(1, self.max_clusters // 2) :]],
        )
