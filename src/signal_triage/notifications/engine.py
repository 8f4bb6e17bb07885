"""
Notification Engine.

Orchestrates the decision pipeline for a single user's signals.

Flow for process_signal():
1. Validate the raw signal (malformed input returns None with a warning)
2. Score: SIS and urgency from the current behavior snapshot
3. Preference gates: snooze, quiet hours, focus zone, persona, then alert rules
4. Fatigue guard with the effective urgency
5. Persona digest mode defers non-immediate signals
6. Delivered: consume budget, cluster, store; otherwise queue

User actions (read, dismiss, feedback) feed the behavior learner, which is consulted
by the scorer on the next signal, never retroactively.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from ..core.config import TriageSettings, get_settings
from ..core.formatters import format_optional, get_utc_now
from ..core.logging import decision_fields, get_logger
from .behavior import BehaviorLearner, InteractionAction, UserBehaviorData
from .clustering import ClusterBuilder
from .fatigue import DeliveryBudget, FatigueGuard
from .models import (
    BatchMode,
    BudgetStatus,
    IntelligentSignal,
    NotificationCluster,
    Priority,
    Signal,
    SignalValidationError,
    Urgency,
    make_id,
    validate_signal,
)
from .personas import Persona, PersonaLoader
from .preferences import PreferenceEngine
from .queue import SignalQueue
from .repositories import (
    BehaviorRepository,
    ClustersRepository,
    CountersRepository,
    PreferencesRepository,
    QueueRepository,
    SignalsRepository,
    rank_by_sis,
)
from .rules import SignalContext
from .scoring import SignalScorer
from .store import KeyValueStore, create_store

logger = get_logger(__name__)

# Critical signals at or above this SIS are flagged to break through quiet hours
QUIET_HOURS_OVERRIDE_SIS = 90

FEEDBACK_SCORES = (-1, 0, 1)


@dataclass
class EngineStatus:
    """Snapshot of the decision core for polling callers."""

    unread_count: int
    queue_depth: int
    budget: BudgetStatus
    persona_id: str
    active_focus: str | None
    snoozed_until: datetime | None
    quiet_hours_active: bool
    quiet_hours_end: datetime | None
    next_digest_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "unread_count": self.unread_count,
            "queue_depth": self.queue_depth,
            "budget": self.budget.to_dict(),
            "persona_id": self.persona_id,
            "active_focus": self.active_focus,
            "snoozed_until": format_optional(self.snoozed_until),
            "quiet_hours_active": self.quiet_hours_active,
            "quiet_hours_end": format_optional(self.quiet_hours_end),
            "next_digest_at": format_optional(self.next_digest_at),
        }


class NotificationEngine:
    """
    Decision core for one user's notification stream.

    Construct once per session with a store and pass it by reference; tests build
    independent instances over a MemoryStore with a frozen clock.

    Example:
        engine = NotificationEngine(MemoryStore())
        delivered = engine.process_signal({"id": "s1", "domain": "REGULATORY", ...})
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        budget: DeliveryBudget | None = None,
        persona_budgets: bool = False,
        max_signals: int = 200,
        degraded_max_signals: int = 100,
        max_clusters: int = 50,
        max_queue: int = 500,
        learning_weight: float = 0.1,
        default_timezone: str = "UTC",
        personas_dir: Path | None = None,
        clock: Callable[[], datetime] = get_utc_now,
    ) -> None:
        self._clock = clock
        self.persona_budgets = persona_budgets

        self.signals_repo = SignalsRepository(store, max_signals, degraded_max_signals)
        self.behavior_repo = BehaviorRepository(store)
        self.clusters_repo = ClustersRepository(store, max_clusters)

        self.scorer = SignalScorer(clock=clock)
        self.fatigue = FatigueGuard(CountersRepository(store), budget or DeliveryBudget(), clock)
        self.preferences = PreferenceEngine(
            PreferencesRepository(store, default_timezone),
            PersonaLoader(personas_dir),
            clock,
        )
        self.learner = BehaviorLearner(weight=learning_weight, clock=clock)
        self.clusters = ClusterBuilder(clock=clock)
        self.queue = SignalQueue(QueueRepository(store, max_queue), self.fatigue)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _budget_for(self, persona: Persona) -> DeliveryBudget:
        if not self.persona_budgets:
            return self.fatigue.budget
        return persona.settings.budget(self.fatigue.budget.minimum_gap_seconds)

    def _build(self, signal: Signal, sis: int, urgency: Urgency) -> IntelligentSignal:
        return IntelligentSignal(
            id=make_id("isig", self._clock()),
            signal_id=signal.id,
            title=signal.title,
            summary=signal.summary,
            domain=signal.domain,
            priority=signal.priority,
            sis=sis,
            urgency=urgency,
            created_at=self._clock(),
            overrides_quiet_hours=signal.priority == Priority.CRITICAL
            and sis >= QUIET_HOURS_OVERRIDE_SIS,
            source_url=signal.url,
            companies=list(signal.companies),
        )

    def process_signal(self, raw: dict[str, Any] | Signal) -> IntelligentSignal | None:
        """
        Decide whether, when and how insistently to surface a signal.

        Args:
            raw: Signal mapping (id, domain, priority, relevance_score, published_at)

        Returns:
            The delivered IntelligentSignal, or None when it was queued or rejected
        """
        try:
            signal = validate_signal(raw, now=self._clock())
        except SignalValidationError as e:
            logger.warning("Rejected signal: %s", e)
            return None

        try:
            return self._process(signal)
        except Exception:
            logger.exception("Failed to process signal %s", signal.id)
            return None

    def _process(self, signal: Signal) -> IntelligentSignal | None:
        behavior = self.behavior_repo.load()
        sis = self.scorer.calculate_sis(signal, behavior)
        urgency = self.scorer.determine_urgency(sis, signal.priority, behavior)

        decision = self.preferences.should_notify(
            signal.domain, signal.priority, SignalContext.from_signal(signal)
        )
        if decision.urgency_override is not None:
            if decision.allowed:
                urgency = urgency.escalate(decision.urgency_override)
            else:
                urgency = decision.urgency_override

        intelligent = self._build(signal, sis, urgency)

        if not decision.allowed:
            if decision.gate == "focus":
                self.preferences.record_focus_deferral()
            logger.debug(
                "Signal %s deferred: %s",
                signal.id,
                decision.reason,
                extra=decision_fields(signal.id, sis, urgency, decision.gate),
            )
            self.queue.enqueue(intelligent)
            return None

        persona = self.preferences.get_active_persona()
        if persona.settings.batch_mode == BatchMode.DIGEST and urgency != Urgency.IMMEDIATE:
            intelligent.urgency = Urgency.DIGEST
            logger.debug(
                "Signal %s held for %s digest",
                signal.id,
                persona.name,
                extra=decision_fields(signal.id, sis, Urgency.DIGEST, "batch_mode"),
            )
            self.queue.enqueue(intelligent)
            return None

        fatigue = self.fatigue.check(urgency, self._budget_for(persona))
        if not fatigue.allowed:
            logger.debug(
                "Signal %s deferred: %s",
                signal.id,
                fatigue.reason,
                extra=decision_fields(signal.id, sis, urgency, "fatigue"),
            )
            self.queue.enqueue(intelligent)
            return None

        intelligent.sound = decision.sound or persona.settings.sound_enabled
        intelligent.highlighted = decision.highlight
        intelligent.overrides_quiet_hours = (
            intelligent.overrides_quiet_hours or decision.override_quiet_hours
        )

        self.fatigue.record_delivery()
        self._store_delivered([intelligent])
        self.preferences.record_rule_triggers(decision.matched_rule_ids)

        logger.info(
            "Delivered %s",
            signal.id,
            extra=decision_fields(signal.id, sis, intelligent.urgency),
        )
        return intelligent

    def _store_delivered(self, delivered: list[IntelligentSignal]) -> None:
        clusters = self.clusters_repo.load()
        for signal in delivered:
            self.clusters.assign(signal, clusters)
        self.clusters_repo.save(clusters)

        signals = self.signals_repo.load()
        signals.extend(delivered)
        self.signals_repo.save(signals)

    def process_queue(self) -> list[IntelligentSignal]:
        """
        Drain deferred signals the fatigue guard now allows.

        Returns:
            Newly delivered signals, highest SIS first
        """
        try:
            persona = self.preferences.get_active_persona()
            delivered = self.queue.drain(self._budget_for(persona))
            if delivered:
                self._store_delivered(delivered)
            return delivered
        except Exception:
            logger.exception("Failed to process queue")
            return []

    # =========================================================================
    # User Actions
    # =========================================================================

    def _interact(
        self,
        signal_id: str,
        action: InteractionAction,
        feedback_score: int | None = None,
    ) -> IntelligentSignal | None:
        signals = self.signals_repo.load()
        target = next((s for s in signals if s.id == signal_id), None)
        if target is None:
            logger.warning("Unknown signal for %s: %s", action, signal_id)
            return None

        now = self._clock()
        if action == "read":
            target.read_at = now
        elif action == "dismiss":
            target.dismissed_at = now
        else:
            target.feedback_score = feedback_score
        self.signals_repo.save(signals)

        if self.preferences.get_preferences().learning_enabled:
            behavior = self.learner.record(
                self.behavior_repo.load(), target.domain, action, feedback_score
            )
            self.behavior_repo.save(behavior)
        return target

    def read(self, signal_id: str) -> IntelligentSignal | None:
        return self._interact(signal_id, "read")

    def dismiss(self, signal_id: str) -> IntelligentSignal | None:
        return self._interact(signal_id, "dismiss")

    def feedback(self, signal_id: str, score: int) -> IntelligentSignal | None:
        if score not in FEEDBACK_SCORES:
            logger.warning("Feedback score must be -1, 0 or 1, got %r", score)
            return None
        return self._interact(signal_id, "feedback", score)

    def mark_all_as_read(self) -> int:
        """Mark every unread signal read; returns how many changed."""
        signals = self.signals_repo.load()
        now = self._clock()
        unread = [s for s in signals if s.read_at is None]
        for signal in unread:
            signal.read_at = now
        if unread:
            self.signals_repo.save(signals)
        return len(unread)

    def clear_learning_data(self) -> None:
        self.behavior_repo.clear()
        logger.info("Learning data cleared")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_signals(self) -> list[IntelligentSignal]:
        """Delivered signals, highest SIS first."""
        return rank_by_sis(self.signals_repo.load())

    def get_unread_signals(self) -> list[IntelligentSignal]:
        return [s for s in self.get_signals() if s.is_unread]

    def get_active_signals(self) -> list[IntelligentSignal]:
        """Signals not dismissed, read or not."""
        return [s for s in self.get_signals() if not s.is_dismissed]

    def get_unread_count(self) -> int:
        return len(self.get_unread_signals())

    def get_budget_status(self) -> BudgetStatus:
        persona = self.preferences.get_active_persona()
        return self.fatigue.get_budget_status(self._budget_for(persona))

    def get_behavior(self) -> UserBehaviorData | None:
        return self.behavior_repo.load()

    def get_clusters(self) -> list[NotificationCluster]:
        return self.clusters_repo.load()

    def get_queue(self) -> list[IntelligentSignal]:
        return self.queue.get_queue()

    def clear_queue(self) -> int:
        return self.queue.clear()

    def build_digest(self) -> list[NotificationCluster]:
        """Group the deferred queue into domain clusters."""
        return self.clusters.build_digest(self.queue.get_queue())

    def explain(self, raw: dict[str, Any] | Signal) -> dict[str, Any] | None:
        """SIS breakdown and urgency for a signal without processing it."""
        try:
            signal = validate_signal(raw, now=self._clock())
        except SignalValidationError as e:
            logger.warning("Cannot explain signal: %s", e)
            return None

        behavior = self.behavior_repo.load()
        breakdown = self.scorer.explain(signal, behavior)
        result = breakdown.to_dict()
        result["signal_id"] = signal.id
        result["urgency"] = self.scorer.determine_urgency(
            breakdown.sis, signal.priority, behavior
        ).value
        result["decision"] = self.preferences.should_notify(
            signal.domain, signal.priority, SignalContext.from_signal(signal)
        ).to_dict()
        return result

    def get_status(self) -> EngineStatus:
        prefs = self.preferences.get_preferences()
        persona = self.preferences.get_active_persona(prefs)
        focus = self.preferences.get_active_focus()
        return EngineStatus(
            unread_count=self.get_unread_count(),
            queue_depth=self.queue.size(),
            budget=self.fatigue.get_budget_status(self._budget_for(persona)),
            persona_id=persona.id,
            active_focus=focus.zone.name if focus else None,
            snoozed_until=self.preferences.get_snooze_end_time(),
            quiet_hours_active=self.preferences.is_quiet_hours_active(prefs),
            quiet_hours_end=self.preferences.get_quiet_hours_end(prefs),
            next_digest_at=prefs.digest_schedule.next_run(self._clock()),
        )


def create_engine(
    settings: TriageSettings | None = None,
    store: KeyValueStore | None = None,
    clock: Callable[[], datetime] = get_utc_now,
) -> NotificationEngine:
    """
    Build an engine from settings.

    Args:
        settings: Settings (defaults to get_settings())
        store: Store override (defaults to the configured backend)
        clock: Clock override
    """
    settings = settings or get_settings()
    if store is None:
        store = create_store(settings.store_backend, settings.db_path)

    return NotificationEngine(
        store,
        budget=DeliveryBudget.from_settings(settings),
        persona_budgets=settings.persona_budgets,
        max_signals=settings.max_signals,
        degraded_max_signals=settings.degraded_max_signals,
        max_clusters=settings.max_clusters,
        max_queue=settings.max_queue,
        learning_weight=settings.learning_weight,
        default_timezone=settings.default_timezone,
        personas_dir=settings.personas_dir,
        clock=clock,
    )
