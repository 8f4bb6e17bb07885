"""
Signal Triage Notification Decision Core.

Decides, for each inbound signal, whether, when and how insistently to surface it
to a single user without causing notification fatigue.

Components:
- SignalScorer: Signal Intelligence Score (0-100) and urgency tier
- FatigueGuard: Rolling hourly/daily budget and minimum delivery gap
- PreferenceEngine: Snooze, quiet hours, focus zones, personas, alert rules
- ClusterBuilder: Domain and time-window grouping of delivered signals
- BehaviorLearner: Read/dismiss rates feeding the next score
- SignalQueue: Deferred signals drained by SIS as budget frees up
- NotificationEngine: The process_signal pipeline over all of the above
"""

from .behavior import BehaviorLearner, UserBehaviorData
from .clustering import ClusterBuilder
from .engine import EngineStatus, NotificationEngine, create_engine
from .fatigue import DeliveryBudget, DeliveryCounters, FatigueGuard
from .focus import ActiveFocus, FocusSchedule, FocusZone
from .models import (
    BatchMode,
    BudgetStatus,
    Domain,
    FatigueCheckResult,
    IntelligentSignal,
    NotificationCluster,
    NotifyDecision,
    Priority,
    Signal,
    SignalValidationError,
    Urgency,
    validate_signal,
)
from .personas import BUILTIN_PERSONAS, Persona, PersonaLoader, PersonaSettings
from .preferences import DigestSchedule, IntelligentPreferences, PreferenceEngine
from .queue import SignalQueue
from .quiet_hours import QuietHoursChecker, QuietHoursConfig
from .rules import CustomAlertRule, RuleAction, RuleCondition, RuleEvaluator, SignalContext
from .scoring import SignalScorer, SISBreakdown
from .store import KeyValueStore, MemoryStore, SqliteStore, StoreCapacityError, StoreError

__all__ = [
    # Engine
    "NotificationEngine",
    "EngineStatus",
    "create_engine",
    # Models
    "BatchMode",
    "BudgetStatus",
    "Domain",
    "FatigueCheckResult",
    "IntelligentSignal",
    "NotificationCluster",
    "NotifyDecision",
    "Priority",
    "Signal",
    "SignalValidationError",
    "Urgency",
    "validate_signal",
    # Scoring & learning
    "SignalScorer",
    "SISBreakdown",
    "BehaviorLearner",
    "UserBehaviorData",
    # Fatigue
    "DeliveryBudget",
    "DeliveryCounters",
    "FatigueGuard",
    # Preferences
    "PreferenceEngine",
    "IntelligentPreferences",
    "DigestSchedule",
    "QuietHoursConfig",
    "QuietHoursChecker",
    "ActiveFocus",
    "FocusSchedule",
    "FocusZone",
    "BUILTIN_PERSONAS",
    "Persona",
    "PersonaLoader",
    "PersonaSettings",
    "CustomAlertRule",
    "RuleAction",
    "RuleCondition",
    "RuleEvaluator",
    "SignalContext",
    # Clustering & queue
    "ClusterBuilder",
    "SignalQueue",
    # Store
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
    "StoreError",
    "StoreCapacityError",
]
