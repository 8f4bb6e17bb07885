"""
Custom Alert Rules.

User-authored conditional rules evaluated after every preference gate has passed.
Rules only escalate delivery: a matched rule can raise urgency or add delivery hints
(sound, highlight, quiet hours override) but can never deny a signal.

Condition semantics (case-insensitive):
- equals: some signal value equals some condition value
- contains: some condition value is a substring of some signal value
- not_equals: no signal value equals any condition value
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
from ..core.logging import get_logger
from .models import Domain, Priority, Signal, Urgency

logger = get_logger(__name__)

CONDITION_TYPES = ("domain", "priority", "competitor", "topic", "signal_type")
OPERATORS = ("equals", "contains", "not_equals")
ACTION_TYPES = ("urgency", "sound", "override_quiet_hours", "highlight")
LOGIC_VALUES = ("AND", "OR")

# Accept the camelCase spellings used by rule builders
_ALIASES = {
    "signalType": "signal_type",
    "notEquals": "not_equals",
    "overrideQuietHours": "override_quiet_hours",
}


def _canonical(value: str) -> str:
    return _ALIASES.get(value, value)


@dataclass(frozen=True)
class SignalContext:
    """Signal attributes visible to rule conditions."""

    domain: Domain
    priority: Priority
    competitors: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    signal_type: str | None = None

    @classmethod
    def from_signal(cls, signal: Signal) -> SignalContext:
        return cls(
            domain=signal.domain,
            priority=signal.priority,
            competitors=signal.companies,
            topics=signal.topics,
            signal_type=signal.signal_type,
        )

    def values_for(self, condition_type: str) -> list[str]:
        """Signal values a condition of the given type is matched against."""
        if condition_type == "domain":
            return [self.domain.value]
        if condition_type == "priority":
            return [self.priority.value]
        if condition_type == "competitor":
            return list(self.competitors)
        if condition_type == "topic":
            return list(self.topics)
        if condition_type == "signal_type":
            return [self.signal_type] if self.signal_type else []
        return []


@dataclass
class RuleCondition:
    """One field match within a rule."""

    type: str
    operator: str
    value: str | list[str]

    @property
    def values(self) -> list[str]:
        if isinstance(self.value, (list, tuple)):
            return [str(v) for v in self.value]
        return [str(self.value)]

    def matches(self, context: SignalContext) -> bool:
        actual = [v.lower() for v in context.values_for(self.type)]
        expected = [v.lower() for v in self.values]

        if self.operator == "equals":
            return any(a == e for a in actual for e in expected)
        if self.operator == "contains":
            return any(e in a for a in actual for e in expected)
        if self.operator == "not_equals":
            return not any(a == e for a in actual for e in expected)
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "operator": self.operator, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleCondition:
        value = data["value"]
        return cls(
            type=_canonical(data["type"]),
            operator=_canonical(data.get("operator", "equals")),
            value=list(value) if isinstance(value, (list, tuple)) else value,
        )


@dataclass
class RuleAction:
    """One effect applied when a rule matches."""

    type: str
    value: str | bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleAction:
        return cls(type=_canonical(data["type"]), value=data.get("value", True))


@dataclass
class CustomAlertRule:
    """User-authored escalation rule."""

    id: str
    name: str
    conditions: list[RuleCondition]
    actions: list[RuleAction]
    created_at: datetime
    condition_logic: str = "AND"
    enabled: bool = True
    trigger_count: int = 0
    last_triggered_at: datetime | None = None

    def matches(self, context: SignalContext) -> bool:
        """Combine condition results with the rule's AND/OR logic."""
        if not self.enabled:
            return False
        results = [c.matches(context) for c in self.conditions]
        if self.condition_logic == "OR":
            return any(results)
        return all(results)

    def urgency_action(self) -> Urgency | None:
        """Urgency carried by the first urgency action, if any."""
        for action in self.actions:
            if action.type != "urgency":
                continue
            try:
                return Urgency(str(action.value))
            except ValueError:
                logger.warning("Rule %s has invalid urgency action %r", self.id, action.value)
        return None

    def has_action(self, action_type: str) -> bool:
        return any(a.type == action_type and a.value is not False for a in self.actions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "conditions": [c.to_dict() for c in self.conditions],
            "condition_logic": self.condition_logic,
            "actions": [a.to_dict() for a in self.actions],
            "created_at": format_datetime(self.created_at),
            "trigger_count": self.trigger_count,
            "last_triggered_at": format_optional(self.last_triggered_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CustomAlertRule:
        """
        Create from a persisted dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        return cls(
            id=data["id"],
            name=data["name"],
            conditions=[RuleCondition.from_dict(c) for c in data.get("conditions", [])],
            actions=[RuleAction.from_dict(a) for a in data.get("actions", [])],
            created_at=parse_required_datetime(data["created_at"]),
            condition_logic=str(data.get("condition_logic", "AND")).upper(),
            enabled=bool(data.get("enabled", True)),
            trigger_count=int(data.get("trigger_count", 0)),
            last_triggered_at=parse_datetime(data.get("last_triggered_at")),
        )

    def validate(self) -> list[str]:
        """
        Validate the rule definition.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors: list[str] = []
        if not self.name:
            errors.append("Rule name is required")
        if not self.conditions:
            errors.append("Rule needs at least one condition")
        if self.condition_logic not in LOGIC_VALUES:
            errors.append(f"condition_logic must be AND or OR, got {self.condition_logic!r}")

        for cond in self.conditions:
            if cond.type not in CONDITION_TYPES:
                errors.append(f"Unknown condition type: {cond.type}")
            if cond.operator not in OPERATORS:
                errors.append(f"Unknown condition operator: {cond.operator}")
            if not cond.values:
                errors.append(f"Condition on {cond.type} has no value")

        for action in self.actions:
            if action.type not in ACTION_TYPES:
                errors.append(f"Unknown action type: {action.type}")
            elif action.type == "urgency" and action.value not in [u.value for u in Urgency]:
                errors.append(f"Invalid urgency action value: {action.value!r}")

        return errors


@dataclass
class RuleOutcome:
    """Combined effect of all matched rules."""

    matched: list[CustomAlertRule] = field(default_factory=list)
    urgency: Urgency | None = None
    sound: bool = False
    highlight: bool = False
    override_quiet_hours: bool = False

    @property
    def matched_ids(self) -> list[str]:
        return [r.id for r in self.matched]


class RuleEvaluator:
    """
    Evaluates enabled alert rules against a signal context.

    The urgency escalation comes from the first matched rule (in rule order)
    that carries an urgency action; the other hints accumulate across matches.
    """

    def __init__(self, rules: list[CustomAlertRule]):
        self._rules = rules

    def evaluate(self, context: SignalContext) -> RuleOutcome:
        outcome = RuleOutcome()

        for rule in self._rules:
            if not rule.matches(context):
                continue
            outcome.matched.append(rule)

            if outcome.urgency is None:
                outcome.urgency = rule.urgency_action()
            outcome.sound = outcome.sound or rule.has_action("sound")
            outcome.highlight = outcome.highlight or rule.has_action("highlight")
            outcome.override_quiet_hours = outcome.override_quiet_hours or rule.has_action(
                "override_quiet_hours"
            )

        if outcome.matched:
            logger.debug(
                "Rules matched for %s/%s: %s",
                context.domain.value,
                context.priority.value,
                ", ".join(outcome.matched_ids),
            )
        return outcome
