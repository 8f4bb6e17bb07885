"""
Preference Engine.

The policy layer over the single persisted IntelligentPreferences aggregate. Every
mutation reads the whole object, applies one change and writes it back
(last-writer-wins).

should_notify() evaluates four gates in fixed order:
1. Snooze: non-critical signals denied while snoozed
2. Quiet hours: denied unless critical override is enabled and priority is critical
3. Focus zone: domains outside the active zone denied, routed to batched
4. Persona: disabled domains denied; priorities below the threshold routed to digest

Only when every gate passes are custom alert rules evaluated, and they can only
escalate urgency or add delivery hints.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from ..core.formatters import format_optional, get_utc_now, parse_datetime
from ..core.logging import get_logger
from .focus import ActiveFocus, FocusSchedule, FocusZone
from .models import Domain, NotifyDecision, Priority, Urgency, make_id
from .personas import (
    BUILTIN_PERSONAS,
    DEFAULT_PERSONA_ID,
    Persona,
    PersonaLoader,
    PersonaSettings,
)
from .quiet_hours import (
    QuietHoursChecker,
    QuietHoursConfig,
    parse_hhmm,
    resolve_timezone,
    validate_hhmm,
    validate_timezone,
)
from .rules import CustomAlertRule, RuleAction, RuleCondition, RuleEvaluator, SignalContext

if TYPE_CHECKING:
    from .repositories import PreferencesRepository

logger = get_logger(__name__)

DIGEST_FREQUENCIES = ("daily", "weekdays", "weekly")


def _ends_after(now: datetime, duration_minutes: Any) -> datetime | None:
    """
    End time `duration_minutes` after `now`.

    Returns None for non-numeric, non-finite or non-positive durations and for
    end times past the datetime range.
    """
    try:
        minutes = float(duration_minutes)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes) or minutes <= 0:
        return None
    try:
        return now + timedelta(minutes=minutes)
    except OverflowError:
        return None


@dataclass
class DigestSchedule:
    """When the digest of deferred signals is assembled."""

    enabled: bool = True
    time: str = "09:00"  # HH:MM format
    frequency: str = "daily"  # daily, weekdays, weekly (Mondays)
    timezone: str = "UTC"

    def _runs_on(self, day: datetime) -> bool:
        if self.frequency == "weekdays":
            return day.weekday() < 5
        if self.frequency == "weekly":
            return day.weekday() == 0
        return True

    def next_run(self, now: datetime) -> datetime | None:
        """
        Next digest time strictly after `now`.

        Returns:
            Aware datetime in the schedule's timezone, or None when disabled
        """
        if not self.enabled:
            return None

        local = now.astimezone(resolve_timezone(self.timezone))
        at = parse_hhmm(self.time)
        candidate = local.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
        if candidate <= local:
            candidate += timedelta(days=1)

        for _ in range(8):
            if self._runs_on(candidate):
                return candidate
            candidate += timedelta(days=1)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "time": self.time,
            "frequency": self.frequency,
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, default_timezone: str = "UTC") -> DigestSchedule:
        """Create from configuration dict."""
        if not data:
            return cls(timezone=default_timezone)
        return cls(
            enabled=bool(data.get("enabled", True)),
            time=data.get("time", "09:00"),
            frequency=data.get("frequency", "daily"),
            timezone=data.get("timezone") or default_timezone,
        )

    def validate(self) -> list[str]:
        errors: list[str] = []
        if self.frequency not in DIGEST_FREQUENCIES:
            errors.append(f"Digest frequency must be one of {', '.join(DIGEST_FREQUENCIES)}")
        errors.extend(validate_hhmm("Digest time", self.time))
        errors.extend(validate_timezone(self.timezone))
        return errors


@dataclass
class IntelligentPreferences:
    """The single persisted configuration aggregate."""

    active_persona_id: str = DEFAULT_PERSONA_ID
    custom_personas: list[Persona] = field(default_factory=list)
    focus_zones: list[FocusZone] = field(default_factory=list)
    active_focus: ActiveFocus | None = None
    alert_rules: list[CustomAlertRule] = field(default_factory=list)
    quiet_hours: QuietHoursConfig = field(default_factory=QuietHoursConfig)
    snoozed_until: datetime | None = None
    learning_enabled: bool = True
    digest_schedule: DigestSchedule = field(default_factory=DigestSchedule)

    @classmethod
    def default(cls, timezone: str = "UTC") -> IntelligentPreferences:
        return cls(
            quiet_hours=QuietHoursConfig(timezone=timezone),
            digest_schedule=DigestSchedule(timezone=timezone),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_persona_id": self.active_persona_id,
            "custom_personas": [p.to_dict() for p in self.custom_personas],
            "focus_zones": [z.to_dict() for z in self.focus_zones],
            "active_focus": self.active_focus.to_dict() if self.active_focus else None,
            "alert_rules": [r.to_dict() for r in self.alert_rules],
            "quiet_hours": self.quiet_hours.to_dict(),
            "snoozed_until": format_optional(self.snoozed_until),
            "learning_enabled": self.learning_enabled,
            "digest_schedule": self.digest_schedule.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_timezone: str = "UTC") -> IntelligentPreferences:
        """
        Create from a persisted dict, filling missing sections with defaults.

        Raises:
            KeyError, TypeError, ValueError: If a section is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"Preferences must be a mapping, got {type(data).__name__}")

        active_focus = data.get("active_focus")
        return cls(
            active_persona_id=data.get("active_persona_id") or DEFAULT_PERSONA_ID,
            custom_personas=[Persona.from_dict(p) for p in data.get("custom_personas", [])],
            focus_zones=[FocusZone.from_dict(z) for z in data.get("focus_zones", [])],
            active_focus=ActiveFocus.from_dict(active_focus) if active_focus else None,
            alert_rules=[CustomAlertRule.from_dict(r) for r in data.get("alert_rules", [])],
            quiet_hours=QuietHoursConfig.from_dict(data.get("quiet_hours"), default_timezone),
            snoozed_until=parse_datetime(data.get("snoozed_until")),
            learning_enabled=bool(data.get("learning_enabled", True)),
            digest_schedule=DigestSchedule.from_dict(data.get("digest_schedule"), default_timezone),
        )


class PreferenceEngine:
    """
    Reads and mutates user preferences and makes the should_notify decision.

    Expiry of snooze and focus is computed on read against the injected clock.
    """

    def __init__(
        self,
        repository: PreferencesRepository,
        persona_loader: PersonaLoader | None = None,
        clock: Callable[[], datetime] = get_utc_now,
    ) -> None:
        self._repo = repository
        self._loader = persona_loader or PersonaLoader()
        self._clock = clock

    # =========================================================================
    # Aggregate Access
    # =========================================================================

    def get_preferences(self) -> IntelligentPreferences:
        return self._repo.load()

    def _save(self, prefs: IntelligentPreferences) -> bool:
        return self._repo.save(prefs)

    def reset_preferences(self) -> IntelligentPreferences:
        """Restore compiled-in defaults."""
        self._repo.clear()
        logger.info("Preferences reset to defaults")
        return self._repo.load()

    # =========================================================================
    # Personas
    # =========================================================================

    def _find_persona(self, prefs: IntelligentPreferences, persona_id: str) -> Persona | None:
        if persona_id in BUILTIN_PERSONAS:
            return BUILTIN_PERSONAS[persona_id]
        for persona in prefs.custom_personas:
            if persona.id == persona_id:
                return persona
        return self._loader.get_persona(persona_id)

    def get_active_persona(self, prefs: IntelligentPreferences | None = None) -> Persona:
        """Active persona, falling back to the default when it no longer exists."""
        prefs = prefs or self.get_preferences()
        return self._find_persona(prefs, prefs.active_persona_id) or BUILTIN_PERSONAS[
            DEFAULT_PERSONA_ID
        ]

    def set_active_persona(self, persona_id: str) -> bool:
        prefs = self.get_preferences()
        if self._find_persona(prefs, persona_id) is None:
            logger.warning("Unknown persona: %s", persona_id)
            return False
        prefs.active_persona_id = persona_id
        return self._save(prefs)

    def create_custom_persona(
        self,
        name: str,
        settings: PersonaSettings,
        icon: str = "",
        description: str = "",
    ) -> Persona | None:
        errors = settings.validate()
        if not name:
            errors.append("Persona name is required")
        if errors:
            logger.warning("Rejected custom persona %r: %s", name, "; ".join(errors))
            return None

        persona = Persona(
            id=make_id("custom", self._clock()),
            name=name,
            description=description,
            settings=settings,
            icon=icon,
            is_custom=True,
            source="custom",
        )
        prefs = self.get_preferences()
        prefs.custom_personas.append(persona)
        self._save(prefs)
        return persona

    def delete_custom_persona(self, persona_id: str) -> bool:
        """
        Delete a custom persona; built-in and YAML personas are never deleted.

        Switches back to the default persona when the deleted one was active.
        """
        prefs = self.get_preferences()
        remaining = [p for p in prefs.custom_personas if p.id != persona_id]
        if len(remaining) == len(prefs.custom_personas):
            return False

        prefs.custom_personas = remaining
        if prefs.active_persona_id == persona_id:
            prefs.active_persona_id = DEFAULT_PERSONA_ID
        return self._save(prefs)

    def get_all_personas(self) -> list[Persona]:
        prefs = self.get_preferences()
        return (
            list(BUILTIN_PERSONAS.values())
            + list(prefs.custom_personas)
            + self._loader.list_personas()
        )

    # =========================================================================
    # Focus Zones
    # =========================================================================

    def create_focus_zone(
        self,
        name: str,
        domains: list[Domain],
        schedule: FocusSchedule | None = None,
    ) -> FocusZone | None:
        if not name or not domains:
            logger.warning("Focus zone needs a name and at least one domain")
            return None
        if schedule is not None:
            errors = schedule.validate()
            if errors:
                logger.warning("Rejected focus schedule for %r: %s", name, "; ".join(errors))
                return None

        zone = FocusZone(
            id=make_id("focus", self._clock()),
            name=name,
            domains=list(domains),
            created_at=self._clock(),
            schedule=schedule,
        )
        prefs = self.get_preferences()
        prefs.focus_zones.append(zone)
        self._save(prefs)
        return zone

    def activate_focus_zone(
        self, zone_id: str, duration_minutes: float | None = None
    ) -> ActiveFocus | None:
        prefs = self.get_preferences()
        zone = next((z for z in prefs.focus_zones if z.id == zone_id), None)
        if zone is None:
            return None

        now = self._clock()
        ends_at = None
        if duration_minutes is not None:
            ends_at = _ends_after(now, duration_minutes)
            if ends_at is None:
                logger.warning("Rejected focus duration: %r minutes", duration_minutes)
                return None

        prefs.active_focus = ActiveFocus(zone=zone, started_at=now, ends_at=ends_at)
        self._save(prefs)
        logger.info("Focus zone activated: %s", zone.name)
        return prefs.active_focus

    def deactivate_focus_zone(self) -> dict[str, Any] | None:
        """
        End the manual focus.

        Returns:
            Summary with signals_collected and duration_seconds, or None if inactive
        """
        prefs = self.get_preferences()
        focus = prefs.active_focus
        if focus is None:
            return None

        summary = {
            "zone_id": focus.zone.id,
            "signals_collected": focus.signals_collected,
            "duration_seconds": (self._clock() - focus.started_at).total_seconds(),
        }
        prefs.active_focus = None
        self._save(prefs)
        return summary

    def get_active_focus(self, prefs: IntelligentPreferences | None = None) -> ActiveFocus | None:
        """
        Currently active focus, computed on read.

        An expired manual focus is cleared and persisted. Without a manual focus,
        the first zone whose schedule covers now acts as the active focus.
        """
        persist = prefs is None
        prefs = prefs or self.get_preferences()
        now = self._clock()

        focus = prefs.active_focus
        if focus is not None:
            if not focus.is_expired(now):
                return focus
            logger.debug("Focus zone expired: %s", focus.zone.name)
            prefs.active_focus = None
            if persist:
                self._save(prefs)

        for zone in prefs.focus_zones:
            if zone.schedule is not None and zone.schedule.is_active(now):
                return ActiveFocus(zone=zone, started_at=now, scheduled=True)
        return None

    def record_focus_deferral(self) -> None:
        """Count a signal held back by the manual focus."""
        prefs = self.get_preferences()
        focus = self.get_active_focus(prefs)
        if focus is None or focus.scheduled:
            return
        focus.signals_collected += 1
        self._save(prefs)

    def delete_focus_zone(self, zone_id: str) -> bool:
        prefs = self.get_preferences()
        remaining = [z for z in prefs.focus_zones if z.id != zone_id]
        if len(remaining) == len(prefs.focus_zones):
            return False

        prefs.focus_zones = remaining
        if prefs.active_focus and prefs.active_focus.zone.id == zone_id:
            prefs.active_focus = None
        return self._save(prefs)

    # =========================================================================
    # Alert Rules
    # =========================================================================

    def create_alert_rule(
        self,
        name: str,
        conditions: list[RuleCondition],
        actions: list[RuleAction],
        condition_logic: str = "AND",
    ) -> CustomAlertRule | None:
        rule = CustomAlertRule(
            id=make_id("rule", self._clock()),
            name=name,
            conditions=list(conditions),
            actions=list(actions),
            created_at=self._clock(),
            condition_logic=condition_logic.upper(),
        )
        errors = rule.validate()
        if errors:
            logger.warning("Rejected alert rule %r: %s", name, "; ".join(errors))
            return None

        prefs = self.get_preferences()
        prefs.alert_rules.append(rule)
        self._save(prefs)
        return rule

    def update_alert_rule(self, rule_id: str, **updates: Any) -> CustomAlertRule | None:
        """
        Apply field updates (name, enabled, conditions, actions, condition_logic).

        Returns:
            The updated rule, or None if not found or the result is invalid
        """
        allowed = {"name", "enabled", "conditions", "actions", "condition_logic"}
        unknown = set(updates) - allowed
        if unknown:
            logger.warning("Ignoring unknown rule fields: %s", ", ".join(sorted(unknown)))
            updates = {k: v for k, v in updates.items() if k in allowed}

        prefs = self.get_preferences()
        for index, rule in enumerate(prefs.alert_rules):
            if rule.id != rule_id:
                continue
            updated = replace(rule, **updates)
            errors = updated.validate()
            if errors:
                logger.warning("Rejected update to rule %s: %s", rule_id, "; ".join(errors))
                return None
            prefs.alert_rules[index] = updated
            self._save(prefs)
            return updated
        return None

    def delete_alert_rule(self, rule_id: str) -> bool:
        prefs = self.get_preferences()
        remaining = [r for r in prefs.alert_rules if r.id != rule_id]
        if len(remaining) == len(prefs.alert_rules):
            return False
        prefs.alert_rules = remaining
        return self._save(prefs)

    def toggle_alert_rule(self, rule_id: str) -> CustomAlertRule | None:
        prefs = self.get_preferences()
        for rule in prefs.alert_rules:
            if rule.id == rule_id:
                rule.enabled = not rule.enabled
                self._save(prefs)
                return rule
        return None

    def record_rule_triggers(self, rule_ids: list[str]) -> None:
        """Bump trigger counts for rules that contributed to a delivery."""
        if not rule_ids:
            return
        prefs = self.get_preferences()
        now = self._clock()
        for rule in prefs.alert_rules:
            if rule.id in rule_ids:
                rule.trigger_count += 1
                rule.last_triggered_at = now
        self._save(prefs)

    # =========================================================================
    # Quiet Hours, Snooze, Learning, Digest
    # =========================================================================

    def is_quiet_hours_active(self, prefs: IntelligentPreferences | None = None) -> bool:
        prefs = prefs or self.get_preferences()
        return QuietHoursChecker(prefs.quiet_hours).is_quiet_time(self._clock())

    def get_quiet_hours_end(self, prefs: IntelligentPreferences | None = None) -> datetime | None:
        """When the current quiet period ends, None outside quiet hours."""
        prefs = prefs or self.get_preferences()
        return QuietHoursChecker(prefs.quiet_hours).next_active_time(self._clock())

    def set_quiet_hours(self, **changes: Any) -> QuietHoursConfig | None:
        """Merge changes into the quiet hours config; invalid results are rejected."""
        prefs = self.get_preferences()
        merged = QuietHoursConfig.from_dict(
            {**prefs.quiet_hours.to_dict(), **changes}, prefs.quiet_hours.timezone
        )
        errors = merged.validate()
        if errors:
            logger.warning("Rejected quiet hours config: %s", "; ".join(errors))
            return None
        prefs.quiet_hours = merged
        self._save(prefs)
        return merged

    def snooze(self, duration_minutes: float) -> datetime | None:
        """Snooze non-critical notifications; returns the snooze end time."""
        until = _ends_after(self._clock(), duration_minutes)
        if until is None:
            logger.warning("Rejected snooze duration: %r minutes", duration_minutes)
            return None

        prefs = self.get_preferences()
        prefs.snoozed_until = until
        self._save(prefs)
        logger.info("Notifications snoozed until %s", prefs.snoozed_until.isoformat())
        return prefs.snoozed_until

    def unsnooze(self) -> None:
        prefs = self.get_preferences()
        prefs.snoozed_until = None
        self._save(prefs)

    def is_snoozed(self, prefs: IntelligentPreferences | None = None) -> bool:
        prefs = prefs or self.get_preferences()
        return prefs.snoozed_until is not None and self._clock() < prefs.snoozed_until

    def get_snooze_end_time(self) -> datetime | None:
        prefs = self.get_preferences()
        return prefs.snoozed_until if self.is_snoozed(prefs) else None

    def set_learning_enabled(self, enabled: bool) -> None:
        prefs = self.get_preferences()
        prefs.learning_enabled = enabled
        self._save(prefs)

    def set_digest_schedule(self, **changes: Any) -> DigestSchedule | None:
        prefs = self.get_preferences()
        merged = DigestSchedule.from_dict(
            {**prefs.digest_schedule.to_dict(), **changes}, prefs.digest_schedule.timezone
        )
        errors = merged.validate()
        if errors:
            logger.warning("Rejected digest schedule: %s", "; ".join(errors))
            return None
        prefs.digest_schedule = merged
        self._save(prefs)
        return merged

    # =========================================================================
    # Master Decision
    # =========================================================================

    def should_notify(
        self,
        domain: Domain,
        priority: Priority,
        context: SignalContext | None = None,
    ) -> NotifyDecision:
        """
        Run the snooze, quiet hours, focus and persona gates, then alert rules.

        Args:
            domain: Signal domain
            priority: Signal priority
            context: Extra signal attributes for competitor/topic/type rules

        Returns:
            NotifyDecision; denied decisions name the gate that denied them
        """
        prefs = self.get_preferences()
        persona = self.get_active_persona(prefs)
        is_critical = priority == Priority.CRITICAL

        if self.is_snoozed(prefs) and not is_critical:
            return NotifyDecision(allowed=False, reason="Notifications snoozed", gate="snooze")

        if self.is_quiet_hours_active(prefs):
            if not (prefs.quiet_hours.allow_critical_override and is_critical):
                return NotifyDecision(
                    allowed=False, reason="Quiet hours active", gate="quiet_hours"
                )

        focus = self.get_active_focus(prefs)
        if focus is not None and not focus.zone.allows(domain):
            return NotifyDecision(
                allowed=False,
                reason=f"Domain not in focus zone: {focus.zone.name}",
                gate="focus",
                urgency_override=Urgency.BATCHED,
            )

        if not persona.settings.is_domain_enabled(domain):
            return NotifyDecision(
                allowed=False,
                reason=f"Domain disabled in {persona.name} mode",
                gate="persona_domain",
            )

        if priority.rank < persona.settings.min_priority.rank:
            return NotifyDecision(
                allowed=False,
                reason=f"Priority below threshold for {persona.name} mode",
                gate="persona_priority",
                urgency_override=Urgency.DIGEST,
            )

        context = context or SignalContext(domain=domain, priority=priority)
        outcome = RuleEvaluator(prefs.alert_rules).evaluate(context)
        return NotifyDecision(
            allowed=True,
            urgency_override=outcome.urgency,
            matched_rule_ids=outcome.matched_ids,
            sound=outcome.sound,
            highlight=outcome.highlight,
            override_quiet_hours=outcome.override_quiet_hours,
        )
