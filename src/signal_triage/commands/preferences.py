"""
Signal Triage Preference Commands

Manage personas, snooze, quiet hours, focus zones and custom alert rules.
"""

import argparse
import json
from typing import Any

from ..core import get_utc_timestamp
from ..core.formatters import format_datetime
from ..notifications import (
    Domain,
    FocusSchedule,
    RuleAction,
    RuleCondition,
    create_engine,
)


def _error(query_ts: str, error: str, message: str) -> dict[str, Any]:
    return {
        "query_timestamp": query_ts,
        "status": "error",
        "error": error,
        "message": message,
    }


# =============================================================================
# Persona Commands
# =============================================================================


def cmd_persona_list(args: argparse.Namespace) -> dict[str, Any]:
    """List built-in, custom and user personas."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    active = engine.preferences.get_active_persona()
    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "active_persona_id": active.id,
        "personas": [p.to_dict() for p in engine.preferences.get_all_personas()],
    }


def cmd_persona_set(args: argparse.Namespace) -> dict[str, Any]:
    """
    Switch the active persona.

    Args:
        args: Parsed arguments with persona_id

    Returns:
        Result dict with the now-active persona
    """
    query_ts = get_utc_timestamp()
    engine = create_engine()

    if not engine.preferences.set_active_persona(args.persona_id):
        return _error(query_ts, "not_found", f"Persona not found: {args.persona_id}")

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "persona": engine.preferences.get_active_persona().to_dict(),
    }


# =============================================================================
# Snooze & Quiet Hours
# =============================================================================


def cmd_snooze(args: argparse.Namespace) -> dict[str, Any]:
    """Snooze non-critical notifications for N minutes."""
    query_ts = get_utc_timestamp()
    if args.minutes <= 0:
        return _error(query_ts, "invalid", "Snooze duration must be positive")

    engine = create_engine()
    until = engine.preferences.snooze(args.minutes)
    if until is None:
        return _error(query_ts, "invalid", f"Snooze duration out of range: {args.minutes}")

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "snoozed_until": format_datetime(until),
    }


def cmd_unsnooze(args: argparse.Namespace) -> dict[str, Any]:
    """End an active snooze."""
    query_ts = get_utc_timestamp()
    engine = create_engine()
    engine.preferences.unsnooze()
    return {"query_timestamp": query_ts, "status": "ok", "snoozed_until": None}


def cmd_quiet_hours(args: argparse.Namespace) -> dict[str, Any]:
    """
    Show or update quiet hours.

    Args:
        args: Parsed arguments with optional start, end, timezone and toggles

    Returns:
        Result dict with the effective quiet hours config
    """
    query_ts = get_utc_timestamp()
    engine = create_engine()

    changes: dict[str, Any] = {}
    if args.enabled is not None:
        changes["enabled"] = args.enabled
    if args.start:
        changes["start"] = args.start
    if args.end:
        changes["end"] = args.end
    if args.timezone:
        changes["timezone"] = args.timezone
    if args.critical_override is not None:
        changes["allow_critical_override"] = args.critical_override
    if args.weekends_only is not None:
        changes["weekends_only"] = args.weekends_only

    if changes:
        config = engine.preferences.set_quiet_hours(**changes)
        if config is None:
            return _error(query_ts, "invalid", "Quiet hours config rejected (check times and timezone)")
    else:
        config = engine.preferences.get_preferences().quiet_hours

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "quiet_hours": config.to_dict(),
        "active_now": engine.preferences.is_quiet_hours_active(),
    }


# =============================================================================
# Focus Zone Commands
# =============================================================================


def cmd_focus_list(args: argparse.Namespace) -> dict[str, Any]:
    """List focus zones and the active focus."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    prefs = engine.preferences.get_preferences()
    active = engine.preferences.get_active_focus()
    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "zones": [z.to_dict() for z in prefs.focus_zones],
        "active_focus": active.to_dict() if active else None,
    }


def _parse_domains(values: list[str]) -> list[Domain]:
    """
    Parse domain names.

    Raises:
        ValueError: If a domain is not recognized
    """
    return [Domain(v.upper()) for v in values]


def cmd_focus_create(args: argparse.Namespace) -> dict[str, Any]:
    """
    Create a focus zone, optionally with a recurring schedule.

    Args:
        args: Parsed arguments with name, domains and schedule options

    Returns:
        Result dict with the created zone
    """
    query_ts = get_utc_timestamp()

    try:
        domains = _parse_domains(args.domains)
    except ValueError as e:
        return _error(query_ts, "invalid", str(e))

    schedule = None
    if args.days:
        if not (args.start and args.end):
            return _error(query_ts, "invalid", "Scheduled focus needs --start and --end")
        schedule = FocusSchedule(
            days_of_week=list(args.days),
            start_time=args.start,
            end_time=args.end,
            timezone=args.timezone or "UTC",
        )

    engine = create_engine()
    zone = engine.preferences.create_focus_zone(args.name, domains, schedule)
    if zone is None:
        return _error(query_ts, "invalid", f"Focus zone rejected: {args.name}")

    return {"query_timestamp": query_ts, "status": "ok", "zone": zone.to_dict()}


def cmd_focus_activate(args: argparse.Namespace) -> dict[str, Any]:
    """Activate a focus zone, optionally for N minutes."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    zones = engine.preferences.get_preferences().focus_zones
    if not any(z.id == args.zone_id for z in zones):
        return _error(query_ts, "not_found", f"Focus zone not found: {args.zone_id}")

    focus = engine.preferences.activate_focus_zone(args.zone_id, args.minutes)
    if focus is None:
        return _error(query_ts, "invalid", f"Focus duration out of range: {args.minutes}")

    return {"query_timestamp": query_ts, "status": "ok", "active_focus": focus.to_dict()}


def cmd_focus_deactivate(args: argparse.Namespace) -> dict[str, Any]:
    """End the active focus and report how many signals it held back."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    summary = engine.preferences.deactivate_focus_zone()
    if summary is None:
        return _error(query_ts, "not_active", "No focus zone is active")

    return {"query_timestamp": query_ts, "status": "ok", **summary}


def cmd_focus_delete(args: argparse.Namespace) -> dict[str, Any]:
    """Delete a focus zone."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    if not engine.preferences.delete_focus_zone(args.zone_id):
        return _error(query_ts, "not_found", f"Focus zone not found: {args.zone_id}")
    return {"query_timestamp": query_ts, "status": "ok", "deleted": args.zone_id}


# =============================================================================
# Alert Rule Commands
# =============================================================================


def cmd_rules_list(args: argparse.Namespace) -> dict[str, Any]:
    """List custom alert rules."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    rules = engine.preferences.get_preferences().alert_rules
    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "count": len(rules),
        "rules": [r.to_dict() for r in rules],
    }


def _parse_pair(value: str) -> tuple[str, str]:
    """
    Split a TYPE=VALUE argument.

    Raises:
        ValueError: If the argument has no '='
    """
    key, sep, rest = value.partition("=")
    if not sep or not key:
        raise ValueError(f"Expected TYPE=VALUE, got {value!r}")
    return key.strip(), rest.strip()


def cmd_rules_add(args: argparse.Namespace) -> dict[str, Any]:
    """
    Create a custom alert rule.

    Conditions and actions come either from repeated --when/--then flags
    (TYPE=VALUE, with `!=` for not_equals and `~=` for contains) or from a
    JSON document via --json.

    Args:
        args: Parsed arguments

    Returns:
        Result dict with the created rule
    """
    query_ts = get_utc_timestamp()

    try:
        if args.json:
            data = json.loads(args.json)
            conditions = [RuleCondition.from_dict(c) for c in data.get("conditions", [])]
            actions = [RuleAction.from_dict(a) for a in data.get("actions", [])]
            logic = data.get("condition_logic", args.logic)
        else:
            conditions = []
            for raw in args.when or []:
                operator = "equals"
                if "!=" in raw:
                    operator, raw = "not_equals", raw.replace("!=", "=", 1)
                elif "~=" in raw:
                    operator, raw = "contains", raw.replace("~=", "=", 1)
                cond_type, value = _parse_pair(raw)
                conditions.append(RuleCondition(type=cond_type, operator=operator, value=value))

            actions = []
            for raw in args.then or []:
                action_type, value = _parse_pair(raw)
                action_value: str | bool = value
                if value.lower() in ("true", "false"):
                    action_value = value.lower() == "true"
                actions.append(RuleAction(type=action_type, value=action_value))
            logic = args.logic
    except (KeyError, TypeError, ValueError) as e:
        return _error(query_ts, "invalid", str(e))

    engine = create_engine()
    rule = engine.preferences.create_alert_rule(args.name, conditions, actions, logic)
    if rule is None:
        return _error(query_ts, "invalid", f"Alert rule rejected: {args.name}")

    return {"query_timestamp": query_ts, "status": "ok", "rule": rule.to_dict()}


def cmd_rules_toggle(args: argparse.Namespace) -> dict[str, Any]:
    """Enable or disable a rule."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    rule = engine.preferences.toggle_alert_rule(args.rule_id)
    if rule is None:
        return _error(query_ts, "not_found", f"Rule not found: {args.rule_id}")
    return {"query_timestamp": query_ts, "status": "ok", "rule": rule.to_dict()}


def cmd_rules_delete(args: argparse.Namespace) -> dict[str, Any]:
    """Delete a rule."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    if not engine.preferences.delete_alert_rule(args.rule_id):
        return _error(query_ts, "not_found", f"Rule not found: {args.rule_id}")
    return {"query_timestamp": query_ts, "status": "ok", "deleted": args.rule_id}


# =============================================================================
# Preferences
# =============================================================================


def cmd_preferences(args: argparse.Namespace) -> dict[str, Any]:
    """Show the full preferences aggregate, or restore defaults with --reset."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    if args.reset:
        prefs = engine.preferences.reset_preferences()
    else:
        prefs = engine.preferences.get_preferences()

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "reset": bool(args.reset),
        "preferences": prefs.to_dict(),
    }


# =============================================================================
# Parser Registration
# =============================================================================


def _add_toggle(parser: argparse.ArgumentParser, name: str, dest: str, help_on: str, help_off: str) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(f"--{name}", dest=dest, action="store_const", const=True, help=help_on)
    group.add_argument(f"--no-{name}", dest=dest, action="store_const", const=False, help=help_off)


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register preference command parsers."""

    # persona list | set <id>
    persona_parser = subparsers.add_parser("persona", help="List or switch personas")
    persona_subparsers = persona_parser.add_subparsers(
        dest="persona_command",
        help="Persona commands",
    )

    persona_list = persona_subparsers.add_parser("list", help="List personas")
    persona_list.set_defaults(func=cmd_persona_list)

    persona_set = persona_subparsers.add_parser("set", help="Switch the active persona")
    persona_set.add_argument("persona_id", help="Persona id (executive, monitor, livewire, ...)")
    persona_set.set_defaults(func=cmd_persona_set)

    # snooze / unsnooze
    snooze_parser = subparsers.add_parser("snooze", help="Snooze non-critical notifications")
    snooze_parser.add_argument("minutes", type=float, help="Snooze duration in minutes")
    snooze_parser.set_defaults(func=cmd_snooze)

    unsnooze_parser = subparsers.add_parser("unsnooze", help="End an active snooze")
    unsnooze_parser.set_defaults(func=cmd_unsnooze)

    # quiet-hours
    quiet_parser = subparsers.add_parser("quiet-hours", help="Show or update quiet hours")
    quiet_parser.add_argument("--start", help="Start time (HH:MM)")
    quiet_parser.add_argument("--end", help="End time (HH:MM)")
    quiet_parser.add_argument("--timezone", help="IANA timezone (e.g., America/New_York)")
    _add_toggle(quiet_parser, "enabled", "enabled", "Enable quiet hours", "Disable quiet hours")
    _add_toggle(
        quiet_parser,
        "critical-override",
        "critical_override",
        "Let critical signals through",
        "Hold critical signals too",
    )
    _add_toggle(
        quiet_parser,
        "weekends-only",
        "weekends_only",
        "Apply only on Saturday and Sunday",
        "Apply every day",
    )
    quiet_parser.set_defaults(func=cmd_quiet_hours)

    # focus list | create | activate | deactivate | delete
    focus_parser = subparsers.add_parser("focus", help="Manage focus zones")
    focus_subparsers = focus_parser.add_subparsers(dest="focus_command", help="Focus commands")

    focus_list = focus_subparsers.add_parser("list", help="List focus zones")
    focus_list.set_defaults(func=cmd_focus_list)

    focus_create = focus_subparsers.add_parser("create", help="Create a focus zone")
    focus_create.add_argument("name", help="Zone name")
    focus_create.add_argument(
        "--domains",
        nargs="+",
        required=True,
        help="Domains allowed while the zone is active",
    )
    focus_create.add_argument(
        "--days",
        nargs="+",
        type=int,
        help="Scheduled days (0=Sunday ... 6=Saturday)",
    )
    focus_create.add_argument("--start", help="Scheduled start (HH:MM)")
    focus_create.add_argument("--end", help="Scheduled end (HH:MM)")
    focus_create.add_argument("--timezone", help="Schedule timezone")
    focus_create.set_defaults(func=cmd_focus_create)

    focus_activate = focus_subparsers.add_parser("activate", help="Activate a focus zone")
    focus_activate.add_argument("zone_id", help="Focus zone id")
    focus_activate.add_argument("--minutes", type=float, help="Auto-expire after N minutes")
    focus_activate.set_defaults(func=cmd_focus_activate)

    focus_deactivate = focus_subparsers.add_parser("deactivate", help="End the active focus")
    focus_deactivate.set_defaults(func=cmd_focus_deactivate)

    focus_delete = focus_subparsers.add_parser("delete", help="Delete a focus zone")
    focus_delete.add_argument("zone_id", help="Focus zone id")
    focus_delete.set_defaults(func=cmd_focus_delete)

    # rules list | add | toggle | delete
    rules_parser = subparsers.add_parser("rules", help="Manage custom alert rules")
    rules_subparsers = rules_parser.add_subparsers(dest="rules_command", help="Rule commands")

    rules_list = rules_subparsers.add_parser("list", help="List alert rules")
    rules_list.set_defaults(func=cmd_rules_list)

    rules_add = rules_subparsers.add_parser("add", help="Create an alert rule")
    rules_add.add_argument("name", help="Rule name")
    rules_add.add_argument(
        "--when",
        action="append",
        help="Condition TYPE=VALUE (TYPE!=VALUE, TYPE~=VALUE); repeatable",
    )
    rules_add.add_argument(
        "--then",
        action="append",
        help="Action TYPE=VALUE (e.g., urgency=immediate, sound=true); repeatable",
    )
    rules_add.add_argument(
        "--logic",
        choices=["AND", "OR"],
        default="AND",
        help="How conditions combine (default: AND)",
    )
    rules_add.add_argument("--json", help="Rule conditions/actions as a JSON document")
    rules_add.set_defaults(func=cmd_rules_add)

    rules_toggle = rules_subparsers.add_parser("toggle", help="Enable or disable a rule")
    rules_toggle.add_argument("rule_id", help="Rule id")
    rules_toggle.set_defaults(func=cmd_rules_toggle)

    rules_delete = rules_subparsers.add_parser("delete", help="Delete a rule")
    rules_delete.add_argument("rule_id", help="Rule id")
    rules_delete.set_defaults(func=cmd_rules_delete)

    # preferences [--reset]
    prefs_parser = subparsers.add_parser("preferences", help="Show or reset preferences")
    prefs_parser.add_argument("--reset", action="store_true", help="Restore defaults")
    prefs_parser.set_defaults(func=cmd_preferences)
