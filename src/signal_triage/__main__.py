#!/usr/bin/env python3
"""
Signal Triage CLI Entry Point

Provides command-line interface for the notification decision core.
Run with: python -m signal_triage <command> [args]
"""

import argparse
import json
import logging
import sys

from .core import get_utc_timestamp
from .core.logging import set_log_level


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent, ensure_ascii=False))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


# =============================================================================
# Built-in Commands
# =============================================================================


def cmd_help(args: argparse.Namespace) -> dict:
    """Show help message."""
    help_text = """
═══════════════════════════════════════════════════════════════════
Signal Triage - Notification Decision Core
───────────────────────────────────────────────────────────────────

Signal Commands:
  process <file.json>        Score and deliver/defer signals from a file
  explain <file.json>        SIS breakdown and gate decision (no delivery)
  queue [--drain|--clear]    Show, drain or empty the deferred queue
  digest                     Group queued signals into domain clusters
  signals [opts]             List delivered signals
                             --unread, --limit N, --clusters
  status                     Unread count, queue depth, budget, persona

Action Commands:
  read <id> | --all          Mark signal(s) read
  dismiss <id>               Dismiss a signal
  feedback <id> <-1|0|1>     Rate a signal
  learning [opts]            Show learned behavior
                             --clear, --enable, --disable

Preference Commands:
  persona list               List personas
  persona set <id>           Switch persona (executive, monitor, livewire,
                             research, zen, or a custom/user persona)
  snooze <minutes>           Snooze non-critical notifications
  unsnooze                   End snooze
  quiet-hours [opts]         Show or update quiet hours
                             --start HH:MM, --end HH:MM, --timezone TZ
                             --[no-]enabled, --[no-]critical-override,
                             --[no-]weekends-only
  focus list                 List focus zones
  focus create <name>        Create zone: --domains D [D ...]
                             [--days 1 2 3 --start HH:MM --end HH:MM]
  focus activate <id>        Activate zone [--minutes N]
  focus deactivate           End active focus
  focus delete <id>          Delete zone
  rules list                 List alert rules
  rules add <name> [opts]    --when TYPE=VALUE, --then TYPE=VALUE,
                             --logic AND|OR, --json '{...}'
  rules toggle <id>          Enable/disable a rule
  rules delete <id>          Delete a rule
  preferences [--reset]      Show or reset all preferences

System Commands:
  help                       Show this help message

Examples:
  signal-triage process inbox.json
  signal-triage queue --drain
  signal-triage persona set livewire
  signal-triage snooze 60
  signal-triage focus create "Deal prep" --domains COMPETITIVE MARKET
  signal-triage rules add "Acme watch" --when competitor=Acme --then urgency=immediate

Usage:
  python3 -m signal_triage <command> [args]

═══════════════════════════════════════════════════════════════════
"""
    print(help_text)
    return {}


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="signal-triage",
        description="Signal Triage - notification decision core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    help_parser = subparsers.add_parser("help", help="Show help message")
    help_parser.set_defaults(func=cmd_help)

    from .commands import preferences, signals

    signals.register_parsers(subparsers)
    preferences.register_parsers(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(logging.DEBUG)

    # Default to help if no command
    if not args.command:
        cmd_help(args)
        return 0

    # Check if command has a handler function
    if not hasattr(args, "func"):
        output_error(
            f"Unknown command: {args.command}",
            error_type="unknown_command",
            hint="Run 'signal-triage help' for usage",
        )

    # Execute command
    try:
        result = args.func(args)

        # Output result if it's a dict (JSON response)
        if isinstance(result, dict) and result:
            output_json(result)

            # Return non-zero exit code if result contains error
            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
