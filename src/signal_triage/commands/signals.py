"""
Signal Triage Signal Commands

Feed signals through the decision core, drain the deferred queue, and act on
delivered signals (read, dismiss, feedback).
"""

import argparse
import json
from pathlib import Path
from typing import Any

from ..core import get_utc_timestamp
from ..notifications import create_engine


def _not_found(query_ts: str, signal_id: str) -> dict[str, Any]:
    return {
        "query_timestamp": query_ts,
        "status": "error",
        "error": "not_found",
        "message": f"Signal not found: {signal_id}",
    }


def _load_signals(path: Path) -> list[Any]:
    """
    Load one signal or a list of signals from a JSON file.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


# =============================================================================
# Process Command
# =============================================================================


def cmd_process(args: argparse.Namespace) -> dict[str, Any]:
    """
    Run every signal in a JSON file through the decision pipeline.

    Args:
        args: Parsed arguments with file

    Returns:
        Result dict with delivered signals and deferred/rejected counts
    """
    query_ts = get_utc_timestamp()
    path = Path(args.file)

    try:
        raw_signals = _load_signals(path)
    except FileNotFoundError:
        return {
            "query_timestamp": query_ts,
            "status": "error",
            "error": "not_found",
            "message": f"File not found: {path}",
        }
    except (OSError, ValueError) as e:
        return {
            "query_timestamp": query_ts,
            "status": "error",
            "error": "invalid",
            "message": f"Cannot read signals from {path}: {e}",
        }

    engine = create_engine()
    queue_before = engine.queue.size()

    delivered = []
    for raw in raw_signals:
        result = engine.process_signal(raw)
        if result is not None:
            delivered.append(result)

    queued = max(0, engine.queue.size() - queue_before)
    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "received": len(raw_signals),
        "delivered": [s.to_dict() for s in delivered],
        "queued": queued,
        "rejected": len(raw_signals) - len(delivered) - queued,
        "budget": engine.get_budget_status().to_dict(),
    }


# =============================================================================
# Queue Commands
# =============================================================================


def cmd_queue(args: argparse.Namespace) -> dict[str, Any]:
    """
    Show the deferred queue, or drain it with --drain / empty it with --clear.

    Args:
        args: Parsed arguments with drain and clear flags

    Returns:
        Result dict with queue contents or delivered signals
    """
    query_ts = get_utc_timestamp()
    engine = create_engine()

    if args.clear:
        return {
            "query_timestamp": query_ts,
            "status": "ok",
            "cleared": engine.clear_queue(),
        }

    if args.drain:
        delivered = engine.process_queue()
        return {
            "query_timestamp": query_ts,
            "status": "ok",
            "delivered": [s.to_dict() for s in delivered],
            "remaining": engine.queue.size(),
        }

    queue = engine.get_queue()
    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "count": len(queue),
        "queue": [s.to_dict() for s in queue],
    }


def cmd_digest(args: argparse.Namespace) -> dict[str, Any]:
    """Group the deferred queue into domain clusters."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    clusters = engine.build_digest()
    status = engine.get_status()
    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "next_digest_at": status.to_dict()["next_digest_at"],
        "clusters": [c.to_dict() for c in clusters],
    }


# =============================================================================
# Status & Listing
# =============================================================================


def cmd_status(args: argparse.Namespace) -> dict[str, Any]:
    """Show unread count, queue depth, budget and active preferences."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        **engine.get_status().to_dict(),
    }


def cmd_signals(args: argparse.Namespace) -> dict[str, Any]:
    """
    List delivered signals, highest SIS first.

    Args:
        args: Parsed arguments with unread, limit and clusters flags

    Returns:
        Result dict with signals (and clusters when requested)
    """
    query_ts = get_utc_timestamp()
    engine = create_engine()

    signals = engine.get_unread_signals() if args.unread else engine.get_active_signals()
    if args.limit:
        signals = signals[: args.limit]

    result: dict[str, Any] = {
        "query_timestamp": query_ts,
        "status": "ok",
        "count": len(signals),
        "signals": [s.to_dict() for s in signals],
    }
    if args.clusters:
        result["clusters"] = [c.to_dict() for c in engine.get_clusters()]
    return result


def cmd_explain(args: argparse.Namespace) -> dict[str, Any]:
    """Show the SIS breakdown and gate decision for a signal without processing it."""
    query_ts = get_utc_timestamp()
    path = Path(args.file)

    try:
        raw_signals = _load_signals(path)
    except (OSError, ValueError) as e:
        return {
            "query_timestamp": query_ts,
            "status": "error",
            "error": "invalid",
            "message": f"Cannot read signals from {path}: {e}",
        }

    engine = create_engine()
    explanations = []
    for raw in raw_signals:
        explanation = engine.explain(raw)
        if explanation is not None:
            explanations.append(explanation)

    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "signals": explanations,
    }


# =============================================================================
# User Actions
# =============================================================================


def cmd_read(args: argparse.Namespace) -> dict[str, Any]:
    """
    Mark a delivered signal read, or every unread signal with --all.

    Args:
        args: Parsed arguments with signal_id and all flag

    Returns:
        Result dict with the updated signal or the number marked read
    """
    query_ts = get_utc_timestamp()
    engine = create_engine()

    if args.all:
        return {
            "query_timestamp": query_ts,
            "status": "ok",
            "marked_read": engine.mark_all_as_read(),
        }

    if not args.signal_id:
        return {
            "query_timestamp": query_ts,
            "status": "error",
            "error": "invalid",
            "message": "Provide a signal id or --all",
        }

    signal = engine.read(args.signal_id)
    if signal is None:
        return _not_found(query_ts, args.signal_id)
    return {"query_timestamp": query_ts, "status": "ok", "signal": signal.to_dict()}


def cmd_dismiss(args: argparse.Namespace) -> dict[str, Any]:
    """Dismiss a delivered signal."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    signal = engine.dismiss(args.signal_id)
    if signal is None:
        return _not_found(query_ts, args.signal_id)
    return {"query_timestamp": query_ts, "status": "ok", "signal": signal.to_dict()}


def cmd_feedback(args: argparse.Namespace) -> dict[str, Any]:
    """
    Rate a delivered signal.

    Args:
        args: Parsed arguments with signal_id and score (-1, 0, 1)

    Returns:
        Result dict with the updated signal
    """
    query_ts = get_utc_timestamp()
    engine = create_engine()

    signal = engine.feedback(args.signal_id, args.score)
    if signal is None:
        return _not_found(query_ts, args.signal_id)
    return {"query_timestamp": query_ts, "status": "ok", "signal": signal.to_dict()}


def cmd_learning(args: argparse.Namespace) -> dict[str, Any]:
    """Show learned behavior, or wipe it with --clear."""
    query_ts = get_utc_timestamp()
    engine = create_engine()

    if args.clear:
        engine.clear_learning_data()
        return {"query_timestamp": query_ts, "status": "ok", "cleared": True}

    if args.enable is not None:
        engine.preferences.set_learning_enabled(args.enable)

    behavior = engine.get_behavior()
    return {
        "query_timestamp": query_ts,
        "status": "ok",
        "learning_enabled": engine.preferences.get_preferences().learning_enabled,
        "behavior": behavior.to_dict() if behavior else None,
    }


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register signal command parsers."""

    process_parser = subparsers.add_parser(
        "process",
        help="Run signals from a JSON file through the decision pipeline",
    )
    process_parser.add_argument("file", help="JSON file with one signal or a list of signals")
    process_parser.set_defaults(func=cmd_process)

    explain_parser = subparsers.add_parser(
        "explain",
        help="Show SIS breakdown and gate decision without delivering",
    )
    explain_parser.add_argument("file", help="JSON file with one signal or a list of signals")
    explain_parser.set_defaults(func=cmd_explain)

    queue_parser = subparsers.add_parser("queue", help="Show or drain the deferred queue")
    queue_group = queue_parser.add_mutually_exclusive_group()
    queue_group.add_argument(
        "--drain",
        action="store_true",
        help="Deliver queued signals the budget now allows",
    )
    queue_group.add_argument(
        "--clear",
        action="store_true",
        help="Drop every queued signal",
    )
    queue_parser.set_defaults(func=cmd_queue)

    digest_parser = subparsers.add_parser("digest", help="Group queued signals into a digest")
    digest_parser.set_defaults(func=cmd_digest)

    status_parser = subparsers.add_parser("status", help="Show decision core status")
    status_parser.set_defaults(func=cmd_status)

    signals_parser = subparsers.add_parser("signals", help="List delivered signals")
    signals_parser.add_argument("--unread", action="store_true", help="Only unread signals")
    signals_parser.add_argument("--limit", type=int, default=0, help="Maximum signals to show")
    signals_parser.add_argument(
        "--clusters",
        action="store_true",
        help="Include notification clusters",
    )
    signals_parser.set_defaults(func=cmd_signals)

    read_parser = subparsers.add_parser("read", help="Mark a signal read")
    read_parser.add_argument("signal_id", nargs="?", help="Delivered signal id")
    read_parser.add_argument("--all", action="store_true", help="Mark every unread signal read")
    read_parser.set_defaults(func=cmd_read)

    dismiss_parser = subparsers.add_parser("dismiss", help="Dismiss a signal")
    dismiss_parser.add_argument("signal_id", help="Delivered signal id")
    dismiss_parser.set_defaults(func=cmd_dismiss)

    feedback_parser = subparsers.add_parser("feedback", help="Rate a signal")
    feedback_parser.add_argument("signal_id", help="Delivered signal id")
    feedback_parser.add_argument(
        "score",
        type=int,
        choices=[-1, 0, 1],
        help="-1 not helpful, 0 neutral, 1 helpful",
    )
    feedback_parser.set_defaults(func=cmd_feedback)

    learning_parser = subparsers.add_parser("learning", help="Show or reset learned behavior")
    learning_group = learning_parser.add_mutually_exclusive_group()
    learning_group.add_argument("--clear", action="store_true", help="Wipe learned behavior")
    learning_group.add_argument(
        "--enable",
        dest="enable",
        action="store_const",
        const=True,
        help="Resume learning from interactions",
    )
    learning_group.add_argument(
        "--disable",
        dest="enable",
        action="store_const",
        const=False,
        help="Stop learning from interactions",
    )
    learning_parser.set_defaults(func=cmd_learning, enable=None)
