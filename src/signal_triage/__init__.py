"""
Signal Triage - notification decision core for a single user's signal stream.

Scores inbound signals, guards against notification fatigue, applies personas,
quiet hours, focus zones and alert rules, and learns from read/dismiss behavior.

Usage as library:
    from signal_triage.notifications import NotificationEngine, MemoryStore

    engine = NotificationEngine(MemoryStore())
    delivered = engine.process_signal(
        {"id": "sig-1", "domain": "REGULATORY", "priority": "critical", "relevance_score": 0.9}
    )

Usage as CLI:
    python -m signal_triage process signals.json
    python -m signal_triage queue --drain
    python -m signal_triage status

Package structure:
    signal_triage/
    ├── core/           # Settings, logging, time helpers
    ├── notifications/  # Decision core
    └── commands/       # CLI command implementations
"""

__version__ = "0.1.0"

from .core import get_settings, get_utc_timestamp

__all__ = [
    "__version__",
    "get_settings",
    "get_utc_timestamp",
]
