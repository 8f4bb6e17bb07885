"""
Signal Triage Logging

Every module logs through `get_logger(__name__)`, which shares one stderr handler.
Level comes from TRIAGE_LOG_LEVEL (TRIAGE_DEBUG=1 still means DEBUG) and
TRIAGE_LOG_JSON switches to one JSON object per line.

Pipeline outcomes carry the decision as structured fields so a JSON log can be
filtered per signal:

    logger.info(
        "Delivered %s",
        signal.id,
        extra=decision_fields(signal.id, sis=86, urgency="immediate"),
    )
    # text: [TRIAGE INFO] [engine] Delivered sig-1 {sis=86 urgency=immediate}
    # json: {..., "signal_id": "sig-1", "sis": 86, "urgency": "immediate"}
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from .config import get_settings

# LogRecord attributes that are not user-supplied "extra" fields
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
    }
)

# Decision fields rendered inline by the text format; signal_id is already in the message
_DECISION_FIELDS = ("sis", "urgency", "gate")


def decision_fields(
    signal_id: str,
    sis: int | None = None,
    urgency: Any = None,
    gate: str | None = None,
) -> dict[str, Any]:
    """
    Build the `extra` mapping for a pipeline outcome log record.

    Enum urgencies are logged by value; unset fields are omitted.
    """
    fields: dict[str, Any] = {"signal_id": signal_id}
    if sis is not None:
        fields["sis"] = sis
    if urgency is not None:
        fields["urgency"] = getattr(urgency, "value", urgency)
    if gate is not None:
        fields["gate"] = gate
    return fields


def _get_log_level() -> int:
    """Determine log level from centralized config."""
    return get_settings().log_level_int


def _is_json_output() -> bool:
    """Check if JSON output is requested."""
    return get_settings().log_json


class TriageFormatter(logging.Formatter):
    """
    Formats logs as `[TRIAGE LEVEL] [module] message {decision}` or as one JSON
    object per line with every extra field at the top level.
    """

    def __init__(self, json_output: bool = False) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")

        if self.json_output:
            return self._format_json(record, timestamp)
        return self._format_text(record)

    def _format_text(self, record: logging.LogRecord) -> str:
        """Format as human-readable text."""
        module = record.name.split(".")[-1] if "." in record.name else record.name

        msg = f"[TRIAGE {record.levelname}] [{module}] {record.getMessage()}"

        decision = [
            f"{key}={getattr(record, key)}" for key in _DECISION_FIELDS if hasattr(record, key)
        ]
        if decision:
            msg += " {" + " ".join(decision) + "}"

        if record.exc_info:
            exc_text = "".join(traceback.format_exception(*record.exc_info))
            msg += f"\n{exc_text}"

        return msg

    def _format_json(self, record: logging.LogRecord, timestamp: str) -> str:
        """Format as JSON for machine parsing."""
        log_data: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_handler: Optional[logging.Handler] = None


def _get_handler() -> logging.Handler:
    """Get or create the shared stderr handler."""
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(TriageFormatter(json_output=_is_json_output()))
    return _handler


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(_get_log_level())
    logger.addHandler(_get_handler())
    logger.propagate = False

    _loggers[name] = logger
    return logger


def set_log_level(level: int) -> None:
    """Dynamically set log level for all cached loggers."""
    for logger in _loggers.values():
        logger.setLevel(level)


def reset_logging() -> None:
    """
    Reset all signal_triage loggers to default state.

    Restores propagate=True and NOTSET level on every signal_triage.* logger and
    detaches the shared handler, so pytest's caplog can capture records.
    """
    global _handler

    manager = logging.Logger.manager
    for name in list(manager.loggerDict.keys()):
        if name == "signal_triage" or name.startswith("signal_triage."):
            logger_or_placeholder = manager.loggerDict[name]
            # loggerDict can contain Logger objects or PlaceHolder objects
            if isinstance(logger_or_placeholder, logging.Logger):
                logger_or_placeholder.propagate = True
                logger_or_placeholder.setLevel(logging.NOTSET)

    for logger in _loggers.values():
        if _handler is not None:
            logger.removeHandler(_handler)

    # Loggers stay cached so they keep propagate=True
    _handler = None
