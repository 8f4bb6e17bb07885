"""
Tests for Signal Triage Structured Logging.

Tests logger configuration, formatters, and utility functions.
"""

from __future__ import annotations

import json
import logging
import sys

from signal_triage.core.logging import (
    TriageFormatter,
    decision_fields,
    get_logger,
    reset_logging,
    set_log_level,
)
from signal_triage.notifications.models import Urgency


def _record(name: str = "signal_triage.notifications.engine", **kwargs) -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=kwargs.pop("level", logging.INFO),
        pathname="engine.py",
        lineno=10,
        msg=kwargs.pop("msg", "Delivered %s"),
        args=kwargs.pop("args", ("sig-1",)),
        exc_info=kwargs.pop("exc_info", None),
    )


# =============================================================================
# TriageFormatter Tests
# =============================================================================


class TestTriageFormatter:
    """Test TriageFormatter class."""

    def test_text_format_basic(self):
        """Text format includes level and module."""
        formatted = TriageFormatter(json_output=False).format(_record())

        assert formatted == "[TRIAGE INFO] [engine] Delivered sig-1"

    def test_text_format_with_exception(self):
        """Text format includes exception info."""
        try:
            raise ValueError("store exploded")
        except ValueError:
            exc_info = sys.exc_info()

        formatted = TriageFormatter().format(_record(level=logging.ERROR, exc_info=exc_info))

        assert "ValueError" in formatted
        assert "store exploded" in formatted

    def test_text_format_appends_decision_fields(self):
        record = _record(msg="Signal %s deferred: %s", args=("sig-1", "Quiet hours active"))
        for key, value in decision_fields("sig-1", 71, "timely", "quiet_hours").items():
            setattr(record, key, value)

        formatted = TriageFormatter().format(record)

        assert formatted == (
            "[TRIAGE INFO] [engine] Signal sig-1 deferred: Quiet hours active "
            "{sis=71 urgency=timely gate=quiet_hours}"
        )

    def test_json_format_basic(self):
        """JSON format produces one parseable object."""
        formatted = TriageFormatter(json_output=True).format(_record())
        data = json.loads(formatted)

        assert data["level"] == "INFO"
        assert data["logger"] == "signal_triage.notifications.engine"
        assert data["message"] == "Delivered sig-1"
        assert "timestamp" in data

    def test_json_format_includes_extras(self):
        record = _record()
        record.signal_id = "sig-1"

        data = json.loads(TriageFormatter(json_output=True).format(record))

        assert data["signal_id"] == "sig-1"


# =============================================================================
# Logger Utilities
# =============================================================================


class TestGetLogger:
    """Test get_logger caching and level control."""

    def test_returns_cached_logger(self):
        assert get_logger("signal_triage.test") is get_logger("signal_triage.test")

    def test_set_log_level_applies_to_cached(self):
        logger = get_logger("signal_triage.test_level")
        set_log_level(logging.DEBUG)
        assert logger.level == logging.DEBUG

    def test_reset_restores_propagation(self, caplog):
        """After reset, records reach caplog."""
        logger = get_logger("signal_triage.test_reset")
        reset_logging()

        with caplog.at_level(logging.WARNING):
            logger.warning("Budget exhausted")

        assert logger.propagate is True
        assert "Budget exhausted" in caplog.text


class TestDecisionFields:
    def test_omits_unset_fields(self):
        assert decision_fields("sig-1") == {"signal_id": "sig-1"}

    def test_enum_urgency_logged_by_value(self):
        fields = decision_fields("sig-1", sis=86, urgency=Urgency.IMMEDIATE)

        assert fields == {"signal_id": "sig-1", "sis": 86, "urgency": "immediate"}
