"""
Signal Triage core utilities: settings, logging and time helpers.
"""

from .config import TriageSettings, get_settings, reset_settings
from .formatters import format_datetime, get_utc_now, get_utc_timestamp, parse_datetime
from .logging import get_logger

__all__ = [
    "TriageSettings",
    "format_datetime",
    "get_logger",
    "get_settings",
    "get_utc_now",
    "get_utc_timestamp",
    "parse_datetime",
    "reset_settings",
]
