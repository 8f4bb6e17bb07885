"""
Signal Triage Commands

Command implementations for the signal-triage CLI.
Each module handles a logical group of related commands.
"""

from . import preferences, signals

__all__ = ["preferences", "signals"]
