"""
Signal Triage Test Suite - Shared Fixtures and Configuration

Provides a controllable clock, in-memory engines and signal factories for all tests.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from signal_triage.core.config import reset_settings
from signal_triage.core.logging import reset_logging
from signal_triage.notifications import MemoryStore, NotificationEngine

# Wednesday, outside the default 22:00-08:00 quiet hours
T0 = datetime(2026, 1, 14, 10, 0, tzinfo=timezone.utc)


class FrozenClock:
    """
    Clock that only moves when told to.

    Usage:
        clock = FrozenClock(T0)
        clock.advance(minutes=3)
    """

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


_signal_ids = itertools.count(1)


def make_signal(**overrides: Any) -> dict[str, Any]:
    """
    Build a raw inbound signal dict.

    Defaults to a high-priority competitive signal with relevance 0.5 and no
    published_at (so it is scored as brand new).
    """
    signal = {
        "id": f"sig-{next(_signal_ids)}",
        "domain": "COMPETITIVE",
        "priority": "high",
        "relevance_score": 0.5,
        "title": "Competitor launches new pricing tier",
        "summary": "Acme cut list prices by 20% on the mid-market plan.",
        "url": "https://example.com/acme-pricing",
        "companies": ["Acme"],
    }
    signal.update(overrides)
    return signal


# =============================================================================
# Singleton Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_all_singletons():
    """
    Reset module-level singletons before and after each test.

    Settings first (logging reads its level from settings), then logging so
    records propagate to caplog.
    """

    def do_reset():
        reset_settings()
        reset_logging()

    do_reset()
    yield
    do_reset()


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at Wednesday 2026-01-14 10:00 UTC."""
    return FrozenClock(T0)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def engine(store: MemoryStore, clock: FrozenClock) -> NotificationEngine:
    """Engine over a fresh MemoryStore with the default 8/30/120s budget."""
    return NotificationEngine(store, clock=clock)


@pytest.fixture
def signal_factory():
    """Fixture providing make_signal for tests."""
    return make_signal
