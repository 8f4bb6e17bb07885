"""
Tests for quiet hours checker.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from signal_triage.notifications.quiet_hours import (
    QuietHoursChecker,
    QuietHoursConfig,
    in_window,
    parse_hhmm,
    validate_hhmm,
)

NEW_YORK = ZoneInfo("America/New_York")


class TestQuietHoursChecker:
    """Tests for QuietHoursChecker."""

    def test_disabled_quiet_hours(self):
        """Disabled quiet hours never triggers."""
        checker = QuietHoursChecker(config=QuietHoursConfig(enabled=False, start="02:00", end="08:00"))

        assert checker.is_quiet_time(datetime(2026, 1, 15, 3, 0, tzinfo=NEW_YORK)) is False

    def test_within_quiet_hours(self):
        config = QuietHoursConfig(start="02:00", end="08:00", timezone="America/New_York")
        checker = QuietHoursChecker(config=config)

        assert checker.is_quiet_time(datetime(2026, 1, 15, 3, 0, tzinfo=NEW_YORK)) is True
        assert checker.is_quiet_time(datetime(2026, 1, 15, 7, 59, tzinfo=NEW_YORK)) is True

    def test_outside_quiet_hours(self):
        config = QuietHoursConfig(start="02:00", end="08:00", timezone="America/New_York")
        checker = QuietHoursChecker(config=config)

        assert checker.is_quiet_time(datetime(2026, 1, 15, 8, 1, tzinfo=NEW_YORK)) is False
        assert checker.is_quiet_time(datetime(2026, 1, 15, 1, 59, tzinfo=NEW_YORK)) is False

    def test_quiet_hours_spanning_midnight(self):
        """Default 22:00-08:00 window wraps past midnight."""
        checker = QuietHoursChecker(config=QuietHoursConfig(timezone="America/New_York"))

        assert checker.is_quiet_time(datetime(2026, 1, 15, 23, 0, tzinfo=NEW_YORK)) is True
        assert checker.is_quiet_time(datetime(2026, 1, 16, 2, 0, tzinfo=NEW_YORK)) is True
        assert checker.is_quiet_time(datetime(2026, 1, 15, 12, 0, tzinfo=NEW_YORK)) is False

    def test_timezone_conversion(self):
        """08:00 UTC is 03:00 EST in winter."""
        config = QuietHoursConfig(start="02:00", end="08:00", timezone="America/New_York")
        checker = QuietHoursChecker(config=config)

        assert checker.is_quiet_time(datetime(2026, 1, 15, 8, 0, tzinfo=ZoneInfo("UTC"))) is True

    def test_dst_uses_wall_clock(self):
        """07:00 UTC is 03:00 EDT in summer but 02:00 EST in winter."""
        config = QuietHoursConfig(start="02:30", end="08:00", timezone="America/New_York")
        checker = QuietHoursChecker(config=config)

        assert checker.is_quiet_time(datetime(2026, 7, 15, 7, 0, tzinfo=ZoneInfo("UTC"))) is True
        assert checker.is_quiet_time(datetime(2026, 1, 15, 7, 0, tzinfo=ZoneInfo("UTC"))) is False

    def test_weekends_only(self):
        config = QuietHoursConfig(start="09:00", end="17:00", weekends_only=True)
        checker = QuietHoursChecker(config=config)

        saturday_noon = datetime(2026, 1, 17, 12, 0, tzinfo=ZoneInfo("UTC"))
        wednesday_noon = datetime(2026, 1, 14, 12, 0, tzinfo=ZoneInfo("UTC"))
        assert checker.is_quiet_time(saturday_noon) is True
        assert checker.is_quiet_time(wednesday_noon) is False

    def test_next_active_time(self):
        config = QuietHoursConfig(start="02:00", end="08:00", timezone="America/New_York")
        checker = QuietHoursChecker(config=config)

        next_active = checker.next_active_time(datetime(2026, 1, 15, 3, 0, tzinfo=NEW_YORK))

        assert next_active is not None
        assert (next_active.day, next_active.hour, next_active.minute) == (15, 8, 0)

    def test_next_active_time_wraps_to_tomorrow(self):
        checker = QuietHoursChecker(config=QuietHoursConfig())

        next_active = checker.next_active_time(datetime(2026, 1, 15, 23, 0, tzinfo=ZoneInfo("UTC")))

        assert (next_active.day, next_active.hour) == (16, 8)

    def test_next_active_time_not_quiet(self):
        checker = QuietHoursChecker(config=QuietHoursConfig())
        assert checker.next_active_time(datetime(2026, 1, 15, 14, 0, tzinfo=ZoneInfo("UTC"))) is None

    def test_fallback_timezone(self):
        """Unknown timezones fall back to UTC."""
        checker = QuietHoursChecker(config=QuietHoursConfig(timezone="Invalid/Timezone"))
        assert checker._timezone == ZoneInfo("UTC")


class TestQuietHoursEdgeCases:
    """Edge case tests for the half-open window."""

    def test_exact_start_time_is_quiet(self):
        checker = QuietHoursChecker(config=QuietHoursConfig(start="02:00", end="08:00"))
        assert checker.is_quiet_time(datetime(2026, 1, 15, 2, 0, tzinfo=ZoneInfo("UTC"))) is True

    def test_exact_end_time_is_not_quiet(self):
        checker = QuietHoursChecker(config=QuietHoursConfig(start="02:00", end="08:00"))
        assert checker.is_quiet_time(datetime(2026, 1, 15, 8, 0, tzinfo=ZoneInfo("UTC"))) is False

    def test_naive_datetime_uses_configured_zone(self):
        config = QuietHoursConfig(start="02:00", end="08:00", timezone="America/New_York")
        checker = QuietHoursChecker(config=config)

        assert checker.is_quiet_time(datetime(2026, 1, 15, 3, 0)) is True

    def test_in_window_equal_bounds_is_empty(self):
        assert in_window(parse_hhmm("12:00"), parse_hhmm("09:00"), parse_hhmm("09:00")) is False


class TestQuietHoursConfig:
    def test_from_dict_defaults_timezone(self):
        config = QuietHoursConfig.from_dict({"start": "23:00"}, default_timezone="Europe/Berlin")

        assert config.start == "23:00"
        assert config.end == "08:00"
        assert config.timezone == "Europe/Berlin"

    def test_validate(self):
        assert QuietHoursConfig().validate() == []
        assert QuietHoursConfig(start="25:00").validate()
        assert QuietHoursConfig(end="noon").validate()
        assert QuietHoursConfig(timezone="Mars/Olympus").validate()

    def test_malformed_time_parses_as_midnight(self):
        assert parse_hhmm("garbage").hour == 0
        assert validate_hhmm("start", None)
