"""
Unit tests for preference resolution and quiet hours.
"""
import logging
import uuid
from datetime import datetime, time

import pytest

from notifyq.models import DeliveryChannel
from notifyq.services.preferences import PreferenceService, ResolvedPreferences


def prefs(**fields):
    return ResolvedPreferences(user_id=uuid.uuid4(), **fields)


class TestQuietHours:
    """Tests for the quiet hours window."""

    def test_no_window_configured(self):
        """Test users without quiet hours are never quiet."""
        assert not prefs().in_quiet_hours(datetime(2024, 3, 4, 3, 0))

    def test_same_day_window(self):
        """Test a window that does not cross midnight."""
        p = prefs(quiet_hours_start=time(13, 0), quiet_hours_end=time(14, 0))

        assert not p.in_quiet_hours(datetime(2024, 3, 4, 12, 59))
        assert p.in_quiet_hours(datetime(2024, 3, 4, 13, 0))
        assert p.in_quiet_hours(datetime(2024, 3, 4, 13, 59))
        assert not p.in_quiet_hours(datetime(2024, 3, 4, 14, 0))

    def test_window_wrapping_midnight(self):
        """Test a 22:00-07:00 window covers both sides of midnight."""
        p = prefs(quiet_hours_start=time(22, 0), quiet_hours_end=time(7, 0))

        assert p.in_quiet_hours(datetime(2024, 3, 4, 23, 30))
        assert p.in_quiet_hours(datetime(2024, 3, 5, 0, 15))
        assert p.in_quiet_hours(datetime(2024, 3, 5, 6, 59))
        assert not p.in_quiet_hours(datetime(2024, 3, 5, 7, 0))
        assert not p.in_quiet_hours(datetime(2024, 3, 4, 21, 59))

    def test_equal_start_and_end_is_empty(self):
        """Test a zero-length window never applies."""
        p = prefs(quiet_hours_start=time(9, 0), quiet_hours_end=time(9, 0))

        assert not p.has_quiet_hours
        assert not p.in_quiet_hours(datetime(2024, 3, 4, 9, 0))

    def test_window_uses_user_time_zone(self):
        """Test the window is evaluated on the user's wall clock."""
        p = prefs(
            quiet_hours_start=time(22, 0),
            quiet_hours_end=time(7, 0),
            timezone="America/New_York",
        )

        # 04:00 UTC is 23:00 EST
        assert p.in_quiet_hours(datetime(2024, 3, 4, 4, 0))
        # 15:30 UTC is 10:30 EST
        assert not p.in_quiet_hours(datetime(2024, 3, 4, 15, 30))

    def test_window_end_after_midnight(self):
        """Test deferral lands on the next morning in UTC."""
        p = prefs(
            quiet_hours_start=time(22, 0),
            quiet_hours_end=time(7, 0),
            timezone="America/New_York",
        )

        assert p.quiet_window_end(datetime(2024, 3, 4, 4, 0)) == datetime(2024, 3, 4, 12, 0)
        # 01:00 EST on the 5th is 06:00 UTC; window ends 07:00 EST the same day
        assert p.quiet_window_end(datetime(2024, 3, 5, 6, 0)) == datetime(2024, 3, 5, 12, 0)

    def test_window_end_before_midnight_start(self):
        """Test an evening start ends on the following day."""
        p = prefs(quiet_hours_start=time(22, 0), quiet_hours_end=time(7, 0))

        assert p.quiet_window_end(datetime(2024, 3, 4, 23, 0)) == datetime(2024, 3, 5, 7, 0)

    def test_unknown_time_zone_falls_back_to_utc(self):
        """Test an invalid zone name is treated as UTC."""
        p = prefs(
            quiet_hours_start=time(22, 0),
            quiet_hours_end=time(7, 0),
            timezone="Mars/Olympus_Mons",
        )

        assert p.in_quiet_hours(datetime(2024, 3, 4, 23, 0))

    def test_unknown_time_zone_warned_once(self, caplog):
        """Test a deferral check and its window end resolve the zone once."""
        p = prefs(
            quiet_hours_start=time(22, 0),
            quiet_hours_end=time(7, 0),
            timezone="Mars/Olympus_Mons",
        )

        with caplog.at_level(logging.WARNING, logger="notifyq.services.preferences"):
            assert p.in_quiet_hours(datetime(2024, 3, 4, 23, 0))
            assert p.quiet_window_end(datetime(2024, 3, 4, 23, 0)) == datetime(2024, 3, 5, 7, 0)

        warnings = [r for r in caplog.records if "Unknown timezone" in r.getMessage()]
        assert len(warnings) == 1


class TestChannelsAndCategories:
    """Tests for channel eligibility and category opt-outs."""

    def test_defaults_enable_every_channel(self):
        """Test all channels are eligible by default."""
        assert prefs().enabled_channels() == [
            DeliveryChannel.IN_APP,
            DeliveryChannel.PUSH,
            DeliveryChannel.EMAIL,
            DeliveryChannel.SMS,
        ]

    def test_in_app_always_eligible(self):
        """Test in-app stays on even when its toggle is off."""
        p = prefs(in_app_enabled=False, push_enabled=False, email_enabled=False, sms_enabled=True)
        assert p.enabled_channels() == [DeliveryChannel.IN_APP, DeliveryChannel.SMS]

    @pytest.mark.parametrize("notification_type,field", [
        ("price_alert", "price_alerts"),
        ("order_filled", "order_updates"),
        ("order_cancelled", "order_updates"),
        ("portfolio_update", "portfolio_updates"),
        ("social_mention", "social_updates"),
        ("security_alert", "security_alerts"),
    ])
    def test_category_opt_out(self, notification_type, field):
        """Test disabling a category blocks its types."""
        assert prefs().allows_type(notification_type)
        assert not prefs(**{field: False}).allows_type(notification_type)

    def test_unmapped_types_always_allowed(self):
        """Test types without a category are never blocked."""
        assert prefs(price_alerts=False, marketing_updates=False).allows_type("system_notice")


class TestPreferenceService:
    """Tests for loading preferences from the store."""

    async def test_missing_row_uses_defaults(self, db, user_id):
        """Test users without a row get defaults."""
        result = await PreferenceService(db).get_preferences(user_id)

        assert result.user_id == user_id
        assert result.sms_enabled
        assert result.timezone == "UTC"
        assert not result.has_quiet_hours
        assert not result.batch_notifications

    async def test_stored_row_is_resolved(self, db, user_id, save_preferences):
        """Test stored values come through."""
        await save_preferences(
            user_id,
            sms_enabled=False,
            quiet_hours_start=time(22, 0),
            quiet_hours_end=time(7, 0),
            timezone="Europe/London",
            batch_notifications=True,
            batch_interval_minutes=15,
        )

        result = await PreferenceService(db).get_preferences(user_id)

        assert not result.sms_enabled
        assert result.quiet_hours_start == time(22, 0)
        assert result.timezone == "Europe/London"
        assert result.batch_interval_minutes == 15
