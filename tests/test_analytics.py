"""
Unit tests for queue and delivery accounting.
"""
from datetime import timedelta

from notifyq.services.analytics import NotificationAnalyticsService
from notifyq.services.notification_queue import NotificationQueueService


class TestQueueStats:
    """Tests for status and delivery counts."""

    async def test_counts_every_status(self, session_factory, db, dispatcher, make_intent, now):
        """Test counts include zero entries for unused statuses."""
        async with session_factory() as session:
            queue = NotificationQueueService(session)
            await queue.enqueue(make_intent(), now=now)
            await queue.enqueue(make_intent(), scheduled_for=now + timedelta(hours=1), now=now)
        await dispatcher.run_once(10)

        stats = await NotificationAnalyticsService(db).queue_stats(
            since=now - timedelta(hours=1),
            until=now + timedelta(hours=1)
        )

        assert stats.queue == {"pending": 1, "processing": 0, "completed": 1, "failed": 0}
        assert stats.deliveries["in_app"]["delivered"] == 1
        assert stats.deliveries["sms"] == {"pending": 1, "sent": 0, "delivered": 0, "failed": 0}

    async def test_window_excludes_older_rows(self, session_factory, db, make_intent, now):
        """Test items outside the window are not counted."""
        async with session_factory() as session:
            await NotificationQueueService(session).enqueue(make_intent(), now=now - timedelta(days=3))

        counts = await NotificationAnalyticsService(db).queue_status_counts(
            since=now - timedelta(days=1),
            until=now
        )

        assert sum(counts.values()) == 0


class TestQuotaUtilization:
    """Tests for current-hour quota usage."""

    async def test_usage_per_type_and_channel(
        self, session_factory, db, dispatcher, make_intent, now, user_id, save_preferences
    ):
        """Test usage reflects the committed delivery rows."""
        await save_preferences(user_id, push_enabled=False, email_enabled=False)
        async with session_factory() as session:
            queue = NotificationQueueService(session)
            for _ in range(4):
                await queue.enqueue(make_intent(), now=now)
            await queue.enqueue(make_intent(type="order_filled"), now=now)
        await dispatcher.run_once(10)

        usage = await NotificationAnalyticsService(db).quota_utilization(
            user_id,
            now=now,
            rate_limits={"push": 10, "email": 10, "sms": 3}
        )

        assert [(u.notification_type, u.channel, u.used, u.remaining) for u in usage] == [
            ("order_filled", "sms", 1, 2),
            ("price_alert", "sms", 3, 0),
        ]

    async def test_previous_hour_not_counted(self, db, dispatcher, session_factory, make_intent, now, user_id):
        """Test usage resets with the hour bucket."""
        async with session_factory() as session:
            await NotificationQueueService(session).enqueue(make_intent(), now=now)
        await dispatcher.run_once(10)

        usage = await NotificationAnalyticsService(db).quota_utilization(user_id, now=now + timedelta(hours=1))

        assert usage == []
