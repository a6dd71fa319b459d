"""
Tests for the Celery task wrappers and their async bodies.
"""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from notifyq.core.celery_app import celery_app
from notifyq.models import DeliveryChannel, DeliveryStatus, QueueStatus
from notifyq.services.delivery_log import DeliveryLogService
from notifyq.services.delivery_port import CeleryDeliveryPort, NullDeliveryPort, get_delivery_port
from notifyq.services.notification_queue import NotificationQueueService
from notifyq.services.rate_limiter import RateLimitLedger
from notifyq.services.transports import TransportRegistry, StaticRecipientDirectory
from notifyq.tasks import notification_tasks, cleanup_tasks
from notifyq.utils.helpers import utcnow


class TestTaskBodies:
    """Tests for the async task bodies against the test database."""

    async def test_dispatch_pass_summary(self, session_factory, make_intent):
        """Test the task result drops per-item detail."""
        async with session_factory() as session:
            await NotificationQueueService(session).enqueue(make_intent())

        result = await notification_tasks.dispatch_pass(10, session_factory=session_factory)

        assert result["claimed"] == 1
        assert result["completed"] == 1
        assert "items" not in result

    async def test_reclaim_pass(self, session_factory, make_intent):
        """Test stuck items are returned to pending."""
        started = utcnow() - timedelta(hours=1)
        async with session_factory() as session:
            queue = NotificationQueueService(session)
            item_id = await queue.enqueue(make_intent(), now=started)
            await queue.claim_batch(1, now=started)

        assert await notification_tasks.reclaim_pass(600, session_factory=session_factory) == 1

        async with session_factory() as session:
            assert (await NotificationQueueService(session).get(item_id)).status == QueueStatus.PENDING

    async def test_deliver_entry(self, session_factory, dispatcher, make_intent, now, user_id):
        """Test one row is sent through the registry."""
        async with session_factory() as session:
            await NotificationQueueService(session).enqueue(make_intent(), now=now)
        await dispatcher.run_once(10)
        async with session_factory() as session:
            entry = (await DeliveryLogService(session).list_pending(DeliveryChannel.EMAIL))[0]

        transport = MagicMock(channel=DeliveryChannel.EMAIL)
        transport.send = AsyncMock(return_value="<abc@notifyq.local>")
        registry = TransportRegistry(StaticRecipientDirectory({user_id: {"email": "trader@example.com"}}))
        registry.register(transport)

        result = await notification_tasks.deliver_entry(
            str(entry.id), session_factory=session_factory, registry=registry
        )

        assert result == {"entry_id": str(entry.id), "status": DeliveryStatus.SENT.value}
        transport.send.assert_awaited_once()

    async def test_purge_and_prune(self, session_factory, make_intent, user_id):
        """Test maintenance bodies delete expired rows."""
        old = utcnow() - timedelta(days=45)
        async with session_factory() as session:
            queue = NotificationQueueService(session)
            item_id = await queue.enqueue(make_intent(), now=old)
            await queue.claim_batch(1, now=old)
            await queue.finalize(item_id, QueueStatus.COMPLETED, now=old)
            await RateLimitLedger(session).try_consume(user_id, "price_alert", "sms", 3, now=old)

        assert await cleanup_tasks.purge_queue(30, session_factory=session_factory) == 1
        assert await cleanup_tasks.prune_counters(48, session_factory=session_factory) == 1


class TestTaskWrappers:
    """Tests for the synchronous Celery entry points."""

    def test_process_notification_queue(self):
        """Test the task runs one dispatch pass."""
        summary = {"claimed": 3, "completed": 2, "deferred": 1, "failed": 0, "stuck": 0, "skipped": 0}
        with patch.object(notification_tasks, "run_async", return_value=summary) as run_async, \
                patch.object(notification_tasks, "dispatch_pass", MagicMock()) as dispatch_pass:
            result = notification_tasks.process_notification_queue(25)

        assert result == summary
        dispatch_pass.assert_called_once_with(25)
        run_async.assert_called_once()

    def test_cleanup_notification_queue(self):
        """Test the task reports the deleted count."""
        with patch.object(cleanup_tasks, "run_async", return_value=7), \
                patch.object(cleanup_tasks, "purge_queue", MagicMock()):
            assert cleanup_tasks.cleanup_notification_queue(30) == {"deleted_count": 7}

    def test_tasks_registered_and_routed(self):
        """Test every task is registered and routed to its queue."""
        routes = celery_app.conf.task_routes
        for name in (
            "process_notification_queue",
            "reclaim_stuck_notifications",
            "deliver_notification",
            "cleanup_notification_queue",
            "prune_rate_limit_counters",
        ):
            assert name in celery_app.tasks
            assert name in routes
        assert routes["deliver_notification"] == {"queue": "delivery"}


class TestDeliveryPorts:
    """Tests for delivery port selection."""

    async def test_celery_port_enqueues_task(self, dispatcher, session_factory, make_intent, now):
        """Test each row becomes one deliver task."""
        async with session_factory() as session:
            await NotificationQueueService(session).enqueue(make_intent(), now=now)
        await dispatcher.run_once(10)
        async with session_factory() as session:
            entry = (await DeliveryLogService(session).list_pending(DeliveryChannel.PUSH))[0]

        with patch.object(notification_tasks.deliver_notification, "delay") as delay:
            await CeleryDeliveryPort().submit(entry)

        delay.assert_called_once_with(str(entry.id))

    def test_port_selection(self):
        """Test names map to ports, unknown names fall back to null."""
        assert isinstance(get_delivery_port("celery"), CeleryDeliveryPort)
        assert isinstance(get_delivery_port("null"), NullDeliveryPort)
        assert isinstance(get_delivery_port("carrier-pigeon"), NullDeliveryPort)
