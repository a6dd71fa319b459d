"""
Notification dispatch worker
Claims due queue items and fans each one out to the user's channels
"""

from typing import Optional, Dict, List, Tuple, Callable
from datetime import datetime
import time
import logging

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifyq.models import QueueItem, QueueStatus, DeliveryChannel, DeliveryLogEntry
from notifyq.schemas.notification import (
    NotificationPayload,
    DispatchReport,
    ItemReport,
    ItemOutcome,
    ChannelOutcome,
)
from notifyq.services.notification_queue import NotificationQueueService
from notifyq.services.preferences import PreferenceService, ResolvedPreferences
from notifyq.services.delivery_log import DeliveryLogService
from notifyq.services.delivery_port import DeliveryPort, get_delivery_port
from notifyq.services.rate_limiter import get_rate_limit_ledger
from notifyq.core.config import settings
from notifyq.core.exceptions import (
    TransientStoreError,
    ItemProcessingError,
    QueueItemNotFound,
    InvalidTransitionError,
)
from notifyq.core.monitoring import (
    queue_items_claimed,
    dispatch_outcomes,
    dispatch_duration,
    dispatch_last_batch_size,
    deliveries_rate_limited,
    deliveries_created,
)
from notifyq.utils.helpers import utcnow

logger = logging.getLogger(__name__)

class NotificationDispatcher:
    """
    Dispatch worker

    Each run_once call claims one batch and processes the items one by one.
    The Notification, rate limit consumption, delivery rows and the
    completed status of an item commit in a single transaction; a failure
    in any of them rolls the item back and finalizes it failed without
    touching the rest of the batch.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        delivery_port: Optional[DeliveryPort] = None,
        clock: Callable[[], datetime] = utcnow,
        rate_limits: Optional[Dict[str, int]] = None,
        quiet_hours_bypass_priority: Optional[int] = settings.QUIET_HOURS_BYPASS_PRIORITY,
        rate_limit_backend: Optional[str] = None
    ):
        self.session_factory = session_factory
        self.delivery_port = delivery_port or get_delivery_port()
        self.clock = clock
        self.rate_limits = settings.channel_rate_limits if rate_limits is None else rate_limits
        self.quiet_hours_bypass_priority = quiet_hours_bypass_priority
        self.rate_limit_backend = rate_limit_backend

    async def run_once(self, batch_size: Optional[int] = None) -> DispatchReport:
        """
        Claim and process one batch

        Raises:
            TransientStoreError: The claim itself failed; nothing was claimed
        """
        batch_size = batch_size or settings.DISPATCH_BATCH_SIZE
        started = time.perf_counter()

        async with self.session_factory() as db:
            items = await NotificationQueueService(db).claim_batch(batch_size, now=self.clock())

        report = DispatchReport(claimed=len(items))
        queue_items_claimed.inc(len(items))
        dispatch_last_batch_size.set(len(items))

        for item in items:
            item_report, handoff = await self.process_item(item)
            report.record(item_report)
            dispatch_outcomes.labels(outcome=item_report.outcome.value).inc()

            for entry in handoff:
                await self._hand_off(entry)

        dispatch_duration.observe(time.perf_counter() - started)
        if items:
            logger.info(
                f"Dispatch pass: {report.claimed} claimed, {report.completed} completed, "
                f"{report.deferred} deferred, {report.failed} failed, {report.stuck} stuck"
            )
        return report

    async def process_item(self, item: QueueItem) -> Tuple[ItemReport, List[DeliveryLogEntry]]:
        """Process one claimed item; returns its report and the rows to hand off"""
        now = self.clock()

        async with self.session_factory() as db:
            queue = NotificationQueueService(db)

            try:
                preferences = await PreferenceService(db).get_preferences(item.user_id)
            except TransientStoreError as e:
                logger.error(f"Queue item {item.id} left processing: {e.detail}")
                return self._report(item, ItemOutcome.STUCK, error=e.detail), []

            if preferences.in_quiet_hours(now) and not self._bypasses_quiet_hours(item):
                return await self._defer(queue, item, preferences, now), []

            try:
                item_report, pending = await self._fan_out(db, item, preferences, now)
            except Exception as e:
                await db.rollback()
                logger.error(f"Failed to process queue item {item.id}: {str(e)}")
                return await self._fail(item, str(e), now), []

            try:
                transitioned = await queue.finalize(item.id, QueueStatus.COMPLETED, now=now, commit=False)
                if not transitioned:
                    await db.rollback()
                    return self._report(item, ItemOutcome.SKIPPED, error="already finalized"), []
                await db.commit()
                self._count_created(item_report)
            except TransientStoreError as e:
                logger.error(f"Queue item {item.id} left processing: {e.detail}")
                return self._report(item, ItemOutcome.STUCK, error=e.detail), []
            except (QueueItemNotFound, InvalidTransitionError) as e:
                await db.rollback()
                logger.warning(f"Queue item {item.id} changed hands while processing: {e.detail}")
                return self._report(item, ItemOutcome.SKIPPED, error=e.detail), []
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Failed to commit queue item {item.id}: {str(e)}")
                return await self._fail(item, str(e), now), []

        return item_report, pending

    async def _fan_out(
        self,
        db: AsyncSession,
        item: QueueItem,
        preferences: ResolvedPreferences,
        now: datetime
    ) -> Tuple[ItemReport, List[DeliveryLogEntry]]:
        try:
            payload = NotificationPayload.model_validate(item.payload or {})
        except pydantic.ValidationError as e:
            raise ItemProcessingError(f"Invalid payload: {e}") from e

        log = DeliveryLogService(db)
        notification = log.create_notification(item, payload, now)
        log.record_in_app(notification, now)
        channels: Dict[str, ChannelOutcome] = {DeliveryChannel.IN_APP.value: ChannelOutcome.DELIVERED}

        ledger = get_rate_limit_ledger(db, backend=self.rate_limit_backend, autocommit=False)
        pending: List[DeliveryLogEntry] = []

        for channel in preferences.enabled_channels():
            if channel == DeliveryChannel.IN_APP:
                continue

            limit = self.rate_limits.get(channel.value)
            if limit is not None:
                allowed = await ledger.try_consume(item.user_id, payload.type, channel.value, limit, now=now)
                if not allowed:
                    channels[channel.value] = ChannelOutcome.QUOTA_EXHAUSTED
                    deliveries_rate_limited.labels(channel=channel.value).inc()
                    continue

            pending.append(log.record_pending(notification, channel, now))
            channels[channel.value] = ChannelOutcome.QUEUED

        await db.flush()
        return self._report(
            item,
            ItemOutcome.COMPLETED,
            notification_id=notification.id,
            channels=channels
        ), pending

    def _count_created(self, item_report: ItemReport) -> None:
        for channel, outcome in item_report.channels.items():
            if outcome in (ChannelOutcome.DELIVERED, ChannelOutcome.QUEUED):
                deliveries_created.labels(channel=channel).inc()

    def _bypasses_quiet_hours(self, item: QueueItem) -> bool:
        return (
            self.quiet_hours_bypass_priority is not None
            and item.priority >= self.quiet_hours_bypass_priority
        )

    async def _defer(
        self,
        queue: NotificationQueueService,
        item: QueueItem,
        preferences: ResolvedPreferences,
        now: datetime
    ) -> ItemReport:
        resume_at = preferences.quiet_window_end(now)
        try:
            transitioned = await queue.finalize(item.id, QueueStatus.PENDING, reschedule_to=resume_at, now=now)
        except TransientStoreError as e:
            logger.error(f"Queue item {item.id} left processing: {e.detail}")
            return self._report(item, ItemOutcome.STUCK, error=e.detail)
        except (QueueItemNotFound, InvalidTransitionError) as e:
            return self._report(item, ItemOutcome.SKIPPED, error=e.detail)

        if not transitioned:
            return self._report(item, ItemOutcome.SKIPPED, error="already finalized")
        logger.info(f"Queue item {item.id} deferred to {resume_at.isoformat()} (quiet hours)")
        return self._report(item, ItemOutcome.DEFERRED, rescheduled_for=resume_at)

    async def _fail(self, item: QueueItem, error: str, now: datetime) -> ItemReport:
        async with self.session_factory() as db:
            try:
                transitioned = await NotificationQueueService(db).finalize(
                    item.id,
                    QueueStatus.FAILED,
                    error_message=error,
                    now=now
                )
            except TransientStoreError as e:
                logger.error(f"Queue item {item.id} left processing: {e.detail}")
                return self._report(item, ItemOutcome.STUCK, error=e.detail)
            except (QueueItemNotFound, InvalidTransitionError) as e:
                return self._report(item, ItemOutcome.SKIPPED, error=e.detail)

        if not transitioned:
            return self._report(item, ItemOutcome.SKIPPED, error="already finalized")
        return self._report(item, ItemOutcome.FAILED, error=error)

    async def _hand_off(self, entry: DeliveryLogEntry) -> None:
        try:
            await self.delivery_port.submit(entry)
        except Exception as e:
            # The row stays pending in the log; the item outcome is unaffected
            logger.error(f"Failed to hand off delivery {entry.id}: {str(e)}")

    def _report(self, item: QueueItem, outcome: ItemOutcome, **kwargs) -> ItemReport:
        return ItemReport(queue_item_id=item.id, outcome=outcome, **kwargs)

    async def reclaim(self, timeout: Optional[int] = None) -> int:
        """Return items stuck in processing past the timeout to pending"""
        async with self.session_factory() as db:
            return await NotificationQueueService(db).reclaim_stuck(
                timeout or settings.STUCK_ITEM_TIMEOUT_SECONDS,
                now=self.clock()
            )
