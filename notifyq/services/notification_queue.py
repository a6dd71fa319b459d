"""
Notification queue store
Durable backlog with atomic claiming and guarded finalization
"""

from typing import Optional, List, Dict, Any, Union
from datetime import datetime, timedelta
import logging

import pydantic
from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifyq.models import QueueItem, QueueStatus
from notifyq.schemas.notification import EnqueueRequest, resolve_priority
from notifyq.services.queue_state_machine import queue_state_machine
from notifyq.core.exceptions import (
    ValidationError,
    TransientStoreError,
    QueueItemNotFound,
    InvalidTransitionError,
)
from notifyq.core.monitoring import queue_items_enqueued, queue_items_reclaimed
from notifyq.utils.helpers import utcnow, to_naive_utc

logger = logging.getLogger(__name__)

# Claim order: most urgent first, FIFO within a priority
CLAIM_ORDER = (QueueItem.priority.desc(), QueueItem.created_at.asc(), QueueItem.id.asc())

REQUIRED_FIELDS = ("user_id", "type", "title", "message")

def parse_enqueue_request(intent: Union[EnqueueRequest, Dict[str, Any]]) -> EnqueueRequest:
    """Validate a producer request or raw dictionary"""
    if isinstance(intent, EnqueueRequest):
        return intent

    data = dict(intent or {})
    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        return EnqueueRequest.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid notification request: {e}") from e

class NotificationQueueService:
    """Queue store for notification intents"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def enqueue(
        self,
        intent: Union[EnqueueRequest, Dict[str, Any]],
        scheduled_for: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Append a pending queue item

        Args:
            intent: Enqueue request or raw producer dictionary
            scheduled_for: Overrides the request's "not before" time
            now: Current time, defaults to the wall clock

        Returns:
            Queue item id

        Raises:
            ValidationError: user_id, type, title or message missing or malformed
        """
        request = parse_enqueue_request(intent)
        now = now or utcnow()
        not_before = to_naive_utc(scheduled_for or request.scheduled_for) or now

        payload = request.to_payload()
        priority = resolve_priority(request.priority)
        item = QueueItem(
            user_id=request.user_id,
            priority=priority,
            status=QueueStatus.PENDING,
            scheduled_for=not_before,
            payload=payload.model_dump(mode="json"),
            created_at=now,
        )

        try:
            self.db.add(item)
            await self.db.flush()
            item_id = item.id
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise TransientStoreError(f"Failed to enqueue notification: {e}") from e

        queue_items_enqueued.labels(type=payload.type).inc()
        logger.info(
            f"Queued {payload.type} notification {item_id} for user {request.user_id} "
            f"(priority {priority}, not before {not_before.isoformat()})"
        )
        return item_id

    async def get(self, item_id: int) -> QueueItem:
        """Load a queue item by id"""
        item = await self.db.get(QueueItem, item_id, populate_existing=True)
        if not item:
            raise QueueItemNotFound(item_id)
        return item

    async def claim_batch(
        self,
        limit: int,
        now: Optional[datetime] = None
    ) -> List[QueueItem]:
        """
        Atomically claim up to `limit` due items

        Selection and the pending -> processing flip are one conditional
        UPDATE, so two concurrent claims never return the same row. On
        PostgreSQL the candidate subquery also skips rows locked by a
        concurrent claim.

        Returns:
            Claimed items ordered by priority desc, created_at asc
        """
        if limit <= 0:
            return []
        now = now or utcnow()

        candidates = (
            select(QueueItem.id)
            .where(
                QueueItem.status == QueueStatus.PENDING,
                QueueItem.scheduled_for <= now
            )
            .order_by(*CLAIM_ORDER)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        claim = (
            update(QueueItem)
            .where(
                QueueItem.id.in_(candidates),
                QueueItem.status == QueueStatus.PENDING
            )
            .values(status=QueueStatus.PROCESSING, processed_at=now)
            .returning(QueueItem.id)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(claim)
            claimed_ids = [row[0] for row in result.all()]

            items: List[QueueItem] = []
            if claimed_ids:
                rows = await self.db.execute(
                    select(QueueItem)
                    .where(QueueItem.id.in_(claimed_ids))
                    .order_by(*CLAIM_ORDER)
                    .execution_options(populate_existing=True)
                )
                items = list(rows.scalars().all())

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise TransientStoreError(f"Failed to claim queue items: {e}") from e

        if items:
            logger.info(f"Claimed {len(items)} queue items")
        return items

    async def finalize(
        self,
        item_id: int,
        status: QueueStatus,
        error_message: Optional[str] = None,
        reschedule_to: Optional[datetime] = None,
        now: Optional[datetime] = None,
        commit: bool = True
    ) -> bool:
        """
        Move a processing item to completed, failed or back to pending

        Finalizing an item that already reached a terminal state is a no-op.

        Args:
            item_id: Queue item id
            status: COMPLETED, FAILED, or PENDING for quiet-hour deferral
            error_message: Failure reason, stored for FAILED
            reschedule_to: New "not before" time, required for PENDING
            now: Current time
            commit: Commit immediately; False joins the caller's transaction

        Returns:
            True if this call performed the transition

        Raises:
            QueueItemNotFound: Unknown id
            InvalidTransitionError: Transition outside the state machine
        """
        status = QueueStatus(status)
        queue_state_machine.ensure_transition(QueueStatus.PROCESSING, status)
        now = now or utcnow()

        values: Dict[str, Any] = {"status": status}
        if status == QueueStatus.PENDING:
            if reschedule_to is None:
                raise ValueError("reschedule_to is required when returning an item to pending")
            values.update(
                scheduled_for=to_naive_utc(reschedule_to),
                processed_at=None,
                error_message=None,
            )
        elif status == QueueStatus.FAILED:
            values.update(
                error_message=(error_message or "Unknown error")[:2000],
                processed_at=now,
            )

        try:
            result = await self.db.execute(
                update(QueueItem)
                .where(
                    QueueItem.id == item_id,
                    QueueItem.status == QueueStatus.PROCESSING
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            transitioned = result.rowcount == 1

            if not transitioned:
                current = await self.db.scalar(
                    select(QueueItem.status).where(QueueItem.id == item_id)
                )
                if current is None:
                    raise QueueItemNotFound(item_id)
                current = QueueStatus(current)
                if not queue_state_machine.is_terminal_state(current):
                    raise InvalidTransitionError(current.value, status.value)
                logger.info(
                    f"Queue item {item_id} already {current.value}, ignoring finalize to {status.value}"
                )

            if commit:
                await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise TransientStoreError(f"Failed to finalize queue item {item_id}: {e}") from e

        return transitioned

    async def reclaim_stuck(
        self,
        timeout: Union[int, timedelta],
        now: Optional[datetime] = None
    ) -> int:
        """
        Return items stuck in processing to the backlog

        An invocation that crashed mid-batch leaves its claimed items in
        processing; anything claimed longer than `timeout` ago is reset.

        Returns:
            Number of reclaimed items
        """
        if not isinstance(timeout, timedelta):
            timeout = timedelta(seconds=int(timeout))
        now = now or utcnow()
        cutoff = now - timeout

        try:
            result = await self.db.execute(
                update(QueueItem)
                .where(
                    QueueItem.status == QueueStatus.PROCESSING,
                    QueueItem.processed_at < cutoff
                )
                .values(status=QueueStatus.PENDING, processed_at=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise TransientStoreError(f"Failed to reclaim stuck queue items: {e}") from e

        reclaimed = result.rowcount or 0
        if reclaimed:
            queue_items_reclaimed.inc(reclaimed)
            logger.warning(f"Reclaimed {reclaimed} queue items stuck in processing since before {cutoff.isoformat()}")
        return reclaimed

    async def purge_finished(
        self,
        older_than: Union[int, timedelta],
        now: Optional[datetime] = None
    ) -> int:
        """
        Delete completed and failed items past the retention window

        Args:
            older_than: Retention window, days if given as an integer

        Returns:
            Number of deleted items
        """
        if not isinstance(older_than, timedelta):
            older_than = timedelta(days=int(older_than))
        cutoff = (now or utcnow()) - older_than

        try:
            result = await self.db.execute(
                delete(QueueItem)
                .where(
                    QueueItem.status.in_([QueueStatus.COMPLETED, QueueStatus.FAILED]),
                    QueueItem.created_at < cutoff
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise TransientStoreError(f"Failed to purge queue items: {e}") from e

        return result.rowcount or 0
