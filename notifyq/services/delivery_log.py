"""
Delivery log service
Notification records, per-channel delivery rows and transport status updates
"""

from typing import Optional, List
from datetime import datetime
import uuid
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifyq.models import (
    QueueItem,
    Notification,
    DeliveryLogEntry,
    DeliveryChannel,
    DeliveryStatus,
)
from notifyq.schemas.notification import NotificationPayload
from notifyq.services.queue_state_machine import delivery_state_machine
from notifyq.core.exceptions import NotifyQException, TransientStoreError
from notifyq.core.monitoring import deliveries_reported
from notifyq.utils.helpers import utcnow

logger = logging.getLogger(__name__)

class DeliveryLogNotFound(NotifyQException):
    default_code = "NOT_FOUND"

    def __init__(self, entry_id):
        super().__init__(f"Delivery log entry {entry_id} not found")

class DeliveryLogService:
    """Writes notifications and their delivery rows"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def create_notification(
        self,
        item: QueueItem,
        payload: NotificationPayload,
        now: Optional[datetime] = None
    ) -> Notification:
        """Stage the in-app record for a dequeued item; the caller commits"""
        notification = Notification(
            id=uuid.uuid4(),
            user_id=item.user_id,
            queue_item_id=item.id,
            type=payload.type,
            category=payload.category,
            priority=payload.priority,
            title=payload.title,
            message=payload.message,
            action_url=payload.action_url,
            data=payload.data,
            created_at=now or utcnow(),
        )
        self.db.add(notification)
        return notification

    def record_in_app(self, notification: Notification, now: Optional[datetime] = None) -> DeliveryLogEntry:
        """In-app delivery is the notification row itself, so it is delivered on creation"""
        now = now or utcnow()
        entry = DeliveryLogEntry(
            id=uuid.uuid4(),
            notification_id=notification.id,
            user_id=notification.user_id,
            channel=DeliveryChannel.IN_APP,
            status=DeliveryStatus.DELIVERED,
            sent_at=now,
            delivered_at=now,
            created_at=now,
        )
        self.db.add(entry)
        return entry

    def record_pending(
        self,
        notification: Notification,
        channel: DeliveryChannel,
        now: Optional[datetime] = None
    ) -> DeliveryLogEntry:
        """Stage a row for an external transport to pick up"""
        entry = DeliveryLogEntry(
            id=uuid.uuid4(),
            notification_id=notification.id,
            user_id=notification.user_id,
            channel=DeliveryChannel(channel),
            status=DeliveryStatus.PENDING,
            created_at=now or utcnow(),
        )
        self.db.add(entry)
        return entry

    async def get_entry(self, entry_id: uuid.UUID) -> DeliveryLogEntry:
        entry = await self.db.get(DeliveryLogEntry, entry_id, populate_existing=True)
        if not entry:
            raise DeliveryLogNotFound(entry_id)
        return entry

    async def get_notification(self, notification_id: uuid.UUID) -> Optional[Notification]:
        return await self.db.get(Notification, notification_id)

    async def list_pending(self, channel: Optional[DeliveryChannel] = None, limit: int = 100) -> List[DeliveryLogEntry]:
        """Pending rows for transports that poll instead of being handed work"""
        query = select(DeliveryLogEntry).where(DeliveryLogEntry.status == DeliveryStatus.PENDING)
        if channel:
            query = query.where(DeliveryLogEntry.channel == DeliveryChannel(channel))
        query = query.order_by(DeliveryLogEntry.created_at.asc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_sent(
        self,
        entry_id: uuid.UUID,
        provider_reference: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> DeliveryLogEntry:
        """Provider accepted the message"""
        return await self._transition(
            entry_id,
            DeliveryStatus.SENT,
            now=now,
            provider_reference=provider_reference,
        )

    async def mark_delivered(
        self,
        entry_id: uuid.UUID,
        provider_reference: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> DeliveryLogEntry:
        """Provider confirmed delivery"""
        return await self._transition(
            entry_id,
            DeliveryStatus.DELIVERED,
            now=now,
            provider_reference=provider_reference,
        )

    async def mark_failed(
        self,
        entry_id: uuid.UUID,
        error_message: str,
        now: Optional[datetime] = None
    ) -> DeliveryLogEntry:
        """Provider rejected or lost the message"""
        return await self._transition(
            entry_id,
            DeliveryStatus.FAILED,
            now=now,
            error_message=error_message,
        )

    async def _transition(
        self,
        entry_id: uuid.UUID,
        status: DeliveryStatus,
        now: Optional[datetime] = None,
        provider_reference: Optional[str] = None,
        error_message: Optional[str] = None
    ) -> DeliveryLogEntry:
        entry = await self.get_entry(entry_id)
        delivery_state_machine.ensure_transition(DeliveryStatus(entry.status), status)
        now = now or utcnow()

        entry.status = status
        if status == DeliveryStatus.SENT:
            entry.sent_at = now
        elif status == DeliveryStatus.DELIVERED:
            entry.sent_at = entry.sent_at or now
            entry.delivered_at = now
        elif status == DeliveryStatus.FAILED:
            entry.error_message = (error_message or "Unknown error")[:2000]
        if provider_reference:
            entry.provider_reference = provider_reference

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise TransientStoreError(f"Failed to update delivery {entry_id}: {e}") from e

        channel = DeliveryChannel(entry.channel).value
        deliveries_reported.labels(channel=channel, status=status.value).inc()
        logger.info(f"Delivery {entry_id} via {channel} marked {status.value}")
        return entry
