"""
External channel transports
Registry keyed by channel plus the deliver step that reports back into the delivery log
"""

from typing import Optional, Dict
import uuid
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from notifyq.models import DeliveryLogEntry, DeliveryChannel, DeliveryStatus
from notifyq.services.delivery_log import DeliveryLogService
from notifyq.services.transports.base import Transport, RecipientDirectory, StaticRecipientDirectory
from notifyq.core.config import settings
from notifyq.core.exceptions import TransportError

logger = logging.getLogger(__name__)

class TransportRegistry:
    """Transports by channel and the directory that resolves recipients"""

    def __init__(self, directory: Optional[RecipientDirectory] = None):
        self.directory = directory or StaticRecipientDirectory()
        self.transports: Dict[DeliveryChannel, Transport] = {}

    def register(self, transport: Transport) -> None:
        self.transports[DeliveryChannel(transport.channel)] = transport

    def get(self, channel: DeliveryChannel) -> Optional[Transport]:
        return self.transports.get(DeliveryChannel(channel))

    async def deliver(self, db: AsyncSession, entry_id: uuid.UUID) -> DeliveryLogEntry:
        """
        Send one pending delivery row and record the result

        Rows that are no longer pending, or whose channel has no registered
        transport, are left untouched.
        """
        service = DeliveryLogService(db)
        entry = await service.get_entry(entry_id)
        channel = DeliveryChannel(entry.channel)

        if DeliveryStatus(entry.status) != DeliveryStatus.PENDING:
            logger.info(f"Delivery {entry_id} already {DeliveryStatus(entry.status).value}, skipping")
            return entry

        transport = self.get(channel)
        if transport is None:
            logger.warning(f"No transport registered for {channel.value}, delivery {entry_id} stays pending")
            return entry

        recipient = await self.directory.resolve(entry.user_id, channel)
        if not recipient:
            return await service.mark_failed(entry.id, f"No {channel.value} recipient for user {entry.user_id}")

        notification = await service.get_notification(entry.notification_id)
        if notification is None:
            return await service.mark_failed(entry.id, "Notification no longer exists")

        try:
            reference = await transport.send(notification, recipient)
        except TransportError as e:
            return await service.mark_failed(entry.id, e.detail)

        return await service.mark_sent(entry.id, provider_reference=reference)

def build_transport_registry(directory: Optional[RecipientDirectory] = None) -> TransportRegistry:
    """Registry with every transport the current settings configure"""
    registry = TransportRegistry(directory)

    if settings.FIREBASE_CREDENTIALS_PATH:
        from notifyq.services.transports.push import PushTransport
        registry.register(PushTransport())

    if settings.SMTP_HOST:
        from notifyq.services.transports.email import EmailTransport
        registry.register(EmailTransport())

    if settings.TWILIO_ACCOUNT_SID:
        from notifyq.services.transports.sms import SMSTransport
        registry.register(SMSTransport())

    return registry

__all__ = [
    "Transport",
    "RecipientDirectory",
    "StaticRecipientDirectory",
    "TransportRegistry",
    "build_transport_registry",
]
