"""
Outbound delivery port
Hands committed pending delivery rows to whatever sends them
"""

from typing import Optional, Protocol, runtime_checkable
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from notifyq.models import DeliveryLogEntry
from notifyq.core.config import settings

logger = logging.getLogger(__name__)

@runtime_checkable
class DeliveryPort(Protocol):
    async def submit(self, entry: DeliveryLogEntry) -> None:
        ...

class NullDeliveryPort:
    """Leaves pending rows in the log for providers that poll"""

    async def submit(self, entry: DeliveryLogEntry) -> None:
        logger.debug(f"Delivery {entry.id} via {entry.channel} left for polling")

class CeleryDeliveryPort:
    """Enqueues one deliver_notification task per row"""

    async def submit(self, entry: DeliveryLogEntry) -> None:
        from notifyq.tasks.notification_tasks import deliver_notification

        deliver_notification.delay(str(entry.id))
        logger.debug(f"Delivery {entry.id} handed to the delivery queue")

class InlineDeliveryPort:
    """Sends immediately through a transport registry, in its own session"""

    def __init__(self, registry, session_factory: async_sessionmaker):
        self.registry = registry
        self.session_factory = session_factory

    async def submit(self, entry: DeliveryLogEntry) -> None:
        async with self.session_factory() as db:
            await self.registry.deliver(db, entry.id)

def get_delivery_port(name: Optional[str] = None) -> DeliveryPort:
    """Port selected by DELIVERY_PORT"""
    name = (name or settings.DELIVERY_PORT).lower()
    if name == "celery":
        return CeleryDeliveryPort()
    if name != "null":
        logger.warning(f"Unknown delivery port {name!r}, using null")
    return NullDeliveryPort()
