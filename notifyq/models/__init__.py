"""Models package initialization"""

from .base import Base
from .notification_queue import QueueItem, QueueStatus
from .notification import (
    Notification,
    DeliveryLogEntry,
    DeliveryChannel,
    DeliveryStatus,
    EXTERNAL_CHANNELS,
)
from .preferences import NotificationPreference
from .rate_limit import RateLimitCounter

__all__ = [
    "Base",
    "QueueItem",
    "QueueStatus",
    "Notification",
    "DeliveryLogEntry",
    "DeliveryChannel",
    "DeliveryStatus",
    "EXTERNAL_CHANNELS",
    "NotificationPreference",
    "RateLimitCounter",
]
