"""Schemas package"""

from .notification import (
    EnqueueRequest,
    EnqueueResult,
    NotificationPayload,
    DispatchReport,
    ItemReport,
    ItemOutcome,
    ChannelOutcome,
    QuotaUsage,
    QueueStats,
)

__all__ = [
    "EnqueueRequest",
    "EnqueueResult",
    "NotificationPayload",
    "DispatchReport",
    "ItemReport",
    "ItemOutcome",
    "ChannelOutcome",
    "QuotaUsage",
    "QueueStats",
]
