"""Notification outcome accounting derived from queue and delivery rows"""

from typing import Dict, List, Optional, Tuple
from datetime import datetime, timedelta
from collections import defaultdict
import uuid
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from notifyq.models import (
    QueueItem,
    QueueStatus,
    Notification,
    DeliveryLogEntry,
    DeliveryChannel,
    DeliveryStatus,
)
from notifyq.schemas.notification import QuotaUsage, QueueStats
from notifyq.core.config import settings
from notifyq.utils.helpers import utcnow, floor_to_hour

logger = logging.getLogger(__name__)

class NotificationAnalyticsService:
    """Read-only counts over the queue and the delivery log"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _window(self, since: Optional[datetime], until: Optional[datetime]) -> Tuple[datetime, datetime]:
        until = until or utcnow()
        since = since or until - timedelta(days=1)
        return since, until

    async def queue_status_counts(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> Dict[str, int]:
        """Queue items created in [since, until) by status, every status present"""
        since, until = self._window(since, until)
        result = await self.db.execute(
            select(QueueItem.status, func.count(QueueItem.id))
            .where(QueueItem.created_at >= since, QueueItem.created_at < until)
            .group_by(QueueItem.status)
        )

        counts = {status.value: 0 for status in QueueStatus}
        for status, count in result.all():
            counts[QueueStatus(status).value] = count
        return counts

    async def delivery_counts(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> Dict[str, Dict[str, int]]:
        """Delivery rows created in [since, until) per channel and status"""
        since, until = self._window(since, until)
        result = await self.db.execute(
            select(DeliveryLogEntry.channel, DeliveryLogEntry.status, func.count(DeliveryLogEntry.id))
            .where(DeliveryLogEntry.created_at >= since, DeliveryLogEntry.created_at < until)
            .group_by(DeliveryLogEntry.channel, DeliveryLogEntry.status)
        )

        counts: Dict[str, Dict[str, int]] = {
            channel.value: {status.value: 0 for status in DeliveryStatus}
            for channel in DeliveryChannel
        }
        for channel, status, count in result.all():
            counts[DeliveryChannel(channel).value][DeliveryStatus(status).value] = count
        return counts

    async def quota_utilization(
        self,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
        rate_limits: Optional[Dict[str, int]] = None
    ) -> List[QuotaUsage]:
        """
        Rate-limited sends per (type, channel) in the current hour

        Usage is counted from the delivery log, so it only covers sends that
        committed.
        """
        rate_limits = settings.channel_rate_limits if rate_limits is None else rate_limits
        window_start = floor_to_hour(now or utcnow())
        channels = [DeliveryChannel(channel) for channel in rate_limits]

        result = await self.db.execute(
            select(Notification.type, DeliveryLogEntry.channel, func.count(DeliveryLogEntry.id))
            .join(Notification, Notification.id == DeliveryLogEntry.notification_id)
            .where(
                DeliveryLogEntry.user_id == user_id,
                DeliveryLogEntry.channel.in_(channels),
                DeliveryLogEntry.created_at >= window_start
            )
            .group_by(Notification.type, DeliveryLogEntry.channel)
        )

        used: Dict[Tuple[str, str], int] = defaultdict(int)
        for notification_type, channel, count in result.all():
            used[(notification_type, DeliveryChannel(channel).value)] += count

        usage = []
        for (notification_type, channel), count in sorted(used.items()):
            limit = rate_limits[channel]
            usage.append(QuotaUsage(
                notification_type=notification_type,
                channel=channel,
                used=count,
                limit=limit,
                remaining=max(limit - count, 0)
            ))
        return usage

    async def queue_stats(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None
    ) -> QueueStats:
        since, until = self._window(since, until)
        return QueueStats(
            since=since,
            until=until,
            queue=await self.queue_status_counts(since, until),
            deliveries=await self.delivery_counts(since, until)
        )
