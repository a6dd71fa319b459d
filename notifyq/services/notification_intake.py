"""
Producer-facing notification intake
Applies per-type opt-outs and batching before queueing
"""

from typing import Optional, Dict, Any, Union
from datetime import datetime
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from notifyq.schemas.notification import EnqueueRequest, EnqueueResult
from notifyq.services.notification_queue import NotificationQueueService, parse_enqueue_request
from notifyq.services.preferences import PreferenceService
from notifyq.utils.helpers import utcnow, to_naive_utc, next_interval_boundary

logger = logging.getLogger(__name__)

class NotificationIntakeService:
    """Queues notifications on behalf of producers"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.queue = NotificationQueueService(db)
        self.preferences = PreferenceService(db)

    async def queue_notification(
        self,
        request: Union[EnqueueRequest, Dict[str, Any]],
        now: Optional[datetime] = None
    ) -> EnqueueResult:
        """
        Queue a notification unless the user opted out of its type

        Batchable notifications for users with batching on are held until
        the next batch interval boundary.

        Raises:
            ValidationError: Required fields missing or malformed
        """
        request = parse_enqueue_request(request)
        now = now or utcnow()

        preferences = await self.preferences.get_preferences(request.user_id)
        if not preferences.allows_type(request.type):
            logger.info(f"User {request.user_id} disabled {request.type} notifications, not queued")
            return EnqueueResult(queued=False, reason="type_disabled")

        scheduled_for = to_naive_utc(request.scheduled_for) or now
        if request.batchable and preferences.batch_notifications:
            boundary = next_interval_boundary(now, preferences.batch_interval_minutes)
            scheduled_for = max(scheduled_for, boundary)

        item_id = await self.queue.enqueue(request, scheduled_for=scheduled_for, now=now)
        return EnqueueResult(queued=True, queue_item_id=item_id, scheduled_for=scheduled_for)

