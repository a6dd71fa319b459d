"""
Internal notification queue API routes
"""

from fastapi import APIRouter, Depends, Header, Query, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List
from datetime import datetime
import secrets
import uuid
import logging

from notifyq.core.config import settings
from notifyq.core.database import get_db, get_session_factory
from notifyq.schemas.notification import (
    EnqueueRequest,
    EnqueueResult,
    DispatchReport,
    QueueStats,
    QuotaUsage,
)
from notifyq.services.notification_intake import NotificationIntakeService
from notifyq.services.notification_dispatcher import NotificationDispatcher
from notifyq.services.analytics import NotificationAnalyticsService
from notifyq.utils.helpers import to_naive_utc

logger = logging.getLogger(__name__)

async def verify_internal_token(x_internal_token: Optional[str] = Header(None)):
    """Reject callers without the shared internal token, when one is configured"""
    expected = settings.INTERNAL_API_TOKEN
    if not expected:
        return
    if not x_internal_token or not secrets.compare_digest(x_internal_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal token"
        )

def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(get_session_factory())

router = APIRouter(dependencies=[Depends(verify_internal_token)])

@router.post(
    "/queue",
    response_model=EnqueueResult,
    status_code=status.HTTP_201_CREATED,
    summary="Queue notification",
    description="Queue a notification for dispatch unless the user opted out of its type"
)
async def queue_notification(
    request: EnqueueRequest,
    db: AsyncSession = Depends(get_db)
):
    """Queue a notification"""
    service = NotificationIntakeService(db)
    return await service.queue_notification(request)

@router.post(
    "/process",
    response_model=DispatchReport,
    summary="Run dispatch pass",
    description="Claim and dispatch one batch of due notifications"
)
async def process_queue(
    batch_size: int = Query(settings.DISPATCH_BATCH_SIZE, ge=1, le=500),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Process one batch"""
    report = await dispatcher.run_once(batch_size)
    logger.info(f"Manual dispatch pass processed {report.claimed} items")
    return report

@router.get(
    "/stats",
    response_model=QueueStats,
    summary="Queue statistics",
    description="Queue items by status and deliveries by channel and status"
)
async def queue_stats(
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db)
):
    """Outcome counts for a time window, the last 24 hours by default"""
    service = NotificationAnalyticsService(db)
    return await service.queue_stats(to_naive_utc(since), to_naive_utc(until))

@router.get(
    "/quota/{user_id}",
    response_model=List[QuotaUsage],
    summary="Quota utilization",
    description="Current-hour rate limit usage per notification type and channel"
)
async def quota_utilization(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    """Quota usage for one user"""
    service = NotificationAnalyticsService(db)
    return await service.quota_utilization(user_id)
