"""Cleanup and maintenance tasks"""

from celery.utils.log import get_task_logger
from datetime import timedelta

from notifyq.core.celery_app import celery_app, run_async
from notifyq.core.config import settings
from notifyq.core.database import get_session_factory
from notifyq.services.notification_queue import NotificationQueueService
from notifyq.services.rate_limiter import RateLimitLedger
from notifyq.utils.helpers import utcnow

logger = get_task_logger(__name__)

async def purge_queue(days: int, session_factory=None) -> int:
    factory = session_factory or get_session_factory()
    async with factory() as db:
        return await NotificationQueueService(db).purge_finished(days)

async def prune_counters(hours: int, session_factory=None) -> int:
    factory = session_factory or get_session_factory()
    async with factory() as db:
        return await RateLimitLedger(db).prune(utcnow() - timedelta(hours=hours))

@celery_app.task(name="cleanup_notification_queue")
def cleanup_notification_queue(days: int = settings.QUEUE_RETENTION_DAYS):
    """Remove completed and failed queue items past retention"""
    try:
        deleted_count = run_async(purge_queue(days))
        logger.info(f"Deleted {deleted_count} finished queue items older than {days} days")

        return {"deleted_count": deleted_count}

    except Exception as e:
        logger.error(f"Error cleaning up notification queue: {str(e)}")
        raise

@celery_app.task(name="prune_rate_limit_counters")
def prune_rate_limit_counters(hours: int = settings.RATE_LIMIT_RETENTION_HOURS):
    """Remove rate limit buckets older than the retention window"""
    try:
        deleted_count = run_async(prune_counters(hours))
        logger.info(f"Deleted {deleted_count} rate limit buckets older than {hours} hours")

        return {"deleted_count": deleted_count}

    except Exception as e:
        logger.error(f"Error pruning rate limit counters: {str(e)}")
        raise
