"""Notification dispatch and delivery Celery tasks"""

from celery import Task
from celery.utils.log import get_task_logger
from typing import Dict, Any, Optional
import uuid

from notifyq.core.celery_app import celery_app, run_async
from notifyq.core.config import settings
from notifyq.core.database import get_session_factory
from notifyq.core.exceptions import TransientStoreError
from notifyq.services.notification_dispatcher import NotificationDispatcher
from notifyq.services.transports import build_transport_registry

logger = get_task_logger(__name__)

class DeliveryTask(Task):
    """Base class for delivery tasks with retry logic"""

    autoretry_for = (TransientStoreError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 300  # 5 minutes

async def dispatch_pass(batch_size: int, session_factory=None) -> Dict[str, Any]:
    dispatcher = NotificationDispatcher(session_factory or get_session_factory())
    report = await dispatcher.run_once(batch_size)
    return report.model_dump(mode="json", exclude={"items"})

async def reclaim_pass(timeout: Optional[int] = None, session_factory=None) -> int:
    dispatcher = NotificationDispatcher(session_factory or get_session_factory())
    return await dispatcher.reclaim(timeout)

async def deliver_entry(entry_id: str, session_factory=None, registry=None) -> Dict[str, Any]:
    registry = registry or build_transport_registry()
    factory = session_factory or get_session_factory()
    async with factory() as db:
        entry = await registry.deliver(db, uuid.UUID(entry_id))
        return {"entry_id": str(entry.id), "status": entry.status.value}

@celery_app.task(name="process_notification_queue")
def process_notification_queue(batch_size: int = settings.DISPATCH_BATCH_SIZE) -> Dict[str, Any]:
    """Claim and dispatch one batch of due notifications"""
    try:
        result = run_async(dispatch_pass(batch_size))
        if result["claimed"]:
            logger.info(
                f"Processed {result['claimed']} queued notifications: "
                f"{result['completed']} completed, {result['deferred']} deferred, {result['failed']} failed"
            )
        return result

    except Exception as e:
        logger.error(f"Error processing notification queue: {str(e)}")
        raise

@celery_app.task(name="reclaim_stuck_notifications")
def reclaim_stuck_notifications(timeout: Optional[int] = None) -> Dict[str, int]:
    """Return items stuck in processing to pending"""
    try:
        reclaimed = run_async(reclaim_pass(timeout))
        return {"reclaimed": reclaimed}

    except Exception as e:
        logger.error(f"Error reclaiming stuck notifications: {str(e)}")
        raise

@celery_app.task(base=DeliveryTask, name="deliver_notification")
def deliver_notification(entry_id: str) -> Dict[str, Any]:
    """Send one pending delivery row through its channel's transport"""
    try:
        logger.info(f"Delivering {entry_id}")
        return run_async(deliver_entry(entry_id))

    except Exception as e:
        logger.error(f"Error delivering {entry_id}: {str(e)}")
        raise
