"""Celery application configuration"""

import asyncio

from celery import Celery
from kombu import Exchange, Queue

from notifyq.core.config import settings

# Create Celery app
celery_app = Celery(
    "notifyq",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "notifyq.tasks.notification_tasks",
        "notifyq.tasks.cleanup_tasks"
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Task routing
    task_routes={
        "process_notification_queue": {"queue": "dispatch"},
        "reclaim_stuck_notifications": {"queue": "dispatch"},
        "deliver_notification": {"queue": "delivery"},
        "cleanup_notification_queue": {"queue": "cleanup"},
        "prune_rate_limit_counters": {"queue": "cleanup"}
    },

    # Retry configuration
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    # Result backend configuration
    result_expires=3600,  # 1 hour
)

QUEUE_NAMES = ("default", "dispatch", "delivery", "cleanup")
celery_app.conf.task_queues = tuple(
    Queue(name, Exchange(name), routing_key=name) for name in QUEUE_NAMES
)
celery_app.conf.task_default_queue = "default"

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "process-notification-queue": {
        "task": "process_notification_queue",
        "schedule": settings.DISPATCH_INTERVAL_SECONDS,
        "kwargs": {"batch_size": settings.DISPATCH_BATCH_SIZE},
    },
    "reclaim-stuck-notifications": {
        "task": "reclaim_stuck_notifications",
        "schedule": settings.RECLAIM_INTERVAL_SECONDS,
    },
    "cleanup-notification-queue": {
        "task": "cleanup_notification_queue",
        "schedule": 60 * 60 * 24,  # Daily
        "kwargs": {"days": settings.QUEUE_RETENTION_DAYS},
    },
    "prune-rate-limit-counters": {
        "task": "prune_rate_limit_counters",
        "schedule": 60 * 60 * 24,  # Daily
        "kwargs": {"hours": settings.RATE_LIMIT_RETENTION_HOURS},
    },
}

def run_async(coro):
    """Run a coroutine to completion on a fresh event loop inside a worker"""
    from notifyq.core.database import engine

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        # Pooled connections are bound to the loop that opened them
        loop.run_until_complete(engine.dispose())
        loop.close()
