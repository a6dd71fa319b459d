# NotifyQ Monitoring Configuration
# Prometheus metrics, health checks, and logging setup

import logging
import logging.handlers
import os
from typing import Any, Awaitable, Callable, Dict
from sqlalchemy import text
from prometheus_client import Counter, Histogram, Gauge

from notifyq.core.config import settings
from notifyq.utils.helpers import utcnow

# Queue metrics
queue_items_enqueued = Counter('notifyq_queue_items_enqueued_total', 'Queue items accepted at intake', ['type'])
queue_items_reclaimed = Counter('notifyq_queue_items_reclaimed_total', 'Stuck queue items returned to pending')
queue_items_claimed = Counter('notifyq_queue_items_claimed_total', 'Queue items claimed by dispatch passes')

# Dispatch metrics
dispatch_outcomes = Counter('notifyq_dispatch_outcomes_total', 'Dispatched queue items by outcome', ['outcome'])
dispatch_duration = Histogram('notifyq_dispatch_pass_duration_seconds', 'Duration of one dispatch pass')
dispatch_last_batch_size = Gauge('notifyq_dispatch_last_batch_size', 'Items claimed by the latest dispatch pass')

# Delivery metrics
deliveries_created = Counter('notifyq_deliveries_created_total', 'Delivery log rows created', ['channel'])
deliveries_rate_limited = Counter('notifyq_deliveries_rate_limited_total', 'Channel sends skipped by the rate limiter', ['channel'])
deliveries_reported = Counter('notifyq_deliveries_reported_total', 'Transport status updates', ['channel', 'status'])

def setup_logging():
    """Console plus rotating file logging, levels from settings"""
    log_dir = os.path.dirname(settings.LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    handlers = [
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(
            settings.LOG_FILE,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT
        ),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper()), handlers=handlers)

    if settings.ENVIRONMENT == "production":
        for noisy in ("uvicorn.access", "sqlalchemy.engine"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

async def _probe(check: Callable[[], Awaitable[Any]]) -> Dict[str, Any]:
    try:
        await check()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}

async def get_health_status(db_session, redis_client=None) -> Dict[str, Any]:
    """
    Probe the store and, when configured, Redis

    A failed store makes the service unhealthy; a failed Redis only degrades it.
    """
    services = {"database": await _probe(lambda: db_session.execute(text("SELECT 1")))}
    if redis_client is not None:
        services["redis"] = await _probe(redis_client.ping)

    overall = "healthy"
    if services["database"]["status"] != "healthy":
        overall = "unhealthy"
    elif services.get("redis", {}).get("status") == "unhealthy":
        overall = "degraded"

    return {
        "status": overall,
        "timestamp": utcnow().isoformat(),
        "services": services
    }
