"""Health check and monitoring endpoints"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.ext.asyncio import AsyncSession

from notifyq.core.config import settings
from notifyq.core.database import get_db
from notifyq.core.monitoring import get_health_status
from notifyq.utils.helpers import utcnow

router = APIRouter()

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat()
    }

@router.get("/health/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)):
    """Store and, with the Redis ledger enabled, Redis status"""
    redis_client = None
    if settings.RATE_LIMIT_BACKEND == "redis":
        from notifyq.core.cache import get_redis
        redis_client = get_redis()

    health_status = await get_health_status(db, redis_client)
    status_code = 503 if health_status["status"] == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=health_status)

@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
