"""Main FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from notifyq.core.config import settings
from notifyq.core.database import init_db, close_db
from notifyq.core.cache import redis_connection
from notifyq.core.exceptions import NotifyQException
from notifyq.core.monitoring import setup_logging

logger = logging.getLogger(__name__)

# HTTP status per error code
ERROR_STATUS = {
    "VALIDATION_ERROR": 422,
    "NOT_FOUND": 404,
    "INVALID_TRANSITION": 409,
    "STORE_UNAVAILABLE": 503,
    "TRANSPORT_FAILED": 502,
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging()
    logger.info(f"Starting up {settings.APP_NAME}...")
    await init_db()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}...")
    await redis_connection.disconnect()
    await close_db()

# Create FastAPI app
app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Notification queue and multi-channel delivery pipeline",
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(NotifyQException)
async def notifyq_exception_handler(request: Request, exc: NotifyQException):
    status_code = ERROR_STATUS.get(exc.error_code, 400)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.error_code,
                "message": exc.detail
            }
        }
    )

# Include routers
from notifyq.api.v1 import api_router
from notifyq.api.health import router as health_router
app.include_router(api_router, prefix="/api/v1")
app.include_router(health_router)

# Root endpoint
@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "docs": "/api/docs",
        "health": "/health"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "notifyq.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
