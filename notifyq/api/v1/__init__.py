"""API v1 routes aggregation"""

from fastapi import APIRouter

from .notifications.router import router as notifications_router

# Create v1 router
api_router = APIRouter()

api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
