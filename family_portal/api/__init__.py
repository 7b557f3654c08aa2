"""API routes for the family portal."""

from fastapi import APIRouter

from .admin import router as admin_router
from .notifications import router as notifications_router
from .requests import router as requests_router
from .user import router as user_router

# Main API router
api_router = APIRouter()

# User routes (/me/*)
api_router.include_router(user_router)

# Submission and review of every request kind
api_router.include_router(requests_router)

# In-app notifications and their WebSocket push
api_router.include_router(notifications_router)

# Admin dashboard: pending counts, roles
api_router.include_router(admin_router)

__all__ = ["api_router"]
