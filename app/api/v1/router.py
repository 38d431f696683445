"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import appeals, bookings, notifications, providers

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Provider moderation
api_router.include_router(providers.router, prefix="/providers", tags=["Providers"])

# Appeals
api_router.include_router(appeals.router, prefix="/appeals", tags=["Appeals"])

# Notifications
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
