"""API endpoints for the bus booking service."""

from fastapi import APIRouter
from .bookings import router as bookings_router

# Create main API router
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(bookings_router)

__all__ = ["api_router"]
