"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from bus_booking_service.api import api_router
from bus_booking_service.config import settings
from bus_booking_service.database import close_database, init_database
from bus_booking_service.middleware import (
    ErrorHandlerMiddleware,
    LoggingMiddleware,
    booking_error_handler,
    request_validation_handler,
)
from bus_booking_service.utils.background import drain, pending_tasks
from bus_booking_service.utils.circuit_breaker import get_registry
from bus_booking_service.utils.dependencies import close_clients, init_clients
from bus_booking_service.utils.exceptions import BookingServiceError
from bus_booking_service.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging(
        log_level="DEBUG" if settings.debug else settings.log_level,
        log_file="logs/bus_booking.log" if settings.environment == "production" else None,
        enable_json_logging=settings.enable_json_logging or settings.environment == "production",
    )

    logger.info("Starting bus booking service")
    await init_database()
    init_clients()
    logger.info("Database, cache and collaborator clients initialized")
    yield
    logger.info("Shutting down bus booking service")
    await drain()
    await close_clients()
    await close_database()
    logger.info("Connections closed")


app = FastAPI(
    title="Bus Booking Service API",
    description="""
    ## Bus Booking Service

    Booking lifecycle for bus trips: seat holds with automatic expiration,
    payment confirmation with e-ticket generation, tiered cancellation
    refunds and tiered modification fees.

    ### Caller identity

    Authentication happens at the gateway, which forwards `X-User-Id` and
    `X-User-Role`. Requests without `X-User-Id` are treated as guests.

    ### Error Handling

    ```json
    {
      "error": {
        "error_code": "ERROR_CODE",
        "message": "Human readable error message",
        "details": {"field": "Additional error context"},
        "suggestions": ["Helpful suggestions"]
      },
      "error_id": "...",
      "timestamp": "..."
    }
    ```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "bookings", "description": "Booking lifecycle operations"},
        {"name": "health", "description": "System health and monitoring endpoints"},
    ],
    lifespan=lifespan,
)

app.add_exception_handler(BookingServiceError, booking_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

# Added last-to-first: CORS runs outermost, logging sees every request
app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)
app.add_middleware(LoggingMiddleware)

if settings.debug:
    cors_origins = ["*"]
    cors_allow_credentials = False  # Cannot use credentials with wildcard origins
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers,
)

app.include_router(api_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Basic liveness check."""
    return {"status": "healthy", "service": "bus-booking-service"}


@app.get("/metrics", tags=["health"])
async def get_metrics():
    """Circuit breaker statistics and in-flight background work."""
    return {
        "circuit_breakers": get_registry().get_all_stats(),
        "background_tasks": pending_tasks(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
