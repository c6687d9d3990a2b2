"""
Celery application configuration for background tasks.
"""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from ..config import get_settings
from ..utils.logging_config import setup_logging

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "bus_booking_service",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["bus_booking_service.tasks.booking_tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    task_soft_time_limit=8 * 60,  # 8 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Periodic tasks configuration
celery_app.conf.beat_schedule = {
    "process-expired-bookings": {
        "task": "process_expired_bookings_task",
        "schedule": float(settings.expiration_sweep_interval_seconds),
    },
    "send-trip-reminders": {
        "task": "send_trip_reminders_task",
        "schedule": 3600.0,  # Run every hour
    },
}


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    setup_logging(
        log_level=settings.log_level,
        enable_json_logging=settings.enable_json_logging,
    )
