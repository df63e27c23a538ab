from celery import Celery
import structlog

from booking_engine.core.config import settings

logger = structlog.get_logger(__name__)

# Create Celery instance
celery_app = Celery(
    "booking_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "booking_engine.services.notification_service",
        "booking_engine.tasks.sweeps",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    task_routes={
        "booking_engine.services.notification_service.*": {"queue": "notifications"},
        "booking_engine.tasks.sweeps.*": {"queue": "sweeps"},
    },
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,
    beat_schedule={
        "auto-complete-bookings": {
            "task": "booking_engine.tasks.sweeps.auto_complete_bookings",
            "schedule": settings.SWEEP_INTERVAL_MINUTES * 60,
        },
        "auto-no-show-bookings": {
            "task": "booking_engine.tasks.sweeps.auto_no_show_bookings",
            "schedule": settings.SWEEP_INTERVAL_MINUTES * 60,
        },
    },
)
