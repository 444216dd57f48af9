# app/config/celery_config.py
"""Celery configuration, task routing and beat schedule"""
from celery import Celery
from kombu import Queue

from app.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure Celery application"""

    celery_app = Celery(
        "fulfillment_service",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["app.tasks.confirmation_tasks"],
    )

    # Configure Celery
    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            "app.tasks.confirmation_tasks.*": {"queue": "confirmations"},
        },

        # Queue definitions
        task_queues=(
            Queue("confirmations", routing_key="confirmations"),
        ),

        # Periodic sweep; every run re-derives deadlines from delivered_at,
        # so a missed tick is absorbed by the next one
        beat_schedule={
            "sweep-expired-confirmations": {
                "task": "app.tasks.confirmation_tasks.sweep_expired_confirmations",
                "schedule": float(settings.CONFIRMATION_SWEEP_INTERVAL_SECONDS),
                "options": {
                    "queue": "confirmations",
                    "expires": settings.CONFIRMATION_SWEEP_INTERVAL_SECONDS,
                },
            },
        },

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        # Fix deprecation warning for Celery 6+
        broker_connection_retry_on_startup=True,
    )

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
