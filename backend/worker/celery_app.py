"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Task routing for the timeout queue
- Serialization and timezone settings
- Beat schedule for the timeout scan and the nightly due-time sweep
"""

from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "approval_flow",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    task_routes={
        "worker.tasks.timeouts.*": {"queue": "workflow-timeout"},
    },

    # Default queue
    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Task execution limits
    task_soft_time_limit=120,
    task_time_limit=300,
    task_acks_late=True,        # Acknowledge after execution (at-least-once)
    worker_prefetch_multiplier=1,

    task_reject_on_worker_lost=True,
    task_acks_on_failure_or_timeout=True,

    # Beat schedule for periodic tasks
    beat_schedule={
        "scan-timeout-tasks": {
            "task": "worker.tasks.timeouts.scan_timeout_tasks",
            "schedule": timedelta(seconds=settings.TIMEOUT_SCAN_INTERVAL_SECONDS),
            "options": {"queue": "workflow-timeout"},
        },
        "cleanup-task-due-times": {
            "task": "worker.tasks.timeouts.cleanup_due_times",
            "schedule": crontab(hour=2, minute=0),  # Daily at 2 AM
            "options": {"queue": "workflow-timeout"},
        },
    },

    include=[
        "worker.tasks.timeouts",
    ],
)
