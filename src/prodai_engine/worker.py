"""Celery worker configuration."""

from celery import Celery

from prodai_engine.config import settings
from prodai_engine.logging import setup_logging

# Setup logging before anything else
setup_logging()

# Create Celery app
celery_app = Celery(
    "prodai_engine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=900,  # Budget plus in-flight provider calls
    task_soft_time_limit=840,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
    # Result backend
    result_expires=86400,  # 24 hours
    # Task routing
    task_routes={
        "generation.process_job": {"queue": "high"},
        "generation.process_due_jobs": {"queue": "default"},
        "references.compress_oversized": {"queue": "low"},
    },
    # Beat scheduler (for periodic tasks)
    beat_schedule={
        # Resume pending and stalled jobs
        "process-due-generation-jobs": {
            "task": "generation.process_due_jobs",
            "schedule": settings.due_jobs_poll_seconds,
            "options": {"queue": "default"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["prodai_engine.jobs"], related_name="generation_tasks")
