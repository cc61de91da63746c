"""Celery job definitions."""

from prodai_engine.jobs.generation_tasks import (
    compress_references_task,
    dispatch_job,
    process_due_jobs_task,
    process_job_task,
)

__all__ = [
    "compress_references_task",
    "dispatch_job",
    "process_due_jobs_task",
    "process_job_task",
]
