"""Celery tasks for the generation pipeline.

Tasks:
- generation.process_job: advance one job within a time budget
- generation.process_due_jobs: pick up pending/stalled jobs (beat, every minute)
- references.compress_oversized: shrink reference images above the size limit

Every task is safe to run twice: job progress lives in the database and
each run claims the job's lease before touching it.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.exc import OperationalError

from prodai_engine.adapters.storage import get_storage_gateway
from prodai_engine.config import settings
from prodai_engine.db.session import SessionLocal
from prodai_engine.domain.models import WorkerOptions
from prodai_engine.errors import JobNotFoundError
from prodai_engine.logging import get_logger
from prodai_engine.repositories.jobs import SqlJobRepository
from prodai_engine.services.generation_worker import (
    build_generation_worker,
    options_from_settings,
)
from prodai_engine.services.reference_compression import ReferenceCompressor
from prodai_engine.utils import run_async
from prodai_engine.worker import celery_app

logger = get_logger(__name__)


def resolve_options(
    batch_size: int | None = None,
    parallelism: int | None = None,
    time_budget_ms: int | None = None,
) -> WorkerOptions:
    """Worker options with unset values taken from settings."""
    defaults = options_from_settings(settings)
    return WorkerOptions(
        batch_size=batch_size or defaults.batch_size,
        parallelism=parallelism or defaults.parallelism,
        time_budget_ms=time_budget_ms or defaults.time_budget_ms,
    ).normalized()


@celery_app.task(
    bind=True,
    name="generation.process_job",
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_backoff_max=300,
)
def process_job_task(
    self: Any,
    job_id: str,
    batch_size: int | None = None,
    parallelism: int | None = None,
    time_budget_ms: int | None = None,
) -> dict[str, Any]:
    """Process one generation job.

    Args:
        job_id: UUID of the generation job
        batch_size: Units per sub-batch (defaults from settings)
        parallelism: Concurrent provider calls (defaults from settings)
        time_budget_ms: Soft wall-clock budget (defaults from settings)

    Returns:
        The job outcome as a dict
    """
    task_id = self.request.id
    options = resolve_options(batch_size, parallelism, time_budget_ms)
    logger.info("process_job_task_started", task_id=task_id, job_id=job_id)

    worker = build_generation_worker(settings)
    try:
        outcome = run_async(worker.process_job(UUID(job_id), options))
    except JobNotFoundError as e:
        logger.warning("process_job_task_job_missing", task_id=task_id, job_id=job_id)
        return {"success": False, "job_id": job_id, "error": str(e)}

    logger.info(
        "process_job_task_finished",
        task_id=task_id,
        job_id=job_id,
        kind=outcome.kind.value,
        status=outcome.status.value,
    )
    return {"success": True, **outcome.to_dict()}


@celery_app.task(
    bind=True,
    name="generation.process_due_jobs",
    max_retries=0,
)
def process_due_jobs_task(
    self: Any,
    jobs: int | None = None,
    image_jobs: int | None = None,
    video_jobs: int | None = None,
    batch_size: int | None = None,
    parallelism: int | None = None,
    time_budget_ms: int | None = None,
) -> dict[str, Any]:
    """Process the oldest due jobs in separate image and video pools."""
    options = resolve_options(batch_size, parallelism, time_budget_ms)
    worker = build_generation_worker(settings)
    outcomes = run_async(
        worker.process_due_jobs(
            options,
            jobs=jobs or settings.generation_job_batch_size,
            image_job_concurrency=image_jobs or settings.image_job_concurrency,
            video_job_concurrency=video_jobs or settings.video_job_concurrency,
        )
    )

    logger.info("process_due_jobs_task_finished", task_id=self.request.id, processed=len(outcomes))
    return {"processed": len(outcomes), "results": [o.to_dict() for o in outcomes]}


@celery_app.task(
    bind=True,
    name="references.compress_oversized",
    max_retries=0,
)
def compress_references_task(self: Any, limit: int | None = None) -> dict[str, Any]:
    """Compress the largest oversized reference images."""
    compressor = ReferenceCompressor(SqlJobRepository(SessionLocal), get_storage_gateway())
    summary = run_async(compressor.compress_oversized(limit))

    logger.info(
        "compress_references_task_finished",
        task_id=self.request.id,
        total=summary.total,
        compressed=summary.compressed,
        errors=summary.errors,
    )
    return summary.to_dict()


def dispatch_job(job_id: UUID) -> str:
    """Queue a process_job run; returns the Celery task id."""
    result = process_job_task.delay(str(job_id))
    logger.info("process_job_dispatched", job_id=str(job_id), task_id=result.id)
    return result.id
