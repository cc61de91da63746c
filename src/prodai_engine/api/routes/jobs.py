"""Generation job endpoints: status, retry and cancellation."""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, HTTPException, status

from prodai_engine.api.deps import (
    GenerationWorkerDep,
    JobRepositoryDep,
    SettingsDep,
    StorageDep,
)
from prodai_engine.adapters.storage.base import StorageGateway
from prodai_engine.api.schemas import (
    CancelResponse,
    JobDetailResponse,
    JobSummaryResponse,
    RetryResponse,
    UnitResponse,
)
from prodai_engine.domain.enums import MediaType
from prodai_engine.domain.models import GeneratedUnit, WorkerOptions
from prodai_engine.errors import JobNotFoundError, StorageError
from prodai_engine.jobs.generation_tasks import dispatch_job
from prodai_engine.logging import get_logger
from prodai_engine.services.generation_worker import GenerationWorker, options_from_settings

router = APIRouter(tags=["Jobs"])
logger = get_logger(__name__)


async def run_job_inline(worker: GenerationWorker, job_id: UUID, options: WorkerOptions) -> None:
    """Background run of a retried job; the outcome only goes to the log."""
    try:
        outcome = await worker.process_job(job_id, options)
    except JobNotFoundError:
        logger.warning("inline_job_missing", job_id=str(job_id))
        return
    except Exception:
        logger.exception("inline_job_failed", job_id=str(job_id))
        raise

    logger.info("inline_job_finished", **outcome.to_dict())


async def _signed_urls(
    storage: StorageGateway, bucket: str, units: list[GeneratedUnit], ttl_seconds: int
) -> dict[str, str]:
    paths = [path for unit in units for path in unit.storage_paths]
    if not paths:
        return {}
    try:
        return await storage.create_signed_urls(bucket, paths, ttl_seconds)
    except StorageError as e:
        logger.warning("signed_urls_unavailable", bucket=bucket, error=str(e))
        return {}


@router.get(
    "/jobs/{job_id}",
    response_model=JobDetailResponse,
    summary="Get a generation job",
)
async def get_job(
    job_id: UUID,
    repository: JobRepositoryDep,
    storage: StorageDep,
    settings: SettingsDep,
) -> JobDetailResponse:
    """Job state and its units, with signed URLs issued in one call per bucket."""
    job = await repository.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation job not found",
        )

    units = await repository.list_units(job_id)
    images = [u for u in units if u.media_type == MediaType.IMAGE]
    videos = [u for u in units if u.media_type == MediaType.VIDEO]
    ttl = settings.signed_url_ttl_seconds
    urls = {
        **await _signed_urls(storage, settings.images_bucket, images, ttl),
        **await _signed_urls(storage, settings.videos_bucket, videos, ttl),
    }

    summary = JobSummaryResponse.from_job(job)
    return JobDetailResponse(
        **summary.model_dump(),
        units=[
            UnitResponse(
                id=str(unit.id),
                variation_index=unit.variation_index,
                media_type=unit.media_type.value,
                mime_type=unit.mime_type,
                file_size=unit.file_size,
                width=unit.width,
                height=unit.height,
                duration_seconds=unit.duration_seconds,
                approval_status=unit.approval_status.value,
                url=urls.get(unit.storage_path),
                thumbnail_url=urls.get(unit.thumb_storage_path or ""),
                preview_url=urls.get(unit.preview_storage_path or ""),
            )
            for unit in units
        ],
    )


@router.post(
    "/products/{product_id}/jobs/{job_id}/retry",
    response_model=RetryResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Retry a failed generation job",
)
async def retry_job(
    product_id: UUID,
    job_id: UUID,
    repository: JobRepositoryDep,
    worker: GenerationWorkerDep,
    settings: SettingsDep,
    background_tasks: BackgroundTasks,
) -> RetryResponse:
    """Reset a failed (or zero-success) job to pending and run it again.

    The follow-up run is a Celery task, or a FastAPI background task when
    inline generation is enabled.
    """
    job = await repository.get_job(job_id)
    if job is None or job.product_id != product_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation job not found",
        )
    if not job.is_retryable:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Job is not retryable (status: {job.status.value})",
        )

    reset = await repository.reset_for_retry(job_id, product_id)
    if reset is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Job is no longer retryable",
        )

    logger.info("job_retry_requested", job_id=str(job_id), product_id=str(product_id))

    if settings.inline_generation:
        background_tasks.add_task(
            run_job_inline, worker, job_id, options_from_settings(settings)
        )
        return RetryResponse(job_id=str(job_id), status=reset.status.value, dispatch="inline")

    task_id = dispatch_job(job_id)
    return RetryResponse(
        job_id=str(job_id),
        status=reset.status.value,
        dispatch="celery",
        task_id=task_id,
    )


@router.post(
    "/jobs/{job_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a generation job",
)
async def cancel_job(job_id: UUID, repository: JobRepositoryDep) -> CancelResponse:
    """Cancel a pending or running job; a running worker stops after its current sub-batch."""
    job = await repository.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation job not found",
        )

    if not await repository.cancel_job(job_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is already {job.status.value}",
        )

    logger.info("job_cancelled", job_id=str(job_id))
    return CancelResponse(job_id=str(job_id), status="cancelled")
