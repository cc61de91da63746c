"""Worker trigger endpoint, called by the scheduler or an operator."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from prodai_engine.api.deps import GenerationWorkerDep, SettingsDep, verify_trigger_secret
from prodai_engine.api.schemas import JobOutcomeResponse, WorkerRunResponse
from prodai_engine.domain.models import WorkerOptions
from prodai_engine.errors import JobNotFoundError
from prodai_engine.logging import get_logger

router = APIRouter(
    prefix="/worker",
    tags=["Worker"],
    dependencies=[Depends(verify_trigger_secret)],
)
logger = get_logger(__name__)


@router.get(
    "/generate",
    response_model=WorkerRunResponse,
    summary="Run the generation worker",
    description=(
        "Process one job (job_id) or the oldest due jobs. Each query parameter "
        "falls back to its configured default."
    ),
)
async def run_worker(
    worker: GenerationWorkerDep,
    settings: SettingsDep,
    job_id: UUID | None = Query(None, description="Process only this job"),
    batch: int | None = Query(None, description="Units per sub-batch"),
    parallel: int | None = Query(None, description="Concurrent provider calls per job"),
    jobs: int | None = Query(None, description="Due jobs to pull"),
    image_jobs: int | None = Query(None, description="Concurrent image jobs"),
    video_jobs: int | None = Query(None, description="Concurrent video jobs"),
    budget: int | None = Query(None, description="Time budget in milliseconds"),
) -> WorkerRunResponse:
    """Trigger the worker for a job or a batch of due jobs."""
    options = WorkerOptions(
        batch_size=batch or settings.generation_batch_size,
        parallelism=parallel or settings.generation_parallelism,
        time_budget_ms=budget or settings.generation_time_budget_ms,
    ).normalized()

    logger.info(
        "worker_triggered",
        job_id=str(job_id) if job_id else None,
        batch_size=options.batch_size,
        parallelism=options.parallelism,
        time_budget_ms=options.time_budget_ms,
    )

    if job_id is not None:
        try:
            outcome = await worker.process_job(job_id, options)
        except JobNotFoundError as e:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=str(e),
            ) from e
        return WorkerRunResponse(
            processed=1,
            results=[JobOutcomeResponse.from_outcome(outcome)],
        )

    outcomes = await worker.process_due_jobs(
        options,
        jobs=jobs or settings.generation_job_batch_size,
        image_job_concurrency=image_jobs or settings.image_job_concurrency,
        video_job_concurrency=video_jobs or settings.video_job_concurrency,
    )
    logger.info("worker_run_completed", processed=len(outcomes))
    return WorkerRunResponse(
        processed=len(outcomes),
        results=[JobOutcomeResponse.from_outcome(o) for o in outcomes],
    )
