"""Response models shared by the API routes."""

from datetime import datetime

from pydantic import BaseModel

from prodai_engine.domain.models import GenerationJob, JobOutcome


class JobOutcomeResponse(BaseModel):
    """How one worker invocation ended for a job."""

    job_id: str
    kind: str
    status: str
    processed: int
    completed: int
    failed: int
    error_message: str | None = None

    @classmethod
    def from_outcome(cls, outcome: JobOutcome) -> "JobOutcomeResponse":
        return cls(**outcome.to_dict())


class WorkerRunResponse(BaseModel):
    """Result of a worker trigger."""

    processed: int
    results: list[JobOutcomeResponse]


class JobSummaryResponse(BaseModel):
    """Job state without units."""

    id: str
    product_id: str
    job_type: str
    status: str
    variation_count: int
    completed_count: int
    failed_count: int
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_job(cls, job: GenerationJob) -> "JobSummaryResponse":
        return cls(
            id=str(job.id),
            product_id=str(job.product_id),
            job_type=job.job_type.value,
            status=job.status.value,
            variation_count=job.variation_count,
            completed_count=job.completed_count,
            failed_count=job.failed_count,
            error_message=job.error_message,
            started_at=job.started_at,
            completed_at=job.completed_at,
            created_at=job.created_at,
        )


class UnitResponse(BaseModel):
    """A generated unit with signed URLs."""

    id: str
    variation_index: int
    media_type: str
    mime_type: str
    file_size: int
    width: int | None = None
    height: int | None = None
    duration_seconds: float | None = None
    approval_status: str
    url: str | None = None
    thumbnail_url: str | None = None
    preview_url: str | None = None


class JobDetailResponse(JobSummaryResponse):
    """Job state with its units."""

    units: list[UnitResponse] = []


class RetryResponse(BaseModel):
    """Response when a job is reset and re-dispatched."""

    job_id: str
    status: str
    dispatch: str
    task_id: str | None = None


class CancelResponse(BaseModel):
    job_id: str
    status: str
