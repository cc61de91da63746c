"""Domain models - pure Python classes independent of database."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from prodai_engine.domain.enums import (
    ApprovalStatus,
    JobStatus,
    JobType,
    MediaType,
    OutcomeKind,
)


@dataclass
class GenerationJob:
    """One user request to produce a batch of media artifacts."""

    id: UUID
    product_id: UUID
    job_type: JobType
    final_prompt: str
    variation_count: int
    status: JobStatus
    reference_set_id: UUID | None = None
    resolution: str | None = None
    aspect_ratio: str | None = None
    duration_seconds: int | None = None
    generation_model: str | None = None
    generate_audio: bool = False
    completed_count: int = 0
    failed_count: int = 0
    error_message: str | None = None
    claim_token: str | None = None
    claimed_until: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def remaining(self) -> int:
        """Units not yet accounted for as completed or failed."""
        return max(0, self.variation_count - self.completed_count - self.failed_count)

    @property
    def is_retryable(self) -> bool:
        """Failed, or finished without a single successful unit."""
        if self.status == JobStatus.FAILED:
            return True
        return (
            self.status == JobStatus.COMPLETED
            and self.completed_count == 0
            and self.failed_count > 0
        )


@dataclass
class GeneratedUnit:
    """One produced artifact of a job."""

    id: UUID
    job_id: UUID
    variation_index: int
    media_type: MediaType
    storage_path: str
    mime_type: str
    file_size: int
    thumb_storage_path: str | None = None
    preview_storage_path: str | None = None
    width: int | None = None
    height: int | None = None
    duration_seconds: float | None = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: datetime | None = None

    @property
    def storage_paths(self) -> list[str]:
        """All object paths belonging to this unit."""
        paths = [self.storage_path, self.thumb_storage_path, self.preview_storage_path]
        return [p for p in paths if p]


@dataclass
class ReferenceImage:
    """A reference asset attached to a reference set."""

    id: UUID
    reference_set_id: UUID
    storage_path: str
    mime_type: str
    file_name: str | None = None
    file_size: int | None = None
    display_order: int = 0


@dataclass
class NewGenerationJob:
    """Parameters for creating a job in the repository."""

    product_id: UUID
    job_type: JobType
    final_prompt: str
    variation_count: int
    reference_set_id: UUID | None = None
    resolution: str | None = None
    aspect_ratio: str | None = None
    duration_seconds: int | None = None
    generation_model: str | None = None
    generate_audio: bool = False


@dataclass(frozen=True)
class WorkerOptions:
    """Per-invocation tuning for the worker."""

    batch_size: int = 1
    parallelism: int = 1
    time_budget_ms: int = 50000

    def normalized(self) -> "WorkerOptions":
        """Replace non-positive values with the defaults."""
        defaults = WorkerOptions()
        return WorkerOptions(
            batch_size=self.batch_size if self.batch_size > 0 else defaults.batch_size,
            parallelism=self.parallelism if self.parallelism > 0 else defaults.parallelism,
            time_budget_ms=(
                self.time_budget_ms if self.time_budget_ms > 0 else defaults.time_budget_ms
            ),
        )


@dataclass
class JobOutcome:
    """Result of one worker invocation on one job."""

    job_id: UUID
    kind: OutcomeKind
    status: JobStatus
    processed: int = 0
    completed: int = 0
    failed: int = 0
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON responses and task results."""
        return {
            "job_id": str(self.job_id),
            "kind": self.kind.value,
            "status": self.status.value,
            "processed": self.processed,
            "completed": self.completed,
            "failed": self.failed,
            "error_message": self.error_message,
        }


@dataclass
class CostEstimate:
    """Estimated spend for a number of generated units."""

    units: int
    unit_cost: float
    total_cost: float
    breakdown: dict[str, float] = field(default_factory=dict)
