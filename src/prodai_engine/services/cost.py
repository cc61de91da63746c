"""Per-unit cost estimates for generation jobs."""

from prodai_engine.config import Settings, get_settings
from prodai_engine.domain.enums import JobType
from prodai_engine.domain.models import CostEstimate, GenerationJob


def estimate_image_cost(
    images: int, resolution: str | None, settings: Settings | None = None
) -> CostEstimate:
    """Cost of `images` images at 2K or 4K."""
    settings = settings or get_settings()
    is_2k = (resolution or settings.gemini_image_resolution_default).upper() == "2K"
    unit_cost = settings.image_cost_2k if is_2k else settings.image_cost_4k
    total = images * unit_cost
    return CostEstimate(
        units=images,
        unit_cost=unit_cost,
        total_cost=total,
        breakdown={"images": total},
    )


def estimate_video_cost(
    videos: int, duration_seconds: int | None, settings: Settings | None = None
) -> CostEstimate:
    """Cost of `videos` clips billed per second of output."""
    settings = settings or get_settings()
    unit_cost = (duration_seconds or 0) * settings.video_cost_per_second
    total = videos * unit_cost
    return CostEstimate(
        units=videos,
        unit_cost=unit_cost,
        total_cost=total,
        breakdown={"videos": total},
    )


def estimate_job_cost(job: GenerationJob, settings: Settings | None = None) -> CostEstimate:
    """Cost of a job's completed units."""
    if job.job_type == JobType.VIDEO:
        return estimate_video_cost(job.completed_count, job.duration_seconds, settings)
    return estimate_image_cost(job.completed_count, job.resolution, settings)
