"""Turns a generation job into provider requests.

Validation failures raise RequestBuildError, which is fatal to the job:
no unit of a job with an unusable shape can ever succeed.
"""

from dataclasses import dataclass, replace

from prodai_engine.adapters.providers import is_ltx_model
from prodai_engine.adapters.providers.base import ProviderRequest, ReferencePayload
from prodai_engine.adapters.providers.gemini_image import IMAGE_ASPECT_RATIOS, IMAGE_RESOLUTIONS
from prodai_engine.adapters.providers.ltx import DEFAULT_DURATION, LTX_RESOLUTIONS
from prodai_engine.adapters.providers.veo import VEO_ASPECT_RATIOS, VEO_DURATIONS, VEO_RESOLUTIONS
from prodai_engine.adapters.storage.base import StorageGateway
from prodai_engine.domain.enums import JobType, MediaType
from prodai_engine.domain.models import GenerationJob
from prodai_engine.errors import RequestBuildError, StorageError
from prodai_engine.logging import get_logger
from prodai_engine.repositories.jobs import JobRepository

logger = get_logger(__name__)

VEO_FULL_LENGTH_RESOLUTIONS = ("1080p", "4k")


def normalize_veo_duration(
    duration: int | None, resolution: str | None, framed: bool
) -> int:
    """Snap a requested duration to one Veo accepts.

    High resolutions and frame-conditioned requests only support the
    longest clip.
    """
    longest = VEO_DURATIONS[-1]
    if framed or (resolution or "").lower() in VEO_FULL_LENGTH_RESOLUTIONS:
        return longest
    if not duration:
        return longest
    for allowed in VEO_DURATIONS:
        if duration <= allowed:
            return allowed
    return longest


@dataclass
class RequestContext:
    """Everything needed to issue the provider call for any unit of a job."""

    job: GenerationJob
    media_type: MediaType
    template: ProviderRequest

    def request_for(self, variation_index: int) -> ProviderRequest:
        return replace(self.template, request_id=f"{self.job.id}:{variation_index}")


class RequestBuilder:
    """Validates job parameters and loads reference payloads."""

    def __init__(
        self,
        repository: JobRepository,
        storage: StorageGateway,
        references_bucket: str,
        signed_url_ttl_seconds: int = 3600,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.references_bucket = references_bucket
        self.signed_url_ttl_seconds = signed_url_ttl_seconds

    async def build(self, job: GenerationJob) -> RequestContext:
        """Build the request context for a job.

        Raises:
            RequestBuildError: the job's parameters cannot be used
        """
        prompt = (job.final_prompt or "").strip()
        if not prompt:
            raise RequestBuildError("Job has an empty prompt")
        if job.variation_count < 1:
            raise RequestBuildError(f"Invalid variation count: {job.variation_count}")

        if job.job_type == JobType.IMAGE:
            template = self._image_request(job, prompt)
            media_type = MediaType.IMAGE
        elif job.job_type == JobType.VIDEO:
            template = self._video_request(job, prompt)
            media_type = MediaType.VIDEO
        else:
            raise RequestBuildError(f"Unknown job type: {job.job_type}")

        references = await self._load_references(job, with_urls=is_ltx_model(job.generation_model))
        if media_type == MediaType.VIDEO and not is_ltx_model(job.generation_model) and references:
            template.duration_seconds = normalize_veo_duration(
                template.duration_seconds, template.resolution, framed=True
            )
        template.reference_images = references

        return RequestContext(job=job, media_type=media_type, template=template)

    def _image_request(self, job: GenerationJob, prompt: str) -> ProviderRequest:
        if job.aspect_ratio and job.aspect_ratio not in IMAGE_ASPECT_RATIOS:
            raise RequestBuildError(f"Unsupported image aspect ratio: {job.aspect_ratio}")
        if job.resolution and job.resolution.upper() not in IMAGE_RESOLUTIONS:
            raise RequestBuildError(f"Unsupported image resolution: {job.resolution}")

        return ProviderRequest(
            media_type=MediaType.IMAGE,
            prompt=prompt,
            resolution=job.resolution.upper() if job.resolution else None,
            aspect_ratio=job.aspect_ratio,
            model=job.generation_model,
        )

    def _video_request(self, job: GenerationJob, prompt: str) -> ProviderRequest:
        if job.aspect_ratio and job.aspect_ratio not in VEO_ASPECT_RATIOS:
            raise RequestBuildError(f"Unsupported video aspect ratio: {job.aspect_ratio}")
        if job.duration_seconds is not None and job.duration_seconds <= 0:
            raise RequestBuildError(f"Invalid video duration: {job.duration_seconds}")

        if is_ltx_model(job.generation_model):
            if job.resolution and job.resolution not in LTX_RESOLUTIONS:
                raise RequestBuildError(f"Unsupported LTX resolution: {job.resolution}")
            resolution = job.resolution
            duration = job.duration_seconds or DEFAULT_DURATION
        else:
            resolution = job.resolution.lower() if job.resolution else None
            if resolution and resolution not in VEO_RESOLUTIONS:
                raise RequestBuildError(f"Unsupported Veo resolution: {job.resolution}")
            duration = normalize_veo_duration(job.duration_seconds, resolution, framed=False)

        return ProviderRequest(
            media_type=MediaType.VIDEO,
            prompt=prompt,
            resolution=resolution,
            aspect_ratio=job.aspect_ratio,
            duration_seconds=duration,
            model=job.generation_model,
            generate_audio=job.generate_audio,
        )

    async def _load_references(
        self, job: GenerationJob, with_urls: bool = False
    ) -> list[ReferencePayload]:
        """Download the job's reference images; unreadable ones are skipped."""
        if not job.reference_set_id:
            return []

        images = await self.repository.list_reference_images(job.reference_set_id)
        urls: dict[str, str] = {}
        if with_urls and images:
            try:
                urls = await self.storage.create_signed_urls(
                    self.references_bucket,
                    [image.storage_path for image in images],
                    self.signed_url_ttl_seconds,
                )
            except StorageError as e:
                logger.warning("reference_urls_unavailable", job_id=str(job.id), error=str(e))

        payloads: list[ReferencePayload] = []
        for image in images:
            try:
                data = await self.storage.download(self.references_bucket, image.storage_path)
            except StorageError as e:
                logger.warning(
                    "reference_image_skipped",
                    job_id=str(job.id),
                    path=image.storage_path,
                    error=str(e),
                )
                continue
            payloads.append(
                ReferencePayload(
                    data=data,
                    mime_type=image.mime_type,
                    url=urls.get(image.storage_path),
                )
            )

        logger.debug(
            "reference_images_loaded",
            job_id=str(job.id),
            reference_set_id=str(job.reference_set_id),
            loaded=len(payloads),
            total=len(images),
        )
        return payloads

