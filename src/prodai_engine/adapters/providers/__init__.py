"""Generation provider adapters."""

from prodai_engine.adapters.providers.base import (
    MAX_RETRIES,
    RETRY_DELAYS,
    MediaProvider,
    ProviderClient,
    ProviderRequest,
    ProviderResult,
    ReferencePayload,
    RetryPolicy,
    classify_status,
)
from prodai_engine.adapters.providers.gemini_image import GeminiImageProvider
from prodai_engine.adapters.providers.ltx import LtxProvider
from prodai_engine.adapters.providers.stub import StubProvider
from prodai_engine.adapters.providers.veo import VeoProvider
from prodai_engine.config import settings
from prodai_engine.domain.enums import JobType


def is_ltx_model(model: str | None) -> bool:
    return bool(model) and model.lower().startswith("ltx")


def get_media_provider(job_type: JobType, model: str | None = None) -> MediaProvider:
    """Get the provider for a job's media type and requested model."""
    if job_type == JobType.VIDEO:
        if model == "stub":
            return StubProvider()
        if is_ltx_model(model):
            return LtxProvider()
        return VeoProvider()

    provider = getattr(settings, "image_provider", "gemini").lower()
    if provider == "stub" or model == "stub":
        return StubProvider()
    return GeminiImageProvider()


__all__ = [
    "MAX_RETRIES",
    "RETRY_DELAYS",
    "GeminiImageProvider",
    "LtxProvider",
    "MediaProvider",
    "ProviderClient",
    "ProviderRequest",
    "ProviderResult",
    "ReferencePayload",
    "RetryPolicy",
    "StubProvider",
    "VeoProvider",
    "classify_status",
    "get_media_provider",
    "is_ltx_model",
]
