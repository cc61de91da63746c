"""Stub generation provider for development and testing."""

import asyncio
import io

from PIL import Image

from prodai_engine.adapters.providers.base import (
    MediaProvider,
    ProviderRequest,
    ProviderResult,
)
from prodai_engine.domain.enums import MediaType
from prodai_engine.logging import get_logger

logger = get_logger(__name__)

ASPECT_SIZES = {
    "16:9": (1600, 900),
    "9:16": (900, 1600),
    "1:1": (1200, 1200),
}


class StubProvider(MediaProvider):
    """Provider that produces local artifacts without external calls.

    Images are solid-color PNGs sized by aspect ratio; videos are a marker
    byte string.
    """

    def __init__(self, latency_ms: int = 0) -> None:
        self.latency_ms = latency_ms

    @property
    def name(self) -> str:
        return "stub"

    async def generate(self, request: ProviderRequest) -> ProviderResult:
        """Return a placeholder artifact."""
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

        if request.media_type == MediaType.VIDEO:
            data = b"STUB_VIDEO_DATA_" + request.prompt.encode()[:100]
            logger.info("stub_video_generated", size=len(data))
            return ProviderResult(
                data=data,
                mime_type="video/mp4",
                provider=self.name,
                duration_seconds=float(request.duration_seconds or 8),
            )

        size = ASPECT_SIZES.get(request.aspect_ratio or "16:9", ASPECT_SIZES["16:9"])
        buffer = io.BytesIO()
        Image.new("RGB", size, color=(26, 26, 46)).save(buffer, format="PNG")

        logger.info(
            "stub_image_generated",
            prompt_length=len(request.prompt),
            aspect_ratio=request.aspect_ratio,
        )

        return ProviderResult(
            data=buffer.getvalue(),
            mime_type="image/png",
            provider=self.name,
        )
