"""LTX video generation provider."""

from typing import Any

import httpx

from prodai_engine.adapters.providers.base import (
    MediaProvider,
    ProviderRequest,
    ProviderResult,
    error_from_response,
    error_from_transport,
)
from prodai_engine.config import get_settings
from prodai_engine.domain.enums import ErrorKind
from prodai_engine.errors import ProviderError
from prodai_engine.logging import get_logger

logger = get_logger(__name__)

LTX_RESOLUTIONS = ("1920x1080", "2560x1440", "3840x2160")
DEFAULT_DURATION = 8


class LtxProvider(MediaProvider):
    """LTX video generation.

    Synchronous API: the response body is the rendered video. A start frame
    switches the endpoint from text-to-video to image-to-video and is passed
    by (signed) URL.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        resolution: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.ltx_api_key
        self.base_url = (base_url or settings.ltx_api_base_url).rstrip("/")
        self.model = model or settings.ltx_model
        self.resolution = resolution or settings.ltx_resolution
        self.timeout = timeout or settings.provider_timeout_seconds
        self._transport = transport

        if not self.api_key:
            logger.warning("LTX API key not configured")

    @property
    def name(self) -> str:
        return "ltx"

    def build_payload(self, request: ProviderRequest) -> tuple[str, dict[str, Any]]:
        """Return (endpoint, body) for the request."""
        model = request.model if request.model and request.model.startswith("ltx") else self.model
        payload: dict[str, Any] = {
            "prompt": request.prompt,
            "model": model,
            "duration": request.duration_seconds or DEFAULT_DURATION,
            "resolution": request.resolution or self.resolution,
            "generate_audio": request.generate_audio,
        }

        start = request.reference_images[0] if request.reference_images else None
        if start and start.url:
            payload["image_uri"] = start.url
            return "image-to-video", payload
        return "text-to-video", payload

    async def generate(self, request: ProviderRequest) -> ProviderResult:
        """Generate one video clip.

        Raises:
            ProviderError: classified HTTP failure
        """
        if not self.api_key:
            raise ProviderError(ErrorKind.ACCESS_DENIED, "LTX API key is not configured")

        endpoint, payload = self.build_payload(request)
        logger.info(
            "ltx_generation_started",
            endpoint=endpoint,
            model=payload["model"],
            duration=payload["duration"],
            resolution=payload["resolution"],
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/{endpoint}",
                    headers={
                        "Content-Type": "application/json",
                        "Authorization": f"Bearer {self.api_key}",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise error_from_transport(e, "LTX") from e

        if response.status_code >= 400:
            raise error_from_response(response, "LTX")

        mime_type = response.headers.get("content-type", "video/mp4").split(";")[0]
        if not mime_type.startswith("video/"):
            raise ProviderError(
                ErrorKind.MALFORMED,
                f"LTX returned {mime_type or 'no content type'} instead of a video",
            )

        logger.info("ltx_generation_completed", size=len(response.content))

        return ProviderResult(
            data=response.content,
            mime_type=mime_type,
            provider=self.name,
            model=payload["model"],
            duration_seconds=float(payload["duration"]),
        )

    async def health_check(self) -> bool:
        return bool(self.api_key)
