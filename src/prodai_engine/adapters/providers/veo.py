"""Google Veo video generation provider."""

import asyncio
import base64
import time
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

VEO_RESOLUTIONS = ("720p", "1080p", "4k")
VEO_ASPECT_RATIOS = ("16:9", "9:16")
VEO_DURATIONS = (4, 6, 8)


class VeoProvider(MediaProvider):
    """Google Veo video generation via the Gemini REST API.

    This is a long-running operation:
    1. Submit predictLongRunning with the prompt and optional frames
    2. Poll the operation until done or the poll timeout elapses
    3. Download the first generated sample

    The first reference image becomes the start frame and the second one,
    when present, the last frame.
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        poll_interval: float | None = None,
        poll_timeout: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.google_ai_api_key
        self.model = model or settings.veo_model
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.veo_poll_interval_seconds
        )
        self.poll_timeout = (
            poll_timeout if poll_timeout is not None else settings.veo_poll_timeout_seconds
        )
        self.timeout = timeout or settings.provider_timeout_seconds
        self._transport = transport

        if not self.api_key:
            logger.warning("Google AI API key not configured for Veo")

    @property
    def name(self) -> str:
        return "veo"

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        """Build the predictLongRunning body."""
        instance: dict[str, Any] = {"prompt": request.prompt}
        parameters: dict[str, Any] = {}

        refs = request.reference_images
        if refs:
            instance["image"] = {
                "inlineData": {
                    "mimeType": refs[0].mime_type,
                    "data": base64.b64encode(refs[0].data).decode("ascii"),
                }
            }
        if len(refs) > 1:
            parameters["lastFrame"] = {
                "inlineData": {
                    "mimeType": refs[1].mime_type,
                    "data": base64.b64encode(refs[1].data).decode("ascii"),
                }
            }

        if request.aspect_ratio:
            parameters["aspectRatio"] = request.aspect_ratio
        if request.resolution:
            parameters["resolution"] = request.resolution
        if request.duration_seconds:
            parameters["durationSeconds"] = request.duration_seconds

        payload: dict[str, Any] = {"instances": [instance]}
        if parameters:
            payload["parameters"] = parameters
        return payload

    async def generate(self, request: ProviderRequest) -> ProviderResult:
        """Generate one video clip.

        Raises:
            ProviderError: classified submit/poll/download failure
        """
        if not self.api_key:
            raise ProviderError(ErrorKind.ACCESS_DENIED, "Google AI API key is not configured")

        model = request.model if request.model and request.model.startswith("veo-") else self.model
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        logger.info(
            "veo_generation_started",
            model=model,
            prompt_length=len(request.prompt),
            duration_seconds=request.duration_seconds,
            has_start_frame=bool(request.reference_images),
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.BASE_URL}/models/{model}:predictLongRunning",
                    headers=headers,
                    json=self.build_payload(request),
                )
                if response.status_code >= 400:
                    raise error_from_response(response, "Veo")

                operation = response.json()
                operation_name = operation.get("name")
                if not operation_name:
                    raise ProviderError(ErrorKind.MALFORMED, "No operation name in Veo response")

                operation = await self._poll(client, operation, operation_name)
                video_uri = self._video_uri(operation)

                video_response = await client.get(
                    video_uri,
                    headers={"x-goog-api-key": self.api_key},
                    follow_redirects=True,
                )
                if video_response.status_code >= 400:
                    raise error_from_response(video_response, "Veo download")
        except httpx.HTTPError as e:
            raise error_from_transport(e, "Veo") from e

        mime_type = video_response.headers.get("content-type", "video/mp4").split(";")[0]

        logger.info(
            "veo_generation_completed",
            model=model,
            operation_name=operation_name,
            size=len(video_response.content),
        )

        return ProviderResult(
            data=video_response.content,
            mime_type=mime_type or "video/mp4",
            provider=self.name,
            model=model,
            duration_seconds=float(request.duration_seconds) if request.duration_seconds else None,
            metadata={"operation_name": operation_name},
        )

    async def _poll(
        self,
        client: httpx.AsyncClient,
        operation: dict[str, Any],
        operation_name: str,
    ) -> dict[str, Any]:
        started = time.monotonic()
        while not operation.get("done"):
            if time.monotonic() - started > self.poll_timeout:
                raise ProviderError(ErrorKind.SERVER_ERROR, "Veo generation timed out")
            await asyncio.sleep(self.poll_interval)
            status = await client.get(
                f"{self.BASE_URL}/{operation_name}",
                headers={"x-goog-api-key": self.api_key},
            )
            if status.status_code >= 400:
                raise error_from_response(status, "Veo operation")
            operation = status.json()
            logger.debug("veo_poll_status", operation_name=operation_name, done=operation.get("done"))

        error = operation.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            kind = ErrorKind.CONTENT_BLOCKED if "safety" in (message or "").lower() else ErrorKind.UNKNOWN
            raise ProviderError(kind, f"Veo operation error: {message}")
        return operation

    @staticmethod
    def _video_uri(operation: dict[str, Any]) -> str:
        samples = (
            operation.get("response", {})
            .get("generateVideoResponse", {})
            .get("generatedSamples")
            or []
        )
        uri = samples[0].get("video", {}).get("uri") if samples else None
        if not uri:
            raise ProviderError(ErrorKind.MALFORMED, "No video URI in Veo response")
        return uri

    async def health_check(self) -> bool:
        return bool(self.api_key)
