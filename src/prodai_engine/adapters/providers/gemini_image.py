"""Gemini image generation provider."""

import base64
from typing import Any
from uuid import uuid4

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

IMAGE_RESOLUTIONS = ("2K", "4K")
IMAGE_ASPECT_RATIOS = ("16:9", "1:1", "9:16")


def extract_inline_image(response: dict[str, Any]) -> tuple[str, str] | None:
    """Find the first inline image part in a generateContent response.

    Returns:
        (mime_type, base64 data) or None when no image part is present
    """
    candidates = response.get("candidates")
    if candidates is None and isinstance(response.get("data"), dict):
        candidates = response["data"].get("candidates")
    if not isinstance(candidates, list):
        return None

    for candidate in candidates:
        parts = (candidate or {}).get("content", {}).get("parts")
        if not isinstance(parts, list):
            continue
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data") or {}
            mime_type = inline.get("mimeType") or inline.get("mime_type")
            if inline.get("data") and mime_type:
                return mime_type, inline["data"]
    return None


def blocked_reason(response: dict[str, Any]) -> str | None:
    """Return the safety block reason of a 200 response, if any."""
    feedback = response.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        return str(feedback["blockReason"])
    for candidate in response.get("candidates") or []:
        if (candidate or {}).get("finishReason") in ("SAFETY", "PROHIBITED_CONTENT", "IMAGE_SAFETY"):
            return str(candidate["finishReason"])
    return None


class GeminiImageProvider(MediaProvider):
    """Image generation via the Gemini generateContent API.

    Reference images are sent as inline parts ahead of the text prompt.
    Resolution is either 2K or the configured default (4K).
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        default_resolution: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_image_model
        self.default_resolution = default_resolution or settings.gemini_image_resolution_default
        self.timeout = timeout or settings.provider_timeout_seconds
        self._transport = transport

        if not self.api_key:
            logger.warning("Gemini API key not configured for image provider")

    @property
    def name(self) -> str:
        return "gemini"

    def _endpoint(self, model: str) -> str:
        return f"{self.BASE_URL}/models/{model}:generateContent"

    def _normalize_resolution(self, resolution: str | None) -> str:
        return "2K" if resolution == "2K" else self.default_resolution

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        """Build the generateContent body: reference images first, then the prompt."""
        parts: list[dict[str, Any]] = [
            {
                "inlineData": {
                    "mimeType": ref.mime_type,
                    "data": base64.b64encode(ref.data).decode("ascii"),
                }
            }
            for ref in request.reference_images
        ]
        parts.append({"text": request.prompt})

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {
                    "aspectRatio": request.aspect_ratio or "16:9",
                    "imageSize": self._normalize_resolution(request.resolution),
                },
            },
        }

    async def generate(self, request: ProviderRequest) -> ProviderResult:
        """Generate one image.

        Raises:
            ProviderError: classified HTTP failure, safety block, or a
                response without inline image data (Malformed)
        """
        if not self.api_key:
            raise ProviderError(ErrorKind.ACCESS_DENIED, "Gemini API key is not configured")

        model = request.model or self.model
        request_id = request.request_id or str(uuid4())
        payload = self.build_payload(request)

        logger.info(
            "gemini_generation_started",
            model=model,
            request_id=request_id,
            prompt_length=len(request.prompt),
            reference_count=len(request.reference_images),
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self._endpoint(model),
                    headers={
                        "Content-Type": "application/json",
                        "x-goog-api-key": self.api_key,
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise error_from_transport(e, "Gemini") from e

        if response.status_code >= 400:
            raise error_from_response(response, "Gemini")

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(ErrorKind.MALFORMED, "Gemini response was not JSON") from e

        reason = blocked_reason(data)
        if reason:
            raise ProviderError(
                ErrorKind.CONTENT_BLOCKED,
                f"Content blocked by safety filters ({reason})",
            )

        inline = extract_inline_image(data)
        if not inline:
            raise ProviderError(
                ErrorKind.MALFORMED,
                "Gemini response did not include image data",
            )

        mime_type, encoded = inline
        try:
            image_bytes = base64.b64decode(encoded)
        except ValueError as e:
            raise ProviderError(ErrorKind.MALFORMED, "Gemini image data was not base64") from e

        logger.info(
            "gemini_generation_completed",
            model=model,
            request_id=request_id,
            mime_type=mime_type,
            size=len(image_bytes),
        )

        return ProviderResult(
            data=image_bytes,
            mime_type=mime_type,
            provider=self.name,
            model=model,
            metadata={"request_id": request_id},
        )

    async def health_check(self) -> bool:
        return bool(self.api_key)
