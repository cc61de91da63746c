"""Base interface for image and video generation providers."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from prodai_engine.domain.enums import ErrorKind, MediaType
from prodai_engine.errors import ProviderError
from prodai_engine.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 3
RETRY_DELAYS: tuple[float, ...] = (2.0, 5.0, 10.0)

SAFETY_MARKERS = ("safety", "blocked", "prohibited")


@dataclass
class ReferencePayload:
    """A reference asset sent along with a generation request."""

    data: bytes
    mime_type: str
    url: str | None = None  # Signed URL for providers that fetch references themselves


@dataclass
class ProviderRequest:
    """One call to a generation provider."""

    media_type: MediaType
    prompt: str
    resolution: str | None = None
    aspect_ratio: str | None = None
    duration_seconds: int | None = None
    model: str | None = None
    generate_audio: bool = False
    reference_images: list[ReferencePayload] = field(default_factory=list)
    request_id: str | None = None


@dataclass
class ProviderResult:
    """Binary artifact returned by a provider."""

    data: bytes
    mime_type: str
    provider: str
    model: str | None = None
    duration_seconds: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class MediaProvider(ABC):
    """Abstract base class for generation providers.

    Implementations raise ProviderError with a classified ErrorKind on
    failure and never retry themselves; ProviderClient owns the retry policy.

    Implementations:
    - GeminiImageProvider: Gemini image generation (generateContent)
    - VeoProvider: Google Veo long-running video generation
    - LtxProvider: LTX text/image-to-video
    - StubProvider: deterministic local artifacts for development and tests
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def generate(self, request: ProviderRequest) -> ProviderResult:
        """Run one generation call.

        Args:
            request: Prompt, per-unit parameters and reference payloads

        Returns:
            ProviderResult with the raw artifact bytes

        Raises:
            ProviderError: classified failure
        """
        ...

    async def health_check(self) -> bool:
        """Check if the provider is configured and reachable."""
        return True


def classify_status(status_code: int, message: str = "") -> ErrorKind:
    """Map an HTTP error status (and its message) to an ErrorKind."""
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    if status_code in (401, 403):
        return ErrorKind.ACCESS_DENIED
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 400 and any(marker in message.lower() for marker in SAFETY_MARKERS):
        return ErrorKind.CONTENT_BLOCKED
    return ErrorKind.UNKNOWN


def error_from_response(response: httpx.Response, provider: str) -> ProviderError:
    """Build a classified ProviderError from a non-2xx response."""
    try:
        body = response.json()
    except ValueError:
        body = {}

    message = ""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message") or ""
        elif isinstance(error, str):
            message = error
        message = message or body.get("message") or ""
    if not message:
        message = response.text[:500] or response.reason_phrase

    kind = classify_status(response.status_code, message)
    return ProviderError(
        kind,
        f"{provider} error {response.status_code}: {message}",
        status_code=response.status_code,
    )


def error_from_transport(exc: httpx.HTTPError, provider: str) -> ProviderError:
    """Classify timeouts and connection failures as retryable server errors."""
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError(ErrorKind.SERVER_ERROR, f"{provider} request timed out")
    return ProviderError(ErrorKind.SERVER_ERROR, f"{provider} transport error: {exc}")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry schedule for retryable provider errors."""

    max_retries: int = MAX_RETRIES
    delays: tuple[float, ...] = RETRY_DELAYS

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (1-based); holds at the last value."""
        if not self.delays:
            return 0.0
        index = min(retry_number, len(self.delays)) - 1
        return self.delays[max(index, 0)]

    @classmethod
    def from_values(cls, max_retries: int, delays: Sequence[float]) -> "RetryPolicy":
        return cls(max_retries=max(0, max_retries), delays=tuple(delays))


class ProviderClient:
    """Retrying front for a MediaProvider."""

    def __init__(
        self,
        provider: MediaProvider,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self.provider.name

    async def generate(self, request: ProviderRequest) -> ProviderResult:
        """Generate with retries on RateLimited / ServerError.

        Raises:
            ProviderError: the last classified failure once retries are
                exhausted, or the first non-retryable one
        """
        attempt = 0
        while True:
            if attempt > 0:
                delay = self.policy.delay_for(attempt)
                logger.info(
                    "provider_retry_scheduled",
                    provider=self.provider.name,
                    attempt=attempt + 1,
                    max_attempts=self.policy.max_retries + 1,
                    delay_seconds=delay,
                )
                await self._sleep(delay)

            try:
                result = await self.provider.generate(request)
            except ProviderError as e:
                if not e.retryable or attempt >= self.policy.max_retries:
                    logger.warning(
                        "provider_call_failed",
                        provider=self.provider.name,
                        kind=e.kind.value,
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    raise
                attempt += 1
                continue

            if not result.data:
                raise ProviderError(
                    ErrorKind.MALFORMED,
                    f"{self.provider.name} returned an empty payload",
                )
            return result
