"""Tests for provider error classification and the retrying client."""

from unittest.mock import AsyncMock

import httpx
import pytest

from prodai_engine.adapters.providers import (
    GeminiImageProvider,
    LtxProvider,
    StubProvider,
    VeoProvider,
    get_media_provider,
)
from prodai_engine.adapters.providers.base import (
    MediaProvider,
    ProviderClient,
    ProviderRequest,
    ProviderResult,
    RetryPolicy,
    classify_status,
    error_from_response,
    error_from_transport,
)
from prodai_engine.domain.enums import ErrorKind, JobType, MediaType
from prodai_engine.errors import ProviderError


class SequenceProvider(MediaProvider):
    """Replays a list of results and errors, one per call."""

    def __init__(self, steps: list) -> None:
        self.steps = list(steps)
        self.calls = 0

    @property
    def name(self) -> str:
        return "sequence"

    async def generate(self, request: ProviderRequest) -> ProviderResult:
        self.calls += 1
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


def ok(data: bytes = b"image-bytes") -> ProviderResult:
    return ProviderResult(data=data, mime_type="image/png", provider="sequence")


@pytest.fixture
def request_() -> ProviderRequest:
    return ProviderRequest(media_type=MediaType.IMAGE, prompt="A leather wallet")


class TestClassifyStatus:
    """Tests for HTTP status classification."""

    @pytest.mark.parametrize(
        "status_code,message,expected",
        [
            (429, "", ErrorKind.RATE_LIMITED),
            (500, "", ErrorKind.SERVER_ERROR),
            (503, "", ErrorKind.SERVER_ERROR),
            (401, "", ErrorKind.ACCESS_DENIED),
            (403, "", ErrorKind.ACCESS_DENIED),
            (404, "", ErrorKind.NOT_FOUND),
            (400, "Request blocked by SAFETY settings", ErrorKind.CONTENT_BLOCKED),
            (400, "prohibited content", ErrorKind.CONTENT_BLOCKED),
            (400, "bad field", ErrorKind.UNKNOWN),
            (418, "", ErrorKind.UNKNOWN),
        ],
    )
    def test_classification(self, status_code, message, expected):
        assert classify_status(status_code, message) == expected

    def test_error_from_response_reads_nested_message(self):
        response = httpx.Response(
            400, json={"error": {"message": "Image blocked for safety reasons"}}
        )

        error = error_from_response(response, "Gemini")

        assert error.kind == ErrorKind.CONTENT_BLOCKED
        assert error.status_code == 400
        assert "safety" in str(error)

    def test_error_from_response_plain_text(self):
        response = httpx.Response(502, text="upstream unavailable")

        error = error_from_response(response, "LTX")

        assert error.kind == ErrorKind.SERVER_ERROR
        assert "upstream unavailable" in str(error)

    def test_transport_errors_are_retryable(self):
        timeout = error_from_transport(httpx.ReadTimeout("slow"), "Veo")
        refused = error_from_transport(httpx.ConnectError("refused"), "Veo")

        assert timeout.retryable
        assert refused.retryable
        assert "timed out" in str(timeout)


class TestRetryPolicy:
    """Tests for RetryPolicy delays."""

    def test_default_schedule(self):
        policy = RetryPolicy()

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 5.0, 10.0]

    def test_holds_last_delay(self):
        assert RetryPolicy(max_retries=5, delays=(1.0, 3.0)).delay_for(5) == 3.0

    def test_from_values_clamps_negative_retries(self):
        policy = RetryPolicy.from_values(-1, [0.5])

        assert policy.max_retries == 0
        assert policy.delays == (0.5,)


class TestProviderClient:
    """Tests for ProviderClient retries."""

    @pytest.mark.asyncio
    async def test_retries_rate_limit_then_succeeds(self, request_):
        provider = SequenceProvider(
            [
                ProviderError(ErrorKind.RATE_LIMITED, "slow down", 429),
                ProviderError(ErrorKind.SERVER_ERROR, "oops", 500),
                ok(),
            ]
        )
        sleep = AsyncMock()
        client = ProviderClient(provider, RetryPolicy(), sleep=sleep)

        result = await client.generate(request_)

        assert result.data == b"image-bytes"
        assert provider.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 5.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, request_):
        provider = SequenceProvider(
            [ProviderError(ErrorKind.RATE_LIMITED, "slow down", 429) for _ in range(4)]
        )
        sleep = AsyncMock()
        client = ProviderClient(provider, RetryPolicy(max_retries=3), sleep=sleep)

        with pytest.raises(ProviderError) as exc_info:
            await client.generate(request_)

        assert exc_info.value.kind == ErrorKind.RATE_LIMITED
        assert provider.calls == 4
        assert sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_immediately(self, request_):
        provider = SequenceProvider([ProviderError(ErrorKind.CONTENT_BLOCKED, "blocked", 400)])
        sleep = AsyncMock()
        client = ProviderClient(provider, RetryPolicy(), sleep=sleep)

        with pytest.raises(ProviderError) as exc_info:
            await client.generate(request_)

        assert exc_info.value.kind == ErrorKind.CONTENT_BLOCKED
        assert provider.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_payload_is_malformed(self, request_):
        client = ProviderClient(SequenceProvider([ok(b"")]), RetryPolicy(), sleep=AsyncMock())

        with pytest.raises(ProviderError) as exc_info:
            await client.generate(request_)

        assert exc_info.value.kind == ErrorKind.MALFORMED


class TestProviderSelection:
    """Tests for get_media_provider."""

    def test_video_models(self):
        assert isinstance(get_media_provider(JobType.VIDEO, "ltx-2-pro"), LtxProvider)
        assert isinstance(get_media_provider(JobType.VIDEO, "veo-3.1"), VeoProvider)
        assert isinstance(get_media_provider(JobType.VIDEO, None), VeoProvider)
        assert isinstance(get_media_provider(JobType.VIDEO, "stub"), StubProvider)

    def test_image_provider_from_settings(self, monkeypatch):
        from prodai_engine.adapters import providers

        assert isinstance(get_media_provider(JobType.IMAGE), StubProvider)

        monkeypatch.setattr(providers.settings, "image_provider", "gemini")
        assert isinstance(get_media_provider(JobType.IMAGE), GeminiImageProvider)


class TestStubProvider:
    """Tests for the local stub provider."""

    @pytest.mark.asyncio
    async def test_image_sized_by_aspect(self, request_):
        request_.aspect_ratio = "9:16"

        result = await StubProvider().generate(request_)

        assert result.mime_type == "image/png"
        assert result.data.startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_video_marker(self):
        request = ProviderRequest(media_type=MediaType.VIDEO, prompt="spin", duration_seconds=6)

        result = await StubProvider().generate(request)

        assert result.mime_type == "video/mp4"
        assert result.duration_seconds == 6.0
