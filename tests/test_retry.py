from __future__ import annotations

import pytest
from conftest import FakeGenerationService, RecordingSleep, chunks_of

from bubble.core.retry import RetryingStreamClient, is_quota_error, retry_delay_ms
from bubble.core.types import Content, GenerationRequest
from bubble.errors import MaxRetriesExceeded, UpstreamError


def _request() -> GenerationRequest:
    return GenerationRequest(model="test:model", contents=(Content.user_text("hi"),))


class StatusError(Exception):
    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


def test_retry_delays_follow_exponential_schedule() -> None:
    assert [retry_delay_ms(attempt) for attempt in range(4)] == [3000, 5000, 9000, 17000]


@pytest.mark.parametrize(
    "error",
    [
        StatusError("too many", 429),
        UpstreamError("resource exhausted", status=429),
        RuntimeError("HTTP 429 Too Many Requests"),
        RuntimeError("You exceeded your current quota"),
    ],
)
def test_is_quota_error_detects_rate_limits(error: Exception) -> None:
    assert is_quota_error(error)


def test_is_quota_error_ignores_other_failures() -> None:
    assert not is_quota_error(StatusError("bad request", 400))
    assert not is_quota_error(ValueError("boom"))


@pytest.mark.asyncio
async def test_quota_failures_exhaust_retries_with_max_retries_exceeded() -> None:
    service = FakeGenerationService(outcomes=[RuntimeError("quota exceeded") for _ in range(4)])
    sleep = RecordingSleep()
    notices: list[str] = []
    client = RetryingStreamClient(service, retries=3, sleep=sleep)

    with pytest.raises(MaxRetriesExceeded) as exc_info:
        await client.stream(_request(), on_retry=notices.append)

    assert len(service.requests) == 4
    assert sleep.delays == [3.0, 5.0, 9.0]
    assert notices == [
        "(Rate limit hit. Retrying in 3s...)",
        "(Rate limit hit. Retrying in 5s...)",
        "(Rate limit hit. Retrying in 9s...)",
    ]
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_non_quota_error_propagates_after_one_attempt() -> None:
    original = ValueError("invalid argument")
    service = FakeGenerationService(outcomes=[original, chunks_of("never")])
    sleep = RecordingSleep()
    client = RetryingStreamClient(service, sleep=sleep)

    with pytest.raises(ValueError) as exc_info:
        await client.stream(_request())

    assert exc_info.value is original
    assert len(service.requests) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_stream_recovers_after_transient_quota_error() -> None:
    service = FakeGenerationService(outcomes=[StatusError("slow down", 429), chunks_of("a", "b")])
    sleep = RecordingSleep()
    client = RetryingStreamClient(service, sleep=sleep)

    chunks = await client.stream(_request())
    texts = [chunk.text async for chunk in chunks]

    assert texts == ["a", "b"]
    assert sleep.delays == [3.0]


@pytest.mark.asyncio
async def test_zero_retries_makes_a_single_attempt() -> None:
    service = FakeGenerationService(outcomes=[RuntimeError("429")])
    client = RetryingStreamClient(service, retries=0, sleep=RecordingSleep())

    with pytest.raises(MaxRetriesExceeded):
        await client.stream(_request())

    assert len(service.requests) == 1
