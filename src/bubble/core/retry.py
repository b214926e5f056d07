"""Rate-limit aware retry wrapper around the upstream stream call."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from loguru import logger

from bubble.core.protocols import GenerationService, ProgressCallback
from bubble.core.types import GenerationRequest, StreamChunk
from bubble.errors import MaxRetriesExceeded, is_quota_error

DEFAULT_RETRIES = 3
BASE_DELAY_MS = 2000
EXTRA_DELAY_MS = 1000

__all__ = ["DEFAULT_RETRIES", "RetryingStreamClient", "is_quota_error", "retry_delay_ms"]


def retry_delay_ms(attempt: int) -> int:
    """Backoff before retrying a 0-indexed attempt: 3000, 5000, 9000, ..."""
    return 2**attempt * BASE_DELAY_MS + EXTRA_DELAY_MS


class RetryingStreamClient:
    """Opens upstream streams, backing off on quota errors."""

    def __init__(
        self,
        service: GenerationService,
        *,
        retries: int = DEFAULT_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._retries = retries
        self._sleep = sleep

    @property
    def service(self) -> GenerationService:
        return self._service

    async def stream(
        self,
        request: GenerationRequest,
        on_retry: ProgressCallback | None = None,
    ) -> AsyncIterator[StreamChunk]:
        last_error: Exception | None = None
        for attempt in range(self._retries + 1):
            try:
                return await self._service.stream(request)
            except Exception as exc:
                if not is_quota_error(exc):
                    raise
                last_error = exc
                if attempt >= self._retries:
                    break
                delay_ms = retry_delay_ms(attempt)
                logger.warning(
                    "upstream.quota attempt={} retry_in_ms={} model={}", attempt + 1, delay_ms, request.model
                )
                if on_retry is not None:
                    on_retry(f"(Rate limit hit. Retrying in {round(delay_ms / 1000)}s...)")
                await self._sleep(delay_ms / 1000)

        raise MaxRetriesExceeded(f"Max retries exceeded after {self._retries + 1} attempts") from last_error
