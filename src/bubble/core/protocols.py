"""Collaborator contracts consumed by the orchestration core."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any, Protocol

from bubble.core.types import (
    AgentResult,
    GeneratedImage,
    GenerationRequest,
    ResearchResult,
    Route,
    StreamChunk,
    Turn,
)

Sink = Callable[[str], None]
ProgressCallback = Callable[[str], None]


class GenerationService(Protocol):
    """Upstream text generation service."""

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        """Open a stream. Failures to open the stream are raised here."""
        ...

    async def generate(self, request: GenerationRequest) -> str: ...


class Router(Protocol):
    async def route(self, prompt: str, user_id: str, credentials: str | None, attachment_count: int) -> Route: ...


class MemoryStore(Protocol):
    async def get_context(self, layers: Sequence[str]) -> dict[str, Any]: ...


class ResearchAgent(Protocol):
    async def deep_research(self, prompt: str, progress: ProgressCallback) -> ResearchResult: ...


class CanvasAgent(Protocol):
    async def run(self, turn: Turn) -> AgentResult: ...


class ImageGenerator(Protocol):
    async def generate(
        self, prompt: str, credentials: str | None, model_preference: str | None = None
    ) -> GeneratedImage: ...


class UsageCounter(Protocol):
    """Best-effort counter; callers never let its failures escape."""

    async def increment(self, user_id: str) -> None: ...
