"""Default collaborator implementations used by the CLI runtime."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from bubble.core.protocols import ProgressCallback
from bubble.core.retry import RetryingStreamClient
from bubble.core.skills import GOOGLE_SEARCH_TOOL
from bubble.core.types import (
    AgentResult,
    Content,
    GeneratedImage,
    GenerationRequest,
    PendingMessage,
    ResearchResult,
    Turn,
)
from bubble.errors import CollaboratorUnavailableError
from bubble.message_store.service import MessageStore

RESEARCH_INSTRUCTION = (
    "You are a meticulous research assistant. Investigate the question from several angles, "
    "compare sources, and write a well organised answer with a short summary at the top."
)
CANVAS_INSTRUCTION = (
    "You build self-contained interactive HTML artifacts. First explain your approach inside "
    "<THINK>...</THINK>, then return one complete HTML document inside <CANVAS>...</CANVAS>. "
    "Inline all CSS and JavaScript."
)


class FileMemoryStore:
    """Long-term memory read from a YAML mapping of layer name to content."""

    def __init__(self, path: Path) -> None:
        self._path = path

    async def get_context(self, layers: Sequence[str]) -> dict[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            payload = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError):
            logger.warning("memory.load.error path={}", self._path)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {layer: payload[layer] for layer in layers if layer in payload}


def format_source(record: dict[str, Any]) -> str | None:
    web = record.get("web") if isinstance(record.get("web"), dict) else record
    uri = web.get("uri")
    if not isinstance(uri, str) or not uri:
        return None
    title = web.get("title")
    return f"- [{title}]({uri})" if isinstance(title, str) and title else f"- {uri}"


class SearchResearchAgent:
    """Deep research as a search-grounded generation pass."""

    def __init__(self, client: RetryingStreamClient, *, model: str) -> None:
        self._client = client
        self._model = model

    async def deep_research(self, prompt: str, progress: ProgressCallback) -> ResearchResult:
        progress("Gathering sources...")
        request = GenerationRequest(
            model=self._model,
            contents=(Content.user_text(f"Research question: {prompt}"),),
            system_instruction=RESEARCH_INSTRUCTION,
            tools=(GOOGLE_SEARCH_TOOL,),
        )
        chunks = await self._client.stream(request, on_retry=progress)
        parts: list[str] = []
        sources: list[str] = []
        async for chunk in chunks:
            if chunk.text:
                parts.append(chunk.text)
            for record in chunk.grounding:
                if (source := format_source(record)) is not None:
                    sources.append(source)
        progress("Synthesizing answer...")
        return ResearchResult(answer="".join(parts).strip(), sources=sources)


class GenerationCanvasAgent:
    """Canvas collaborator that asks the model for a THINK + CANVAS artifact."""

    def __init__(self, client: RetryingStreamClient, *, model: str) -> None:
        self._client = client
        self._model = model

    async def run(self, turn: Turn) -> AgentResult:
        request = GenerationRequest(
            model=self._model,
            contents=(Content.user_text(turn.prompt),),
            system_instruction=CANVAS_INSTRUCTION,
        )
        chunks = await self._client.stream(request)
        text = "".join([chunk.text async for chunk in chunks if chunk.text])
        return AgentResult(messages=[PendingMessage(project_id=turn.project_id, chat_id=turn.chat_id, text=text)])


class UnconfiguredImageGenerator:
    async def generate(
        self, prompt: str, credentials: str | None, model_preference: str | None = None
    ) -> GeneratedImage:
        raise CollaboratorUnavailableError("Image generation is not configured")


class StoreUsageCounter:
    """Per-user daily THINK counter kept in the message store."""

    def __init__(self, store: MessageStore) -> None:
        self._store = store

    async def increment(self, user_id: str) -> None:
        count = self._store.increment_thinking_count(user_id)
        logger.debug("usage.thinking user_id={} count={}", user_id, count)
