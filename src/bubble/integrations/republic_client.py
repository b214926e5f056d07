"""Republic integration helpers."""

from __future__ import annotations

import re
import uuid
from collections.abc import AsyncIterator
from typing import Any

from loguru import logger
from republic import LLM

from bubble.config import Settings
from bubble.core.types import Content, GenerationRequest, StreamChunk
from bubble.errors import ApiKeyNotConfiguredError, UpstreamError

JSON_RESPONSE_INSTRUCTION = "Respond with a single valid JSON document and nothing else."
TAPE_PREFIX = "bubble"
BOOTSTRAP_ANCHOR = "session/start"
RATE_LIMIT_RE = re.compile(r"rate[_\s-]?limit|too many requests|quota|\b429\b", re.IGNORECASE)


def build_llm(settings: Settings) -> LLM:
    """Build Republic LLM client configured for Bubble.

    Retries are owned by ``RetryingStreamClient``, so the client itself makes
    a single attempt per call.
    """
    if not settings.api_key:
        raise ApiKeyNotConfiguredError("API key not configured. Set BUBBLE_API_KEY.")
    return LLM(
        settings.model,
        api_key=settings.api_key,
        api_base=settings.api_base,
        max_retries=0,
    )


def render_prompt(content: Content) -> str:
    lines: list[str] = []
    for part in content.parts:
        if part.is_inline:
            size = len(part.data or b"")
            lines.append(f"[attachment mime_type={part.mime_type} bytes={size}]")
        elif part.text:
            lines.append(part.text)
    return "\n".join(lines)


def render_system_prompt(request: GenerationRequest) -> str:
    blocks: list[str] = []
    if request.system_instruction:
        blocks.append(request.system_instruction)
    history = request.contents[:-1]
    if history:
        turns = [f"{'user' if content.role == 'user' else 'assistant'}: {render_prompt(content)}" for content in history]
        blocks.append("[CONVERSATION]\n" + "\n".join(turns))
    if request.response_format == "application/json":
        blocks.append(JSON_RESPONSE_INSTRUCTION)
    return "\n\n".join(block for block in blocks if block.strip())


class RepublicGenerationService:
    """Generation service that streams through a fresh Republic tape per call."""

    def __init__(self, llm: LLM, *, max_tokens: int) -> None:
        self._llm = llm
        self._max_tokens = max_tokens

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        if request.tools or request.reasoning_budget:
            logger.debug(
                "republic.unsupported_options tools={} reasoning_budget={}", request.tools, request.reasoning_budget
            )
        tape = self._llm.tape(f"{TAPE_PREFIX}/{uuid.uuid4().hex}")
        # Tape reads start at the last anchor, and a fresh tape has none.
        await tape.handoff_async(BOOTSTRAP_ANCHOR, state={"owner": "bubble"})
        prompt = render_prompt(request.contents[-1]) if request.contents else ""
        try:
            stream = await tape.stream_events_async(
                prompt=prompt,
                system_prompt=render_system_prompt(request),
                max_tokens=self._max_tokens,
                tools=[],
            )
            events = stream.__aiter__()
            # Read one event eagerly so failures surface while the stream is being opened.
            try:
                first = await events.__anext__()
            except StopAsyncIteration:
                first = None
            if first is None:
                _raise_for_stream(stream)
            else:
                _raise_for_event(first)
        except BaseException:
            await tape.reset_async()
            raise
        return self._chunks(tape, stream, events, first)

    async def generate(self, request: GenerationRequest) -> str:
        chunks = await self.stream(request)
        return "".join([chunk.text async for chunk in chunks if chunk.text])

    async def _chunks(
        self, tape: Any, stream: Any, events: AsyncIterator[Any], first: Any
    ) -> AsyncIterator[StreamChunk]:
        try:
            if first is not None:
                if chunk := _event_chunk(first):
                    yield chunk
                async for event in events:
                    _raise_for_event(event)
                    if chunk := _event_chunk(event):
                        yield chunk
            _raise_for_stream(stream)
        finally:
            await tape.reset_async()


def _event_chunk(event: Any) -> StreamChunk | None:
    if getattr(event, "kind", None) != "text":
        return None
    data = getattr(event, "data", None)
    if not isinstance(data, dict):
        return None
    delta = data.get("delta")
    if not isinstance(delta, str) or not delta:
        return None
    return StreamChunk(text=delta)


def _raise_for_event(event: Any) -> None:
    kind = getattr(event, "kind", None)
    data = getattr(event, "data", None)
    if not isinstance(data, dict):
        return
    if kind == "error" or (kind == "final" and data.get("ok") is False):
        raise UpstreamError(_format_error_event(data), status=_status_of(data))


def _raise_for_stream(stream: Any) -> None:
    error = getattr(stream, "error", None)
    if error is not None:
        raise UpstreamError(_format_stream_error(error), status=_status_of(error))


def _status_of(error: object) -> int | None:
    if isinstance(error, dict):
        source, message = error.get("status"), error.get("message")
    else:
        source, message = getattr(error, "status", None), getattr(error, "message", None)
    if isinstance(source, int):
        return source
    # Republic reports rate limits as temporary errors without a status code.
    if isinstance(message, str) and RATE_LIMIT_RE.search(message):
        return 429
    return None


def _format_stream_error(error: object) -> str:
    kind = getattr(error, "kind", None)
    message = getattr(error, "message", None)
    kind_value = getattr(kind, "value", kind)
    if isinstance(kind_value, str) and isinstance(message, str):
        return f"{kind_value}: {message}"
    if isinstance(message, str):
        return message
    return str(error)


def _format_error_event(error_event: dict[str, Any]) -> str:
    kind = error_event.get("kind")
    message = error_event.get("message")
    if isinstance(kind, str) and isinstance(message, str):
        return f"{kind}: {message}"
    if isinstance(message, str):
        return message
    return "stream_events_error: unknown"
