from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeGenerationService, RecordingSleep, chunks_of, make_turn

from bubble.core.retry import RetryingStreamClient
from bubble.core.types import StreamChunk
from bubble.errors import CollaboratorUnavailableError
from bubble.integrations.collaborators import (
    FileMemoryStore,
    GenerationCanvasAgent,
    SearchResearchAgent,
    StoreUsageCounter,
    UnconfiguredImageGenerator,
    format_source,
)
from bubble.message_store.service import MessageStore


@pytest.mark.asyncio
async def test_file_memory_store_returns_requested_layers(tmp_path: Path) -> None:
    path = tmp_path / "memory.yaml"
    path.write_text("personal:\n  name: Ada\ninterests:\n  - tea\nsecret: hidden\n", encoding="utf-8")

    memory = await FileMemoryStore(path).get_context(["personal", "interests", "codebase"])

    assert memory == {"personal": {"name": "Ada"}, "interests": ["tea"]}


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [None, "- just\n- a list\n", "personal: [unclosed\n"])
async def test_file_memory_store_degrades_to_empty(tmp_path: Path, content: str | None) -> None:
    path = tmp_path / "memory.yaml"
    if content is not None:
        path.write_text(content, encoding="utf-8")

    assert await FileMemoryStore(path).get_context(["personal"]) == {}


def test_format_source_prefers_titles() -> None:
    assert format_source({"web": {"uri": "https://a.example", "title": "A"}}) == "- [A](https://a.example)"
    assert format_source({"uri": "https://b.example"}) == "- https://b.example"
    assert format_source({"web": {"title": "no link"}}) is None


@pytest.mark.asyncio
async def test_search_research_agent_collects_answer_and_sources() -> None:
    service = FakeGenerationService(
        outcomes=[
            [
                StreamChunk(text=" Tea came ", grounding=({"web": {"uri": "https://tea.example", "title": "Tea"}},)),
                StreamChunk(text="from China. "),
            ]
        ]
    )
    progress: list[str] = []
    agent = SearchResearchAgent(RetryingStreamClient(service, sleep=RecordingSleep()), model="test:model")

    result = await agent.deep_research("history of tea", progress.append)

    assert result.answer == "Tea came from China."
    assert result.sources == ["- [Tea](https://tea.example)"]
    assert progress == ["Gathering sources...", "Synthesizing answer..."]
    assert service.requests[0].tools == ("google_search",)


@pytest.mark.asyncio
async def test_canvas_agent_returns_generated_artifact() -> None:
    service = FakeGenerationService(outcomes=[chunks_of("<THINK>plan</THINK>", "<CANVAS><p>hi</p></CANVAS>")])
    agent = GenerationCanvasAgent(RetryingStreamClient(service, sleep=RecordingSleep()), model="test:model")

    result = await agent.run(make_turn("a greeting card"))

    assert result.text == "<THINK>plan</THINK><CANVAS><p>hi</p></CANVAS>"
    assert service.requests[0].contents[0].text == "a greeting card"


@pytest.mark.asyncio
async def test_unconfigured_image_generator_raises() -> None:
    with pytest.raises(CollaboratorUnavailableError, match="not configured"):
        await UnconfiguredImageGenerator().generate("a cat", None)


@pytest.mark.asyncio
async def test_store_usage_counter_increments_today() -> None:
    store = MessageStore()
    counter = StoreUsageCounter(store)

    await counter.increment("u1")
    await counter.increment("u1")

    assert store.get_thinking_count("u1") == 2
