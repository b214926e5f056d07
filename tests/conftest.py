from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from bubble.core.orchestrator import AgentOrchestrator
from bubble.core.retry import RetryingStreamClient
from bubble.core.skills import Collaborators, SkillOptions
from bubble.core.types import (
    AgentResult,
    GeneratedImage,
    GenerationRequest,
    PendingMessage,
    ResearchResult,
    Route,
    RoutedAction,
    StreamChunk,
    Turn,
)


async def _iterate(chunks: Sequence[StreamChunk]) -> AsyncIterator[StreamChunk]:
    for chunk in chunks:
        yield chunk


def chunks_of(*texts: str) -> list[StreamChunk]:
    return [StreamChunk(text=text) for text in texts]


@dataclass
class FakeGenerationService:
    """Scripted upstream: each stream call pops one outcome (chunk list or exception)."""

    outcomes: list[list[StreamChunk] | Exception] = field(default_factory=list)
    generated: list[str | Exception] = field(default_factory=list)
    requests: list[GenerationRequest] = field(default_factory=list)

    async def stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _iterate(outcome)

    async def generate(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        outcome = self.generated.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@dataclass
class FakeRouter:
    route_result: Route = field(default_factory=lambda: Route(RoutedAction.SIMPLE))
    calls: list[tuple[str, str, str | None, int]] = field(default_factory=list)

    async def route(self, prompt: str, user_id: str, credentials: str | None, attachment_count: int) -> Route:
        self.calls.append((prompt, user_id, credentials, attachment_count))
        return self.route_result


@dataclass
class FakeMemory:
    data: dict[str, Any] = field(default_factory=dict)
    requested: list[tuple[str, ...]] = field(default_factory=list)

    async def get_context(self, layers: Sequence[str]) -> dict[str, Any]:
        self.requested.append(tuple(layers))
        return {layer: self.data[layer] for layer in layers if layer in self.data}


@dataclass
class FakeResearch:
    result: ResearchResult = field(default_factory=lambda: ResearchResult(answer="answer", sources=["- a", "- b"]))
    progress_messages: list[str] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)

    async def deep_research(self, prompt: str, progress: Callable[[str], None]) -> ResearchResult:
        self.prompts.append(prompt)
        for message in self.progress_messages:
            progress(message)
        return self.result


@dataclass
class FakeCanvas:
    text: str = "<CANVAS><html></html></CANVAS>"
    turns: list[Turn] = field(default_factory=list)

    async def run(self, turn: Turn) -> AgentResult:
        self.turns.append(turn)
        return AgentResult(messages=[PendingMessage(project_id=turn.project_id, chat_id=turn.chat_id, text=self.text)])


@dataclass
class FakeImages:
    error: Exception | None = None
    image: GeneratedImage = field(default_factory=lambda: GeneratedImage(data=b"\x89PNG"))
    calls: list[tuple[str, str | None, str | None]] = field(default_factory=list)

    async def generate(
        self, prompt: str, credentials: str | None, model_preference: str | None = None
    ) -> GeneratedImage:
        self.calls.append((prompt, credentials, model_preference))
        if self.error is not None:
            raise self.error
        return self.image


@dataclass
class FakeUsage:
    error: Exception | None = None
    users: list[str] = field(default_factory=list)

    async def increment(self, user_id: str) -> None:
        self.users.append(user_id)
        if self.error is not None:
            raise self.error


@dataclass
class RecordingSleep:
    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@dataclass
class Harness:
    service: FakeGenerationService
    router: FakeRouter
    memory: FakeMemory
    research: FakeResearch
    canvas: FakeCanvas
    images: FakeImages
    usage: FakeUsage
    sleep: RecordingSleep
    orchestrator: AgentOrchestrator
    sunk: list[str]

    def sink(self, chunk: str) -> None:
        self.sunk.append(chunk)


def make_turn(prompt: str = "hello", **kwargs: Any) -> Turn:
    values: dict[str, Any] = {"project_id": "p1", "chat_id": "c1", "user_id": "u1"}
    values.update(kwargs)
    return Turn(prompt=prompt, **values)


@pytest.fixture
def harness() -> Harness:
    service = FakeGenerationService()
    router = FakeRouter()
    memory = FakeMemory(data={"personal": {"name": "Ada"}})
    research = FakeResearch()
    canvas = FakeCanvas()
    images = FakeImages()
    usage = FakeUsage()
    sleep = RecordingSleep()
    orchestrator = AgentOrchestrator(
        client=RetryingStreamClient(service, retries=3, sleep=sleep),
        router=router,
        memory=memory,
        collaborators=Collaborators(research=research, canvas=canvas, images=images, usage=usage),
        options=SkillOptions(model="test:model", thinking_budget=2048),
        persona="You are Bubble.",
    )
    return Harness(
        service=service,
        router=router,
        memory=memory,
        research=research,
        canvas=canvas,
        images=images,
        usage=usage,
        sleep=sleep,
        orchestrator=orchestrator,
        sunk=[],
    )
