"""Skill handlers dispatched by the orchestration loop.

Every handler takes the shared ``SkillContext`` and the prompt for the
current iteration. Returning ``None`` ends the turn; only the default
handler may return a ``Redirect``.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field, replace
from typing import Any

from loguru import logger

from bubble.core.context import TurnContext
from bubble.core.protocols import CanvasAgent, ImageGenerator, ResearchAgent, Sink, UsageCounter
from bubble.core.retry import RetryingStreamClient
from bubble.core.tags import detect_redirect
from bubble.core.types import (
    Content,
    GeneratedImage,
    GenerationRequest,
    Part,
    Redirect,
    Route,
    RoutedAction,
    Turn,
)

GOOGLE_SEARCH_TOOL = "google_search"
GROUNDING_KEY = "groundingMetadata"
IMAGE_START_EVENT = "image_generation_start"
PROJECT_SUFFIX = "(Switch to Co-Creator mode to fully hydrate and edit these files.)"
SEARCH_TASK = (
    "Your task: Provide a helpful, friendly answer to the user's query using Google Search. "
    "Maintain your persona (Bubble). Cite sources naturally."
)


@dataclass
class TurnState:
    """Mutable per-turn accumulator shared across loop iterations."""

    route: Route
    prompt: str
    text: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    image: GeneratedImage | None = None
    final_text: str | None = None

    def append(self, text: str) -> None:
        self.text += text

    def add_grounding(self, records: tuple[dict[str, Any], ...]) -> None:
        self.metadata.setdefault(GROUNDING_KEY, []).extend(records)

    def redirect(self, target: Redirect) -> None:
        parameters = target.parameters or self.route.parameters
        self.route = Route(action=target.action, parameters=dict(parameters))
        self.prompt = target.prompt


@dataclass(frozen=True)
class Collaborators:
    research: ResearchAgent
    canvas: CanvasAgent
    images: ImageGenerator
    usage: UsageCounter


@dataclass(frozen=True)
class SkillOptions:
    model: str
    thinking_budget: int = 2048


@dataclass
class SkillContext:
    turn: Turn
    context: TurnContext
    state: TurnState
    client: RetryingStreamClient
    collaborators: Collaborators
    options: SkillOptions
    sink: Sink
    spawn: Callable[[Coroutine[Any, Any, None]], None]

    def emit(self, text: str) -> None:
        self.sink(text)

    async def stream(self, request: GenerationRequest) -> str:
        """Stream ``request`` into the turn state and return the text generated by this call."""
        chunks = await self.client.stream(request, on_retry=self.emit)
        generated: list[str] = []
        async for chunk in chunks:
            if chunk.text:
                generated.append(chunk.text)
                self.state.append(chunk.text)
                self.emit(chunk.text)
            if chunk.grounding:
                self.state.add_grounding(chunk.grounding)
        return "".join(generated)

    def request(self, contents: list[Content], **kwargs: Any) -> GenerationRequest:
        return GenerationRequest(model=self.options.model, contents=tuple(contents), **kwargs)


SkillHandler = Callable[[SkillContext, str], Awaitable[Redirect | None]]


async def handle_search(ctx: SkillContext, prompt: str) -> None:
    ctx.emit("\nSearching the web... 🌐\n")
    system_prompt = f"{ctx.context.persona}\n\n{ctx.context.datetime_block}\n\n{SEARCH_TASK}"
    await ctx.stream(
        ctx.request(
            [Content.user_text(f"User Query: {prompt}")],
            system_instruction=system_prompt,
            tools=(GOOGLE_SEARCH_TOOL,),
        )
    )


async def handle_deep_search(ctx: SkillContext, prompt: str) -> None:
    ctx.emit("\nDeep Researching... 📚\n")
    result = await ctx.collaborators.research.deep_research(prompt, lambda message: ctx.emit(f"\n*{message}*"))
    research_text = result.answer + "\n\n**Sources:**\n" + "\n".join(result.sources)
    ctx.state.append("\n\n" + research_text)
    ctx.emit(research_text)


async def _count_thinking(usage: UsageCounter, user_id: str) -> None:
    try:
        await usage.increment(user_id)
    except Exception:
        logger.warning("usage.increment.error user_id={}", user_id)


async def handle_think(ctx: SkillContext, prompt: str) -> None:
    ctx.emit("\nThinking deeply... 🧠\n")
    ctx.spawn(_count_thinking(ctx.collaborators.usage, ctx.turn.user_id))

    context_block = (
        f"{ctx.context.persona}\n\n{ctx.context.datetime_block}\n\n{ctx.context.memory_block}\n\n[TASK]\n{prompt}"
    )
    await ctx.stream(
        ctx.request(
            [*ctx.context.history, Content.user_text(context_block)],
            reasoning_budget=ctx.options.thinking_budget,
        )
    )


async def handle_image(ctx: SkillContext, prompt: str) -> None:
    ctx.emit(json.dumps({"type": IMAGE_START_EVENT, "text": ctx.state.text}))
    image_prompt = ctx.state.route.parameters.get("prompt") or prompt
    try:
        ctx.state.image = await ctx.collaborators.images.generate(
            image_prompt, ctx.turn.credentials, ctx.turn.image_model
        )
    except Exception as exc:
        logger.warning("skill.image.error error={!r}", exc)
        note = f"\n\n(Image generation failed: {str(exc) or 'Unknown error'})"
        ctx.state.append(note)
        ctx.emit(note)


async def handle_canvas(ctx: SkillContext, prompt: str) -> None:
    result = await ctx.collaborators.canvas.run(replace(ctx.turn, prompt=prompt))
    ctx.state.final_text = result.text or ""


async def handle_project(ctx: SkillContext, prompt: str) -> None:
    ctx.emit("\nBuilding project structure... 🏗️\n")
    structure = await ctx.client.service.generate(
        ctx.request(
            [
                Content.user_text(
                    f"Build a complete file structure for a project: {prompt}. "
                    "Return a JSON object with filenames and brief content descriptions."
                )
            ],
            response_format="application/json",
        )
    )
    message = f"\nI've designed the project structure based on your request.\n\n{structure}\n\n{PROJECT_SUFFIX}"
    ctx.state.append(message)
    ctx.emit(message)


async def handle_study(ctx: SkillContext, prompt: str) -> None:
    ctx.emit("\nCreating study plan... 🎓\n")
    await ctx.stream(
        ctx.request([
            Content.user_text(
                f"Create a structured study plan for: {prompt}. Include learning objectives and key concepts."
            )
        ])
    )


async def handle_simple(ctx: SkillContext, prompt: str) -> Redirect | None:
    system_prompt = f"{ctx.context.persona}\n\n{ctx.context.memory_block}\n\n{ctx.context.datetime_block}"
    parts = [Part(data=file.data, mime_type=file.mime_type) for file in ctx.turn.files]
    parts.append(Part(text=prompt))
    generated = await ctx.stream(
        ctx.request(
            [*ctx.context.history, Content(role="user", parts=tuple(parts))],
            system_instruction=system_prompt,
        )
    )
    return detect_redirect(generated, original_prompt=ctx.turn.prompt)


SKILL_HANDLERS: dict[RoutedAction, SkillHandler] = {
    RoutedAction.SEARCH: handle_search,
    RoutedAction.DEEP_SEARCH: handle_deep_search,
    RoutedAction.THINK: handle_think,
    RoutedAction.IMAGE: handle_image,
    RoutedAction.CANVAS: handle_canvas,
    RoutedAction.PROJECT: handle_project,
    RoutedAction.STUDY: handle_study,
    RoutedAction.SIMPLE: handle_simple,
}
