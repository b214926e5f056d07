"""Forward-only orchestration loop for one turn."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Sequence
from typing import Any

from loguru import logger

from bubble.core.context import MEMORY_LAYERS, assemble_context
from bubble.core.protocols import MemoryStore, Router, Sink
from bubble.core.retry import RetryingStreamClient
from bubble.core.skills import SKILL_HANDLERS, Collaborators, SkillContext, SkillOptions, TurnState
from bubble.core.types import AgentResult, HistoryMessage, PendingMessage, Turn
from bubble.errors import user_friendly_error
from bubble.logging_utils import turn_scope

DEFAULT_MAX_ITERATIONS = 2


def _discard(_: str) -> None:
    return None


class AgentOrchestrator:
    """Routes a turn to a skill and follows redirects until a result is ready."""

    def __init__(
        self,
        *,
        client: RetryingStreamClient,
        router: Router,
        memory: MemoryStore,
        collaborators: Collaborators,
        options: SkillOptions,
        persona: str,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        memory_layers: Sequence[str] = MEMORY_LAYERS,
    ) -> None:
        self._client = client
        self._router = router
        self._memory = memory
        self._collaborators = collaborators
        self._options = options
        self._persona = persona
        self._max_iterations = max_iterations
        self._memory_layers = tuple(memory_layers)
        self._background: set[asyncio.Task[None]] = set()

    async def run_turn(
        self,
        turn: Turn,
        *,
        history: Sequence[HistoryMessage] = (),
        sink: Sink | None = None,
    ) -> AgentResult:
        """Run one turn. Failures come back as a degraded result instead of raising."""
        with turn_scope(turn.chat_id):
            try:
                return await self._run(turn, history, sink or _discard)
            except Exception as exc:
                logger.exception("turn.error chat_id={}", turn.chat_id)
                return AgentResult(
                    messages=[
                        PendingMessage(
                            project_id=turn.project_id,
                            chat_id=turn.chat_id,
                            text=f"An error occurred: {user_friendly_error(exc)}",
                        )
                    ]
                )

    async def wait_background(self) -> None:
        """Wait for fire-and-forget side tasks, e.g. before shutdown."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _run(self, turn: Turn, history: Sequence[HistoryMessage], sink: Sink) -> AgentResult:
        route = await self._router.route(turn.prompt, turn.user_id, turn.credentials, len(turn.files))
        logger.info("turn.routed action={} files={}", route.action.value, len(turn.files))

        memory = await self._memory.get_context(self._memory_layers)
        context = assemble_context(persona=self._persona, memory=memory, history=history)
        state = TurnState(route=route, prompt=route.prompt or turn.prompt)
        ctx = SkillContext(
            turn=turn,
            context=context,
            state=state,
            client=self._client,
            collaborators=self._collaborators,
            options=self._options,
            sink=sink,
            spawn=self._spawn,
        )

        iteration = 0
        while iteration < self._max_iterations:
            iteration += 1
            action = state.route.action
            logger.info("turn.step step={} action={}", iteration, action.value)
            handler = SKILL_HANDLERS[action]
            redirect = await handler(ctx, state.prompt)
            if redirect is None:
                return self._build_result(turn, state)
            logger.info("turn.redirect from={} to={}", action.value, redirect.action.value)
            state.redirect(redirect)

        logger.info("turn.max_iterations max_iterations={}", self._max_iterations)
        return self._build_result(turn, state)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _build_result(turn: Turn, state: TurnState) -> AgentResult:
        text = state.final_text if state.final_text is not None else state.text
        image = state.image
        return AgentResult(
            messages=[
                PendingMessage(
                    project_id=turn.project_id,
                    chat_id=turn.chat_id,
                    text=text,
                    image=image.data if image is not None else None,
                    image_mime_type=image.mime_type if image is not None else None,
                    metadata=dict(state.metadata),
                )
            ]
        )
