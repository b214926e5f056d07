"""Chat session: persist a user message, run the turn, persist the reply."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace

from loguru import logger

from bubble.core.orchestrator import AgentOrchestrator
from bubble.core.sink import StreamAccumulator
from bubble.core.types import AgentResult, Attachment, PendingMessage, Turn
from bubble.message_store.service import MessageStore, StoredMessage

HISTORY_LIMIT = 100


class ChatSession:
    """One conversation bound to a project and chat id.

    At most one turn runs at a time; a send issued while another is in
    flight returns an empty result.
    """

    def __init__(
        self,
        *,
        orchestrator: AgentOrchestrator,
        store: MessageStore,
        project_id: str,
        chat_id: str,
        user_id: str,
        credentials: str | None = None,
        image_model: str | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._store = store
        self.project_id = project_id
        self.chat_id = chat_id
        self.user_id = user_id
        self._credentials = credentials
        self._image_model = image_model
        self._sending = False

    @property
    def is_sending(self) -> bool:
        return self._sending

    async def drain(self) -> None:
        """Let background side tasks finish before the event loop closes."""
        await self._orchestrator.wait_background()

    def history(self) -> list[StoredMessage]:
        return self._store.get_messages(self.chat_id, limit=HISTORY_LIMIT)

    async def send(
        self,
        text: str,
        files: Sequence[Attachment] = (),
        *,
        on_update: Callable[[StreamAccumulator], None] | None = None,
    ) -> AgentResult:
        if not text.strip() and not files:
            return AgentResult()
        if self._sending:
            logger.warning("session.busy chat_id={}", self.chat_id)
            return AgentResult()

        self._sending = True
        try:
            return await self._send(text, files, on_update)
        finally:
            self._sending = False

    async def _send(
        self,
        text: str,
        files: Sequence[Attachment],
        on_update: Callable[[StreamAccumulator], None] | None,
    ) -> AgentResult:
        history = [message.to_history() for message in self.history()]
        try:
            self._store.add_message(
                PendingMessage(project_id=self.project_id, chat_id=self.chat_id, text=text, sender="user")
            )
        except Exception:
            logger.exception("session.save_user_message.error chat_id={}", self.chat_id)

        turn = Turn(
            prompt=text,
            project_id=self.project_id,
            chat_id=self.chat_id,
            user_id=self.user_id,
            files=tuple(files),
            credentials=self._credentials,
            image_model=self._image_model,
        )
        accumulator = StreamAccumulator(on_update=on_update)
        result = await self._orchestrator.run_turn(turn, history=history, sink=accumulator)

        saved: list[PendingMessage] = []
        for message in result.messages:
            final = replace(message, text=message.text or accumulator.text)
            try:
                self._store.add_message(final)
            except Exception:
                logger.exception("session.save_ai_message.error chat_id={}", self.chat_id)
            saved.append(final)
        return AgentResult(messages=saved)
