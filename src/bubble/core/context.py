"""Per-turn context assembly."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from bubble.core.types import Content, HistoryMessage, Part

MEMORY_LAYERS: tuple[str, ...] = (
    "inner_personal",
    "outer_personal",
    "personal",
    "interests",
    "preferences",
    "custom",
    "codebase",
    "aesthetic",
    "project",
)
DATE_FORMAT = "%A, %B {day}, %Y"
TIME_FORMAT = "%I:%M:%S %p %Z"


def format_timestamp(now: datetime | None = None) -> str:
    """Long form local timestamp, e.g. ``Friday, October 16, 2026 at 07:53:12 PM UTC``."""
    moment = now or datetime.now()
    if moment.tzinfo is None:
        moment = moment.astimezone()
    # Day of month is not zero-padded; the hour is.
    date_part = moment.strftime(DATE_FORMAT).format(day=moment.day)
    return f"{date_part} at {moment.strftime(TIME_FORMAT)}"


def history_to_contents(history: Iterable[HistoryMessage]) -> list[Content]:
    contents: list[Content] = []
    for message in history:
        if not message.text.strip():
            continue
        role = "user" if message.sender == "user" else "model"
        contents.append(Content(role=role, parts=(Part(text=message.text),)))
    return contents


@dataclass(frozen=True)
class TurnContext:
    """System-level context shared by every skill handler in a turn."""

    persona: str
    timestamp: str
    memory: dict[str, Any] = field(default_factory=dict)
    history: tuple[Content, ...] = ()

    @property
    def datetime_block(self) -> str:
        return f"[CURRENT DATE & TIME]\n{self.timestamp}\n"

    @property
    def memory_block(self) -> str:
        return f"[MEMORY]\n{json.dumps(self.memory, ensure_ascii=False, default=str)}"


def assemble_context(
    *,
    persona: str,
    memory: dict[str, Any],
    history: Iterable[HistoryMessage],
    now: datetime | None = None,
) -> TurnContext:
    return TurnContext(
        persona=persona.strip(),
        timestamp=format_timestamp(now),
        memory=dict(memory),
        history=tuple(history_to_contents(history)),
    )
