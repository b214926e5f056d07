"""Shared core dataclasses."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class RoutedAction(str, Enum):
    """Skill selected to handle a turn or a mid-turn redirect."""

    SEARCH = "SEARCH"
    DEEP_SEARCH = "DEEP_SEARCH"
    THINK = "THINK"
    IMAGE = "IMAGE"
    CANVAS = "CANVAS"
    PROJECT = "PROJECT"
    STUDY = "STUDY"
    SIMPLE = "SIMPLE"


@dataclass(frozen=True)
class Route:
    """Router decision for one prompt."""

    action: RoutedAction
    parameters: dict[str, Any] = field(default_factory=dict)
    prompt: str | None = None  # rewritten prompt, e.g. with a command prefix removed


@dataclass(frozen=True)
class Redirect:
    """Control transfer requested by a marker in generated text."""

    action: RoutedAction
    prompt: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Attachment:
    """Binary file attached to a turn."""

    data: bytes
    mime_type: str
    name: str = ""


@dataclass(frozen=True)
class Turn:
    """One user prompt submitted to the core."""

    prompt: str
    project_id: str
    chat_id: str
    user_id: str
    files: tuple[Attachment, ...] = ()
    credentials: str | None = None
    image_model: str | None = None


@dataclass(frozen=True)
class HistoryMessage:
    """Prior conversation message."""

    sender: str  # user|ai
    text: str


@dataclass(frozen=True)
class Part:
    """Either a text part or an inline binary part."""

    text: str | None = None
    data: bytes | None = None
    mime_type: str | None = None

    @property
    def is_inline(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class Content:
    """Role-tagged message handed to the generation service."""

    role: Literal["user", "model"]
    parts: tuple[Part, ...]

    @classmethod
    def user_text(cls, text: str) -> Content:
        return cls(role="user", parts=(Part(text=text),))

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if part.text)


@dataclass(frozen=True)
class GenerationRequest:
    """Invocation parameters for the upstream generation service."""

    model: str
    contents: tuple[Content, ...]
    system_instruction: str | None = None
    tools: tuple[str, ...] = ()
    response_format: str | None = None
    reasoning_budget: int | None = None


@dataclass(frozen=True)
class StreamChunk:
    """Incremental unit of generated text."""

    text: str | None = None
    grounding: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class ResearchResult:
    answer: str
    sources: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"


@dataclass(frozen=True)
class PendingMessage:
    """Message produced by a turn and not yet persisted."""

    project_id: str
    chat_id: str
    text: str
    sender: str = "ai"
    image: bytes | None = None
    image_mime_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def image_base64(self) -> str | None:
        if self.image is None:
            return None
        return base64.b64encode(self.image).decode("ascii")


@dataclass(frozen=True)
class AgentResult:
    """Terminal output of one turn."""

    messages: list[PendingMessage] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.messages[0].text if self.messages else ""

    @property
    def image(self) -> bytes | None:
        return self.messages[0].image if self.messages else None

    @property
    def metadata(self) -> dict[str, Any]:
        return self.messages[0].metadata if self.messages else {}
