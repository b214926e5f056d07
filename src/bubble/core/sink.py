"""Caller-side stream sink that mirrors what a chat bubble would show."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from bubble.core.skills import IMAGE_START_EVENT

IMAGE_EVENT_RE = re.compile(r"\{.*\"type\":\s*\"" + IMAGE_START_EVENT + r"\".*\}")


@dataclass
class StreamAccumulator:
    """Folds sink chunks into display text and tracks the image status.

    Structured ``image_generation_start`` events are not shown as text; they
    flip ``image_status`` to ``"generating"`` until the next text chunk.
    """

    on_update: Callable[[StreamAccumulator], None] | None = None
    text: str = ""
    image_status: str | None = None
    chunks: list[str] = field(default_factory=list)

    def __call__(self, chunk: str) -> None:
        self.chunks.append(chunk)
        match = IMAGE_EVENT_RE.search(chunk) if IMAGE_START_EVENT in chunk else None
        if match is not None:
            self.image_status = "generating"
            self.text += chunk.replace(match.group(0), "")
        else:
            self.text += chunk
            self.image_status = None
        if self.on_update is not None:
            self.on_update(self)
