"""In-band marker protocol.

Generated text can carry bracketed markers such as ``<SEARCH>query</SEARCH>``.
Two independent passes read them:

* ``detect_redirect`` decides whether the default handler's own output asks
  the orchestration loop to hand the turn to another skill.
* ``parse_message_content`` prepares any assistant message for display,
  pulling out the thinking and canvas blocks and stripping every marker.

The marker sets differ: MEMORY only exists for display, and the deep-prefixed
SEARCH form only matters for redirects.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import NamedTuple

from bubble.core.types import Redirect, RoutedAction


class _RedirectRule(NamedTuple):
    action: RoutedAction
    patterns: tuple[re.Pattern[str], ...]


def _paired(name: str, flags: int = 0) -> re.Pattern[str]:
    return re.compile(rf"<{name}>(.*?)</{name}>", flags)


# Checked in order; the first rule with a usable payload wins.
REDIRECT_RULES: tuple[_RedirectRule, ...] = (
    _RedirectRule(
        RoutedAction.DEEP_SEARCH,
        (_paired("DEEP"), re.compile(r"<SEARCH>deep\s+(.*?)</SEARCH>", re.IGNORECASE)),
    ),
    _RedirectRule(RoutedAction.SEARCH, (_paired("SEARCH"),)),
    _RedirectRule(RoutedAction.THINK, (_paired("THINK"), re.compile(r"<THINK>()"))),
    _RedirectRule(RoutedAction.IMAGE, (_paired("IMAGE"),)),
    _RedirectRule(RoutedAction.PROJECT, (_paired("PROJECT"),)),
    _RedirectRule(RoutedAction.CANVAS, (_paired("CANVAS"),)),
    _RedirectRule(RoutedAction.STUDY, (_paired("STUDY"),)),
)

DISPLAY_MARKERS = ("THINK", "CANVAS", "MEMORY", "IMAGE", "SEARCH", "PROJECT", "STUDY", "DEEP")
_THINK_BLOCK_RE = re.compile(r"<THINK>([\s\S]*?)(?:</THINK>|$)", re.IGNORECASE)
_CANVAS_BLOCK_RE = re.compile(r"<CANVAS>([\s\S]*?)(?:</CANVAS>|$)", re.IGNORECASE)
_FENCE_OPEN_RE = re.compile(r"^```\w*\n?")
_FENCE_CLOSE_RE = re.compile(r"```$")
_STRIP_RES: tuple[re.Pattern[str], ...] = tuple(
    pattern
    for name in DISPLAY_MARKERS
    for pattern in (
        re.compile(rf"<{name}>[\s\S]*?</{name}>", re.IGNORECASE),
        re.compile(rf"<{name}>[\s\S]*", re.IGNORECASE),
        re.compile(rf"</{name}>", re.IGNORECASE),
    )
)


def _first_payload(rule: _RedirectRule, text: str) -> str | None:
    found: str | None = None
    for pattern in rule.patterns:
        match = pattern.search(text)
        if match is None:
            continue
        payload = (match.group(1) or "").strip()
        if payload:
            return payload
        found = ""
    return found


def detect_redirect(text: str, *, original_prompt: str) -> Redirect | None:
    """Return the highest priority redirect requested by ``text``, if any.

    An empty THINK marker redirects with ``original_prompt``. Any other marker
    with an empty payload is skipped. Nested markers get no special treatment:
    priority alone decides.
    """
    for rule in REDIRECT_RULES:
        payload = _first_payload(rule, text)
        if payload is None:
            continue
        if rule.action is RoutedAction.THINK:
            return Redirect(RoutedAction.THINK, payload or original_prompt)
        if not payload:
            continue
        if rule.action is RoutedAction.IMAGE:
            return Redirect(RoutedAction.IMAGE, payload, {"prompt": payload})
        return Redirect(rule.action, payload)
    return None


@dataclass(frozen=True)
class ParsedMessage:
    """Assistant message split for display."""

    thinking: str | None
    canvas: str | None
    clean: str


def _strip_fence(canvas: str) -> str:
    canvas = _FENCE_OPEN_RE.sub("", canvas, count=1)
    return _FENCE_CLOSE_RE.sub("", canvas).strip()


def clean_text(text: str) -> str:
    """Remove every known marker block, paired or still open."""
    previous = None
    # Removing one block can splice a new marker together, so run to a fixed point.
    while text != previous:
        previous = text
        for pattern in _STRIP_RES:
            text = pattern.sub("", text)
    return text.strip()


def parse_message_content(text: str) -> ParsedMessage:
    if not text:
        return ParsedMessage(thinking=None, canvas=None, clean="")

    think_match = _THINK_BLOCK_RE.search(text)
    thinking = think_match.group(1).strip() if think_match else None

    canvas_match = _CANVAS_BLOCK_RE.search(text)
    canvas = _strip_fence(canvas_match.group(1).strip()) if canvas_match else None

    return ParsedMessage(thinking=thinking, canvas=canvas, clean=clean_text(text))
