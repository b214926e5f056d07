"""Comma-command routing for user input."""

from __future__ import annotations

from dataclasses import dataclass

from bubble.core.types import Route, RoutedAction

INTERNAL_PREFIX = ","
COMMAND_ACTIONS: dict[str, RoutedAction] = {
    "search": RoutedAction.SEARCH,
    "deep": RoutedAction.DEEP_SEARCH,
    "think": RoutedAction.THINK,
    "image": RoutedAction.IMAGE,
    "canvas": RoutedAction.CANVAS,
    "project": RoutedAction.PROJECT,
    "study": RoutedAction.STUDY,
}


@dataclass(frozen=True)
class DetectedCommand:
    """Comma command parsed from user input."""

    name: str
    argument: str


def detect_command(raw: str) -> DetectedCommand | None:
    stripped = raw.strip()
    if not stripped.startswith(INTERNAL_PREFIX):
        return None
    body = stripped[len(INTERNAL_PREFIX) :]
    name, _, argument = body.partition(" ")
    name = name.strip().casefold()
    if not name:
        return None
    return DetectedCommand(name=name, argument=argument.strip())


class CommandRouter:
    """Router that honours explicit ``,skill`` commands and defaults to SIMPLE."""

    async def route(self, prompt: str, user_id: str, credentials: str | None, attachment_count: int) -> Route:
        command = detect_command(prompt)
        if command is None or command.name not in COMMAND_ACTIONS or not command.argument:
            return Route(RoutedAction.SIMPLE)
        action = COMMAND_ACTIONS[command.name]
        if action is RoutedAction.IMAGE:
            return Route(action, {"prompt": command.argument}, prompt=command.argument)
        return Route(action, prompt=command.argument)
