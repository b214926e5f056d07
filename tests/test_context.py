from __future__ import annotations

import json
from datetime import datetime, timezone

from bubble.core.context import MEMORY_LAYERS, assemble_context, format_timestamp, history_to_contents
from bubble.core.types import HistoryMessage


def test_format_timestamp_uses_long_form() -> None:
    moment = datetime(2026, 10, 16, 19, 53, 12, tzinfo=timezone.utc)

    assert format_timestamp(moment) == "Friday, October 16, 2026 at 07:53:12 PM UTC"


def test_format_timestamp_does_not_pad_day_of_month() -> None:
    moment = datetime(2026, 3, 5, 9, 7, 1, tzinfo=timezone.utc)

    assert format_timestamp(moment) == "Thursday, March 5, 2026 at 09:07:01 AM UTC"


def test_format_timestamp_defaults_to_local_aware_now() -> None:
    stamp = format_timestamp()

    assert " at " in stamp
    assert stamp.split(",")[0] in {
        "Monday",
        "Tuesday",
        "Wednesday",
        "Thursday",
        "Friday",
        "Saturday",
        "Sunday",
    }


def test_history_to_contents_tags_roles_and_drops_empty_turns() -> None:
    history = [
        HistoryMessage(sender="user", text="hi"),
        HistoryMessage(sender="ai", text="   "),
        HistoryMessage(sender="ai", text="hello!"),
        HistoryMessage(sender="user", text=""),
    ]

    contents = history_to_contents(history)

    assert [(content.role, content.text) for content in contents] == [("user", "hi"), ("model", "hello!")]


def test_assemble_context_builds_blocks() -> None:
    context = assemble_context(
        persona="  You are Bubble.  ",
        memory={"personal": {"name": "Ada"}},
        history=[HistoryMessage(sender="user", text="hi")],
        now=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )

    assert context.persona == "You are Bubble."
    assert context.datetime_block == "[CURRENT DATE & TIME]\nFriday, January 2, 2026 at 03:04:05 AM UTC\n"
    assert context.memory_block == "[MEMORY]\n" + json.dumps({"personal": {"name": "Ada"}})
    assert len(context.history) == 1


def test_memory_layers_cover_every_named_layer() -> None:
    assert MEMORY_LAYERS == (
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
