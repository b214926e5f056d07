"""Command line interface for Bubble."""

from __future__ import annotations

import asyncio
import mimetypes
import uuid
from pathlib import Path

import typer
from prompt_toolkit import PromptSession
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax

from bubble.bootstrap import build_session
from bubble.config import load_settings
from bubble.core.sink import StreamAccumulator
from bubble.core.tags import parse_message_content
from bubble.core.types import AgentResult, Attachment
from bubble.logging_utils import configure_logging
from bubble.message_store.service import MessageStore
from bubble.session import ChatSession

EXIT_COMMANDS = frozenset({"quit", "exit", "q"})

app = typer.Typer(name="bubble", help="Conversational skill router.", add_completion=False)


class Renderer:
    """Terminal renderer for streamed turns."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def stream_update(self, accumulator: StreamAccumulator) -> None:
        if accumulator.image_status == "generating":
            self.console.print("[dim]Generating image...[/dim]")
            return
        self.console.print(accumulator.chunks[-1], end="", style="dim", markup=False, highlight=False)

    def result(self, result: AgentResult, output_dir: Path | None = None) -> None:
        self.console.print()
        for message in result.messages:
            parsed = parse_message_content(message.text)
            if parsed.thinking:
                self.console.print(Panel(parsed.thinking, title="Thought Process", style="dim"))
            if parsed.clean:
                self.console.print(Markdown(parsed.clean))
            if parsed.canvas:
                self.console.print(Syntax(parsed.canvas, "html", word_wrap=True))
            if message.image is not None:
                self._save_image(message.image, message.image_mime_type, output_dir or Path.cwd())

    def _save_image(self, data: bytes, mime_type: str | None, output_dir: Path) -> None:
        extension = mimetypes.guess_extension(mime_type or "image/png") or ".png"
        target = output_dir / f"bubble-image-{uuid.uuid4().hex[:8]}{extension}"
        target.write_bytes(data)
        self.console.print(f"[bold]Image saved:[/bold] [cyan]{target}[/cyan]")


def _load_attachments(paths: list[Path]) -> list[Attachment]:
    attachments: list[Attachment] = []
    for path in paths:
        mime_type, _ = mimetypes.guess_type(path.name)
        attachments.append(
            Attachment(data=path.read_bytes(), mime_type=mime_type or "application/octet-stream", name=path.name)
        )
    return attachments


def _session(workspace: Path | None, project_id: str, chat_id: str, user_id: str, model: str | None) -> ChatSession:
    workspace = workspace or Path.cwd()
    settings = load_settings(workspace)
    configure_logging(profile="chat", level=settings.log_level, log_file=settings.log_file)
    return build_session(workspace, project_id=project_id, chat_id=chat_id, user_id=user_id, model=model)


@app.command()
def run(
    message: str = typer.Argument(..., help="Prompt to send"),
    files: list[Path] = typer.Option([], "--file", "-f", exists=True, dir_okay=False, help="Attach a file"),  # noqa: B008
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
    project_id: str = typer.Option("autonomous-project", "--project-id", help="Project id"),
    chat_id: str = typer.Option("local", "--chat-id", help="Chat id"),
    user_id: str = typer.Option("human", "--user-id", help="User id"),
    model: str | None = typer.Option(None, "--model", help="Override provider:model"),
) -> None:
    """Run one prompt through the skill router."""
    session = _session(workspace, project_id, chat_id, user_id, model)
    renderer = Renderer()
    asyncio.run(_run_once(session, renderer, message, _load_attachments(files)))


async def _run_once(session: ChatSession, renderer: Renderer, message: str, files: list[Attachment]) -> None:
    result = await session.send(message, files, on_update=renderer.stream_update)
    renderer.result(result)
    await session.drain()


@app.command()
def chat(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
    project_id: str = typer.Option("autonomous-project", "--project-id", help="Project id"),
    chat_id: str = typer.Option("local", "--chat-id", help="Chat id"),
    user_id: str = typer.Option("human", "--user-id", help="User id"),
    model: str | None = typer.Option(None, "--model", help="Override provider:model"),
) -> None:
    """Start an interactive conversation."""
    session = _session(workspace, project_id, chat_id, user_id, model)
    renderer = Renderer()
    renderer.console.print("[bold blue]Bubble[/bold blue] - type 'quit' to leave, ',search' ',think' ... to pick a skill")
    asyncio.run(_chat_loop(session, renderer))


async def _chat_loop(session: ChatSession, renderer: Renderer) -> None:
    prompt_session: PromptSession[str] = PromptSession()
    while True:
        try:
            text = await prompt_session.prompt_async("you> ")
        except (EOFError, KeyboardInterrupt):
            break
        if text.strip().casefold() in EXIT_COMMANDS:
            break
        result = await session.send(text, on_update=renderer.stream_update)
        renderer.result(result)
    await session.drain()


@app.command()
def history(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
    chat_id: str = typer.Option("local", "--chat-id", help="Chat id"),
) -> None:
    """Print the stored conversation."""
    store = MessageStore(str(load_settings(workspace or Path.cwd()).database_path))
    messages = store.get_messages(chat_id)
    if not messages:
        typer.echo("(no messages)")
        return
    for message in messages:
        text = message.text if message.sender == "user" else parse_message_content(message.text).clean
        typer.echo(f"[{message.sender}] {text}")
