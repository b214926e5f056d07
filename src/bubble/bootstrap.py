"""Runtime bootstrap helpers."""

from __future__ import annotations

from pathlib import Path

from bubble.config import Settings, load_settings, resolve_persona
from bubble.core.orchestrator import AgentOrchestrator
from bubble.core.protocols import GenerationService
from bubble.core.retry import RetryingStreamClient
from bubble.core.router import CommandRouter
from bubble.core.skills import Collaborators, SkillOptions
from bubble.integrations.collaborators import (
    FileMemoryStore,
    GenerationCanvasAgent,
    SearchResearchAgent,
    StoreUsageCounter,
    UnconfiguredImageGenerator,
)
from bubble.integrations.republic_client import RepublicGenerationService, build_llm
from bubble.message_store.service import MessageStore
from bubble.session import ChatSession


def build_orchestrator(
    settings: Settings,
    *,
    store: MessageStore,
    service: GenerationService | None = None,
) -> AgentOrchestrator:
    """Wire the orchestrator with the default collaborators."""
    if service is None:
        service = RepublicGenerationService(build_llm(settings), max_tokens=settings.max_tokens)
    client = RetryingStreamClient(service, retries=settings.retry_attempts)
    collaborators = Collaborators(
        research=SearchResearchAgent(client, model=settings.model),
        canvas=GenerationCanvasAgent(client, model=settings.model),
        images=UnconfiguredImageGenerator(),
        usage=StoreUsageCounter(store),
    )
    return AgentOrchestrator(
        client=client,
        router=CommandRouter(),
        memory=FileMemoryStore(settings.resolved_memory_file),
        collaborators=collaborators,
        options=SkillOptions(model=settings.model, thinking_budget=settings.thinking_budget),
        persona=resolve_persona(settings),
        max_iterations=settings.max_iterations,
    )


def build_session(
    workspace: Path,
    *,
    project_id: str,
    chat_id: str,
    user_id: str,
    model: str | None = None,
    service: GenerationService | None = None,
) -> ChatSession:
    """Build a chat session for one workspace."""
    settings = load_settings(workspace)
    if model:
        settings = settings.model_copy(update={"model": model})
    store = MessageStore(str(settings.database_path))
    orchestrator = build_orchestrator(settings, store=store, service=service)
    return ChatSession(
        orchestrator=orchestrator,
        store=store,
        project_id=project_id,
        chat_id=chat_id,
        user_id=user_id,
        credentials=settings.api_key,
    )
