"""Configuration management for Bubble."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bubble.core.prompt import DEFAULT_PERSONA_PROMPT

PERSONA_FILE = "BUBBLE.md"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="BUBBLE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Configuration
    model: str = Field(default="gemini:gemini-2.5-flash", description="provider:model used for generation")
    api_key: str | None = Field(default=None, description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    max_tokens: int = Field(default=4000, description="Maximum tokens for responses")

    # Agent Configuration
    max_iterations: int = Field(default=2, ge=1, description="Maximum dispatches per turn, redirects included")
    retry_attempts: int = Field(default=3, ge=0, description="Retries on rate-limit errors")
    thinking_budget: int = Field(default=2048, description="Reasoning budget for THINK turns")

    # System Configuration
    persona_prompt: str | None = Field(default=None, description="Persona instructions override")
    home: Path = Field(default=Path.home() / ".bubble", description="Directory for local state")
    memory_file: Path | None = Field(default=None, description="YAML file with long-term memory layers")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Path | None = Field(default=None, description="Optional rotating debug log file")

    def resolve_home(self) -> Path:
        home = self.home.expanduser()
        home.mkdir(parents=True, exist_ok=True)
        return home

    @property
    def database_path(self) -> Path:
        return self.resolve_home() / "messages.db"

    @property
    def resolved_memory_file(self) -> Path:
        if self.memory_file is not None:
            return self.memory_file.expanduser()
        return self.resolve_home() / "memory.yaml"


def read_persona_file(workspace: Path) -> str:
    """Read the BUBBLE.md file from the workspace path."""
    persona_path = workspace / PERSONA_FILE
    if not persona_path.is_file():
        return ""
    return persona_path.read_text(encoding="utf-8").strip()


def load_settings(workspace: Path | None = None) -> Settings:
    """Load settings from the environment, folding in a workspace BUBBLE.md."""
    settings = Settings()
    if workspace is None:
        return settings
    workspace_persona = read_persona_file(workspace)
    if workspace_persona and settings.persona_prompt is None:
        settings = settings.model_copy(update={"persona_prompt": workspace_persona})
    return settings


def resolve_persona(settings: Settings) -> str:
    return settings.persona_prompt or DEFAULT_PERSONA_PROMPT
