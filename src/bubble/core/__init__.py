"""Core module for Bubble."""

from .orchestrator import AgentOrchestrator
from .types import AgentResult, RoutedAction, Turn

__all__ = ["AgentOrchestrator", "AgentResult", "RoutedAction", "Turn"]
