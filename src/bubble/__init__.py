"""Bubble - a conversational skill router."""

from .core import AgentOrchestrator, AgentResult, RoutedAction, Turn

__version__ = "0.1.0"

__all__ = ["AgentOrchestrator", "AgentResult", "RoutedAction", "Turn"]
