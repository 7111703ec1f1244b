"""Conversation Orchestrator and feedback capture."""
from __future__ import annotations

from .orchestrator import (
    BACKEND_FAILURE_MESSAGE,
    NO_PROMPT_MESSAGE,
    TOOL_FALLBACK_MESSAGE,
    ChatOrchestrator,
    TurnState,
)

__all__ = [
    "BACKEND_FAILURE_MESSAGE",
    "NO_PROMPT_MESSAGE",
    "TOOL_FALLBACK_MESSAGE",
    "ChatOrchestrator",
    "TurnState",
]
