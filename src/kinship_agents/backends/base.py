"""Model Backend abstraction.

A backend only translates history into a provider's wire format and the
provider's reply back into a ``ModelReply``. It never touches the store;
every side effect goes through the Tool Dispatcher.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ..config import AiConfig
from ..exceptions import ConfigurationError
from ..models.chat import ChatMessage, ModelReply


class ModelBackend(ABC):
    """Abstract base class for chat model providers."""

    name: str = "base"

    @abstractmethod
    async def send(self, history: Sequence[ChatMessage], config: AiConfig) -> ModelReply:
        """Send the conversation so far and return the model's next move.

        Args:
            history: Every message of the conversation, oldest first
            config: Connection settings and system prompt

        Returns:
            A text reply or a batch of tool calls. Transport and auth
            failures come back as a text reply carrying a diagnosis.
        """
        ...


def create_backend(config: AiConfig) -> ModelBackend:
    """Build the backend named by ``config.provider``."""
    if config.provider == "gemini":
        from .gemini import GeminiBackend

        return GeminiBackend()
    if config.provider == "ollama":
        from .ollama import OllamaBackend

        return OllamaBackend()
    raise ConfigurationError(f"Unknown AI provider: {config.provider}")
