"""Assistant and store configuration.

Settings come from an optional JSON file, then environment variables.
Several named assistant configurations can live side by side under
``ai``; the conversation uses ``"assistant"`` unless told otherwise.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .logging import LogFormat, LogLevel

DEFAULT_ASSISTANT = "assistant"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "gemma:2b"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful genealogy assistant. You can query the database for people "
    "and marriages. You can also add or update people."
)

Provider = Literal["gemini", "ollama"]

# Environment variable -> AiConfig field, applied to the default assistant
_AI_ENV = (
    ("KINSHIP_AI_PROVIDER", "provider"),
    ("KINSHIP_AI_MODEL", "model"),
    ("KINSHIP_AI_BASE_URL", "base_url"),
)
_API_KEY_ENV = {"gemini": "GEMINI_API_KEY", "ollama": "OLLAMA_API_KEY"}


class AiConfig(BaseModel):
    """Connection settings for one model backend."""

    provider: Provider = "ollama"
    api_key: str | None = None
    base_url: str = DEFAULT_OLLAMA_URL
    model: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    timeout_seconds: float = Field(default=60.0, gt=0)

    @property
    def effective_model(self) -> str:
        if self.model.strip():
            return self.model.strip()
        return DEFAULT_GEMINI_MODEL if self.provider == "gemini" else DEFAULT_OLLAMA_MODEL

    @property
    def is_configured(self) -> bool:
        """Whether the backend has what it needs to attempt a request."""
        if self.provider == "gemini":
            return bool(self.api_key)
        return bool(self.base_url.strip()) and bool(self.effective_model)

    @property
    def model_label(self) -> str:
        return f"{self.provider}: {self.effective_model}"

    def connection_settings(self) -> dict[str, Any]:
        """Settings safe to persist alongside feedback: everything but the key."""
        return self.model_dump(exclude={"api_key"})


class Settings(BaseModel):
    ai: dict[str, AiConfig] = Field(default_factory=lambda: {DEFAULT_ASSISTANT: AiConfig()})
    db_path: Path | None = None
    log_level: LogLevel = "WARNING"
    log_format: LogFormat = "console"

    def assistant(self, name: str = DEFAULT_ASSISTANT) -> AiConfig:
        try:
            return self.ai[name]
        except KeyError:
            known = ", ".join(sorted(self.ai)) or "none"
            raise ConfigurationError(f"No AI configuration named {name!r} (known: {known})") from None


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from ``path`` (JSON) and the process environment.

    Environment variables override the file. API keys are read from
    ``GEMINI_API_KEY`` or ``OLLAMA_API_KEY`` depending on the provider.
    """
    data: dict[str, Any] = {}
    if path is not None:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a JSON object")

    assistant = data.setdefault("ai", {}).setdefault(DEFAULT_ASSISTANT, {})
    for env_name, field in _AI_ENV:
        value = os.getenv(env_name)
        if value:
            assistant[field] = value
    key_env = _API_KEY_ENV.get(assistant.get("provider", "ollama"))
    if key_env and os.getenv(key_env):
        assistant["api_key"] = os.getenv(key_env)

    if os.getenv("KINSHIP_DB_PATH"):
        data["db_path"] = os.getenv("KINSHIP_DB_PATH")
    if os.getenv("KINSHIP_LOG_LEVEL"):
        data["log_level"] = os.getenv("KINSHIP_LOG_LEVEL", "").upper()
    if os.getenv("KINSHIP_LOG_FORMAT"):
        data["log_format"] = os.getenv("KINSHIP_LOG_FORMAT", "").lower()

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
