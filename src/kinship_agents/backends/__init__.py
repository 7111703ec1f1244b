"""Model Backends: Gemini (cloud) and Ollama (local)."""
from __future__ import annotations

from .base import ModelBackend, create_backend
from .gemini import GeminiBackend
from .ollama import OllamaBackend, OllamaModel, describe_ollama_error, ollama_endpoint

__all__ = [
    "GeminiBackend",
    "ModelBackend",
    "OllamaBackend",
    "OllamaModel",
    "create_backend",
    "describe_ollama_error",
    "ollama_endpoint",
]
