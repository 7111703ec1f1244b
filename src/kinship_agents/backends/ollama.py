"""Ollama backend over its HTTP chat API.

Uses the OpenAI-style tool schema. Failures are diagnosed into messages a
user can act on (bad key, wrong base URL, unreachable server or blocked
origin) instead of surfacing raw transport errors.
"""
from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from ..config import AiConfig
from ..exceptions import ConfigurationError, TransportError
from ..models.chat import ChatMessage, ModelReply, Role, TextReply, ToolCall, ToolCallReply
from ..models.person import new_id
from ..tools.registry import openai_tools
from .base import ModelBackend

logger = structlog.get_logger(__name__)

CHAT_PATH = "/api/chat"
TAGS_PATH = "/api/tags"

EMPTY_REPLY_MESSAGE = "Received an empty response from Ollama."
MALFORMED_REPLY_MESSAGE = "Received a malformed response from Ollama. Check that the server and model support chat with tools."
CONNECTED_MESSAGE = "Successfully connected to Ollama and model is available."


class OllamaModel(BaseModel):
    """One locally installed model, as listed by ``/api/tags``."""
    name: str
    model: str | None = None
    modified_at: str | None = None
    size: int | None = None
    digest: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Wire helpers
# =============================================================================


def ollama_endpoint(base_url: str, path: str) -> str:
    """Join a base URL and an API path, tolerating stray whitespace and slashes."""
    base = (base_url or "").strip().rstrip("/")
    if not base:
        raise ConfigurationError("Ollama URL is not configured.")
    return f"{base}{path}"


def ollama_headers(api_key: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def describe_ollama_error(error: Exception, url: str) -> str:
    """Turn a failed Ollama request into a message the user can act on."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in (401, 403):
            return (
                f"Authentication failed (Status: {status}). "
                "Please check your Ollama API Key in Settings."
            )
        if status == 404:
            return (
                "Ollama server responded with 404 Not Found.\n\n"
                "The application tried to access the following URL, which appears to be incorrect:\n"
                f"{url}\n\n"
                "Please check your Ollama URL in Settings. It should be the base address "
                "(e.g., http://localhost:11434), not a full API path."
            )
        return f"Ollama server responded with an error (Status: {status}):\n{error.response.text}"
    if isinstance(error, httpx.TimeoutException):
        return (
            f"Ollama did not answer in time at {url}. The model may still be loading; "
            "try again or raise the timeout in Settings."
        )
    if isinstance(error, httpx.TransportError):
        return (
            f"Connection to Ollama failed at {url}. Either the server is not running, "
            "or it is refusing requests from this application's origin "
            "(Cross-Origin Resource Sharing).\n\n"
            "**Solution:**\n"
            "Start Ollama with the OLLAMA_ORIGINS environment variable set. For example:\n\n"
            "OLLAMA_ORIGINS='*' ollama serve\n\n"
            "(Replace * with the specific origin for better security if possible)."
        )
    return f"An unexpected error occurred while communicating with Ollama: {error}"


def to_ollama_messages(history: Sequence[ChatMessage], system_prompt: str) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for message in history:
        if message.role == Role.USER:
            messages.append({"role": "user", "content": message.content})
        elif message.role == Role.MODEL:
            entry: dict[str, Any] = {"role": "assistant", "content": message.content}
            if message.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.args},
                    }
                    for call in message.tool_calls
                ]
            messages.append(entry)
        elif message.role == Role.TOOL:
            messages.append(
                {"role": "tool", "content": message.content, "tool_call_id": message.tool_call_id}
            )
    return messages


def _parse_arguments(name: str, raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            logger.warning("ollama_arguments_unparseable", tool=name, arguments=raw)
            return {}
        if isinstance(parsed, dict):
            return parsed
    if raw is not None:
        logger.warning("ollama_arguments_not_object", tool=name, arguments=raw)
    return {}


def _malformed(event: str, body: Any) -> TextReply:
    logger.warning(event, body=body)
    return TextReply(content=MALFORMED_REPLY_MESSAGE)


def parse_chat_response(data: Any) -> ModelReply:
    """Classify an ``/api/chat`` body as plain text or a tool-call batch."""
    message = data.get("message") if isinstance(data, dict) else data
    if message is None:
        message = {}
    if not isinstance(message, dict):
        return _malformed("ollama_malformed_response", data)
    raw_calls = message.get("tool_calls") or []
    if not isinstance(raw_calls, list):
        return _malformed("ollama_malformed_response", data)

    calls = []
    for raw in raw_calls:
        function = raw.get("function") if isinstance(raw, dict) else None
        if not isinstance(function, dict):
            return _malformed("ollama_malformed_tool_call", raw)
        name = str(function.get("name") or "")
        calls.append(
            ToolCall(
                id=str(raw.get("id") or f"{name}-{new_id()}"),
                name=name,
                args=_parse_arguments(name, function.get("arguments")),
            )
        )
    if calls:
        return ToolCallReply(calls=calls)
    if message.get("content"):
        return TextReply(content=str(message["content"]))
    return TextReply(content=EMPTY_REPLY_MESSAGE)


# =============================================================================
# Backend
# =============================================================================


class OllamaBackend(ModelBackend):
    """Local or self-hosted backend speaking Ollama's chat API.

    Args:
        transport: Optional httpx transport; tests pass ``httpx.MockTransport``
        attempts: Tries for idempotent requests (model listing) on
            connection failures
    """

    name = "ollama"

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        attempts: int = 3,
    ) -> None:
        self._transport = transport
        self._attempts = max(1, attempts)

    def _client(self, config: AiConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=config.timeout_seconds,
            headers=ollama_headers(config.api_key),
            transport=self._transport,
        )

    async def _post_chat(self, url: str, payload: dict[str, Any], config: AiConfig) -> dict[str, Any]:
        async with self._client(config) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            return response.json()

    async def send(self, history: Sequence[ChatMessage], config: AiConfig) -> ModelReply:
        try:
            url = ollama_endpoint(config.base_url, CHAT_PATH)
        except ConfigurationError as e:
            return TextReply(content=str(e))

        payload = {
            "model": config.effective_model,
            "messages": to_ollama_messages(history, config.system_prompt),
            "tools": openai_tools(),
            "stream": False,
        }
        log = logger.bind(url=url, model=payload["model"], messages=len(history))
        try:
            data = await self._post_chat(url, payload, config)
        except (httpx.HTTPError, ValueError) as e:
            log.error("ollama_request_failed", error=str(e), error_type=type(e).__name__)
            return TextReply(content=describe_ollama_error(e, url))

        reply = parse_chat_response(data)
        log.info("ollama_reply", type=reply.type)
        return reply

    async def test_connection(self, config: AiConfig) -> tuple[bool, str]:
        """Send a one-word prompt to check the URL, key and model together."""
        try:
            url = ollama_endpoint(config.base_url, CHAT_PATH)
        except ConfigurationError as e:
            return False, str(e)
        payload = {
            "model": config.effective_model,
            "messages": [{"role": "user", "content": "Hi"}],
            "stream": False,
        }
        try:
            await self._post_chat(url, payload, config)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("ollama_connection_test_failed", url=url, error=str(e))
            return False, describe_ollama_error(e, url)
        return True, CONNECTED_MESSAGE

    async def list_models(self, config: AiConfig) -> list[OllamaModel]:
        """List installed models.

        Raises:
            ConfigurationError: No base URL configured
            TransportError: The server could not be reached or answered
                with something other than a model list
        """
        url = ollama_endpoint(config.base_url, TAGS_PATH)

        @retry(
            reraise=True,
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential_jitter(initial=0.5, max=4.0),
            retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
        )
        async def _fetch() -> Any:
            async with self._client(config) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.json()

        try:
            data = await _fetch()
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(describe_ollama_error(e, url)) from e

        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            raise TransportError(
                f"Invalid response format from Ollama {TAGS_PATH} endpoint.",
                details=f"url: {url}",
            )
        try:
            return [OllamaModel.model_validate(m) for m in models]
        except ValidationError as e:
            raise TransportError(
                f"Invalid response format from Ollama {TAGS_PATH} endpoint.", details=str(e)
            ) from e
