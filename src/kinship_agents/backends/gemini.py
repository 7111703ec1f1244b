"""Gemini backend powered by google-genai."""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import httpx
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..config import AiConfig
from ..models.chat import ChatMessage, ModelReply, Role, TextReply, ToolCall, ToolCallReply
from ..models.person import new_id
from ..tools.registry import TOOL_REGISTRY, ParameterType, ToolParameter
from .base import ModelBackend

logger = structlog.get_logger(__name__)

MISSING_KEY_MESSAGE = "Gemini API Key is not configured. Please add it in Settings."
EMPTY_REPLY_MESSAGE = "I'm sorry, I couldn't generate a response."
ERROR_MESSAGE = (
    "Error communicating with Gemini API. Please check your API key and network connection."
)
TIMEOUT_MESSAGE = "Gemini did not respond within {seconds:g} seconds. Please try again."

# Role Gemini expects on batched function responses
FUNCTION_ROLE = "function"

ClientFactory = Callable[[str], Any]

_SCHEMA_TYPES = {
    ParameterType.STRING: types.Type.STRING,
    ParameterType.BOOLEAN: types.Type.BOOLEAN,
    ParameterType.OBJECT: types.Type.OBJECT,
}


# =============================================================================
# Tool declarations
# =============================================================================


def _schema(parameter: ToolParameter) -> types.Schema:
    return types.Schema(
        type=_SCHEMA_TYPES[parameter.type],
        description=parameter.description or None,
        enum=list(parameter.enum) if parameter.enum else None,
        properties={p.name: _schema(p) for p in parameter.properties} or None,
        required=[p.name for p in parameter.properties if p.required] or None,
    )


def function_declarations() -> list[types.FunctionDeclaration]:
    """Translate the tool registry into Gemini function declarations."""
    declarations = []
    for spec in TOOL_REGISTRY.values():
        parameters = None
        if spec.parameters:
            parameters = types.Schema(
                type=types.Type.OBJECT,
                properties={p.name: _schema(p) for p in spec.parameters},
                required=[p.name for p in spec.parameters if p.required] or None,
            )
        declarations.append(
            types.FunctionDeclaration(
                name=spec.name,
                description=spec.description,
                parameters=parameters,
            )
        )
    return declarations


# =============================================================================
# History mapping
# =============================================================================


def to_gemini_contents(history: Sequence[ChatMessage]) -> list[types.Content]:
    """Map chat history onto Gemini contents.

    Consecutive tool results are coalesced into one function-role content,
    since Gemini expects every response to a batch of calls together.
    """
    contents: list[types.Content] = []
    for message in history:
        if message.role == Role.USER:
            contents.append(
                types.Content(role="user", parts=[types.Part.from_text(text=message.content)])
            )
        elif message.role == Role.MODEL:
            if message.tool_calls:
                parts = [
                    types.Part(function_call=types.FunctionCall(name=call.name, args=call.args))
                    for call in message.tool_calls
                ]
            else:
                parts = [types.Part.from_text(text=message.content)]
            contents.append(types.Content(role="model", parts=parts))
        elif message.role == Role.TOOL:
            if not message.tool_name:
                continue
            part = types.Part.from_function_response(
                name=message.tool_name, response={"result": message.content}
            )
            if contents and contents[-1].role == FUNCTION_ROLE:
                contents[-1].parts.append(part)
            else:
                contents.append(types.Content(role=FUNCTION_ROLE, parts=[part]))
    return contents


def parse_response(response: types.GenerateContentResponse) -> ModelReply:
    calls = response.function_calls or []
    if calls:
        return ToolCallReply(
            calls=[
                ToolCall(id=f"{call.name}-{new_id()}", name=call.name, args=dict(call.args or {}))
                for call in calls
            ]
        )
    text = response.text
    if text:
        return TextReply(content=text)
    return TextReply(content=EMPTY_REPLY_MESSAGE)


# =============================================================================
# Backend
# =============================================================================


def _default_client(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


class GeminiBackend(ModelBackend):
    """Cloud backend with native structured function calling.

    Args:
        client_factory: Builds a google-genai client from an API key;
            tests pass a factory returning a fake client.
    """

    name = "gemini"

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self._client_factory = client_factory or _default_client

    async def send(self, history: Sequence[ChatMessage], config: AiConfig) -> ModelReply:
        if not config.api_key:
            return TextReply(content=MISSING_KEY_MESSAGE)

        model = config.effective_model
        log = logger.bind(model=model, messages=len(history))
        client = self._client_factory(config.api_key)
        request_config = types.GenerateContentConfig(
            system_instruction=config.system_prompt,
            tools=[types.Tool(function_declarations=function_declarations())],
        )
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=model,
                    contents=to_gemini_contents(history),
                    config=request_config,
                ),
                timeout=config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.warning("gemini_timeout", timeout=config.timeout_seconds)
            return TextReply(content=TIMEOUT_MESSAGE.format(seconds=config.timeout_seconds))
        except (genai_errors.APIError, httpx.HTTPError) as e:
            log.error("gemini_request_failed", error=str(e))
            return TextReply(content=ERROR_MESSAGE)

        reply = parse_response(response)
        log.info("gemini_reply", type=reply.type)
        return reply
