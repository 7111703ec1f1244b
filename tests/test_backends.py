"""Tests for the Gemini and Ollama model backends."""
from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from google.genai import types

from kinship_agents.backends import (
    GeminiBackend,
    OllamaBackend,
    create_backend,
    describe_ollama_error,
    ollama_endpoint,
)
from kinship_agents.backends.gemini import (
    EMPTY_REPLY_MESSAGE as GEMINI_EMPTY,
    ERROR_MESSAGE as GEMINI_ERROR,
    MISSING_KEY_MESSAGE,
    function_declarations,
    to_gemini_contents,
)
from kinship_agents.backends.ollama import EMPTY_REPLY_MESSAGE as OLLAMA_EMPTY
from kinship_agents.backends.ollama import MALFORMED_REPLY_MESSAGE
from kinship_agents.config import AiConfig
from kinship_agents.exceptions import ConfigurationError, TransportError
from kinship_agents.models import ChatMessage, TextReply, ToolCall, ToolCallReply


def tool_round_trip() -> list[ChatMessage]:
    first = ToolCall(id="c1", name="get_people")
    second = ToolCall(id="c2", name="get_marriages")
    return [
        ChatMessage.user("Who is in my tree?"),
        ChatMessage.model("", tool_calls=[first, second]),
        ChatMessage.tool(first, "Found 0 people."),
        ChatMessage.tool(second, "Found 0 marriages."),
        ChatMessage.model("Your tree is empty."),
    ]


# =============================================================================
# Gemini
# =============================================================================


def gemini_response(*parts: types.Part) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


def fake_gemini(response=None, error=None):
    generate = AsyncMock(return_value=response, side_effect=error)
    client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate)))
    return GeminiBackend(client_factory=lambda api_key: client), generate


GEMINI = AiConfig(provider="gemini", api_key="secret", model="")


class TestGeminiBackend:
    """Tests for GeminiBackend."""

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_call(self):
        backend, generate = fake_gemini()
        reply = await backend.send([ChatMessage.user("hi")], AiConfig(provider="gemini"))
        assert reply == TextReply(content=MISSING_KEY_MESSAGE)
        generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_text_reply(self):
        backend, generate = fake_gemini(gemini_response(types.Part.from_text(text="Hello!")))
        reply = await backend.send([ChatMessage.user("hi")], GEMINI)

        assert reply == TextReply(content="Hello!")
        kwargs = generate.await_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["config"].system_instruction == GEMINI.system_prompt
        declared = kwargs["config"].tools[0].function_declarations
        assert [d.name for d in declared] == [
            "get_people", "get_marriages", "add_person", "update_person",
        ]

    @pytest.mark.asyncio
    async def test_function_calls(self):
        response = gemini_response(
            types.Part(function_call=types.FunctionCall(name="add_person", args={"first_name": "X", "last_name": "Y"})),
            types.Part(function_call=types.FunctionCall(name="get_people", args={})),
        )
        backend, _ = fake_gemini(response)
        reply = await backend.send([ChatMessage.user("add X Y")], GEMINI)

        assert isinstance(reply, ToolCallReply)
        assert [c.name for c in reply.calls] == ["add_person", "get_people"]
        assert reply.calls[0].args == {"first_name": "X", "last_name": "Y"}
        assert reply.calls[0].id.startswith("add_person-")
        assert reply.calls[0].id != reply.calls[1].id

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        backend, _ = fake_gemini(types.GenerateContentResponse(candidates=[]))
        assert await backend.send([ChatMessage.user("hi")], GEMINI) == TextReply(content=GEMINI_EMPTY)

    @pytest.mark.asyncio
    async def test_network_error_becomes_text(self):
        backend, _ = fake_gemini(error=httpx.ConnectError("offline"))
        assert await backend.send([ChatMessage.user("hi")], GEMINI) == TextReply(content=GEMINI_ERROR)

    @pytest.mark.asyncio
    async def test_timeout_becomes_text(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        backend, generate = fake_gemini()
        generate.side_effect = slow
        reply = await backend.send(
            [ChatMessage.user("hi")], GEMINI.model_copy(update={"timeout_seconds": 0.01})
        )
        assert isinstance(reply, TextReply)
        assert "did not respond" in reply.content

    def test_history_coalesces_function_responses(self):
        contents = to_gemini_contents(tool_round_trip())

        assert [c.role for c in contents] == ["user", "model", "function", "model"]
        assert [p.function_call.name for p in contents[1].parts] == ["get_people", "get_marriages"]
        responses = [p.function_response for p in contents[2].parts]
        assert [r.name for r in responses] == ["get_people", "get_marriages"]
        assert responses[1].response == {"result": "Found 0 marriages."}

    def test_tool_turn_without_name_skipped(self):
        orphan = ChatMessage(role="tool", content="x", tool_call_id="c9")
        contents = to_gemini_contents([ChatMessage.user("hi"), orphan])
        assert [c.role for c in contents] == ["user"]

    def test_declarations(self):
        by_name = {d.name: d for d in function_declarations()}
        assert by_name["get_people"].parameters is None
        add = by_name["add_person"].parameters
        assert add.type == types.Type.OBJECT
        assert add.required == ["first_name", "last_name"]
        assert add.properties["gender"].enum == ["Male", "Female", "Other", "Unknown"]
        updates = by_name["update_person"].parameters.properties["updates"]
        assert updates.type == types.Type.OBJECT
        assert "mother_id" in updates.properties


# =============================================================================
# Ollama
# =============================================================================


OLLAMA = AiConfig(provider="ollama", base_url=" http://ollama.test:11434// ", model="llama3.1")


def ollama_backend(handler, attempts: int = 1) -> OllamaBackend:
    return OllamaBackend(transport=httpx.MockTransport(handler), attempts=attempts)


class TestOllamaHelpers:
    """Tests for Ollama URL and error helpers."""

    def test_endpoint_normalises_base_url(self):
        assert ollama_endpoint(" http://host:11434/// ", "/api/chat") == "http://host:11434/api/chat"

    def test_endpoint_requires_base_url(self):
        with pytest.raises(ConfigurationError):
            ollama_endpoint("   ", "/api/tags")

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, status):
        request = httpx.Request("POST", "http://h/api/chat")
        error = httpx.HTTPStatusError("x", request=request, response=httpx.Response(status, request=request))
        assert describe_ollama_error(error, "http://h/api/chat").startswith(
            f"Authentication failed (Status: {status})"
        )

    def test_not_found_names_url(self):
        request = httpx.Request("POST", "http://h/api/chat/api/chat")
        error = httpx.HTTPStatusError("x", request=request, response=httpx.Response(404, request=request))
        message = describe_ollama_error(error, "http://h/api/chat/api/chat")
        assert "404 Not Found" in message
        assert "http://h/api/chat/api/chat" in message

    def test_other_status_includes_body(self):
        request = httpx.Request("POST", "http://h/api/chat")
        response = httpx.Response(500, text="model crashed", request=request)
        error = httpx.HTTPStatusError("x", request=request, response=response)
        assert describe_ollama_error(error, "http://h/api/chat") == (
            "Ollama server responded with an error (Status: 500):\nmodel crashed"
        )

    def test_connection_failure_recommends_origins(self):
        message = describe_ollama_error(httpx.ConnectError("refused"), "http://h/api/chat")
        assert "Cross-Origin" in message
        assert "OLLAMA_ORIGINS='*' ollama serve" in message

    def test_timeout(self):
        message = describe_ollama_error(httpx.ReadTimeout("slow"), "http://h/api/chat")
        assert "did not answer in time" in message

    def test_generic(self):
        assert describe_ollama_error(ValueError("bad json"), "u") == (
            "An unexpected error occurred while communicating with Ollama: bad json"
        )


class TestOllamaBackend:
    """Tests for OllamaBackend against a mock transport."""

    @pytest.mark.asyncio
    async def test_request_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "Done."}})

        config = OLLAMA.model_copy(update={"api_key": "tok"})
        reply = await ollama_backend(handler).send(tool_round_trip(), config)

        assert reply == TextReply(content="Done.")
        assert seen["url"] == "http://ollama.test:11434/api/chat"
        assert seen["auth"] == "Bearer tok"
        body = seen["body"]
        assert body["model"] == "llama3.1"
        assert body["stream"] is False
        assert [t["function"]["name"] for t in body["tools"]] == [
            "get_people", "get_marriages", "add_person", "update_person",
        ]
        roles = [m["role"] for m in body["messages"]]
        assert roles == ["system", "user", "assistant", "tool", "tool", "assistant"]
        assert body["messages"][0]["content"] == config.system_prompt
        assert body["messages"][2]["tool_calls"][0] == {
            "id": "c1", "type": "function", "function": {"name": "get_people", "arguments": {}},
        }
        assert body["messages"][4]["tool_call_id"] == "c2"

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"message": {"content": "hi"}})

        await ollama_backend(handler).send([ChatMessage.user("hi")], OLLAMA)
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_tool_calls_with_string_and_bad_arguments(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"message": {"content": "", "tool_calls": [
                {"function": {"name": "add_person", "arguments": '{"first_name": "X", "last_name": "Y"}'}},
                {"id": "given", "function": {"name": "get_people", "arguments": "{not json"}},
                {"function": {"name": "get_marriages", "arguments": "[1, 2]"}},
            ]}})

        reply = await ollama_backend(handler).send([ChatMessage.user("go")], OLLAMA)

        assert isinstance(reply, ToolCallReply)
        assert [c.args for c in reply.calls] == [{"first_name": "X", "last_name": "Y"}, {}, {}]
        assert reply.calls[0].id.startswith("add_person-")
        assert reply.calls[1].id == "given"

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        backend = ollama_backend(lambda request: httpx.Response(200, json={"message": {"content": ""}}))
        assert await backend.send([ChatMessage.user("hi")], OLLAMA) == TextReply(content=OLLAMA_EMPTY)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            ["not", "an", "object"],
            {"message": ["content"]},
            {"message": {"content": "", "tool_calls": "get_people"}},
            {"message": {"content": "", "tool_calls": ["get_people"]}},
            {"message": {"content": "", "tool_calls": [{"function": "get_people"}]}},
        ],
    )
    async def test_malformed_body(self, body):
        backend = ollama_backend(lambda request: httpx.Response(200, json=body))
        reply = await backend.send([ChatMessage.user("hi")], OLLAMA)
        assert reply == TextReply(content=MALFORMED_REPLY_MESSAGE)

    @pytest.mark.asyncio
    async def test_http_error_becomes_diagnosis(self):
        backend = ollama_backend(lambda request: httpx.Response(404, text="not found"))
        reply = await backend.send([ChatMessage.user("hi")], OLLAMA)
        assert isinstance(reply, TextReply)
        assert "http://ollama.test:11434/api/chat" in reply.content

    @pytest.mark.asyncio
    async def test_connection_error_becomes_diagnosis(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        reply = await ollama_backend(handler).send([ChatMessage.user("hi")], OLLAMA)
        assert "OLLAMA_ORIGINS" in reply.content

    @pytest.mark.asyncio
    async def test_missing_base_url(self):
        backend = ollama_backend(lambda request: httpx.Response(200, json={}))
        reply = await backend.send([ChatMessage.user("hi")], OLLAMA.model_copy(update={"base_url": ""}))
        assert reply == TextReply(content="Ollama URL is not configured.")

    @pytest.mark.asyncio
    async def test_connection_check(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"content": "Hello"}})

        ok, message = await ollama_backend(handler).test_connection(OLLAMA)
        assert ok
        assert message == "Successfully connected to Ollama and model is available."
        assert seen["body"]["messages"] == [{"role": "user", "content": "Hi"}]

        failing = ollama_backend(lambda request: httpx.Response(401))
        ok, message = await failing.test_connection(OLLAMA)
        assert not ok
        assert message.startswith("Authentication failed")

    @pytest.mark.asyncio
    async def test_list_models(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [
                {"name": "gemma:2b", "size": 1678447520, "modified_at": "2024-05-01T10:00:00Z"},
                {"name": "llama3.1:latest"},
            ]})

        models = await ollama_backend(handler).list_models(OLLAMA)
        assert [m.name for m in models] == ["gemma:2b", "llama3.1:latest"]
        assert models[0].size == 1678447520

    @pytest.mark.asyncio
    async def test_list_models_invalid_payload(self):
        backend = ollama_backend(lambda request: httpx.Response(200, json={"tags": []}))
        with pytest.raises(TransportError, match="Invalid response format"):
            await backend.list_models(OLLAMA)

    @pytest.mark.asyncio
    async def test_list_models_failure_carries_diagnosis(self):
        backend = ollama_backend(lambda request: httpx.Response(403))
        with pytest.raises(TransportError, match="Authentication failed"):
            await backend.list_models(OLLAMA)

    @pytest.mark.asyncio
    async def test_list_models_retries_connection_errors(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("warming up", request=request)
            return httpx.Response(200, json={"models": []})

        assert await ollama_backend(handler, attempts=2).list_models(OLLAMA) == []
        assert len(calls) == 2


def test_create_backend_selects_provider():
    assert isinstance(create_backend(AiConfig(provider="gemini")), GeminiBackend)
    assert isinstance(create_backend(AiConfig(provider="ollama")), OllamaBackend)
