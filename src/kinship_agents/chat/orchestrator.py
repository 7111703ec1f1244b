"""Conversation Orchestrator: one user turn as a LangGraph workflow.

    call_model --(tool calls)--> dispatch_tools --> call_model_final --> END
    call_model --(text)--> END

A turn makes at most one tool round-trip. If the model asks for tools
again after seeing the results, the turn ends with a fixed fallback
message instead of chaining further calls.
"""
from __future__ import annotations

import operator
from typing import Annotated, TypedDict

import structlog
from langgraph.graph import END, StateGraph

from ..backends.base import ModelBackend, create_backend
from ..config import AiConfig
from ..exceptions import (
    KinshipError,
    NotFoundError,
    ProtocolViolation,
    RecordValidationError,
    TransportError,
)
from ..models.chat import AiFeedback, ChatMessage, ModelReply, Role, TextReply, ToolCallReply
from ..store.base import GraphStore
from ..tools.dispatcher import RefreshCallback, ToolDispatcher

logger = structlog.get_logger(__name__)

TOOL_FALLBACK_MESSAGE = "Something went wrong after using the tool."
BACKEND_FAILURE_MESSAGE = (
    "Sorry, I couldn't reach the AI model. Please check your AI settings and try again."
)
NO_PROMPT_MESSAGE = "No preceding user prompt found."


class TurnState(TypedDict):
    """State passed through one conversation turn."""

    # Full history; nodes return only the messages they add
    messages: Annotated[list[ChatMessage], operator.add]
    reply: ModelReply | None


class ChatOrchestrator:
    """Owns the conversation history and runs one turn at a time.

    Args:
        store: Graph Store the tools read and write
        config: Assistant configuration (provider, model, system prompt)
        backend: Model backend; built from ``config`` when omitted
        refresh: Awaited after every successful mutating tool call
    """

    def __init__(
        self,
        store: GraphStore,
        config: AiConfig,
        backend: ModelBackend | None = None,
        refresh: RefreshCallback | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.backend = backend or create_backend(config)
        self.dispatcher = ToolDispatcher(store, refresh=refresh)
        self._messages: list[ChatMessage] = []
        self._busy = False
        self._graph = self._build_graph()

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def is_busy(self) -> bool:
        return self._busy

    # =========================================
    # Workflow
    # =========================================

    def _build_graph(self):
        graph = StateGraph(TurnState)

        graph.add_node("call_model", self._call_model)
        graph.add_node("dispatch_tools", self._dispatch_tools)
        graph.add_node("call_model_final", self._call_model_final)

        graph.set_entry_point("call_model")
        graph.add_conditional_edges(
            "call_model",
            _wants_tools,
            {
                True: "dispatch_tools",
                False: END,
            },
        )
        graph.add_edge("dispatch_tools", "call_model_final")
        graph.add_edge("call_model_final", END)

        return graph.compile()

    async def _ask_model(self, history: list[ChatMessage]) -> ModelReply:
        try:
            return await self.backend.send(history, self.config)
        except TransportError as e:
            logger.warning("backend_transport_error", error=str(e))
            return TextReply(content=str(e))
        except KinshipError as e:
            logger.warning("backend_error", error=str(e))
            return TextReply(content=str(e))
        except Exception:
            # The session must survive any backend failure
            logger.exception("backend_crashed", backend=self.backend.name)
            return TextReply(content=BACKEND_FAILURE_MESSAGE)

    async def _call_model(self, state: TurnState) -> dict:
        reply = await self._ask_model(state["messages"])
        if isinstance(reply, ToolCallReply):
            message = ChatMessage.model("", tool_calls=reply.calls)
        else:
            message = ChatMessage.model(reply.content)
        return {"messages": [message], "reply": reply}

    async def _dispatch_tools(self, state: TurnState) -> dict:
        reply = state["reply"]
        results = []
        # Sequential: later calls may depend on earlier side effects
        for call in reply.calls:
            result = await self.dispatcher.execute(call)
            results.append(ChatMessage.tool(call, result))
        return {"messages": results, "reply": None}

    async def _call_model_final(self, state: TurnState) -> dict:
        reply = await self._ask_model(state["messages"])
        if isinstance(reply, ToolCallReply):
            violation = ProtocolViolation(
                f"Model requested {len(reply.calls)} more tool call(s) after a tool round-trip"
            )
            logger.warning("protocol_violation", error=str(violation))
            message = ChatMessage.model(TOOL_FALLBACK_MESSAGE)
        else:
            message = ChatMessage.model(reply.content)
        return {"messages": [message], "reply": reply}

    # =========================================
    # Public API
    # =========================================

    async def submit(self, text: str) -> list[ChatMessage]:
        """Run one user turn to completion.

        Returns:
            The messages appended during the turn, the user message first.
            Blank input, or input arriving while a turn is in flight, is
            ignored and yields an empty list.
        """
        if not text or not text.strip() or self._busy:
            return []

        self._busy = True
        try:
            user_message = ChatMessage.user(text.strip())
            self._messages.append(user_message)
            appended = [user_message]
            state: TurnState = {"messages": list(self._messages), "reply": None}
            async for update in self._graph.astream(state, stream_mode="updates"):
                for output in update.values():
                    new_messages = (output or {}).get("messages", [])
                    self._messages.extend(new_messages)
                    appended.extend(new_messages)
            logger.info("turn_completed", appended=len(appended))
            return appended
        finally:
            self._busy = False

    async def feedback(self, message_id: str, rating: int, text: str = "") -> AiFeedback | None:
        """Record a rating for one model answer.

        Raises:
            NotFoundError: No model answer with that id
            RecordValidationError: Rating is not 1 or -1

        Returns:
            The stored entry, or None when the store rejected it
        """
        if rating not in (1, -1):
            raise RecordValidationError("Rating must be 1 (helpful) or -1 (not helpful)")

        index = next((i for i, m in enumerate(self._messages) if m.id == message_id), None)
        if index is None or self._messages[index].role != Role.MODEL:
            raise NotFoundError(f"No model answer with id {message_id}")

        prompt = next(
            (m.content for m in reversed(self._messages[:index]) if m.role == Role.USER),
            NO_PROMPT_MESSAGE,
        )
        entry = AiFeedback(
            user_prompt=prompt,
            model_response=self._messages[index].content,
            rating=rating,
            feedback_text=text,
            model_used=self.config.model_label,
            connection_settings=self.config.connection_settings(),
        )
        try:
            await self.store.record_feedback(entry)
        except KinshipError as e:
            logger.error("feedback_not_recorded", message_id=message_id, error=str(e))
            return None
        logger.info("feedback_recorded", feedback_id=entry.id, rating=rating)
        return entry


def _wants_tools(state: TurnState) -> bool:
    return isinstance(state.get("reply"), ToolCallReply)
