"""Chat and tool-calling protocol types."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from .person import new_id, utcnow


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A model's request to invoke one catalogued tool."""
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """One turn of a conversation.

    A model turn that requested tools carries ``tool_calls`` and empty
    content; each tool turn answers exactly one call via ``tool_call_id``.
    """
    id: str = Field(default_factory=new_id)
    role: Role
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    tool_name: str | None = None

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def model(cls, content: str, tool_calls: list[ToolCall] | None = None) -> "ChatMessage":
        return cls(role=Role.MODEL, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, call: ToolCall, result: str) -> "ChatMessage":
        return cls(role=Role.TOOL, content=result, tool_call_id=call.id, tool_name=call.name)

    @property
    def is_tool_request(self) -> bool:
        return self.role == Role.MODEL and bool(self.tool_calls)


class TextReply(BaseModel):
    type: Literal["text"] = "text"
    content: str


class ToolCallReply(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    calls: list[ToolCall]


ModelReply = Annotated[Union[TextReply, ToolCallReply], Field(discriminator="type")]


class AiFeedback(BaseModel):
    """A user's rating of one assistant answer."""
    id: str = Field(default_factory=new_id)
    user_prompt: str
    model_response: str
    rating: Literal[1, -1]
    feedback_text: str = ""
    model_used: str
    connection_settings: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
