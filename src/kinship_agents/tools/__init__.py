"""Tool Registry and Tool Dispatcher."""
from __future__ import annotations

from .dispatcher import PERSON_DEFAULTS, RefreshCallback, ToolDispatcher
from .registry import (
    ADD_PERSON,
    GET_MARRIAGES,
    GET_PEOPLE,
    TOOL_REGISTRY,
    UPDATE_PERSON,
    AddPersonArgs,
    NoArgs,
    ParameterType,
    PersonUpdates,
    ToolParameter,
    ToolSpec,
    UpdatePersonArgs,
    get_tool,
    object_schema,
    openai_tools,
)

__all__ = [
    "ADD_PERSON",
    "GET_MARRIAGES",
    "GET_PEOPLE",
    "PERSON_DEFAULTS",
    "TOOL_REGISTRY",
    "UPDATE_PERSON",
    "AddPersonArgs",
    "NoArgs",
    "ParameterType",
    "PersonUpdates",
    "RefreshCallback",
    "ToolDispatcher",
    "ToolParameter",
    "ToolSpec",
    "UpdatePersonArgs",
    "get_tool",
    "object_schema",
    "openai_tools",
]
