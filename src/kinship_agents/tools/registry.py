"""The fixed catalogue of tools the assistant may call.

Each tool declares its parameters once. The same declaration is rendered
into an OpenAI-style JSON-Schema tool array (Ollama) and into Gemini
function declarations, so the two backends never diverge. Incoming
arguments are validated into a typed pydantic record per tool before
anything reaches the store.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import ToolArgumentError
from ..models.person import Gender

GENDER_VALUES = tuple(g.value for g in Gender)


class ParameterType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"
    OBJECT = "object"


@dataclass(frozen=True)
class ToolParameter:
    """One named parameter in a tool's schema."""
    name: str
    type: ParameterType
    description: str = ""
    required: bool = False
    enum: tuple[str, ...] | None = None
    properties: tuple["ToolParameter", ...] = ()

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type.value}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.type == ParameterType.OBJECT:
            schema.update(object_schema(self.properties))
        return schema


def object_schema(parameters: tuple[ToolParameter, ...]) -> dict[str, Any]:
    """JSON-Schema ``{type, properties, required}`` for a parameter list."""
    schema: dict[str, Any] = {
        "type": "object",
        "properties": {p.name: p.json_schema() for p in parameters},
    }
    required = [p.name for p in parameters if p.required]
    if required:
        schema["required"] = required
    return schema


# =============================================================================
# Typed argument records
# =============================================================================


class NoArgs(BaseModel):
    """Arguments for read-only tools; stray keys are ignored."""
    model_config = ConfigDict(extra="ignore")


class AddPersonArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    gender: Gender | None = None
    birth_date: date | None = None
    death_date: date | None = None


class PersonUpdates(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: str | None = None
    last_name: str | None = None
    gender: Gender | None = None
    birth_date: date | None = None
    death_date: date | None = None
    mother_id: str | None = None
    father_id: str | None = None
    is_home_person: bool | None = None


class UpdatePersonArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    person_id: str = Field(min_length=1)
    updates: PersonUpdates

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller actually supplied."""
        return self.updates.model_dump(exclude_unset=True)


# =============================================================================
# Tool specs
# =============================================================================


@dataclass(frozen=True)
class ToolSpec:
    """A catalogued tool: name, description, parameter schema and argument type."""
    name: str
    description: str
    args_model: type[BaseModel]
    parameters: tuple[ToolParameter, ...] = ()
    mutating: bool = False

    def json_schema(self) -> dict[str, Any]:
        return object_schema(self.parameters)

    def openai_tool(self) -> dict[str, Any]:
        """OpenAI-style tool entry, as accepted by Ollama's chat endpoint."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }

    def parse(self, args: Mapping[str, Any] | None) -> BaseModel:
        """Validate raw model-supplied arguments into the typed record."""
        try:
            return self.args_model.model_validate(dict(args or {}))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolArgumentError(self.name, problems) from e


_DATE_HINT = "The {} in YYYY-MM-DD format."

_PERSON_UPDATE_FIELDS = (
    ToolParameter("first_name", ParameterType.STRING),
    ToolParameter("last_name", ParameterType.STRING),
    ToolParameter("gender", ParameterType.STRING, enum=GENDER_VALUES),
    ToolParameter("birth_date", ParameterType.STRING, "YYYY-MM-DD format."),
    ToolParameter("death_date", ParameterType.STRING, "YYYY-MM-DD format."),
    ToolParameter("mother_id", ParameterType.STRING, "ID of the person's mother."),
    ToolParameter("father_id", ParameterType.STRING, "ID of the person's father."),
    ToolParameter(
        "is_home_person",
        ParameterType.BOOLEAN,
        "Set true to make this person the home person; every other person is unset.",
    ),
)

GET_PEOPLE = ToolSpec(
    name="get_people",
    description="Get a list of all people in the family tree.",
    args_model=NoArgs,
)

GET_MARRIAGES = ToolSpec(
    name="get_marriages",
    description="Get a list of all marriages in the family tree.",
    args_model=NoArgs,
)

ADD_PERSON = ToolSpec(
    name="add_person",
    description="Add a new person to the family tree.",
    args_model=AddPersonArgs,
    parameters=(
        ToolParameter("first_name", ParameterType.STRING, "The first name of the person.", required=True),
        ToolParameter("last_name", ParameterType.STRING, "The last name of the person.", required=True),
        ToolParameter("gender", ParameterType.STRING, "The person's gender.", enum=GENDER_VALUES),
        ToolParameter("birth_date", ParameterType.STRING, _DATE_HINT.format("birth date")),
        ToolParameter("death_date", ParameterType.STRING, _DATE_HINT.format("death date")),
    ),
    mutating=True,
)

UPDATE_PERSON = ToolSpec(
    name="update_person",
    description="Update an existing person's information.",
    args_model=UpdatePersonArgs,
    parameters=(
        ToolParameter("person_id", ParameterType.STRING, "The ID of the person to update.", required=True),
        ToolParameter(
            "updates",
            ParameterType.OBJECT,
            "An object containing the fields to update.",
            required=True,
            properties=_PERSON_UPDATE_FIELDS,
        ),
    ),
    mutating=True,
)

TOOL_REGISTRY: Mapping[str, ToolSpec] = MappingProxyType(
    {spec.name: spec for spec in (GET_PEOPLE, GET_MARRIAGES, ADD_PERSON, UPDATE_PERSON)}
)


def get_tool(name: str) -> ToolSpec | None:
    return TOOL_REGISTRY.get(name)


def openai_tools() -> list[dict[str, Any]]:
    return [spec.openai_tool() for spec in TOOL_REGISTRY.values()]
