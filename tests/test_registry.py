"""Tests for the tool registry."""
from __future__ import annotations

from datetime import date

import pytest

from kinship_agents.exceptions import ToolArgumentError
from kinship_agents.models import Gender
from kinship_agents.tools import (
    TOOL_REGISTRY,
    AddPersonArgs,
    UpdatePersonArgs,
    get_tool,
    openai_tools,
)


class TestCatalogue:
    """Tests for the declared tools."""

    def test_four_tools(self):
        assert list(TOOL_REGISTRY) == ["get_people", "get_marriages", "add_person", "update_person"]

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            TOOL_REGISTRY["delete_everything"] = TOOL_REGISTRY["get_people"]

    def test_mutating_flags(self):
        assert {name for name, spec in TOOL_REGISTRY.items() if spec.mutating} == {
            "add_person",
            "update_person",
        }

    def test_openai_shape(self):
        tools = {t["function"]["name"]: t for t in openai_tools()}
        add = tools["add_person"]

        assert add["type"] == "function"
        params = add["function"]["parameters"]
        assert params["type"] == "object"
        assert params["required"] == ["first_name", "last_name"]
        assert params["properties"]["gender"]["enum"] == ["Male", "Female", "Other", "Unknown"]
        assert tools["get_people"]["function"]["parameters"] == {"type": "object", "properties": {}}

    def test_update_schema_nests_updates_object(self):
        schema = get_tool("update_person").json_schema()
        updates = schema["properties"]["updates"]
        assert schema["required"] == ["person_id", "updates"]
        assert updates["type"] == "object"
        assert set(updates["properties"]) == {
            "first_name", "last_name", "gender", "birth_date", "death_date",
            "mother_id", "father_id", "is_home_person",
        }

    @pytest.mark.parametrize("name", ["add_person", "update_person"])
    def test_declared_parameters_match_argument_model(self, name):
        spec = get_tool(name)
        assert {p.name for p in spec.parameters} == set(spec.args_model.model_fields)

    def test_declared_update_fields_match_model(self):
        updates = next(p for p in get_tool("update_person").parameters if p.name == "updates")
        from kinship_agents.tools import PersonUpdates

        assert {p.name for p in updates.properties} == set(PersonUpdates.model_fields)

    def test_unknown_tool(self):
        assert get_tool("drop_tables") is None


class TestArgumentParsing:
    """Tests for typed argument validation."""

    def test_add_person_parses(self):
        args = get_tool("add_person").parse(
            {"first_name": "X", "last_name": "Y", "gender": "Female", "birth_date": "1950-02-03"}
        )
        assert isinstance(args, AddPersonArgs)
        assert args.gender == Gender.FEMALE
        assert args.birth_date == date(1950, 2, 3)

    def test_add_person_missing_required(self):
        with pytest.raises(ToolArgumentError) as exc:
            get_tool("add_person").parse({"first_name": "X"})
        assert exc.value.tool_name == "add_person"
        assert "last_name" in str(exc.value)

    def test_add_person_bad_gender(self):
        with pytest.raises(ToolArgumentError, match="gender"):
            get_tool("add_person").parse({"first_name": "X", "last_name": "Y", "gender": "Robot"})

    def test_update_person_keeps_only_supplied_fields(self):
        args = get_tool("update_person").parse(
            {"person_id": "p1", "updates": {"mother_id": None, "last_name": "Z"}}
        )
        assert isinstance(args, UpdatePersonArgs)
        assert args.changes() == {"mother_id": None, "last_name": "Z"}

    def test_update_person_rejects_unknown_update_keys(self):
        with pytest.raises(ToolArgumentError, match="updates"):
            get_tool("update_person").parse({"person_id": "p1", "updates": {"enslaved": True}})

    def test_read_tools_ignore_stray_arguments(self):
        get_tool("get_people").parse({"limit": 5})
        get_tool("get_marriages").parse(None)
