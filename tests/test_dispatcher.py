"""Tests for the tool dispatcher."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from kinship_agents.exceptions import TransportError
from kinship_agents.models import ToolCall
from kinship_agents.store import InMemoryGraphStore, seed_demo_data
from kinship_agents.tools import ToolDispatcher


def call(name: str, **args) -> ToolCall:
    return ToolCall(id=f"{name}-1", name=name, args=args)


@pytest.fixture
def store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


class TestDispatcher:
    """Tests for ToolDispatcher.execute."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, store):
        result = await ToolDispatcher(store).execute(call("drop_tables"))
        assert result == "Unknown tool: drop_tables"

    @pytest.mark.asyncio
    async def test_first_person_becomes_home(self, store):
        refresh = AsyncMock()
        dispatcher = ToolDispatcher(store, refresh=refresh)

        result = await dispatcher.execute(call("add_person", first_name="X", last_name="Y"))

        people = await store.list_people()
        assert len(people) == 1
        assert people[0].is_home_person
        assert people[0].enslaved is False and people[0].dna_match is False
        assert result == f"Successfully added X Y with ID {people[0].id}."
        refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sequential_calls_see_earlier_effects(self, store):
        dispatcher = ToolDispatcher(store)
        await dispatcher.execute(call("add_person", first_name="First", last_name="One"))
        await dispatcher.execute(call("add_person", first_name="Second", last_name="Two"))

        flags = [(p.first_name, p.is_home_person) for p in await store.list_people()]
        assert flags == [("First", True), ("Second", False)]

    @pytest.mark.asyncio
    async def test_get_people_summary(self, store):
        assert await ToolDispatcher(store).execute(call("get_people")) == "Found 0 people."
        ids = await seed_demo_data(store)
        result = await ToolDispatcher(store).execute(call("get_people"))
        assert result.startswith("Found 7 people: ")
        assert f"Amara Johnson (ID: {ids['home']}) [home person]" in result

    @pytest.mark.asyncio
    async def test_get_marriages_summary(self, store):
        assert await ToolDispatcher(store).execute(call("get_marriages")) == "Found 0 marriages."
        await seed_demo_data(store)
        result = await ToolDispatcher(store).execute(call("get_marriages"))
        assert result.startswith("Found 2 marriages: ")
        assert "Amara Johnson & Daniel Williams" in result
        assert "married 2008-06-12" in result

    @pytest.mark.asyncio
    async def test_update_person(self, store):
        ids = await seed_demo_data(store)
        refresh = AsyncMock()
        dispatcher = ToolDispatcher(store, refresh=refresh)

        result = await dispatcher.execute(
            call("update_person", person_id=ids["child"], updates={"last_name": "Johnson-Williams"})
        )

        assert result == "Successfully updated Chloe Johnson-Williams."
        refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_moves_home_person(self, store):
        ids = await seed_demo_data(store)
        await ToolDispatcher(store).execute(
            call("update_person", person_id=ids["child"], updates={"is_home_person": True})
        )
        home = [p.id for p in await store.list_people() if p.is_home_person]
        assert home == [ids["child"]]

    @pytest.mark.asyncio
    async def test_store_errors_become_results(self, store):
        refresh = AsyncMock()
        result = await ToolDispatcher(store, refresh=refresh).execute(
            call("update_person", person_id="ghost", updates={"first_name": "Boo"})
        )
        assert result == "Error executing tool update_person: Person not found: ghost"
        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_arguments_become_results(self, store):
        result = await ToolDispatcher(store).execute(call("add_person", first_name="X"))
        assert result.startswith("Error executing tool add_person: Invalid arguments for add_person")
        assert await store.list_people() == []

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, store):
        result = await ToolDispatcher(store).execute(
            call("update_person", person_id="p1", updates={})
        )
        assert "at least one field" in result

    @pytest.mark.asyncio
    async def test_transport_error_keeps_details_and_hint(self, store):
        store.list_people = AsyncMock(
            side_effect=TransportError("Network down", details="ECONNRESET", hint="Retry later")
        )
        result = await ToolDispatcher(store).execute(call("get_people"))
        assert result == (
            "Error executing tool get_people: Network down "
            "(details: ECONNRESET) (hint: Retry later)"
        )

    @pytest.mark.asyncio
    async def test_unexpected_errors_become_results(self, store):
        store.list_marriages = AsyncMock(side_effect=RuntimeError("boom"))
        result = await ToolDispatcher(store).execute(call("get_marriages"))
        assert result == "Error executing tool get_marriages: boom"

    @pytest.mark.asyncio
    async def test_refresh_failure_does_not_fail_the_call(self, store):
        refresh = AsyncMock(side_effect=RuntimeError("ui gone"))
        result = await ToolDispatcher(store, refresh=refresh).execute(
            call("add_person", first_name="X", last_name="Y")
        )
        assert result.startswith("Successfully added X Y")
