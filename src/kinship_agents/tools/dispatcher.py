"""Executes tool calls against the Graph Store.

Results are text: they become part of the model's context. Failures of
any kind come back as ``"Error executing tool <name>: <message>"`` and an
unknown tool as ``"Unknown tool: <name>"``; nothing is raised into the
conversation loop.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from ..exceptions import KinshipError, ToolArgumentError
from ..models.chat import ToolCall
from ..store.base import GraphStore
from .registry import AddPersonArgs, UpdatePersonArgs, get_tool

logger = structlog.get_logger(__name__)

RefreshCallback = Callable[[], Awaitable[None]]

# Defaults merged under add_person arguments
PERSON_DEFAULTS = {"enslaved": False, "dna_match": False}


class ToolDispatcher:
    """Runs catalogued tools one at a time.

    Args:
        store: Graph Store to read and mutate
        refresh: Awaited after every successful mutating call so derived
            views can be rebuilt from fresh data
    """

    def __init__(self, store: GraphStore, refresh: RefreshCallback | None = None) -> None:
        self.store = store
        self.refresh = refresh

    async def execute(self, call: ToolCall) -> str:
        spec = get_tool(call.name)
        if spec is None:
            logger.warning("unknown_tool", tool=call.name)
            return f"Unknown tool: {call.name}"

        log = logger.bind(tool=call.name, call_id=call.id)
        try:
            args = spec.parse(call.args)
            handler = getattr(self, f"_{spec.name}")
            result = await handler(args)
        except ToolArgumentError as e:
            log.info("tool_arguments_rejected", error=e.message)
            return f"Error executing tool {call.name}: {e}"
        except KinshipError as e:
            log.warning("tool_failed", error=str(e))
            return f"Error executing tool {call.name}: {e}"
        except Exception as e:
            log.exception("tool_crashed")
            return f"Error executing tool {call.name}: {e}"

        if spec.mutating:
            await self._refresh()
        log.info("tool_executed")
        return result

    async def _refresh(self) -> None:
        if self.refresh is None:
            return
        try:
            await self.refresh()
        except Exception:
            # The write already committed; a stale view is not a tool failure.
            logger.exception("refresh_failed")

    # =========================================
    # Handlers
    # =========================================

    async def _get_people(self, _args) -> str:
        people = await self.store.list_people()
        if not people:
            return "Found 0 people."
        summaries = [
            p.summary() + (" [home person]" if p.is_home_person else "") for p in people
        ]
        return f"Found {len(people)} people: " + ", ".join(summaries)

    async def _get_marriages(self, _args) -> str:
        marriages = await self.store.list_marriages()
        if not marriages:
            return "Found 0 marriages."
        names = {p.id: p.full_name for p in await self.store.list_people()}
        summaries = []
        for m in marriages:
            text = (
                f"{names.get(m.spouse1_id, 'Unknown')} & {names.get(m.spouse2_id, 'Unknown')}"
                f" (ID: {m.id}"
            )
            if m.marriage_date:
                text += f", married {m.marriage_date.isoformat()}"
            if m.divorce_date:
                text += f", divorced {m.divorce_date.isoformat()}"
            summaries.append(text + ")")
        return f"Found {len(marriages)} marriages: " + "; ".join(summaries)

    async def _add_person(self, args: AddPersonArgs) -> str:
        fields = {
            **PERSON_DEFAULTS,
            **args.model_dump(exclude_none=True),
            # The first person ever added becomes the home person
            "is_home_person": await self.store.count_people() == 0,
        }
        person = await self.store.insert_person(fields)
        return f"Successfully added {person.first_name} {person.last_name} with ID {person.id}."

    async def _update_person(self, args: UpdatePersonArgs) -> str:
        changes = args.changes()
        if not changes:
            raise ToolArgumentError("update_person", "updates must contain at least one field")
        person = await self.store.update_person(args.person_id, changes)
        return f"Successfully updated {person.first_name} {person.last_name}."
