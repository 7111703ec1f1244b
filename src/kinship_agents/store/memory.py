"""In-memory Graph Store.

Backs demo mode and tests. Every read returns deep copies so callers can
never alias store state.
"""
from __future__ import annotations

from typing import Any

import structlog

from ..exceptions import NotFoundError
from ..models.chat import AiFeedback
from ..models.person import Marriage, Person
from .base import (
    GraphStore,
    apply_marriage_update,
    apply_person_update,
    build_marriage,
    build_person,
    check_parents,
    check_spouses_exist,
)

logger = structlog.get_logger(__name__)


class InMemoryGraphStore(GraphStore):
    """Dict-backed store preserving insertion order."""

    def __init__(self) -> None:
        self._people: dict[str, Person] = {}
        self._marriages: dict[str, Marriage] = {}
        self._feedback: list[AiFeedback] = []

    def _get(self, person_id: str) -> Person:
        person = self._people.get(person_id)
        if person is None:
            raise NotFoundError(f"Person not found: {person_id}")
        return person

    def _save_person(self, person: Person) -> Person:
        if person.is_home_person:
            for other_id, other in self._people.items():
                if other_id != person.id and other.is_home_person:
                    self._people[other_id] = other.model_copy(update={"is_home_person": False})
        self._people[person.id] = person
        return person.model_copy(deep=True)

    async def list_people(self) -> list[Person]:
        return [p.model_copy(deep=True) for p in self._people.values()]

    async def get_person(self, person_id: str) -> Person:
        return self._get(person_id).model_copy(deep=True)

    async def list_marriages(self) -> list[Marriage]:
        return [m.model_copy(deep=True) for m in self._marriages.values()]

    async def insert_person(self, fields: dict[str, Any]) -> Person:
        person = build_person(fields)
        check_parents(self._people, person)
        logger.info("person_inserted", person_id=person.id, home=person.is_home_person)
        return self._save_person(person)

    async def update_person(self, person_id: str, fields: dict[str, Any]) -> Person:
        person = apply_person_update(self._get(person_id), fields)
        check_parents(self._people, person)
        logger.info("person_updated", person_id=person_id, fields=sorted(fields))
        return self._save_person(person)

    async def delete_person(self, person_id: str) -> None:
        self._get(person_id)
        del self._people[person_id]
        for other_id, other in list(self._people.items()):
            cleared = {}
            if other.mother_id == person_id:
                cleared["mother_id"] = None
            if other.father_id == person_id:
                cleared["father_id"] = None
            if cleared:
                self._people[other_id] = other.model_copy(update=cleared)
        self._marriages = {
            mid: m for mid, m in self._marriages.items() if not m.involves(person_id)
        }
        logger.info("person_deleted", person_id=person_id)

    async def insert_marriage(self, fields: dict[str, Any]) -> Marriage:
        marriage = build_marriage(fields)
        check_spouses_exist(self._people, marriage)
        self._marriages[marriage.id] = marriage
        logger.info("marriage_inserted", marriage_id=marriage.id)
        return marriage.model_copy(deep=True)

    async def update_marriage(self, marriage_id: str, fields: dict[str, Any]) -> Marriage:
        current = self._marriages.get(marriage_id)
        if current is None:
            raise NotFoundError(f"Marriage not found: {marriage_id}")
        marriage = apply_marriage_update(current, fields)
        check_spouses_exist(self._people, marriage)
        self._marriages[marriage_id] = marriage
        return marriage.model_copy(deep=True)

    async def delete_marriage(self, marriage_id: str) -> None:
        if self._marriages.pop(marriage_id, None) is None:
            raise NotFoundError(f"Marriage not found: {marriage_id}")

    async def record_feedback(self, entry: AiFeedback) -> None:
        self._feedback.append(entry.model_copy(deep=True))

    async def list_feedback(self) -> list[AiFeedback]:
        return [f.model_copy(deep=True) for f in self._feedback]
