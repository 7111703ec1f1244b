"""Graph Store interface and the write-side invariant checks every store shares.

Invariants enforced beneath the tool layer:
- at most one person has ``is_home_person`` set; setting it clears all others
- a marriage joins two distinct, existing people
- parent ids resolve to existing people, and no assignment may make a
  person their own ancestor
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from ..exceptions import InvariantViolation, NotFoundError, RecordValidationError
from ..models.chat import AiFeedback
from ..models.person import IMMUTABLE_FIELDS, Marriage, Person, utcnow
from ..models.relations import GenealogyData
from ..relations import derive_genealogy, is_ancestor

PERSON_FIELDS = frozenset(Person.model_fields) - IMMUTABLE_FIELDS
MARRIAGE_FIELDS = frozenset(Marriage.model_fields) - IMMUTABLE_FIELDS


class GraphStore(ABC):
    """Async CRUD boundary over people, marriages and assistant feedback."""

    @abstractmethod
    async def list_people(self) -> list[Person]: ...

    @abstractmethod
    async def get_person(self, person_id: str) -> Person:
        """Return one person or raise NotFoundError."""

    @abstractmethod
    async def list_marriages(self) -> list[Marriage]: ...

    @abstractmethod
    async def insert_person(self, fields: dict[str, Any]) -> Person: ...

    @abstractmethod
    async def update_person(self, person_id: str, fields: dict[str, Any]) -> Person: ...

    @abstractmethod
    async def delete_person(self, person_id: str) -> None:
        """Delete a person, clearing parent links to them and their marriages."""

    @abstractmethod
    async def insert_marriage(self, fields: dict[str, Any]) -> Marriage: ...

    @abstractmethod
    async def update_marriage(self, marriage_id: str, fields: dict[str, Any]) -> Marriage: ...

    @abstractmethod
    async def delete_marriage(self, marriage_id: str) -> None: ...

    @abstractmethod
    async def record_feedback(self, entry: AiFeedback) -> None: ...

    @abstractmethod
    async def list_feedback(self) -> list[AiFeedback]: ...

    async def get_relations(self, home_person_id: str | None = None) -> GenealogyData:
        """Derive every relationship report around the home person."""
        return derive_genealogy(await self.list_people(), home_person_id)

    async def count_people(self) -> int:
        return len(await self.list_people())

    def close(self) -> None:  # noqa: B027 - optional hook
        """Release any held resources."""


# =============================================================================
# Shared validation helpers
# =============================================================================


def _check_fields(fields: dict[str, Any], allowed: frozenset[str], kind: str) -> None:
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise RecordValidationError(
            f"Unknown {kind} field(s): {', '.join(unknown)}",
            hint=f"Allowed fields: {', '.join(sorted(allowed))}",
        )


def _validation_error(kind: str, error: ValidationError) -> RecordValidationError:
    details = "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or kind}: {e['msg']}" for e in error.errors()
    )
    return RecordValidationError(f"Invalid {kind} data", details=details)


def build_person(fields: dict[str, Any]) -> Person:
    """Validate caller fields into a new Person."""
    _check_fields(fields, PERSON_FIELDS, "person")
    try:
        return Person.model_validate(fields)
    except ValidationError as e:
        raise _validation_error("person", e) from e


def apply_person_update(current: Person, fields: dict[str, Any]) -> Person:
    """Return ``current`` with a partial update applied and revalidated."""
    _check_fields(fields, PERSON_FIELDS, "person")
    data = current.model_dump()
    data.update(fields)
    data["updated_at"] = utcnow()
    try:
        return Person.model_validate(data)
    except ValidationError as e:
        raise _validation_error("person", e) from e


def check_parents(index: dict[str, Person], person: Person) -> None:
    """Parent ids must exist and must not close a cycle through ``person``."""
    for label, parent_id in (("mother_id", person.mother_id), ("father_id", person.father_id)):
        if not parent_id:
            continue
        if parent_id not in index:
            raise NotFoundError(
                f"Parent not found for {label}: {parent_id}",
                hint="Add the parent first, then link them",
            )
        if is_ancestor(index, person.id, parent_id):
            raise InvariantViolation(
                f"Setting {label} to {parent_id} would make {person.full_name} their own ancestor",
            )


def _check_spouses(data: dict[str, Any]) -> None:
    if data.get("spouse1_id") and data.get("spouse1_id") == data.get("spouse2_id"):
        raise InvariantViolation(
            "A person cannot marry themselves",
            hint="spouse1_id and spouse2_id must differ",
        )


def build_marriage(fields: dict[str, Any]) -> Marriage:
    _check_fields(fields, MARRIAGE_FIELDS, "marriage")
    _check_spouses(fields)
    try:
        return Marriage.model_validate(fields)
    except ValidationError as e:
        raise _validation_error("marriage", e) from e


def apply_marriage_update(current: Marriage, fields: dict[str, Any]) -> Marriage:
    _check_fields(fields, MARRIAGE_FIELDS, "marriage")
    data = current.model_dump()
    data.update(fields)
    data["updated_at"] = utcnow()
    _check_spouses(data)
    try:
        return Marriage.model_validate(data)
    except ValidationError as e:
        raise _validation_error("marriage", e) from e


def check_spouses_exist(index: dict[str, Person], marriage: Marriage) -> None:
    for spouse_id in (marriage.spouse1_id, marriage.spouse2_id):
        if spouse_id not in index:
            raise NotFoundError(f"Spouse not found: {spouse_id}")
