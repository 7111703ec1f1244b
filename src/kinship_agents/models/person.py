"""Person and marriage records.

These are the raw entities held by a Graph Store. Parent links are weak
references by id: a missing or dangling ``mother_id``/``father_id`` means
"unknown parent" and is never an error at read time.
"""
from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator
from uuid_utils import uuid7


def new_id() -> str:
    """Return a fresh time-ordered record id."""
    return str(uuid7())


def utcnow() -> datetime:
    return datetime.now(UTC)


class Gender(str, Enum):
    """Recorded gender of a person."""
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"
    UNKNOWN = "Unknown"


# Fields a caller may never write directly
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


class Person(BaseModel):
    """An individual in the family tree."""

    id: str = Field(default_factory=new_id)

    # Names
    first_name: str
    middle_name: str | None = None
    last_name: str
    suffix: str | None = None
    other_names: str | None = None

    # Vital events (exact date, free-text approximation and place are independent)
    birth_date: date | None = None
    birth_date_approx: str | None = None
    birth_place: str | None = None
    death_date: date | None = None
    death_date_approx: str | None = None
    death_place: str | None = None

    gender: Gender | None = None

    # Weak parent references
    mother_id: str | None = None
    father_id: str | None = None

    # Lineage markers
    enslaved: bool = False
    dna_match: bool = False
    paternal_haplogroup: str | None = None
    maternal_haplogroup: str | None = None

    is_home_person: bool = False

    notes: str | None = None  # private
    story: str | None = None  # public

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_parents(self) -> "Person":
        """A person cannot be their own parent."""
        if self.id in (self.mother_id, self.father_id):
            raise ValueError("A person cannot be their own parent")
        return self

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name, self.suffix]
        return " ".join(p.strip() for p in parts if p and p.strip())

    @property
    def parent_ids(self) -> set[str]:
        return {pid for pid in (self.mother_id, self.father_id) if pid}

    def summary(self) -> str:
        """Compact one-line description used in tool results."""
        return f"{self.full_name} (ID: {self.id})"


class Marriage(BaseModel):
    """An undirected union between two distinct people."""

    id: str = Field(default_factory=new_id)
    spouse1_id: str
    spouse2_id: str
    marriage_date: date | None = None
    marriage_place: str | None = None
    divorce_date: date | None = None
    divorce_place: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_spouses(self) -> "Marriage":
        """Invariant: spouse1_id != spouse2_id."""
        if self.spouse1_id == self.spouse2_id:
            raise ValueError("A person cannot marry themselves")
        return self

    def involves(self, person_id: str) -> bool:
        return person_id in (self.spouse1_id, self.spouse2_id)

    def spouse_of(self, person_id: str) -> str | None:
        """Return the other spouse's id, or None if person_id is not a spouse."""
        if person_id == self.spouse1_id:
            return self.spouse2_id
        if person_id == self.spouse2_id:
            return self.spouse1_id
        return None
