"""Derived relation records.

Computed from the live person set on every request; these are views,
not stored entities. Every record carries the source ``person_id``.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field


class Side(str, Enum):
    """Lineage side relative to the home person."""
    PATERNAL = "Paternal"
    MATERNAL = "Maternal"
    NA = "N/A"


class AncestryRelation(BaseModel):
    person_id: str
    full_name: str
    relation: str
    generation: Annotated[int, Field(ge=0)]
    side: Side
    paternal_haplogroup: str | None = None
    maternal_haplogroup: str | None = None
    enslaved: bool = False
    dna_match: bool = False
    great_degree: Annotated[int, Field(ge=0)] = 0


class DescendantRelation(BaseModel):
    person_id: str
    full_name: str
    relation: str
    generation: Annotated[int, Field(ge=1)]
    side: Side = Side.NA
    paternal_haplogroup: str | None = None
    maternal_haplogroup: str | None = None
    enslaved: bool = False
    dna_match: bool = False


class LateralRelation(BaseModel):
    """Sibling-line relative.

    ``generation`` is relative to the home person: siblings and cousins 0,
    aunts and uncles -1, nieces and nephews 1.
    """
    person_id: str
    full_name: str
    relation: str
    generation: int
    side: Side
    paternal_haplogroup: str | None = None
    maternal_haplogroup: str | None = None
    enslaved: bool = False
    dna_match: bool = False


class HaplogroupTrace(BaseModel):
    person_id: str
    full_name: str
    relation: str
    generation: int
    great_degree: int
    paternal_haplogroup: str | None = None
    maternal_haplogroup: str | None = None


class EnslavedTrace(BaseModel):
    person_id: str
    full_name: str
    relation: str
    generation: int
    great_degree: int
    enslaved: bool = True


class GenealogyData(BaseModel):
    """The full set of reports centred on one home person."""

    home_person_id: str | None = None
    ancestry: list[AncestryRelation] = Field(default_factory=list)
    descendants: list[DescendantRelation] = Field(default_factory=list)
    lateral: list[LateralRelation] = Field(default_factory=list)
    paternal_haplogroup: list[HaplogroupTrace] = Field(default_factory=list)
    maternal_haplogroup: list[HaplogroupTrace] = Field(default_factory=list)
    paternal_enslaved: list[EnslavedTrace] = Field(default_factory=list)
    maternal_enslaved: list[EnslavedTrace] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.ancestry

    @property
    def ancestor_count(self) -> int:
        """Number of ancestors, excluding the home person."""
        return max(0, len(self.ancestry) - 1)
