"""Relationship derivation: ancestry, descendants, lateral kin and lineage traces."""
from .deriver import (
    MAX_GENERATIONS,
    ancestor_label,
    derive_ancestry,
    derive_descendants,
    derive_genealogy,
    derive_lateral,
    descendant_label,
    enslaved_traces,
    find_home_person,
    flagged_home_person,
    haplogroup_traces,
    is_ancestor,
)

__all__ = [
    "MAX_GENERATIONS",
    "ancestor_label",
    "derive_ancestry",
    "derive_descendants",
    "derive_genealogy",
    "derive_lateral",
    "descendant_label",
    "enslaved_traces",
    "find_home_person",
    "flagged_home_person",
    "haplogroup_traces",
    "is_ancestor",
]
