"""Relationship derivation over a parent-pointer graph of people.

Every report is computed from one canonical ancestry pass that carries
person ids, so traces never have to recover identity from printable
fields. The walk follows ``mother_id`` before ``father_id`` at each node:

    Self (gen 0, N/A)
    ├── Mother (gen 1, Maternal)
    │   ├── Maternal Grandmother (gen 2, Maternal, great_degree 1)
    │   └── Maternal Grandfather (gen 2, Maternal, great_degree 1)
    └── Father (gen 1, Paternal)
        └── ...

Absent or dangling parent ids end a branch silently; the walk also refuses
to re-enter a person already on the current path, so a cyclic store cannot
recurse forever.
"""
from __future__ import annotations

from collections import deque
from collections.abc import Iterable

import structlog

from ..models.person import Gender, Person
from ..models.relations import (
    AncestryRelation,
    DescendantRelation,
    EnslavedTrace,
    GenealogyData,
    HaplogroupTrace,
    LateralRelation,
    Side,
)

logger = structlog.get_logger(__name__)

MAX_GENERATIONS = 64


# =============================================================================
# Labels
# =============================================================================


def _gendered(person: Person, male: str, female: str, neutral: str) -> str:
    if person.gender == Gender.MALE:
        return male
    if person.gender == Gender.FEMALE:
        return female
    return neutral


def ancestor_label(generation: int, side: Side, via_mother: bool) -> str:
    """Relation label for an ancestor reached through a mother or father slot.

    >>> ancestor_label(1, Side.MATERNAL, True)
    'Mother'
    >>> ancestor_label(2, Side.PATERNAL, True)
    'Paternal Grandmother'
    >>> ancestor_label(4, Side.MATERNAL, False)
    'Maternal Great-Great-Grandfather'
    """
    if generation <= 0:
        return "Self"
    noun = "mother" if via_mother else "father"
    if generation == 1:
        return noun.capitalize()
    greats = "Great-" * (generation - 2)
    return f"{side.value} {greats}Grand{noun}"


def great_degree(generation: int) -> int:
    return generation - 1 if generation >= 2 else 0


def descendant_label(person: Person, generation: int) -> str:
    if generation == 1:
        return _gendered(person, "Son", "Daughter", "Child")
    greats = "Great-" * (generation - 2)
    return greats + _gendered(person, "Grandson", "Granddaughter", "Grandchild")


# =============================================================================
# Home person
# =============================================================================


def flagged_home_person(people: Iterable[Person]) -> Person | None:
    """Return the person carrying ``is_home_person``, if any."""
    return next((p for p in people if p.is_home_person), None)


def find_home_person(people: Iterable[Person]) -> Person | None:
    """Return the flagged home person, falling back to the first person."""
    people = list(people)
    return flagged_home_person(people) or (people[0] if people else None)


# =============================================================================
# Ancestry
# =============================================================================


def _ancestry_entry(person: Person, relation: str, generation: int, side: Side) -> AncestryRelation:
    return AncestryRelation(
        person_id=person.id,
        full_name=person.full_name,
        relation=relation,
        generation=generation,
        side=side,
        paternal_haplogroup=person.paternal_haplogroup,
        maternal_haplogroup=person.maternal_haplogroup,
        enslaved=person.enslaved,
        dna_match=person.dna_match,
        great_degree=great_degree(generation),
    )


def derive_ancestry(
    index: dict[str, Person],
    home: Person,
    max_generations: int = MAX_GENERATIONS,
) -> list[AncestryRelation]:
    """Walk parent pointers from the home person, one generation at a time.

    Each ancestor appears once, at its shallowest generation, even when
    it is reachable through several lines (cousin marriages). Within a
    generation mothers come before fathers. Side is fixed by the
    generation-1 parent a branch passes through and inherited unchanged
    by every ancestor above it.
    """
    results = [_ancestry_entry(home, "Self", 0, Side.NA)]
    seen = {home.id}
    queue: deque[tuple[Person, int, Side]] = deque([(home, 0, Side.NA)])
    while queue:
        person, generation, side = queue.popleft()
        if generation >= max_generations:
            continue
        for parent_id, via_mother in ((person.mother_id, True), (person.father_id, False)):
            if not parent_id or parent_id in seen:
                continue
            parent = index.get(parent_id)
            if parent is None:
                logger.debug("dangling_parent_reference", person_id=person.id, parent_id=parent_id)
                continue
            seen.add(parent_id)
            next_generation = generation + 1
            branch_side = side
            if branch_side == Side.NA:
                branch_side = Side.MATERNAL if via_mother else Side.PATERNAL
            results.append(
                _ancestry_entry(
                    parent,
                    ancestor_label(next_generation, branch_side, via_mother),
                    next_generation,
                    branch_side,
                )
            )
            queue.append((parent, next_generation, branch_side))
    return results


def is_ancestor(
    index: dict[str, Person],
    candidate_id: str,
    person_id: str,
    max_generations: int = MAX_GENERATIONS,
) -> bool:
    """Return True if ``candidate_id`` is ``person_id`` or one of its ancestors.

    Bounded breadth-first walk; used to refuse parent assignments that
    would close a cycle.
    """
    if candidate_id == person_id:
        return True
    seen = {person_id}
    queue: deque[tuple[str, int]] = deque([(person_id, 0)])
    while queue:
        current_id, depth = queue.popleft()
        if depth >= max_generations:
            continue
        current = index.get(current_id)
        if current is None:
            continue
        for parent_id in current.parent_ids:
            if parent_id == candidate_id:
                return True
            if parent_id not in seen:
                seen.add(parent_id)
                queue.append((parent_id, depth + 1))
    return False


# =============================================================================
# Descendants
# =============================================================================


def _children_index(people: Iterable[Person]) -> dict[str, list[Person]]:
    children: dict[str, list[Person]] = {}
    for person in people:
        for parent_id in (person.mother_id, person.father_id):
            if parent_id:
                children.setdefault(parent_id, []).append(person)
    return children


def derive_descendants(
    children: dict[str, list[Person]],
    home: Person,
    max_generations: int = MAX_GENERATIONS,
) -> list[DescendantRelation]:
    """Breadth-first descent; each person appears once, at its shallowest depth."""
    results: list[DescendantRelation] = []
    seen = {home.id}
    queue: deque[tuple[Person, int]] = deque([(home, 0)])
    while queue:
        person, generation = queue.popleft()
        if generation >= max_generations:
            continue
        for child in children.get(person.id, []):
            if child.id in seen:
                continue
            seen.add(child.id)
            results.append(
                DescendantRelation(
                    person_id=child.id,
                    full_name=child.full_name,
                    relation=descendant_label(child, generation + 1),
                    generation=generation + 1,
                    paternal_haplogroup=child.paternal_haplogroup,
                    maternal_haplogroup=child.maternal_haplogroup,
                    enslaved=child.enslaved,
                    dna_match=child.dna_match,
                )
            )
            queue.append((child, generation + 1))
    return results


# =============================================================================
# Lateral relations
# =============================================================================


def _siblings_of(people: Iterable[Person], person: Person) -> list[tuple[Person, set[str]]]:
    """People sharing at least one parent with ``person``, with the shared ids."""
    parents = person.parent_ids
    if not parents:
        return []
    found = []
    for other in people:
        if other.id == person.id:
            continue
        shared = other.parent_ids & parents
        if shared:
            found.append((other, shared))
    return found


def _lateral_entry(person: Person, relation: str, generation: int, side: Side) -> LateralRelation:
    return LateralRelation(
        person_id=person.id,
        full_name=person.full_name,
        relation=relation,
        generation=generation,
        side=side,
        paternal_haplogroup=person.paternal_haplogroup,
        maternal_haplogroup=person.maternal_haplogroup,
        enslaved=person.enslaved,
        dna_match=person.dna_match,
    )


def derive_lateral(
    people: list[Person],
    index: dict[str, Person],
    children: dict[str, list[Person]],
    home: Person,
    exclude: set[str],
) -> list[LateralRelation]:
    """Siblings, aunts and uncles, nieces and nephews, and first cousins.

    Computed by intersecting parent ids rather than by the ancestry walk.
    ``exclude`` holds ids that already have a direct-line relation.
    """
    results: list[LateralRelation] = []
    seen = set(exclude) | {home.id}

    def add(person: Person, relation: str, generation: int, side: Side) -> None:
        if person.id in seen:
            return
        seen.add(person.id)
        results.append(_lateral_entry(person, relation, generation, side))

    # Siblings
    sibling_sides: list[tuple[Person, Side]] = []
    for sibling, shared in _siblings_of(people, home):
        if sibling.parent_ids == home.parent_ids:
            side = Side.NA
            relation = _gendered(sibling, "Brother", "Sister", "Sibling")
        else:
            side = Side.MATERNAL if home.mother_id in shared else Side.PATERNAL
            relation = _gendered(sibling, "Half-Brother", "Half-Sister", "Half-Sibling")
        add(sibling, relation, 0, side)
        sibling_sides.append((sibling, side))

    # Aunts and uncles
    piblings: list[tuple[Person, Side]] = []
    for parent_id, side in ((home.mother_id, Side.MATERNAL), (home.father_id, Side.PATERNAL)):
        parent = index.get(parent_id) if parent_id else None
        if parent is None:
            continue
        for aunt_or_uncle, _ in _siblings_of(people, parent):
            relation = f"{side.value} " + _gendered(aunt_or_uncle, "Uncle", "Aunt", "Aunt/Uncle")
            add(aunt_or_uncle, relation, -1, side)
            piblings.append((aunt_or_uncle, side))

    # Nieces and nephews
    for sibling, side in sibling_sides:
        for child in children.get(sibling.id, []):
            add(child, _gendered(child, "Nephew", "Niece", "Niece/Nephew"), 1, side)

    # First cousins
    for aunt_or_uncle, side in piblings:
        for cousin in children.get(aunt_or_uncle.id, []):
            add(cousin, f"{side.value} First Cousin", 0, side)

    return results


# =============================================================================
# Traces
# =============================================================================


def haplogroup_traces(
    ancestry: list[AncestryRelation],
) -> tuple[list[HaplogroupTrace], list[HaplogroupTrace]]:
    """Ancestry entries carrying a paternal / maternal haplogroup marker."""

    def trace(entry: AncestryRelation, paternal: bool) -> HaplogroupTrace:
        return HaplogroupTrace(
            person_id=entry.person_id,
            full_name=entry.full_name,
            relation=entry.relation,
            generation=entry.generation,
            great_degree=entry.great_degree,
            paternal_haplogroup=entry.paternal_haplogroup if paternal else None,
            maternal_haplogroup=None if paternal else entry.maternal_haplogroup,
        )

    paternal = [trace(a, True) for a in ancestry if (a.paternal_haplogroup or "").strip()]
    maternal = [trace(a, False) for a in ancestry if (a.maternal_haplogroup or "").strip()]
    return paternal, maternal


def enslaved_traces(
    ancestry: list[AncestryRelation],
) -> tuple[list[EnslavedTrace], list[EnslavedTrace]]:
    """Enslaved ancestors split by side.

    The home person row (side N/A) appears in both traces only when the
    home person is itself flagged enslaved.
    """

    def trace(entry: AncestryRelation) -> EnslavedTrace:
        return EnslavedTrace(
            person_id=entry.person_id,
            full_name=entry.full_name,
            relation=entry.relation,
            generation=entry.generation,
            great_degree=entry.great_degree,
            enslaved=entry.enslaved,
        )

    enslaved = [a for a in ancestry if a.enslaved]
    paternal = [trace(a) for a in enslaved if a.side in (Side.PATERNAL, Side.NA)]
    maternal = [trace(a) for a in enslaved if a.side in (Side.MATERNAL, Side.NA)]
    return paternal, maternal


# =============================================================================
# Entry point
# =============================================================================


def derive_genealogy(
    people: Iterable[Person],
    home_person_id: str | None = None,
    max_generations: int = MAX_GENERATIONS,
) -> GenealogyData:
    """Compute all relationship reports around one home person.

    Args:
        people: The full person set
        home_person_id: Explicit home person; defaults to the flagged one
        max_generations: Depth bound for ancestor and descendant walks

    Returns:
        GenealogyData; every collection is empty when there is no home person
    """
    people = list(people)
    index = {p.id: p for p in people}

    home = index.get(home_person_id) if home_person_id else flagged_home_person(people)
    if home is None:
        return GenealogyData()

    children = _children_index(people)
    ancestry = derive_ancestry(index, home, max_generations)
    descendants = derive_descendants(children, home, max_generations)

    direct_line = {a.person_id for a in ancestry} | {d.person_id for d in descendants}
    lateral = derive_lateral(people, index, children, home, direct_line)

    paternal_haplogroup, maternal_haplogroup = haplogroup_traces(ancestry)
    paternal_enslaved, maternal_enslaved = enslaved_traces(ancestry)

    logger.debug(
        "genealogy_derived",
        home_person_id=home.id,
        ancestors=len(ancestry) - 1,
        descendants=len(descendants),
        lateral=len(lateral),
    )

    return GenealogyData(
        home_person_id=home.id,
        ancestry=ancestry,
        descendants=descendants,
        lateral=lateral,
        paternal_haplogroup=paternal_haplogroup,
        maternal_haplogroup=maternal_haplogroup,
        paternal_enslaved=paternal_enslaved,
        maternal_enslaved=maternal_enslaved,
    )
