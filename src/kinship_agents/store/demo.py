"""Demo family used by ``--demo`` mode and tests."""
from __future__ import annotations

from .base import GraphStore


async def seed_demo_data(store: GraphStore) -> dict[str, str]:
    """Load a small three-generation family into ``store``.

    Returns:
        Mapping of role name to person id
    """
    ids: dict[str, str] = {}

    async def add(role: str, **fields) -> None:
        person = await store.insert_person(fields)
        ids[role] = person.id

    await add("maternal_grandmother", first_name="Beatrice", last_name="Smith", gender="Female",
              birth_date="1935-02-12", enslaved=True, maternal_haplogroup="L3e")
    await add("paternal_grandfather", first_name="Samuel", last_name="Johnson", gender="Male",
              birth_date="1932-06-30", paternal_haplogroup="R-M173")
    await add("mother", first_name="Eleanor", last_name="Johnson", gender="Female",
              birth_date="1960-03-10", death_date="2018-01-05", maternal_haplogroup="L3e",
              mother_id=ids["maternal_grandmother"])
    await add("father", first_name="Marcus", last_name="Johnson", gender="Male",
              birth_date="1958-09-01", paternal_haplogroup="R-M173",
              father_id=ids["paternal_grandfather"])
    await add("home", first_name="Amara", last_name="Johnson", gender="Female",
              birth_date="1985-05-15", is_home_person=True, dna_match=True,
              maternal_haplogroup="L3e", mother_id=ids["mother"], father_id=ids["father"])
    await add("spouse", first_name="Daniel", last_name="Williams", gender="Male",
              birth_date="1983-11-20", paternal_haplogroup="E-M2")
    await add("child", first_name="Chloe", last_name="Williams", gender="Female",
              birth_date="2010-07-22", mother_id=ids["home"], father_id=ids["spouse"])

    await store.insert_marriage(
        {"spouse1_id": ids["home"], "spouse2_id": ids["spouse"], "marriage_date": "2008-06-12"}
    )
    await store.insert_marriage(
        {"spouse1_id": ids["mother"], "spouse2_id": ids["father"], "marriage_date": "1980-08-20"}
    )
    return ids
