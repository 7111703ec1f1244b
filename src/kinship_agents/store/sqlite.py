"""SQLite-backed Graph Store.

People, marriages and feedback are stored as full JSON documents next to
the few columns the store filters on. Every write runs in one transaction,
so clearing the previous home person and flagging the new one commit
together.
"""
from __future__ import annotations

import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from ..exceptions import NotFoundError, TransportError
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


class SQLiteGraphStore(GraphStore):
    """Graph Store persisted to a local SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransportError(
                f"Cannot create database directory {self.db_path.parent}", details=str(e)
            ) from e
        self._init_schema()

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise TransportError(f"Cannot open database {self.db_path}", details=str(e)) from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA busy_timeout=5000;")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS people (
                    person_id TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL,
                    is_home_person INTEGER NOT NULL DEFAULT 0,
                    mother_id TEXT,
                    father_id TEXT,
                    full_json TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_people_home ON people(is_home_person);
                CREATE INDEX IF NOT EXISTS idx_people_mother ON people(mother_id);
                CREATE INDEX IF NOT EXISTS idx_people_father ON people(father_id);

                CREATE TABLE IF NOT EXISTS marriages (
                    marriage_id TEXT PRIMARY KEY,
                    spouse1_id TEXT NOT NULL,
                    spouse2_id TEXT NOT NULL,
                    full_json TEXT NOT NULL,
                    CHECK (spouse1_id <> spouse2_id)
                );
                CREATE INDEX IF NOT EXISTS idx_marriages_s1 ON marriages(spouse1_id);
                CREATE INDEX IF NOT EXISTS idx_marriages_s2 ON marriages(spouse2_id);

                CREATE TABLE IF NOT EXISTS ai_feedback (
                    feedback_id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    full_json TEXT NOT NULL
                );
                """
            )

    # =========================================
    # Row helpers
    # =========================================

    @staticmethod
    def _load_people(conn: sqlite3.Connection) -> dict[str, Person]:
        rows = conn.execute("SELECT full_json FROM people ORDER BY seq").fetchall()
        people = (Person.model_validate_json(row["full_json"]) for row in rows)
        return {p.id: p for p in people}

    @staticmethod
    def _write_person(conn: sqlite3.Connection, person: Person) -> None:
        if person.is_home_person:
            flagged = conn.execute(
                "SELECT full_json FROM people WHERE is_home_person = 1 AND person_id != ?",
                (person.id,),
            ).fetchall()
            for row in flagged:
                other = Person.model_validate_json(row["full_json"])
                other = other.model_copy(update={"is_home_person": False})
                conn.execute(
                    "UPDATE people SET is_home_person = 0, full_json = ? WHERE person_id = ?",
                    (other.model_dump_json(), other.id),
                )
        conn.execute(
            """
            INSERT INTO people (person_id, seq, is_home_person, mother_id, father_id, full_json)
            VALUES (?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM people), ?, ?, ?, ?)
            ON CONFLICT(person_id) DO UPDATE SET
                is_home_person = excluded.is_home_person,
                mother_id = excluded.mother_id,
                father_id = excluded.father_id,
                full_json = excluded.full_json
            """,
            (
                person.id,
                int(person.is_home_person),
                person.mother_id,
                person.father_id,
                person.model_dump_json(),
            ),
        )

    @staticmethod
    def _write_marriage(conn: sqlite3.Connection, marriage: Marriage) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO marriages (marriage_id, spouse1_id, spouse2_id, full_json)
            VALUES (?, ?, ?, ?)
            """,
            (marriage.id, marriage.spouse1_id, marriage.spouse2_id, marriage.model_dump_json()),
        )

    @staticmethod
    def _get_marriage(conn: sqlite3.Connection, marriage_id: str) -> Marriage:
        row = conn.execute(
            "SELECT full_json FROM marriages WHERE marriage_id = ?", (marriage_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Marriage not found: {marriage_id}")
        return Marriage.model_validate_json(row["full_json"])

    # =========================================
    # People
    # =========================================

    async def list_people(self) -> list[Person]:
        with self._transaction() as conn:
            return list(self._load_people(conn).values())

    async def get_person(self, person_id: str) -> Person:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT full_json FROM people WHERE person_id = ?", (person_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Person not found: {person_id}")
        return Person.model_validate_json(row["full_json"])

    async def count_people(self) -> int:
        with self._transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM people").fetchone()[0]

    async def insert_person(self, fields: dict[str, Any]) -> Person:
        person = build_person(fields)
        with self._transaction() as conn:
            check_parents(self._load_people(conn), person)
            self._write_person(conn, person)
        logger.info("person_inserted", person_id=person.id, home=person.is_home_person)
        return person

    async def update_person(self, person_id: str, fields: dict[str, Any]) -> Person:
        with self._transaction() as conn:
            index = self._load_people(conn)
            current = index.get(person_id)
            if current is None:
                raise NotFoundError(f"Person not found: {person_id}")
            person = apply_person_update(current, fields)
            check_parents(index, person)
            self._write_person(conn, person)
        logger.info("person_updated", person_id=person_id, fields=sorted(fields))
        return person

    async def delete_person(self, person_id: str) -> None:
        with self._transaction() as conn:
            index = self._load_people(conn)
            if person_id not in index:
                raise NotFoundError(f"Person not found: {person_id}")
            conn.execute("DELETE FROM people WHERE person_id = ?", (person_id,))
            for other in index.values():
                cleared = {}
                if other.mother_id == person_id:
                    cleared["mother_id"] = None
                if other.father_id == person_id:
                    cleared["father_id"] = None
                if cleared:
                    self._write_person(conn, other.model_copy(update=cleared))
            conn.execute(
                "DELETE FROM marriages WHERE spouse1_id = ? OR spouse2_id = ?",
                (person_id, person_id),
            )
        logger.info("person_deleted", person_id=person_id)

    # =========================================
    # Marriages
    # =========================================

    async def list_marriages(self) -> list[Marriage]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT full_json FROM marriages ORDER BY rowid").fetchall()
        return [Marriage.model_validate_json(row["full_json"]) for row in rows]

    async def insert_marriage(self, fields: dict[str, Any]) -> Marriage:
        marriage = build_marriage(fields)
        with self._transaction() as conn:
            check_spouses_exist(self._load_people(conn), marriage)
            self._write_marriage(conn, marriage)
        logger.info("marriage_inserted", marriage_id=marriage.id)
        return marriage

    async def update_marriage(self, marriage_id: str, fields: dict[str, Any]) -> Marriage:
        with self._transaction() as conn:
            marriage = apply_marriage_update(self._get_marriage(conn, marriage_id), fields)
            check_spouses_exist(self._load_people(conn), marriage)
            self._write_marriage(conn, marriage)
        return marriage

    async def delete_marriage(self, marriage_id: str) -> None:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM marriages WHERE marriage_id = ?", (marriage_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Marriage not found: {marriage_id}")

    # =========================================
    # Feedback
    # =========================================

    async def record_feedback(self, entry: AiFeedback) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO ai_feedback (feedback_id, created_at, full_json) VALUES (?, ?, ?)",
                (entry.id, entry.created_at.isoformat(), entry.model_dump_json()),
            )

    async def list_feedback(self) -> list[AiFeedback]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT full_json FROM ai_feedback ORDER BY created_at").fetchall()
        return [AiFeedback.model_validate_json(row["full_json"]) for row in rows]
