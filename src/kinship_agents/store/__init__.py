"""Graph Store collaborators: the CRUD boundary over people and marriages."""
from __future__ import annotations

from pathlib import Path

from .base import GraphStore
from .demo import seed_demo_data
from .memory import InMemoryGraphStore
from .sqlite import SQLiteGraphStore


def open_store(db_path: str | Path | None) -> GraphStore:
    """Construct the store named by configuration.

    A path opens SQLite; ``None`` gives an empty in-memory store.
    """
    if db_path is None:
        return InMemoryGraphStore()
    return SQLiteGraphStore(db_path)


__all__ = [
    "GraphStore",
    "InMemoryGraphStore",
    "SQLiteGraphStore",
    "open_store",
    "seed_demo_data",
]
