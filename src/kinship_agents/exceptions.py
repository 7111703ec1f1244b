"""Error taxonomy shared by the store, tool and model layers."""
from __future__ import annotations

from dataclasses import dataclass


class KinshipError(Exception):
    """Base class for all errors raised by kinship_agents."""


@dataclass
class StoreError(KinshipError):
    """Failure reported by a Graph Store.

    Mirrors the error shape of a relational query API: a message plus
    optional details and an optional hint. All three are part of ``str()``
    so nothing is lost when the error becomes a tool result.
    """

    message: str
    details: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        text = self.message
        if self.details:
            text += f" (details: {self.details})"
        if self.hint:
            text += f" (hint: {self.hint})"
        return text


class NotFoundError(StoreError):
    """A referenced person or marriage does not exist."""


class RecordValidationError(StoreError):
    """A record or partial update is malformed."""


class InvariantViolation(StoreError):
    """A write would break a graph invariant (home person, marriage, parentage)."""


class TransportError(StoreError):
    """Network, auth or endpoint failure reaching a store or a model backend."""


@dataclass
class ToolArgumentError(KinshipError):
    """Tool call arguments failed validation against the registry schema."""

    tool_name: str
    message: str

    def __str__(self) -> str:
        return f"Invalid arguments for {self.tool_name}: {self.message}"


class ProtocolViolation(KinshipError):
    """The model asked for tools where a final text answer was required."""


class ConfigurationError(KinshipError):
    """Settings are missing, unreadable or invalid."""
