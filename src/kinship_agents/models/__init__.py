"""Pydantic models for people, marriages, derived relations and chat."""
from .chat import (
    AiFeedback,
    ChatMessage,
    ModelReply,
    Role,
    TextReply,
    ToolCall,
    ToolCallReply,
)
from .person import IMMUTABLE_FIELDS, Gender, Marriage, Person, new_id
from .relations import (
    AncestryRelation,
    DescendantRelation,
    EnslavedTrace,
    GenealogyData,
    HaplogroupTrace,
    LateralRelation,
    Side,
)

__all__ = [
    "AiFeedback",
    "AncestryRelation",
    "ChatMessage",
    "DescendantRelation",
    "EnslavedTrace",
    "Gender",
    "GenealogyData",
    "HaplogroupTrace",
    "IMMUTABLE_FIELDS",
    "LateralRelation",
    "Marriage",
    "ModelReply",
    "Person",
    "Role",
    "Side",
    "TextReply",
    "ToolCall",
    "ToolCallReply",
    "new_id",
]
