"""Shared domain models used across the Omega Codex pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping, Tuple

Role = Literal["developer", "user", "assistant"]


@dataclass(frozen=True)
class Embedding:
    """Vector computed for a piece of text, keyed by its cache identifier."""

    id: int
    vector: Tuple[float, ...]
    source_text: str = ""


@dataclass(frozen=True)
class SearchResult:
    """Nearest-neighbour hit returned by the vector index."""

    id: int
    score: float


@dataclass(frozen=True)
class Chunk:
    """Cached text presented to the model as retrieval context."""

    id: int
    text: str

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "text": self.text}


@dataclass(frozen=True)
class Message:
    """Single entry of a conversation."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class DocumentFragment:
    """Piece of a document emitted by the chunker, before merging."""

    content: str
    metadata: Mapping[str, str] = field(default_factory=dict)
