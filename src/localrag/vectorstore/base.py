"""Vector store contract shared by every backend."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

import numpy as np

from localrag.errors import DimensionMismatch


def as_float32_values(vector: Iterable[float]) -> List[float]:
    """Round *vector* to float32 precision, returned as Python floats.

    Backends store float32, so every entry is normalised to values both
    backends can hold exactly.
    """

    return np.asarray(list(vector), dtype=np.float32).astype(np.float64).tolist()


@dataclass(slots=True)
class VectorStoreEntry:
    """Persisted form of a chunk: id, owning document, vector and context metadata."""

    id: str
    document_id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.vector = as_float32_values(self.vector)

    @property
    def path(self) -> str:
        return str(self.metadata.get("path", ""))

    @property
    def start(self) -> int:
        return int(self.metadata.get("start", 0))

    @property
    def end(self) -> int:
        return int(self.metadata.get("end", 0))

    @property
    def text(self) -> str:
        return str(self.metadata.get("text", ""))

    @property
    def ordinal(self) -> int:
        return int(self.metadata.get("ordinal", 0))

    @property
    def content_hash(self) -> Optional[str]:
        value = self.metadata.get("content_hash")
        return str(value) if value is not None else None

    @property
    def sentinel(self) -> bool:
        return bool(self.metadata.get("sentinel", False))

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "vector": list(self.vector),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "VectorStoreEntry":
        return cls(
            id=str(record["id"]),
            document_id=str(record["document_id"]),
            vector=[float(value) for value in record["vector"]],
            metadata=dict(record.get("metadata") or {}),
        )


class ScoredEntry(NamedTuple):
    entry: VectorStoreEntry
    score: float


def cosine_similarity(query: np.ndarray, vector: Sequence[float]) -> float:
    """Cosine similarity in float64; zero-length vectors score 0."""

    candidate = np.asarray(vector, dtype=np.float64)
    denominator = float(np.linalg.norm(query)) * float(np.linalg.norm(candidate))
    if denominator == 0.0:
        return 0.0
    score = float(np.dot(query, candidate)) / denominator
    return max(-1.0, min(1.0, score))


def rank_entries(
    query_vector: Sequence[float], entries: Iterable[VectorStoreEntry], k: int
) -> List[ScoredEntry]:
    """Score *entries* against *query_vector* and return the top *k*.

    Ordering: descending score, then ascending path, ordinal and id. Sentinel
    entries are never ranked.
    """

    if k <= 0:
        return []
    query = np.asarray(as_float32_values(query_vector), dtype=np.float64)
    scored = [
        ScoredEntry(entry, cosine_similarity(query, entry.vector))
        for entry in entries
        if not entry.sentinel
    ]
    scored.sort(key=lambda item: (-item.score, item.entry.path, item.entry.ordinal, item.entry.id))
    return scored[:k]


class VectorStore(ABC):
    """Capability interface implemented identically by every backend.

    Mutations are serialised by an in-process writer lock and validated as a
    whole before anything is applied, so readers never see half an entry.
    """

    backend_name: str = "abstract"

    def __init__(self) -> None:
        self._write_lock = threading.RLock()
        self._dimension: Optional[int] = None

    def dimension(self) -> Optional[int]:
        return self._dimension

    def _validate_dimensions(self, entries: Sequence[VectorStoreEntry]) -> Optional[int]:
        """Return the dimension *entries* would pin; raise on any mismatch."""

        expected = self._dimension
        for entry in entries:
            if expected is None:
                expected = len(entry.vector)
            elif len(entry.vector) != expected:
                raise DimensionMismatch(expected, len(entry.vector), where=f"{self.backend_name} store")
        return expected

    @abstractmethod
    def upsert(self, entries: Sequence[VectorStoreEntry]) -> None:
        """Insert or replace entries by id."""

    @abstractmethod
    def delete(self, ids: Sequence[str]) -> None:
        """Remove entries; unknown ids are ignored."""

    @abstractmethod
    def delete_by_document(self, document_id: str) -> None:
        """Remove every entry belonging to *document_id*."""

    @abstractmethod
    def get_by_document(self, document_id: str) -> List[VectorStoreEntry]:
        """Return every entry of *document_id*, ordered by ordinal."""

    @abstractmethod
    def query(self, vector: Sequence[float], k: int) -> List[ScoredEntry]:
        """Return at most *k* entries ranked by cosine similarity."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored entries, sentinels included."""

    def close(self) -> None:
        """Release backend resources."""


__all__ = [
    "ScoredEntry",
    "VectorStore",
    "VectorStoreEntry",
    "as_float32_values",
    "cosine_similarity",
    "rank_entries",
]
