"""Chroma-backed vector store."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from localrag.errors import DimensionMismatch, StoreBackendInitFailed, VectorStoreError

from .base import ScoredEntry, VectorStore, VectorStoreEntry, rank_entries

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from chromadb.api import ClientAPI
    from chromadb.api.models.Collection import Collection

LOGGER = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "localrag_chunks"
DEFAULT_DISTANCE_METRIC = "cosine"
# Below this many entries a query scores every stored vector exactly.
EXACT_SCAN_LIMIT = 2048
OVERFETCH_FACTOR = 4
OVERFETCH_MIN = 32

_ENTRY_INCLUDE = ["embeddings", "metadatas", "documents"]


def _first(result: Dict[str, Any], key: str) -> List[Any]:
    """Return the first row of a nested query result column."""

    rows = result.get(key)
    if rows is None or len(rows) == 0:
        return []
    return list(rows[0]) if rows[0] is not None else []


def _column(result: Dict[str, Any], key: str) -> List[Any]:
    values = result.get(key)
    if values is None:
        return []
    return list(values)


class ChromaVectorStore(VectorStore):
    """Store entries in a persistent Chroma collection using cosine space.

    Chroma answers candidate lookups from its HNSW index; candidates are then
    re-scored with the shared exact ranking so results match the JSON store.

    Chroma does not isolate a reader from a batch that is being applied, so
    reads take the same lock as writes and always see whole batches.
    """

    backend_name = "chroma"

    def __init__(
        self,
        persist_dir: str | Path,
        *,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        client: Optional["ClientAPI"] = None,
    ) -> None:
        super().__init__()
        self.persist_dir = Path(persist_dir)
        self.collection_name = collection_name
        try:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            if client is None:
                import chromadb

                client = chromadb.PersistentClient(path=str(self.persist_dir))
            self._client = client
            self._collection: "Collection" = client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": DEFAULT_DISTANCE_METRIC},
            )
            self._dimension = self._peek_dimension()
        except Exception as exc:
            raise StoreBackendInitFailed(
                f"Failed to initialise Chroma collection '{collection_name}' in {self.persist_dir}",
                cause=exc,
            ) from exc

    def _peek_dimension(self) -> Optional[int]:
        sample = self._collection.get(limit=1, include=["embeddings"])
        embeddings = _column(sample, "embeddings")
        if not embeddings:
            return None
        return len(embeddings[0])

    @staticmethod
    def _to_metadata(entry: VectorStoreEntry) -> Dict[str, Any]:
        metadata = {
            key: value
            for key, value in entry.metadata.items()
            if key != "text" and value is not None
        }
        metadata["document_id"] = entry.document_id
        metadata["sentinel"] = entry.sentinel
        return metadata

    @staticmethod
    def _stored_vector(entry: VectorStoreEntry) -> List[float]:
        # HNSW cannot normalise a zero vector; sentinels get a unit stand-in.
        if entry.sentinel and not any(entry.vector):
            vector = [0.0] * len(entry.vector)
            vector[0] = 1.0
            return vector
        return list(entry.vector)

    @staticmethod
    def _from_row(entry_id: str, vector: Any, metadata: Optional[Dict[str, Any]], text: Optional[str]) -> VectorStoreEntry:
        stored = dict(metadata or {})
        document_id = str(stored.pop("document_id", ""))
        stored["text"] = text or ""
        values = [float(value) for value in vector]
        if stored.get("sentinel"):
            values = [0.0] * len(values)
        return VectorStoreEntry(id=str(entry_id), document_id=document_id, vector=values, metadata=stored)

    def _entries_from_get(self, result: Dict[str, Any]) -> List[VectorStoreEntry]:
        ids = _column(result, "ids")
        embeddings = _column(result, "embeddings")
        metadatas = _column(result, "metadatas")
        documents = _column(result, "documents")
        return [
            self._from_row(entry_id, vector, metadata, text)
            for entry_id, vector, metadata, text in zip(ids, embeddings, metadatas, documents)
        ]

    def upsert(self, entries: Sequence[VectorStoreEntry]) -> None:
        if not entries:
            return
        with self._write_lock:
            dimension = self._validate_dimensions(entries)
            try:
                self._collection.upsert(
                    ids=[entry.id for entry in entries],
                    embeddings=[self._stored_vector(entry) for entry in entries],
                    documents=[entry.text for entry in entries],
                    metadatas=[self._to_metadata(entry) for entry in entries],
                )
            except Exception as exc:
                raise VectorStoreError("Failed to upsert entries into Chroma", cause=exc) from exc
            self._dimension = dimension

    def delete(self, ids: Sequence[str]) -> None:
        ids = list(ids)
        if not ids:
            return
        with self._write_lock:
            try:
                self._collection.delete(ids=ids)
            except Exception as exc:
                raise VectorStoreError(f"Failed to delete {len(ids)} entries from Chroma", cause=exc) from exc

    def delete_by_document(self, document_id: str) -> None:
        with self._write_lock:
            try:
                self._collection.delete(where={"document_id": document_id})
            except Exception as exc:
                raise VectorStoreError(
                    f"Failed to delete the entries of document {document_id} from Chroma", cause=exc
                ) from exc

    def get_by_document(self, document_id: str) -> List[VectorStoreEntry]:
        with self._write_lock:
            try:
                result = self._collection.get(where={"document_id": document_id}, include=_ENTRY_INCLUDE)
            except Exception as exc:
                raise VectorStoreError(f"Failed to read document {document_id} from Chroma", cause=exc) from exc
        return sorted(self._entries_from_get(result), key=lambda entry: entry.ordinal)

    def query(self, vector: Sequence[float], k: int) -> List[ScoredEntry]:
        if k <= 0:
            return []
        with self._write_lock:
            total = self._collection.count()
            if total == 0:
                return []
            if self._dimension is not None and len(vector) != self._dimension:
                raise DimensionMismatch(self._dimension, len(vector), where="chroma store query")
            try:
                candidates = self._candidates(vector, k, total)
            except Exception as exc:
                raise VectorStoreError("Chroma query failed", cause=exc) from exc
        return rank_entries(vector, candidates, k)

    def _candidates(self, vector: Sequence[float], k: int, total: int) -> List[VectorStoreEntry]:
        if total <= EXACT_SCAN_LIMIT:
            result = self._collection.get(where={"sentinel": False}, include=_ENTRY_INCLUDE)
            return self._entries_from_get(result)

        n_results = min(total, max(k * OVERFETCH_FACTOR, k + OVERFETCH_MIN))
        result = self._collection.query(
            query_embeddings=[[float(value) for value in vector]],
            n_results=n_results,
            where={"sentinel": False},
            include=_ENTRY_INCLUDE,
        )
        return [
            self._from_row(entry_id, embedding, metadata, text)
            for entry_id, embedding, metadata, text in zip(
                _first(result, "ids"),
                _first(result, "embeddings"),
                _first(result, "metadatas"),
                _first(result, "documents"),
            )
        ]

    def count(self) -> int:
        with self._write_lock:
            return int(self._collection.count())

    def close(self) -> None:
        LOGGER.debug("Releasing Chroma collection %s", self.collection_name)
        self._collection = None  # type: ignore[assignment]
        self._client = None


__all__ = ["ChromaVectorStore", "DEFAULT_COLLECTION_NAME", "EXACT_SCAN_LIMIT"]
