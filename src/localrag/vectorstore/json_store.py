"""Brute-force vector store persisted as a single JSON file."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Sequence

from localrag.errors import DimensionMismatch, StoreCorrupt
from localrag.telemetry import emit_vectorstore_event

from .base import ScoredEntry, VectorStore, VectorStoreEntry, rank_entries

LOGGER = logging.getLogger(__name__)

DEFAULT_FILENAME = "vectors.json"


def atomic_write_text(path: Path, payload: str) -> None:
    """Write *payload* to a temp file beside *path*, then rename it into place."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class JsonVectorStore(VectorStore):
    """Keep every entry in memory and persist them as one flat JSON list.

    ``query`` scans all entries. Writers build a new mapping and swap it in
    under the writer lock; readers take the current mapping without locking,
    so each read sees one consistent snapshot.
    """

    backend_name = "json"

    def __init__(self, persist_dir: str | Path, *, filename: str = DEFAULT_FILENAME) -> None:
        super().__init__()
        self.persist_dir = Path(persist_dir)
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.persist_dir / filename
        self._entries: Dict[str, VectorStoreEntry] = {}
        try:
            self._entries = self._load()
        except StoreCorrupt as error:
            quarantine = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time())}")
            LOGGER.warning("%s; moving it to %s and starting with an empty store", error, quarantine)
            emit_vectorstore_event(
                "vectorstore.corrupt", backend=self.backend_name, count=0, location=str(self.path), error=error
            )
            os.replace(self.path, quarantine)
        self._dimension = self._validate_dimensions(list(self._entries.values()))

    def _load(self) -> Dict[str, VectorStoreEntry]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            raise StoreCorrupt(f"Vector store file {self.path} is unreadable", cause=exc) from exc
        if not isinstance(payload, list):
            raise StoreCorrupt(f"Vector store file {self.path} does not contain a list of records")

        entries: Dict[str, VectorStoreEntry] = {}
        for record in payload:
            try:
                entry = VectorStoreEntry.from_record(record)
            except (KeyError, TypeError, ValueError) as exc:
                raise StoreCorrupt(f"Vector store file {self.path} holds a malformed record", cause=exc) from exc
            entries[entry.id] = entry
        try:
            self._validate_dimensions(list(entries.values()))
        except DimensionMismatch as exc:
            raise StoreCorrupt(f"Vector store file {self.path} mixes vector dimensions", cause=exc) from exc
        LOGGER.info("Loaded %s entries from %s", len(entries), self.path)
        return entries

    def _save(self, entries: Dict[str, VectorStoreEntry]) -> None:
        payload = json.dumps([entry.to_record() for entry in entries.values()], ensure_ascii=False)
        atomic_write_text(self.path, payload)

    def _commit(self, entries: Dict[str, VectorStoreEntry]) -> None:
        self._save(entries)
        self._entries = entries

    def upsert(self, entries: Sequence[VectorStoreEntry]) -> None:
        if not entries:
            return
        with self._write_lock:
            dimension = self._validate_dimensions(entries)
            current = self._entries
            if all(current.get(entry.id) == entry for entry in entries):
                return
            updated = dict(current)
            for entry in entries:
                updated[entry.id] = entry
            self._commit(updated)
            self._dimension = dimension

    def delete(self, ids: Sequence[str]) -> None:
        with self._write_lock:
            doomed = [entry_id for entry_id in ids if entry_id in self._entries]
            if not doomed:
                return
            updated = dict(self._entries)
            for entry_id in doomed:
                del updated[entry_id]
            self._commit(updated)

    def delete_by_document(self, document_id: str) -> None:
        with self._write_lock:
            updated = {
                entry_id: entry
                for entry_id, entry in self._entries.items()
                if entry.document_id != document_id
            }
            if len(updated) != len(self._entries):
                self._commit(updated)

    def get_by_document(self, document_id: str) -> List[VectorStoreEntry]:
        snapshot = self._entries
        entries = [entry for entry in snapshot.values() if entry.document_id == document_id]
        return sorted(entries, key=lambda entry: entry.ordinal)

    def query(self, vector: Sequence[float], k: int) -> List[ScoredEntry]:
        snapshot = self._entries
        if k <= 0 or not snapshot:
            return []
        if self._dimension is not None and len(vector) != self._dimension:
            raise DimensionMismatch(self._dimension, len(vector), where="json store query")
        return rank_entries(vector, snapshot.values(), k)

    def count(self) -> int:
        return len(self._entries)


__all__ = ["JsonVectorStore", "atomic_write_text"]
