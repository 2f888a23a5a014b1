"""Folder ingestion: scan, extract, chunk, embed and keep the store in sync."""
from __future__ import annotations

import dataclasses
import hashlib
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from localrag.embeddings import EmbeddingClient
from localrag.errors import EmbeddingUnavailable, ExtractionFailed, LocalRagError, Timeout, VectorStoreError
from localrag.logging_config import AUDIT_LOGGER_NAME
from localrag.telemetry import emit_ingest_event, emit_pass_event
from localrag.vectorstore.base import VectorStore, VectorStoreEntry

from .chunking import ChunkingConfig, chunk_text
from .extractors import DocumentExtractor, failure_note
from .formats import is_supported
from .models import Chunk, Document, DocumentStage, DocumentStatus
from .registry import DocumentRegistry

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

_HASH_BLOCK_SIZE = 1 << 20


class PassCancelled(LocalRagError):
    """Raised inside a pass whose session was cancelled; never leaves the pipeline."""


@dataclass(slots=True)
class IndexingSession:
    """One folder pass: its root, generation number and cancellation flag."""

    root: Path
    generation: int
    started_at: float = field(default_factory=time.time)
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check(self) -> None:
        if self._cancelled.is_set():
            raise PassCancelled(f"Indexing pass {self.generation} for {self.root} was cancelled")


@dataclass(slots=True)
class PassReport:
    """Outcome of one folder pass."""

    root: str
    generation: int
    scanned: int = 0
    indexed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    deleted: List[str] = field(default_factory=list)
    embedded_chunks: int = 0
    reused_chunks: int = 0
    cancelled: bool = False
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload = dataclasses.asdict(self)
        payload["state"] = "cancelled" if self.cancelled else "completed"
        return payload


@dataclass(slots=True)
class _Outcome:
    path: str
    kind: str
    note: Optional[str] = None
    embedded: int = 0
    reused: int = 0


def file_hash(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for block in iter(lambda: handle.read(_HASH_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def sentinel_id_for(document_id: str) -> str:
    return uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}:sentinel").hex


def entry_for_chunk(chunk: Chunk, path: str) -> VectorStoreEntry:
    if chunk.vector is None:
        raise ValueError(f"Chunk {chunk.id} has not been embedded")
    return VectorStoreEntry(
        id=chunk.id,
        document_id=chunk.document_id,
        vector=chunk.vector,
        metadata={
            "path": path,
            "start": chunk.start,
            "end": chunk.end,
            "ordinal": chunk.ordinal,
            "content_hash": chunk.content_hash,
            "sentinel": False,
            "text": chunk.text,
        },
    )


class IngestionPipeline:
    """Keep a vector store in sync with the supported files under a folder.

    Documents are processed in parallel by a bounded worker pool. All store
    and registry writes for a document happen under ``apply_lock`` after the
    session has been checked for cancellation, so a cancelled pass never
    applies results it computed after the cancel.
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_client: EmbeddingClient,
        registry: DocumentRegistry,
        *,
        extractor: Optional[DocumentExtractor] = None,
        chunking: Optional[ChunkingConfig] = None,
        workers: int = 4,
    ) -> None:
        self.store = store
        self.embedding_client = embedding_client
        self.registry = registry
        self.extractor = extractor or DocumentExtractor()
        self.chunking = chunking or ChunkingConfig()
        self.workers = max(1, workers)
        self.apply_lock = threading.Lock()

    def scan(self, root: Path) -> List[Path]:
        """Supported files under *root*, skipping hidden files and directories."""

        files: List[Path] = []
        for candidate in root.rglob("*"):
            relative = candidate.relative_to(root)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if candidate.is_file() and is_supported(candidate):
                files.append(candidate.resolve())
        # Links to one file resolve to the same path.
        return sorted(set(files))

    def run_pass(self, session: IndexingSession) -> PassReport:
        """Run one full pass for ``session.root``.

        Per-document failures are recorded on the document and never abort
        the pass. :class:`~localrag.errors.DimensionMismatch` aborts it.
        """

        started = time.perf_counter()
        root = session.root
        report = PassReport(root=str(root), generation=session.generation)
        LOGGER.info("Starting indexing pass %s for %s", session.generation, root)

        files = self.scan(root)
        report.scanned = len(files)
        try:
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="localrag-index") as pool:
                futures = [pool.submit(self._process, session, path) for path in files]
                try:
                    for future in as_completed(futures):
                        try:
                            outcome = future.result()
                        except PassCancelled:
                            continue
                        self._record(report, outcome)
                except BaseException:
                    session.cancel()
                    for pending in futures:
                        pending.cancel()
                    raise

            present = {str(path) for path in files}
            try:
                for path in self.registry.paths():
                    if path not in present:
                        self._remove(session, path)
                        report.deleted.append(path)
                with self.apply_lock:
                    session.check()
                    self.registry.root = str(root)
            except PassCancelled:
                report.cancelled = True
                LOGGER.info("Indexing pass %s for %s cancelled", session.generation, root)
        finally:
            self.registry.save()

        report.indexed.sort()
        report.skipped.sort()
        report.updated.sort()
        report.duration_ms = (time.perf_counter() - started) * 1000.0
        emit_pass_event(
            {
                "root": report.root,
                "generation": report.generation,
                "cancelled": report.cancelled,
                "scanned": report.scanned,
                "indexed": len(report.indexed),
                "skipped": len(report.skipped),
                "updated": len(report.updated),
                "failed": len(report.failed),
                "deleted": len(report.deleted),
                "embedded_chunks": report.embedded_chunks,
                "reused_chunks": report.reused_chunks,
            },
            duration_ms=report.duration_ms,
        )
        return report

    @staticmethod
    def _record(report: PassReport, outcome: _Outcome) -> None:
        if outcome.kind == "indexed":
            report.indexed.append(outcome.path)
        elif outcome.kind == "skipped":
            report.skipped.append(outcome.path)
        elif outcome.kind == "updated":
            report.updated.append(outcome.path)
        elif outcome.kind == "failed":
            report.failed[outcome.path] = outcome.note or ""
        report.embedded_chunks += outcome.embedded
        report.reused_chunks += outcome.reused

    def _process(self, session: IndexingSession, path: Path) -> _Outcome:
        session.check()
        key = str(path)
        started = time.perf_counter()
        try:
            stat = path.stat()
            content_hash = file_hash(path)
        except OSError as exc:
            LOGGER.warning("Skipping %s: %s", key, exc)
            return _Outcome(key, "skipped")

        existing = self.registry.get(key)
        try:
            unchanged = existing is not None and self._unchanged(existing, content_hash)
        except VectorStoreError as exc:
            LOGGER.warning("Cannot read stored entries of %s, reindexing it: %s", key, exc)
            unchanged = False
        if existing is not None and unchanged:
            if existing.mtime == stat.st_mtime and existing.size == stat.st_size:
                return _Outcome(key, "skipped")
            document = dataclasses.replace(existing, mtime=stat.st_mtime, size=stat.st_size, updated_at=time.time())
            with self.apply_lock:
                session.check()
                self.registry.put(document)
            return _Outcome(key, "updated")

        if existing is not None:
            document = dataclasses.replace(existing)
        else:
            document = Document(path=key, content_hash=content_hash, mtime=stat.st_mtime, size=stat.st_size)
        document.begin(content_hash, stat.st_mtime, stat.st_size)
        try:
            return self._index(session, path, document, started)
        except VectorStoreError as error:
            return self._fail(session, document, f"vector store write failed: {error}", started, error=error)

    def _unchanged(self, existing: Document, content_hash: str) -> bool:
        """A settled record with the same hash whose entries are all still stored."""

        if existing.status is not DocumentStatus.OK or existing.content_hash != content_hash:
            return False
        # The store may have lost entries the record describes, e.g. after a corrupt file was quarantined.
        return len(self.store.get_by_document(existing.id)) == existing.chunk_count

    def _index(self, session: IndexingSession, path: Path, document: Document, started: float) -> _Outcome:
        key = document.path
        document.advance(DocumentStage.EXTRACTING)
        try:
            text = self.extractor.extract(path)
        except ExtractionFailed as error:
            note = failure_note(path, error)
            return self._fail(session, document, note, started, error=error)

        session.check()
        document.advance(DocumentStage.CHUNKING)
        chunks = list(chunk_text(document.id, text, self.chunking))

        document.advance(DocumentStage.EMBEDDING)
        previous = {entry.id: entry for entry in self.store.get_by_document(document.id) if not entry.sentinel}
        reused = 0
        for chunk in chunks:
            prior = previous.get(chunk.id)
            if prior is not None and prior.content_hash == chunk.content_hash:
                chunk.vector = list(prior.vector)
                reused += 1
        pending = [chunk for chunk in chunks if not chunk.embedded]

        session.check()
        try:
            vectors = self.embedding_client.embed([chunk.text for chunk in pending])
        except (EmbeddingUnavailable, Timeout) as error:
            return self._fail(session, document, f"embedding failed: {error}", started, error=error)
        for chunk, vector in zip(pending, vectors):
            chunk.vector = vector

        entries = [entry_for_chunk(chunk, key) for chunk in chunks]
        with self.apply_lock:
            session.check()
            self.store.delete_by_document(document.id)
            if entries:
                self.store.upsert(entries)
            document.mark_indexed(len(entries))
            self.registry.put(document)

        duration_ms = (time.perf_counter() - started) * 1000.0
        self._audit(session, document, duration_ms, embedded=len(pending))
        return _Outcome(key, "indexed", embedded=len(pending), reused=reused)

    def _fail(
        self,
        session: IndexingSession,
        document: Document,
        note: str,
        started: float,
        *,
        error: BaseException,
    ) -> _Outcome:
        LOGGER.warning("Indexing %s failed: %s", document.path, note)
        sentinel = self._sentinel(document, note)
        with self.apply_lock:
            session.check()
            stored = 0
            try:
                self.store.delete_by_document(document.id)
                if sentinel is not None:
                    self.store.upsert([sentinel])
                    stored = 1
            except VectorStoreError as exc:
                LOGGER.warning("Could not store the failure entry of %s: %s", document.path, exc)
            document.mark_failed(note, chunk_count=stored)
            self.registry.put(document)
        duration_ms = (time.perf_counter() - started) * 1000.0
        self._audit(session, document, duration_ms, embedded=0, error=error)
        return _Outcome(document.path, "failed", note=note)

    def _sentinel_dimension(self) -> Optional[int]:
        dimension = self.store.dimension() or self.embedding_client.dimension
        if dimension is not None:
            return dimension
        try:
            return self.embedding_client.probe_dimension()
        except (EmbeddingUnavailable, Timeout) as exc:
            LOGGER.warning("Cannot size the sentinel entry, embedding provider is unavailable: %s", exc)
            return None

    def _sentinel(self, document: Document, note: str) -> Optional[VectorStoreEntry]:
        """Zero-vector entry that keeps a failed document discoverable without being retrievable."""

        dimension = self._sentinel_dimension()
        if dimension is None:
            return None
        return VectorStoreEntry(
            id=sentinel_id_for(document.id),
            document_id=document.id,
            vector=[0.0] * dimension,
            metadata={
                "path": document.path,
                "start": 0,
                "end": 0,
                "ordinal": 0,
                "content_hash": "",
                "sentinel": True,
                "text": note,
            },
        )

    def _remove(self, session: IndexingSession, path: str) -> None:
        with self.apply_lock:
            session.check()
            document = self.registry.get(path)
            if document is None:
                return
            self.store.delete_by_document(document.id)
            self.registry.remove(path)
        LOGGER.info("Removed %s from the index", path)
        AUDIT_LOGGER.info(
            {"event": "document.deleted", "file": path, "document_id": document.id, "generation": session.generation}
        )
        emit_ingest_event("ingest.delete", path=path, generation=session.generation, status="deleted")

    def _audit(
        self,
        session: IndexingSession,
        document: Document,
        duration_ms: float,
        *,
        embedded: int,
        error: BaseException | None = None,
    ) -> None:
        record = {
            "event": "document.indexed" if error is None else "document.failed",
            "file": document.path,
            "document_id": document.id,
            "generation": session.generation,
            "size_bytes": document.size,
            "chunks": document.chunk_count,
            "embedded": embedded,
            "status": document.status.value,
            "note": document.note,
            "duration_ms": round(duration_ms, 3),
        }
        AUDIT_LOGGER.info(record)
        emit_ingest_event(
            "ingest.document",
            path=document.path,
            generation=session.generation,
            size_bytes=document.size,
            duration_ms=duration_ms,
            chunks=document.chunk_count,
            embedded=embedded,
            status=document.status.value,
            note=document.note,
        )


__all__ = [
    "IndexingSession",
    "IngestionPipeline",
    "PassCancelled",
    "PassReport",
    "entry_for_chunk",
    "file_hash",
    "sentinel_id_for",
]
