"""Data models used by the ingestion pipeline."""
from __future__ import annotations

import hashlib
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class DocumentStatus(str, Enum):
    """Extraction status persisted on every Document record."""

    PENDING = "pending"
    OK = "ok"
    FAILED = "failed"


class DocumentStage(str, Enum):
    """Position of a document in the per-pass indexing state machine."""

    UNSEEN = "unseen"
    SCANNING = "scanning"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXED = "indexed"
    FAILED = "failed"
    DELETED = "deleted"


_ALLOWED_TRANSITIONS: Dict[DocumentStage, frozenset[DocumentStage]] = {
    DocumentStage.UNSEEN: frozenset({DocumentStage.SCANNING}),
    DocumentStage.SCANNING: frozenset({DocumentStage.EXTRACTING}),
    DocumentStage.EXTRACTING: frozenset({DocumentStage.CHUNKING, DocumentStage.FAILED}),
    DocumentStage.CHUNKING: frozenset({DocumentStage.EMBEDDING}),
    DocumentStage.EMBEDDING: frozenset({DocumentStage.INDEXED, DocumentStage.FAILED}),
    DocumentStage.INDEXED: frozenset({DocumentStage.SCANNING, DocumentStage.DELETED}),
    DocumentStage.FAILED: frozenset({DocumentStage.SCANNING, DocumentStage.DELETED}),
    DocumentStage.DELETED: frozenset(),
}

_SETTLED_STAGES = frozenset({DocumentStage.UNSEEN, DocumentStage.INDEXED, DocumentStage.FAILED})


def document_id_for(path: Path | str) -> str:
    """Stable identifier of the document stored at *path*."""

    return uuid.uuid5(uuid.NAMESPACE_URL, Path(path).as_posix()).hex


def chunk_id_for(document_id: str, ordinal: int) -> str:
    """Chunk identity depends on position only, never on the chunk text."""

    return uuid.uuid5(uuid.NAMESPACE_URL, f"{document_id}:{ordinal}").hex


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class Document:
    """One indexed source file."""

    path: str
    content_hash: str
    mtime: float
    size: int
    status: DocumentStatus = DocumentStatus.PENDING
    stage: DocumentStage = DocumentStage.UNSEEN
    note: Optional[str] = None
    chunk_count: int = 0
    updated_at: float = field(default_factory=time.time)

    @property
    def id(self) -> str:
        return document_id_for(self.path)

    def advance(self, stage: DocumentStage) -> None:
        """Move to *stage*, rejecting transitions the state machine does not allow."""

        if stage not in _ALLOWED_TRANSITIONS[self.stage]:
            raise ValueError(f"Illegal document transition {self.stage.value} -> {stage.value}")
        self.stage = stage
        self.updated_at = time.time()

    def begin(self, content_hash: str, mtime: float, size: int) -> None:
        """Start (re)processing the document.

        The status only goes back to ``pending`` when the content changed; a
        failed document retried with identical content stays ``failed`` until
        the retry settles.
        """

        if content_hash != self.content_hash:
            self.status = DocumentStatus.PENDING
            self.note = None
        self.content_hash = content_hash
        self.mtime = mtime
        self.size = size
        self.advance(DocumentStage.SCANNING)

    def mark_indexed(self, chunk_count: int) -> None:
        self.advance(DocumentStage.INDEXED)
        self.status = DocumentStatus.OK
        self.chunk_count = chunk_count
        self.note = None

    def mark_failed(self, note: str, chunk_count: int = 0) -> None:
        self.advance(DocumentStage.FAILED)
        self.status = DocumentStatus.FAILED
        self.note = note
        self.chunk_count = chunk_count

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        payload["stage"] = self.stage.value
        payload["id"] = self.id
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Document":
        stage = DocumentStage(payload.get("stage", DocumentStage.UNSEEN.value))
        if stage not in _SETTLED_STAGES:
            # The pass that wrote this record was interrupted.
            stage = DocumentStage.UNSEEN
        return cls(
            path=str(payload["path"]),
            content_hash=str(payload["content_hash"]),
            mtime=float(payload["mtime"]),
            size=int(payload["size"]),
            status=DocumentStatus(payload.get("status", DocumentStatus.PENDING.value)),
            stage=stage,
            note=payload.get("note"),
            chunk_count=int(payload.get("chunk_count", 0)),
            updated_at=float(payload.get("updated_at", time.time())),
        )


@dataclass(slots=True)
class Chunk:
    """A bounded, offset-addressable slice of a document's extracted text."""

    id: str
    document_id: str
    ordinal: int
    start: int
    end: int
    text: str
    content_hash: str
    vector: Optional[List[float]] = None

    @property
    def embedded(self) -> bool:
        return self.vector is not None
