"""Folder ingestion: allow-list, extraction, chunking, registry and passes."""
from __future__ import annotations

from .chunking import ChunkingConfig, ChunkSequence, chunk_offsets, chunk_text
from .coordinator import IndexCoordinator
from .extractors import DocumentExtractor, failure_note
from .formats import SUPPORTED_EXTENSIONS, DocumentFormat, detect_format, is_supported
from .models import Chunk, Document, DocumentStage, DocumentStatus
from .pipeline import IndexingSession, IngestionPipeline, PassReport
from .registry import DocumentRegistry

__all__ = [
    "Chunk",
    "ChunkSequence",
    "ChunkingConfig",
    "Document",
    "DocumentExtractor",
    "DocumentFormat",
    "DocumentRegistry",
    "DocumentStage",
    "DocumentStatus",
    "IndexCoordinator",
    "IndexingSession",
    "IngestionPipeline",
    "PassReport",
    "SUPPORTED_EXTENSIONS",
    "chunk_offsets",
    "chunk_text",
    "detect_format",
    "failure_note",
    "is_supported",
]
