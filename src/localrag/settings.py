"""Runtime configuration read from environment variables."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

LOGGER = logging.getLogger(__name__)

DEFAULT_DATA_DIR = ".localrag-data"


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(slots=True)
class Settings:
    """All tunables of one engine session."""

    data_dir: Path = field(default_factory=lambda: Path(DEFAULT_DATA_DIR))
    vector_backend: str = "auto"
    collection_name: str = "localrag_chunks"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    embedding_provider: str = "ollama"
    embedding_model: str = "nomic-embed-text"
    embedding_batch_size: int = 32
    embedding_max_attempts: int = 4
    embedding_backoff_initial: float = 0.5
    embedding_backoff_max: float = 8.0
    embedding_timeout: float = 30.0
    completion_provider: str = "ollama"
    completion_model: str = "llama3.2"
    completion_timeout: float = 120.0
    completion_workers: int = 4
    ollama_url: str = "http://localhost:11434"
    index_workers: int = 4
    top_k: int = 3
    overfetch_factor: int = 3
    context_budget: int = 6000
    pdf_extractor: str = "pdftotext"
    extraction_timeout: float = 60.0
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(_str_from_env("LOCALRAG_DATA_DIR", DEFAULT_DATA_DIR)),
            vector_backend=_str_from_env("VECTOR_STORE", "auto").lower(),
            collection_name=_str_from_env("CHROMA_COLLECTION", "localrag_chunks"),
            chunk_size=_int_from_env("CHUNK_SIZE", 1000),
            chunk_overlap=_int_from_env("CHUNK_OVERLAP", 200),
            embedding_provider=_str_from_env("EMBEDDING_PROVIDER", "ollama").lower(),
            embedding_model=_str_from_env("EMBEDDING_MODEL", "nomic-embed-text"),
            embedding_batch_size=_int_from_env("EMBEDDING_BATCH_SIZE", 32),
            embedding_max_attempts=_int_from_env("EMBEDDING_MAX_ATTEMPTS", 4),
            embedding_backoff_initial=_float_from_env("EMBEDDING_BACKOFF_INITIAL", 0.5),
            embedding_backoff_max=_float_from_env("EMBEDDING_BACKOFF_MAX", 8.0),
            embedding_timeout=_float_from_env("EMBEDDING_TIMEOUT", 30.0),
            completion_provider=_str_from_env("LLM_PROVIDER", "ollama").lower(),
            completion_model=_str_from_env("LLM_MODEL", "llama3.2"),
            completion_timeout=_float_from_env("LLM_TIMEOUT", 120.0),
            completion_workers=_int_from_env("LLM_WORKERS", 4),
            ollama_url=_str_from_env("OLLAMA_URL", "http://localhost:11434"),
            index_workers=_int_from_env("INDEX_WORKERS", 4),
            top_k=_int_from_env("RETRIEVAL_TOP_K", 3),
            overfetch_factor=_int_from_env("RETRIEVAL_OVERFETCH", 3),
            context_budget=_int_from_env("CONTEXT_BUDGET_CHARS", 6000),
            pdf_extractor=_str_from_env("PDF_EXTRACTOR", "pdftotext").lower(),
            extraction_timeout=_float_from_env("EXTRACTION_TIMEOUT", 60.0),
            log_level=_str_from_env("LOG_LEVEL", "INFO").upper(),
            log_format=_str_from_env("LOG_FORMAT", "json").lower(),
        )

    @property
    def store_dir(self) -> Path:
        return self.data_dir / "store"

    def registry_path(self, backend: str) -> Path:
        """Document records live beside the store they describe."""
        return self.store_dir / backend / "documents.json"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"


__all__ = ["Settings", "DEFAULT_DATA_DIR"]
