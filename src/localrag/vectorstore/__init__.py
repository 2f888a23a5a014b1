"""Vector store backends and the once-per-session backend selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from localrag.errors import StoreBackendInitFailed
from localrag.telemetry import emit_vectorstore_event

from .base import ScoredEntry, VectorStore, VectorStoreEntry, cosine_similarity, rank_entries
from .chroma_store import DEFAULT_COLLECTION_NAME, ChromaVectorStore
from .json_store import JsonVectorStore

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from localrag.settings import Settings

LOGGER = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("auto", "chroma", "json")

ChromaFactory = Callable[[Path, str], VectorStore]


@dataclass(slots=True)
class VectorStoreSelection:
    """The backend chosen for one session, with the fallback warning if any."""

    store: VectorStore
    backend: str
    warning: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.warning is not None


def _default_chroma_factory(persist_dir: Path, collection_name: str) -> VectorStore:
    return ChromaVectorStore(persist_dir, collection_name=collection_name)


def open_vector_store(
    settings: "Settings",
    *,
    chroma_factory: Optional[ChromaFactory] = None,
) -> VectorStoreSelection:
    """Pick the store backend for a session.

    ``auto`` and ``chroma`` try Chroma first and fall back to the JSON store on
    any initialisation failure; ``json`` goes straight to the fallback. The
    decision is final for the session that requested it.
    """

    backend = settings.vector_backend
    if backend not in SUPPORTED_BACKENDS:
        raise ValueError(f"Unsupported VECTOR_STORE backend: {backend!r}")

    store_dir = settings.store_dir
    warning: Optional[str] = None
    if backend in ("auto", "chroma"):
        factory = chroma_factory or _default_chroma_factory
        try:
            store = factory(store_dir / "chroma", settings.collection_name)
        except StoreBackendInitFailed as error:
            warning = f"Chroma backend unavailable, using JSON fallback: {error}"
            LOGGER.warning("%s", warning)
            emit_vectorstore_event(
                "vectorstore.fallback",
                backend=JsonVectorStore.backend_name,
                count=0,
                location=str(store_dir),
                error=error,
            )
        else:
            emit_vectorstore_event(
                "vectorstore.open", backend=store.backend_name, count=store.count(), location=str(store_dir)
            )
            return VectorStoreSelection(store=store, backend=store.backend_name)

    store = JsonVectorStore(store_dir / "json")
    emit_vectorstore_event(
        "vectorstore.open", backend=store.backend_name, count=store.count(), location=str(store.path)
    )
    return VectorStoreSelection(store=store, backend=store.backend_name, warning=warning)


__all__ = [
    "ChromaFactory",
    "ChromaVectorStore",
    "DEFAULT_COLLECTION_NAME",
    "JsonVectorStore",
    "ScoredEntry",
    "SUPPORTED_BACKENDS",
    "VectorStore",
    "VectorStoreEntry",
    "VectorStoreSelection",
    "cosine_similarity",
    "open_vector_store",
    "rank_entries",
]
