"""Composition root: one engine is one session over one data directory."""
from __future__ import annotations

import logging
from concurrent.futures import Future
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from localrag.embeddings import EmbeddingClient
from localrag.ingest.chunking import ChunkingConfig
from localrag.ingest.coordinator import IndexCoordinator
from localrag.ingest.extractors import DocumentExtractor
from localrag.ingest.models import Document
from localrag.ingest.pipeline import IngestionPipeline, PassReport
from localrag.ingest.registry import DocumentRegistry
from localrag.providers import build_completion_provider, build_embedding_provider
from localrag.providers.base import CompletionProvider, EmbeddingProvider
from localrag.rag_service import ChatAnswer, ChatOrchestrator, ChatTurn
from localrag.retriever import ContextFragment, Retriever
from localrag.settings import Settings
from localrag.telemetry import emit_app_startup_event
from localrag.vectorstore import ChromaFactory, open_vector_store

LOGGER = logging.getLogger(__name__)


class LocalRagEngine:
    """Wire the store, embedding client, pipeline, retriever and orchestrator.

    The store backend is chosen once, when the engine is built. Closing the
    engine and building a new one starts a new session, which tries the
    preferred backend again.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        embedding_provider: Optional[EmbeddingProvider] = None,
        completion_provider: Optional[CompletionProvider] = None,
        extractor: Optional[DocumentExtractor] = None,
        chroma_factory: Optional[ChromaFactory] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        settings = self.settings
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        chunking = ChunkingConfig(chunk_size=settings.chunk_size, overlap=settings.chunk_overlap)

        self.selection = open_vector_store(settings, chroma_factory=chroma_factory)
        self.store = self.selection.store

        self.embedding_client = EmbeddingClient(
            embedding_provider or build_embedding_provider(settings),
            batch_size=settings.embedding_batch_size,
            max_attempts=settings.embedding_max_attempts,
            backoff_initial=settings.embedding_backoff_initial,
            backoff_max=settings.embedding_backoff_max,
            timeout=settings.embedding_timeout,
            max_concurrency=settings.index_workers,
        )
        stored_dimension = self.store.dimension()
        if stored_dimension is not None:
            self.embedding_client.bind_dimension(stored_dimension)

        self.registry = DocumentRegistry(settings.registry_path(self.selection.backend))
        self.pipeline = IngestionPipeline(
            self.store,
            self.embedding_client,
            self.registry,
            extractor=extractor
            or DocumentExtractor(pdf_backend=settings.pdf_extractor, timeout=settings.extraction_timeout),
            chunking=chunking,
            workers=settings.index_workers,
        )
        self.coordinator = IndexCoordinator(self.pipeline)
        self.retriever = Retriever(
            self.store,
            self.embedding_client,
            top_k=settings.top_k,
            overfetch_factor=settings.overfetch_factor,
            context_budget=settings.context_budget,
        )
        self.orchestrator = ChatOrchestrator(
            self.retriever,
            completion_provider or build_completion_provider(settings),
            timeout=settings.completion_timeout,
            max_workers=settings.completion_workers,
        )
        self._closed = False
        emit_app_startup_event(self.selection.backend, settings.data_dir)

    @property
    def backend(self) -> str:
        return self.selection.backend

    def index_folder(self, folder: Path | str, *, wait: bool = True) -> PassReport | Future[PassReport]:
        """Index *folder*, or attach to the pass already running for it.

        With ``wait=False`` the pass future is returned immediately.
        """

        root = Path(folder).expanduser()
        if not root.is_dir():
            raise FileNotFoundError(f"Folder not found: {root}")
        future = self.coordinator.request_pass(root)
        if not wait:
            return future
        return future.result()

    def documents(self) -> List[Document]:
        return self.registry.all()

    def retrieve(
        self, query: str, k: Optional[int] = None, context_budget: Optional[int] = None
    ) -> List[ContextFragment]:
        return self.retriever.retrieve(query, k, context_budget)

    def answer(self, query: str, history: Sequence[ChatTurn] = ()) -> ChatAnswer:
        return self.orchestrator.answer(query, history)

    def status(self) -> Dict[str, Any]:
        return {
            "backend": self.selection.backend,
            "warning": self.selection.warning,
            "count": self.store.count(),
            "dimension": self.store.dimension(),
            "documents": len(self.registry),
            "embedding_provider": self.embedding_client.provider_name,
            "indexing": self.coordinator.status(),
        }

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.coordinator.shutdown(wait=True)
        self.orchestrator.close()
        self.embedding_client.close()
        self.store.close()
        LOGGER.info("Engine session for %s closed", self.settings.data_dir)


@lru_cache(maxsize=1)
def get_engine() -> LocalRagEngine:
    """Return the process-wide engine, building it from the environment on first use."""

    return LocalRagEngine(Settings.from_env())


def reset_engine_cache() -> None:
    """Close the cached engine so the next :func:`get_engine` starts a new session."""

    if get_engine.cache_info().currsize:
        get_engine().close()
    get_engine.cache_clear()


__all__ = ["LocalRagEngine", "get_engine", "reset_engine_cache"]
