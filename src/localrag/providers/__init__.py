"""Embedding and completion providers behind a request/response boundary."""
from __future__ import annotations

from typing import TYPE_CHECKING

from .base import CompletionProvider, EmbeddingProvider
from .mock_embedding import MockEmbeddingProvider
from .mock_llm import MockLLMProvider
from .ollama import OllamaCompletionProvider, OllamaEmbeddingProvider
from .sentence_transformer import SentenceTransformerEmbeddingProvider

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from localrag.settings import Settings


def build_embedding_provider(settings: "Settings") -> EmbeddingProvider:
    """Instantiate the embedding provider named in *settings*."""

    name = settings.embedding_provider
    if name == "ollama":
        return OllamaEmbeddingProvider(
            settings.embedding_model,
            base_url=settings.ollama_url,
            timeout=settings.embedding_timeout,
        )
    if name == "sentence-transformers":
        return SentenceTransformerEmbeddingProvider(settings.embedding_model)
    if name == "hash":
        return MockEmbeddingProvider()
    raise ValueError(f"Unsupported EMBEDDING_PROVIDER: {name!r}")


def build_completion_provider(settings: "Settings") -> CompletionProvider:
    """Instantiate the completion provider named in *settings*."""

    name = settings.completion_provider
    if name == "ollama":
        return OllamaCompletionProvider(
            settings.completion_model,
            base_url=settings.ollama_url,
            timeout=settings.completion_timeout,
        )
    if name == "mock":
        return MockLLMProvider()
    raise ValueError(f"Unsupported LLM_PROVIDER: {name!r}")


__all__ = [
    "CompletionProvider",
    "EmbeddingProvider",
    "MockEmbeddingProvider",
    "MockLLMProvider",
    "OllamaCompletionProvider",
    "OllamaEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "build_completion_provider",
    "build_embedding_provider",
]
