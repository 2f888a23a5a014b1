"""Base provider interfaces for embeddings and language models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

__all__ = ["CompletionProvider", "EmbeddingProvider"]


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers.

    Implementations raise :class:`~localrag.errors.ProviderError` for failures
    worth retrying and :class:`~localrag.errors.Timeout` when a call overruns.
    """

    name: str = "embedding"

    @abstractmethod
    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        """Encode the provided texts into embeddings, one per text, same order."""


class CompletionProvider(ABC):
    """Abstract interface for large language model providers."""

    name: str = "completion"

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """Generate a completion for a fully assembled prompt."""
