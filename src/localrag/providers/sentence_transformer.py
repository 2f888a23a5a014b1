"""Embedding provider backed by Sentence Transformers."""
from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional, Sequence

from localrag.errors import ProviderError

from .base import EmbeddingProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Run a SentenceTransformer model in-process; the model loads on first use."""

    name = "sentence-transformers"

    def __init__(self, model_name_or_path: str = DEFAULT_MODEL_NAME, *, device: str | None = None) -> None:
        self.model_name = model_name_or_path
        self.device = device
        self._model: Optional[Any] = None
        self._lock = threading.Lock()

    def _load(self) -> Any:
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                try:
                    self._model = SentenceTransformer(self.model_name, device=self.device)
                except Exception as error:  # pragma: no cover - depends on model files
                    raise ProviderError(
                        f"Failed to initialize sentence-transformers model '{self.model_name}'",
                        cause=error,
                    ) from error
                LOGGER.info(
                    "Loaded sentence-transformers model %s (dimension %s)",
                    self.model_name,
                    self._model.get_sentence_embedding_dimension(),
                )
            return self._model

    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        model = self._load()
        try:
            embeddings = model.encode(
                list(texts),
                convert_to_numpy=True,
                show_progress_bar=False,
                normalize_embeddings=False,
            )
        except RuntimeError as error:  # pragma: no cover - depends on torch runtime
            raise ProviderError("sentence-transformers encoding failed", cause=error) from error
        return embeddings.tolist()
