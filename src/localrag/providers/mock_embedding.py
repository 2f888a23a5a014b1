"""Deterministic lexical embedding provider for tests and offline development."""
from __future__ import annotations

import hashlib
import math
import re
from typing import List, Sequence

from .base import EmbeddingProvider

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class MockEmbeddingProvider(EmbeddingProvider):
    """Hash each word into one of ``dimension`` buckets.

    Texts sharing words get a higher cosine similarity, which is enough to
    exercise ranking without a real model.
    """

    name = "hash"

    def __init__(self, dimension: int = 256) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self._embed(text) for text in texts]

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self.dimension] += 1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]
