"""Turn a query into a ranked, deduplicated, budget-limited context."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from localrag.embeddings import EmbeddingClient
from localrag.telemetry import emit_retriever_event
from localrag.vectorstore.base import ScoredEntry, VectorStore

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
DEFAULT_OVERFETCH_FACTOR = 3
DEFAULT_CONTEXT_BUDGET = 6000


@dataclass(frozen=True, slots=True)
class ContextFragment:
    """A retrieved chunk with everything needed to cite it."""

    id: str
    document_id: str
    path: str
    start: int
    end: int
    text: str
    score: float

    def overlaps(self, other: "ContextFragment") -> bool:
        return (
            self.document_id == other.document_id
            and self.start < other.end
            and other.start < self.end
        )

    def citation(self) -> Dict[str, object]:
        return {"path": self.path, "offset_start": self.start, "offset_end": self.end}


def _fragment(scored: ScoredEntry) -> ContextFragment:
    entry = scored.entry
    return ContextFragment(
        id=entry.id,
        document_id=entry.document_id,
        path=entry.path,
        start=entry.start,
        end=entry.end,
        text=entry.text,
        score=scored.score,
    )


def deduplicate(fragments: List[ContextFragment]) -> List[ContextFragment]:
    """Drop fragments whose range overlaps a higher-scoring one of the same document.

    *fragments* must already be ordered best first.
    """

    kept: List[ContextFragment] = []
    for fragment in fragments:
        if any(fragment.overlaps(existing) for existing in kept):
            continue
        kept.append(fragment)
    return kept


def fit_budget(fragments: List[ContextFragment], k: int, budget: int) -> List[ContextFragment]:
    """Greedily take fragments by score while they fit in *budget* characters."""

    selected: List[ContextFragment] = []
    used = 0
    for fragment in fragments:
        if len(selected) >= k:
            break
        size = len(fragment.text)
        if used + size > budget:
            continue
        selected.append(fragment)
        used += size
    return selected


class Retriever:
    """Embed a query, over-fetch candidates and assemble the context."""

    def __init__(
        self,
        store: VectorStore,
        embedding_client: EmbeddingClient,
        *,
        top_k: int = DEFAULT_TOP_K,
        overfetch_factor: int = DEFAULT_OVERFETCH_FACTOR,
        context_budget: int = DEFAULT_CONTEXT_BUDGET,
    ) -> None:
        self.store = store
        self.embedding_client = embedding_client
        self.top_k = top_k
        self.overfetch_factor = max(2, overfetch_factor)
        self.context_budget = context_budget

    def retrieve(
        self,
        query: str,
        k: Optional[int] = None,
        context_budget: Optional[int] = None,
    ) -> List[ContextFragment]:
        k = self.top_k if k is None else k
        budget = self.context_budget if context_budget is None else context_budget
        if not query.strip() or k <= 0 or budget <= 0:
            return []
        if self.store.count() == 0:
            return []

        started = time.perf_counter()
        vector = self.embedding_client.embed([query])[0]
        candidates = self.store.query(vector, k * self.overfetch_factor)
        fragments = fit_budget(deduplicate([_fragment(item) for item in candidates]), k, budget)

        emit_retriever_event(
            query=query,
            top_k=k,
            candidates=len(candidates),
            results=[
                {"id": fragment.id, "path": fragment.path, "score": round(fragment.score, 6)}
                for fragment in fragments
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return fragments


__all__ = ["ContextFragment", "Retriever", "deduplicate", "fit_budget"]
