from unittest.mock import Mock

import pytest

from localrag.retriever import ContextFragment, Retriever, deduplicate, fit_budget
from localrag.vectorstore import ScoredEntry, VectorStoreEntry


def _scored(entry_id, document_id, start, end, score, *, text=None, path=None):
    entry = VectorStoreEntry(
        id=entry_id,
        document_id=document_id,
        vector=[1.0, 0.0],
        metadata={
            "path": path or f"/docs/{document_id}.md",
            "start": start,
            "end": end,
            "ordinal": start // 30,
            "text": text if text is not None else "x" * (end - start),
        },
    )
    return ScoredEntry(entry, score)


def _fragment(entry_id, document_id, start, end, score, size=None):
    return ContextFragment(
        id=entry_id,
        document_id=document_id,
        path=f"/docs/{document_id}.md",
        start=start,
        end=end,
        text="x" * (size if size is not None else end - start),
        score=score,
    )


@pytest.fixture
def embedding_client():
    client = Mock()
    client.embed.return_value = [[0.1, 0.2]]
    return client


def test_retrieve_overfetches_and_returns_top_k(embedding_client):
    store = Mock()
    store.count.return_value = 10
    store.query.return_value = [
        _scored("a", "d1", 0, 40, 0.9),
        _scored("b", "d2", 0, 40, 0.8),
        _scored("c", "d3", 0, 40, 0.7),
    ]
    retriever = Retriever(store, embedding_client, overfetch_factor=3)

    fragments = retriever.retrieve("What is the law?", k=2, context_budget=1000)

    embedding_client.embed.assert_called_once_with(["What is the law?"])
    store.query.assert_called_once_with([0.1, 0.2], 6)
    assert [fragment.id for fragment in fragments] == ["a", "b"]
    assert fragments[0].citation() == {"path": "/docs/d1.md", "offset_start": 0, "offset_end": 40}


def test_overlapping_chunks_of_one_document_keep_the_best(embedding_client):
    store = Mock()
    store.count.return_value = 4
    store.query.return_value = [
        _scored("b", "d1", 30, 70, 0.95),
        _scored("a", "d1", 0, 40, 0.9),
        _scored("c", "d1", 70, 110, 0.85),
        _scored("z", "d2", 0, 40, 0.5),
    ]
    retriever = Retriever(store, embedding_client)

    fragments = retriever.retrieve("query", k=5, context_budget=1000)

    assert [fragment.id for fragment in fragments] == ["b", "c", "z"]


def test_budget_is_filled_greedily_by_score():
    fragments = [
        _fragment("big", "d1", 0, 10, 0.9, size=80),
        _fragment("mid", "d2", 0, 10, 0.8, size=50),
        _fragment("small", "d3", 0, 10, 0.7, size=15),
    ]

    assert [fragment.id for fragment in fit_budget(fragments, k=3, budget=100)] == ["big", "small"]
    assert fit_budget(fragments, k=3, budget=10) == []
    assert [fragment.id for fragment in fit_budget(fragments, k=1, budget=1000)] == ["big"]


def test_adjacent_ranges_do_not_overlap():
    kept = deduplicate(
        [
            _fragment("a", "d1", 0, 40, 0.9),
            _fragment("b", "d1", 40, 80, 0.8),
            _fragment("c", "d2", 0, 40, 0.7),
        ]
    )

    assert [fragment.id for fragment in kept] == ["a", "b", "c"]


def test_empty_store_returns_nothing_without_embedding(embedding_client):
    store = Mock()
    store.count.return_value = 0
    retriever = Retriever(store, embedding_client)

    assert retriever.retrieve("anything") == []
    embedding_client.embed.assert_not_called()
    store.query.assert_not_called()


@pytest.mark.parametrize("query, k, budget", [("   ", 3, 100), ("query", 0, 100), ("query", 3, 0)])
def test_degenerate_requests_return_nothing(embedding_client, query, k, budget):
    store = Mock()
    store.count.return_value = 5
    retriever = Retriever(store, embedding_client)

    assert retriever.retrieve(query, k=k, context_budget=budget) == []


def test_zero_candidates_is_not_an_error(embedding_client):
    store = Mock()
    store.count.return_value = 1
    store.query.return_value = []

    assert Retriever(store, embedding_client).retrieve("query") == []
