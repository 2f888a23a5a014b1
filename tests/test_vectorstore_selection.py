import logging

import pytest

from localrag.errors import StoreBackendInitFailed
from localrag.vectorstore import JsonVectorStore, open_vector_store


def _failing_factory(calls):
    def factory(persist_dir, collection_name):
        calls.append((persist_dir, collection_name))
        raise StoreBackendInitFailed("chroma is unavailable in this environment")

    return factory


def test_json_backend_is_used_directly(settings):
    calls = []
    selection = open_vector_store(settings, chroma_factory=_failing_factory(calls))

    assert selection.backend == "json"
    assert isinstance(selection.store, JsonVectorStore)
    assert selection.warning is None
    assert calls == []


def test_failed_chroma_init_falls_back_with_one_warning(settings, caplog):
    settings.vector_backend = "auto"
    calls = []

    with caplog.at_level(logging.WARNING):
        selection = open_vector_store(settings, chroma_factory=_failing_factory(calls))

    assert selection.backend == "json"
    assert selection.degraded
    assert "chroma is unavailable" in selection.warning
    assert len(calls) == 1
    fallback_messages = [record for record in caplog.records if "using JSON fallback" in record.getMessage()]
    assert len(fallback_messages) == 1


def test_unknown_backend_is_rejected(settings):
    settings.vector_backend = "faiss"

    with pytest.raises(ValueError):
        open_vector_store(settings)


def test_session_keeps_fallback_and_restart_retries_chroma(settings, make_engine, docs_dir):
    chromadb = pytest.importorskip("chromadb")
    from localrag.vectorstore import ChromaVectorStore

    settings.vector_backend = "auto"
    attempts = []

    def flaky_factory(persist_dir, collection_name):
        attempts.append(persist_dir)
        if len(attempts) == 1:
            raise StoreBackendInitFailed("simulated init failure")
        client = chromadb.PersistentClient(path=str(persist_dir))
        return ChromaVectorStore(persist_dir, collection_name=collection_name, client=client)

    first = make_engine(chroma_factory=flaky_factory)
    assert first.backend == "json"
    report = first.index_folder(docs_dir)
    assert report.indexed
    assert first.retrieve("capital of France")[0].path.endswith("notes.md")
    assert len(attempts) == 1
    assert first.status()["warning"]
    first.close()

    second = make_engine(chroma_factory=flaky_factory)

    assert second.backend == "chroma"
    assert second.status()["warning"] is None
    assert len(attempts) == 2
