"""Shared fixtures: an isolated data directory and deterministic providers."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Callable, Iterator, List

import pytest

# Importing ``localrag.main`` configures file logging under the data directory.
os.environ.setdefault("LOCALRAG_DATA_DIR", tempfile.mkdtemp(prefix="localrag-tests-"))

from localrag.engine import LocalRagEngine  # noqa: E402
from localrag.providers.mock_embedding import MockEmbeddingProvider  # noqa: E402
from localrag.providers.mock_llm import MockLLMProvider  # noqa: E402
from localrag.settings import Settings  # noqa: E402

NOTES_TEXT = "Paris is the capital of France. Rust is a systems language."


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        vector_backend="json",
        chunk_size=40,
        chunk_overlap=10,
        embedding_provider="hash",
        embedding_max_attempts=2,
        embedding_backoff_initial=0.0,
        embedding_backoff_max=0.0,
        embedding_timeout=5.0,
        completion_provider="mock",
        completion_timeout=5.0,
        index_workers=2,
        top_k=1,
    )


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def llm_provider() -> MockLLMProvider:
    return MockLLMProvider()


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "docs"
    folder.mkdir()
    (folder / "notes.md").write_text(NOTES_TEXT, encoding="utf-8")
    return folder


@pytest.fixture
def make_engine(
    settings: Settings,
    embedding_provider: MockEmbeddingProvider,
    llm_provider: MockLLMProvider,
) -> Iterator[Callable[..., LocalRagEngine]]:
    engines: List[LocalRagEngine] = []

    def _factory(**overrides) -> LocalRagEngine:
        overrides.setdefault("embedding_provider", embedding_provider)
        overrides.setdefault("completion_provider", llm_provider)
        engine = LocalRagEngine(overrides.pop("settings", settings), **overrides)
        engines.append(engine)
        return engine

    yield _factory
    for engine in engines:
        engine.close()
