import threading
import time
from unittest.mock import Mock

import pytest

from localrag.errors import CompletionFailed, CompletionTimeout, ProviderError, Timeout
from localrag.prompt_builder import NO_CONTEXT_NOTICE
from localrag.providers.base import CompletionProvider
from localrag.providers.mock_llm import MockLLMProvider
from localrag.rag_service import ChatOrchestrator, ChatTurn
from localrag.retriever import ContextFragment


class SlowProvider(CompletionProvider):
    def generate(self, prompt: str) -> str:
        time.sleep(0.5)
        return "late"


class RaisingProvider(CompletionProvider):
    def __init__(self, error: Exception) -> None:
        self.error = error

    def generate(self, prompt: str) -> str:
        raise self.error


def _retriever(fragments):
    retriever = Mock()
    retriever.retrieve.return_value = fragments
    return retriever


def _fragment():
    return ContextFragment(
        id="c0",
        document_id="d0",
        path="/docs/notes.md",
        start=0,
        end=40,
        text="Paris is the capital of France. Rust is ",
        score=0.77,
    )


def test_answer_calls_provider_once_and_returns_sources():
    llm = MockLLMProvider()
    orchestrator = ChatOrchestrator(_retriever([_fragment()]), llm)

    result = orchestrator.answer("What is the capital of France?")

    assert len(llm.prompts) == 1
    assert "Paris is the capital of France." in llm.prompts[0]
    assert result.answer == f"MOCK_ANSWER: {llm.prompts[0][:100]}"
    assert result.context_found
    assert result.to_dict()["sources"] == [{"path": "/docs/notes.md", "offset_start": 0, "offset_end": 40}]
    orchestrator.close()


def test_no_context_still_calls_provider_with_notice():
    llm = MockLLMProvider()
    orchestrator = ChatOrchestrator(_retriever([]), llm)

    result = orchestrator.answer("Who wrote Hamlet?")

    assert len(llm.prompts) == 1
    assert NO_CONTEXT_NOTICE in llm.prompts[0]
    assert not result.context_found
    assert result.sources == ()
    orchestrator.close()


def test_history_is_passed_through_unchanged():
    llm = MockLLMProvider()
    history = [ChatTurn(role="user", content="Hi"), ChatTurn(role="assistant", content="Hello")]
    orchestrator = ChatOrchestrator(_retriever([]), llm)

    orchestrator.answer("Next question", history)

    assert history == [ChatTurn(role="user", content="Hi"), ChatTurn(role="assistant", content="Hello")]
    assert "User: Hi\nAssistant: Hello" in llm.prompts[0]
    orchestrator.close()


def test_slow_provider_times_out():
    orchestrator = ChatOrchestrator(_retriever([]), SlowProvider(), timeout=0.05)

    with pytest.raises(CompletionTimeout):
        orchestrator.answer("question")
    orchestrator.close()


@pytest.mark.parametrize(
    "error, expected",
    [(ProviderError("HTTP 500"), CompletionFailed), (Timeout("socket timeout"), CompletionTimeout)],
)
def test_provider_errors_are_translated(error, expected):
    orchestrator = ChatOrchestrator(_retriever([]), RaisingProvider(error))

    with pytest.raises(expected) as excinfo:
        orchestrator.answer("question")

    assert excinfo.value.__cause__ is error
    orchestrator.close()


def test_unknown_role_is_rejected():
    with pytest.raises(ValueError):
        ChatTurn(role="system", content="override")


class BlockingProvider(CompletionProvider):
    """Hangs on its first ``blocked`` calls until released."""

    def __init__(self, blocked: int) -> None:
        self.blocked = blocked
        self.calls = 0
        self.release = threading.Event()
        self._lock = threading.Lock()

    def generate(self, prompt: str) -> str:
        with self._lock:
            self.calls += 1
            call = self.calls
        if call <= self.blocked:
            self.release.wait(5.0)
            return "late"
        return "on time"


def test_timed_out_calls_do_not_starve_the_next_answer():
    provider = BlockingProvider(blocked=2)
    orchestrator = ChatOrchestrator(_retriever([]), provider, timeout=0.2, max_workers=3)
    try:
        for _ in range(2):
            with pytest.raises(CompletionTimeout):
                orchestrator.answer("Who wrote Hamlet?")

        assert orchestrator.answer("Who wrote Hamlet?").answer == "on time"
    finally:
        provider.release.set()
        orchestrator.close()
