"""Chat orchestration: retrieve context, build one prompt, ask the model once."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from localrag.errors import CompletionFailed, CompletionTimeout, ProviderError, Timeout
from localrag.prompt_builder import build_prompt
from localrag.providers.base import CompletionProvider
from localrag.retriever import ContextFragment, Retriever
from localrag.telemetry import emit_exception, emit_prompt_event

LOGGER = logging.getLogger(__name__)

_ROLES = ("user", "assistant")


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unsupported chat role: {self.role!r}")


@dataclass(frozen=True, slots=True)
class SourceReference:
    path: str
    offset_start: int
    offset_end: int

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "offset_start": self.offset_start, "offset_end": self.offset_end}


@dataclass(frozen=True, slots=True)
class ChatAnswer:
    answer: str
    sources: Tuple[SourceReference, ...] = ()
    context_found: bool = False
    durations: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [source.to_dict() for source in self.sources],
            "context_found": self.context_found,
        }


class ChatOrchestrator:
    """Answer a query from retrieved context and an immutable history.

    The completion provider is called exactly once per answer. No state is
    kept between calls.
    """

    def __init__(
        self,
        retriever: Retriever,
        completion_provider: CompletionProvider,
        *,
        timeout: float = 120.0,
        max_workers: int = 4,
    ) -> None:
        self.retriever = retriever
        self.completion_provider = completion_provider
        self.timeout = timeout
        # A call that overruns its timeout keeps its worker until the provider returns.
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="localrag-chat")

    def answer(
        self,
        query: str,
        history: Sequence[ChatTurn] = (),
        *,
        k: Optional[int] = None,
        context_budget: Optional[int] = None,
    ) -> ChatAnswer:
        history = tuple(history)

        retrieve_start = time.perf_counter()
        fragments: List[ContextFragment] = self.retriever.retrieve(query, k, context_budget)
        retrieve_duration = time.perf_counter() - retrieve_start

        prompt = build_prompt(query, fragments, history)
        emit_prompt_event(
            sources=[fragment.path for fragment in fragments],
            context_chars=sum(len(fragment.text) for fragment in fragments),
            history_turns=len(history),
            context_found=bool(fragments),
        )

        answer_start = time.perf_counter()
        answer_text = self._generate(prompt)
        answer_duration = time.perf_counter() - answer_start

        return ChatAnswer(
            answer=answer_text,
            sources=tuple(
                SourceReference(path=fragment.path, offset_start=fragment.start, offset_end=fragment.end)
                for fragment in fragments
            ),
            context_found=bool(fragments),
            durations={"retrieve": retrieve_duration, "generate": answer_duration},
        )

    def _generate(self, prompt: str) -> str:
        future = self._executor.submit(self.completion_provider.generate, prompt)
        try:
            return future.result(timeout=self.timeout)
        except Timeout as error:
            emit_exception(module=__name__, error=error)
            raise CompletionTimeout(f"Completion provider timed out: {error}", cause=error) from error
        except FutureTimeout as error:
            future.cancel()
            emit_exception(module=__name__, error=error, suggestion="Raise LLM_TIMEOUT or use a smaller model")
            raise CompletionTimeout(f"Completion exceeded {self.timeout}s", cause=error) from error
        except ProviderError as error:
            emit_exception(module=__name__, error=error, suggestion="Check that the completion provider is running")
            raise CompletionFailed(f"Completion provider failed: {error}", cause=error) from error

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["ChatAnswer", "ChatOrchestrator", "ChatTurn", "SourceReference"]
