"""Structured lifecycle events for indexing, embedding and retrieval.

Every event is a dict logged on ``localrag.telemetry`` with at least a
``step`` key; :class:`~localrag.logging_config.MinimalJSONFormatter` merges it
into the JSON line.
"""

from __future__ import annotations

import logging
import os
import platform
import traceback
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

LOGGER = logging.getLogger("localrag.telemetry")

_STARTUP_ENV_KEYS: tuple[str, ...] = (
    "LOCALRAG_DATA_DIR",
    "VECTOR_STORE",
    "EMBEDDING_PROVIDER",
    "EMBEDDING_MODEL",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "OLLAMA_URL",
    "PDF_EXTRACTOR",
    "INDEX_WORKERS",
)


def _traceback_text(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: Mapping[str, Any] | None = None,
    **fields: Any,
) -> None:
    """Log one event dict; *fields* become top-level keys next to ``details``."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name, **fields}
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = dict(details)

    exc_info = None
    if isinstance(exc, BaseException):
        event["exc"] = _traceback_text(exc)
        exc_info = (type(exc), exc, exc.__traceback__)
    elif exc is not None:
        event["exc"] = str(exc)

    logger.log(logging.getLevelName(level.upper()), event, exc_info=exc_info)


def emit_app_startup_event(backend: str, data_dir: Path) -> None:
    log_event(
        LOGGER,
        "app.startup",
        details={
            "backend": backend,
            "data_dir": str(data_dir),
            "cwd": str(Path.cwd()),
            "python": platform.python_version(),
            "platform": platform.platform(),
            "env": {key: os.environ[key] for key in _STARTUP_ENV_KEYS if key in os.environ},
        },
    )


def emit_embeddings_event(
    *, provider: str, count: int, duration_ms: float, attempts: int = 1, errors: list[str] | None = None
) -> None:
    errors = errors or []
    log_event(
        LOGGER,
        "embeddings.compute",
        level="warning" if errors else "info",
        duration_ms=duration_ms,
        details={
            "provider": provider,
            "texts": count,
            "attempts": attempts,
            "errors": errors,
            "ms_per_text": round(duration_ms / count, 3) if count else None,
        },
    )


def emit_vectorstore_event(
    step: str,
    *,
    backend: str,
    count: int,
    location: str,
    error: BaseException | None = None,
) -> None:
    log_event(
        LOGGER,
        step,
        level="info" if error is None else "warning",
        details={"backend": backend, "count": count, "location": location},
        exc=error,
    )


def emit_retriever_event(
    *,
    query: str,
    top_k: int,
    candidates: int,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    log_event(
        LOGGER,
        "retriever.search",
        duration_ms=duration_ms,
        details={"query": query[:120], "k": top_k, "candidates": candidates, "results": results},
    )


def emit_prompt_event(*, sources: Iterable[str], context_chars: int, history_turns: int, context_found: bool) -> None:
    log_event(
        LOGGER,
        "prompt.compose",
        details={
            "sources": sorted(set(sources)),
            "context_chars": context_chars,
            "history_turns": history_turns,
            "context_found": context_found,
        },
    )


def emit_ingest_event(
    step: str,
    *,
    path: str,
    generation: int,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    chunks: int | None = None,
    embedded: int | None = None,
    status: str | None = None,
    note: str | None = None,
) -> None:
    log_event(
        LOGGER,
        step,
        level="warning" if status == "failed" else "info",
        duration_ms=duration_ms,
        generation=generation,
        details={
            "file": path,
            "status": status,
            "size_bytes": size_bytes,
            "chunks": chunks,
            "embedded": embedded,
            "note": note,
        },
    )


def emit_pass_event(summary: Mapping[str, Any], *, duration_ms: float) -> None:
    """Log the per-pass counters of an indexing run."""

    log_event(LOGGER, "ingest.pass", duration_ms=duration_ms, details=summary)


def emit_exception(*, module: str, error: BaseException, suggestion: str | None = None) -> None:
    details: dict[str, Any] = {"raised_in": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(LOGGER, "exception", level="error", details=details, exc=error)


__all__ = [
    "emit_app_startup_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_ingest_event",
    "emit_pass_event",
    "emit_prompt_event",
    "emit_retriever_event",
    "emit_vectorstore_event",
    "log_event",
]
