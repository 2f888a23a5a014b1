"""One indexing pass per folder root at a time, with cancellation on root change."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .pipeline import IndexingSession, IngestionPipeline, PassReport

LOGGER = logging.getLogger(__name__)


class IndexCoordinator:
    """Own the current :class:`IndexingSession` and schedule passes.

    A request for the root that is already being indexed attaches to the
    in-flight pass. A request for a different root cancels the running pass;
    its unapplied results are discarded and a new pass starts.
    """

    def __init__(self, pipeline: IngestionPipeline) -> None:
        self.pipeline = pipeline
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="localrag-pass")
        self._lock = threading.Lock()
        self._generation = 0
        self._current: Optional[Tuple[IndexingSession, "Future[PassReport]"]] = None
        self._last_report: Optional[PassReport] = None
        self._last_error: Optional[str] = None

    def request_pass(self, root: Path | str) -> "Future[PassReport]":
        root = Path(root).expanduser().resolve()
        with self._lock:
            if self._current is not None:
                session, future = self._current
                if not future.done():
                    if session.root == root:
                        LOGGER.info("Attaching to in-flight indexing pass %s for %s", session.generation, root)
                        return future
                    LOGGER.info(
                        "Cancelling indexing pass %s for %s; folder changed to %s",
                        session.generation,
                        session.root,
                        root,
                    )
                    session.cancel()
            self._generation += 1
            session = IndexingSession(root=root, generation=self._generation)
            future = self._executor.submit(self._run, session)
            self._current = (session, future)
            return future

    def index_folder(self, root: Path | str, *, timeout: Optional[float] = None) -> PassReport:
        """Run (or attach to) a pass for *root* and wait for its report."""

        return self.request_pass(root).result(timeout=timeout)

    def _run(self, session: IndexingSession) -> PassReport:
        try:
            report = self.pipeline.run_pass(session)
        except Exception as exc:
            LOGGER.error("Indexing pass %s for %s failed: %s", session.generation, session.root, exc)
            with self._lock:
                self._last_error = str(exc)
            raise
        with self._lock:
            if not report.cancelled:
                self._last_report = report
                self._last_error = None
        return report

    def status(self) -> Dict[str, Any]:
        with self._lock:
            current = self._current
            last_report = self._last_report
            last_error = self._last_error
        state = "idle"
        root = None
        generation = None
        if current is not None:
            session, future = current
            root = str(session.root)
            generation = session.generation
            if not future.done():
                state = "cancelling" if session.cancelled else "running"
            elif future.cancelled() or session.cancelled:
                state = "cancelled"
            elif future.exception() is not None:
                state = "failed"
            else:
                state = "completed"
        return {
            "state": state,
            "root": root,
            "generation": generation,
            "last_report": last_report.to_dict() if last_report is not None else None,
            "last_error": last_error,
        }

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            if self._current is not None:
                self._current[0].cancel()
        self._executor.shutdown(wait=wait, cancel_futures=True)


__all__ = ["IndexCoordinator"]
