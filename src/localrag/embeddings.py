"""Embedding client: batching, bounded retries and dimension pinning."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import List, Optional, Sequence

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from localrag.errors import (
    DimensionMismatch,
    EmbeddingTimeout,
    EmbeddingUnavailable,
    ProviderError,
    Timeout,
)
from localrag.providers.base import EmbeddingProvider
from localrag.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 32
DEFAULT_MAX_ATTEMPTS = 4
DIMENSION_PROBE_TEXT = "dimension probe"


class EmbeddingClient:
    """Turn texts into fixed-dimension vectors through an :class:`EmbeddingProvider`.

    Requests are split into batches of at most ``batch_size`` texts. A batch
    that fails with :class:`ProviderError` or overruns ``timeout`` is retried
    with exponential backoff (``backoff_initial * 2 ** (attempt - 1)`` seconds,
    capped at ``backoff_max``) up to ``max_attempts`` attempts, after which
    :class:`EmbeddingUnavailable` or :class:`EmbeddingTimeout` is raised.

    The first successful call pins the dimension for the lifetime of the
    client; any later vector of another length raises :class:`DimensionMismatch`.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_initial: float = 0.5,
        backoff_max: float = 8.0,
        timeout: float = 30.0,
        max_concurrency: int = 4,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be a positive integer")
        self.provider = provider
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.timeout = timeout
        self._dimension: Optional[int] = None
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_concurrency), thread_name_prefix="localrag-embed"
        )

    @property
    def provider_name(self) -> str:
        return getattr(self.provider, "name", type(self.provider).__name__)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def bind_dimension(self, dimension: int) -> None:
        """Pin the dimension ahead of the first call, e.g. from a non-empty store."""

        with self._lock:
            if self._dimension is None:
                self._dimension = int(dimension)
            elif self._dimension != dimension:
                raise DimensionMismatch(self._dimension, int(dimension), where="embedding client")

    def probe_dimension(self) -> int:
        """Return the pinned dimension, embedding a probe text if none is known yet."""

        if self._dimension is None:
            self.embed([DIMENSION_PROBE_TEXT])
        if self._dimension is None:
            raise EmbeddingUnavailable("Embedding provider returned no vector for the dimension probe")
        return self._dimension

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed *texts*, returning one vector per text in the same order."""

        texts = list(texts)
        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            vectors.extend(self._embed_batch(texts[start : start + self.batch_size]))
        return vectors

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        started = time.perf_counter()
        errors: List[str] = []

        def _record_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            errors.append(str(error))
            LOGGER.warning(
                "Embedding batch of %s texts failed (attempt %s/%s): %s",
                len(batch),
                retry_state.attempt_number,
                self.max_attempts,
                error,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_initial, max=self.backoff_max),
            retry=retry_if_exception_type((ProviderError, Timeout)),
            before_sleep=_record_retry,
            reraise=True,
        )
        try:
            vectors = retrying(self._call_provider, batch)
        except Timeout as error:
            self._emit(batch, started, errors + [str(error)], attempts=len(errors) + 1)
            raise EmbeddingTimeout(
                f"Embedding provider timed out after {self.max_attempts} attempts", cause=error
            ) from error
        except ProviderError as error:
            self._emit(batch, started, errors + [str(error)], attempts=len(errors) + 1)
            raise EmbeddingUnavailable(
                f"Embedding provider failed after {self.max_attempts} attempts", cause=error
            ) from error

        self._check_dimensions(vectors)
        self._emit(batch, started, errors, attempts=len(errors) + 1)
        return vectors

    def _call_provider(self, batch: List[str]) -> List[List[float]]:
        future = self._executor.submit(self.provider.encode, batch)
        try:
            vectors = future.result(timeout=self.timeout)
        except Timeout:
            raise
        except FutureTimeout as error:
            future.cancel()
            raise Timeout(f"Embedding call exceeded {self.timeout}s", cause=error) from error
        if len(vectors) != len(batch):
            raise ProviderError(
                f"Embedding provider returned {len(vectors)} vectors for {len(batch)} texts"
            )
        return [[float(value) for value in vector] for vector in vectors]

    def _check_dimensions(self, vectors: List[List[float]]) -> None:
        with self._lock:
            for vector in vectors:
                if self._dimension is None:
                    if not vector:
                        raise EmbeddingUnavailable("Embedding provider returned an empty vector")
                    self._dimension = len(vector)
                    LOGGER.info("Embedding dimension fixed at %s", self._dimension)
                elif len(vector) != self._dimension:
                    raise DimensionMismatch(self._dimension, len(vector), where="embedding client")

    def _emit(self, batch: List[str], started: float, errors: List[str], *, attempts: int) -> None:
        emit_embeddings_event(
            provider=self.provider_name,
            count=len(batch),
            duration_ms=(time.perf_counter() - started) * 1000.0,
            attempts=attempts,
            errors=errors,
        )


__all__ = ["EmbeddingClient", "DEFAULT_BATCH_SIZE", "DEFAULT_MAX_ATTEMPTS"]
