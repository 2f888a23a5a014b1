"""Ollama HTTP providers for embeddings and completions."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import requests

from localrag.errors import ProviderError, Timeout

from .base import CompletionProvider, EmbeddingProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def _post_json(
    session: requests.Session, url: str, payload: Dict[str, Any], timeout: float
) -> Dict[str, Any]:
    try:
        response = session.post(url, json=payload, timeout=timeout)
    except requests.Timeout as exc:
        raise Timeout(f"Ollama request to {url} timed out after {timeout}s", cause=exc) from exc
    except requests.RequestException as exc:
        raise ProviderError(f"Ollama request to {url} failed: {exc}", cause=exc) from exc

    if response.status_code != 200:
        raise ProviderError(f"Ollama returned HTTP {response.status_code}: {response.text[:200]}")
    try:
        body = response.json()
    except ValueError as exc:
        raise ProviderError("Ollama returned a non-JSON body", cause=exc) from exc
    if not isinstance(body, dict):
        raise ProviderError("Ollama returned an unexpected JSON payload")
    return body


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Call ``POST /api/embed`` with a batch of inputs."""

    name = "ollama"

    def __init__(
        self,
        model: str = "nomic-embed-text",
        *,
        base_url: str = DEFAULT_OLLAMA_URL,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def encode(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        body = _post_json(
            self._session,
            f"{self.base_url}/api/embed",
            {"model": self.model, "input": list(texts)},
            self.timeout,
        )
        embeddings = body.get("embeddings")
        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            raise ProviderError("Ollama embed response does not contain one embedding per input")
        try:
            return [[float(value) for value in vector] for vector in embeddings]
        except (TypeError, ValueError) as exc:
            raise ProviderError("Ollama embed response contains non-numeric values", cause=exc) from exc


class OllamaCompletionProvider(CompletionProvider):
    """Call ``POST /api/generate`` once, without streaming."""

    name = "ollama"

    def __init__(
        self,
        model: str = "llama3.2",
        *,
        base_url: str = DEFAULT_OLLAMA_URL,
        timeout: float = 120.0,
        session: requests.Session | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def generate(self, prompt: str) -> str:
        body = _post_json(
            self._session,
            f"{self.base_url}/api/generate",
            {"model": self.model, "prompt": prompt, "stream": False},
            self.timeout,
        )
        answer = body.get("response")
        if not isinstance(answer, str):
            raise ProviderError("Ollama generate response does not contain text")
        LOGGER.debug("Ollama completion returned %s chars", len(answer))
        return answer
