"""Exception taxonomy shared by ingestion, retrieval and the vector store."""
from __future__ import annotations


class LocalRagError(RuntimeError):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ConfigurationError(LocalRagError):
    """Raised when the session configuration cannot be honoured."""


class DimensionMismatch(ConfigurationError):
    """Raised when a vector's dimension differs from the one fixed for the session."""

    def __init__(self, expected: int, actual: int, *, where: str = "vector store") -> None:
        super().__init__(
            f"Embedding dimension mismatch in {where}: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class ExtractionFailed(LocalRagError):
    """Raised when text cannot be extracted from a source file."""

    reason = "extraction_failed"

    def __init__(self, path: str, detail: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"{path}: {detail}", cause=cause)
        self.path = path
        self.detail = detail


class UnsupportedFormat(ExtractionFailed):
    reason = "unsupported_format"


class ExtractionToolMissing(ExtractionFailed):
    reason = "tool_missing"


class CorruptFile(ExtractionFailed):
    reason = "corrupt_file"


class ProviderError(LocalRagError):
    """Raised when an external embedding or completion provider returns an error."""


class Timeout(LocalRagError, TimeoutError):
    """Raised when an external call does not finish within its deadline."""


class EmbeddingTimeout(Timeout):
    """Embedding calls kept timing out after all retry attempts."""


class CompletionTimeout(Timeout):
    """The completion provider did not answer in time."""


class EmbeddingUnavailable(LocalRagError):
    """The embedding provider kept failing after all retry attempts."""


class CompletionFailed(LocalRagError):
    """The completion provider returned an error."""


class VectorStoreError(LocalRagError):
    """Base class for vector store failures."""


class StoreBackendInitFailed(VectorStoreError):
    """Raised when a vector store backend cannot be initialised."""


class StoreCorrupt(VectorStoreError):
    """Raised when a persisted store file cannot be read back."""


__all__ = [
    "CompletionFailed",
    "CompletionTimeout",
    "ConfigurationError",
    "CorruptFile",
    "DimensionMismatch",
    "EmbeddingTimeout",
    "EmbeddingUnavailable",
    "ExtractionFailed",
    "ExtractionToolMissing",
    "LocalRagError",
    "ProviderError",
    "StoreBackendInitFailed",
    "StoreCorrupt",
    "Timeout",
    "UnsupportedFormat",
    "VectorStoreError",
]
