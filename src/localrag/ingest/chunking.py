"""Fixed-window chunking of extracted text into overlapping fragments."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Tuple

from .models import Chunk, chunk_id_for, text_hash

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChunkingConfig:
    chunk_size: int = 1000
    overlap: int = 200

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer")
        if self.overlap < 0:
            raise ValueError("overlap must be a non-negative integer")
        if self.overlap >= self.chunk_size:
            raise ValueError("overlap must be smaller than chunk_size")

    @property
    def step(self) -> int:
        return self.chunk_size - self.overlap


def chunk_offsets(text_length: int, config: ChunkingConfig) -> Iterator[Tuple[int, int]]:
    """Yield ``[start, end)`` windows covering ``text_length`` characters.

    Each window starts ``config.step`` characters after the previous one; the
    last window is clipped to the end of the text and is never dropped.
    """

    start = 0
    while start < text_length:
        end = min(start + config.chunk_size, text_length)
        yield start, end
        if end >= text_length:
            return
        start += config.step


class ChunkSequence:
    """Lazy, restartable sequence of the chunks of one document.

    Iterating twice produces the same chunks with the same offsets and ids.
    """

    def __init__(self, document_id: str, text: str, config: ChunkingConfig) -> None:
        self.document_id = document_id
        self.text = text
        self.config = config

    def __iter__(self) -> Iterator[Chunk]:
        for ordinal, (start, end) in enumerate(chunk_offsets(len(self.text), self.config)):
            piece = self.text[start:end]
            yield Chunk(
                id=chunk_id_for(self.document_id, ordinal),
                document_id=self.document_id,
                ordinal=ordinal,
                start=start,
                end=end,
                text=piece,
                content_hash=text_hash(piece),
            )

    def __len__(self) -> int:
        length = len(self.text)
        if length == 0:
            return 0
        if length <= self.config.chunk_size:
            return 1
        # ceil((length - chunk_size) / step) windows after the first one
        return 1 + -(-(length - self.config.chunk_size) // self.config.step)


def chunk_text(document_id: str, text: str, config: ChunkingConfig | None = None) -> ChunkSequence:
    """Return the chunk sequence of *text*; empty text yields no chunks."""

    sequence = ChunkSequence(document_id, text, config or ChunkingConfig())
    LOGGER.debug("Chunking document %s: %s chars into %s chunks", document_id, len(text), len(sequence))
    return sequence


__all__ = ["ChunkSequence", "ChunkingConfig", "chunk_offsets", "chunk_text"]
