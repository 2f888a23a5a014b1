"""Folder-scan allow-list and format detection."""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional


class DocumentFormat(str, Enum):
    TEXT = "text"
    PDF = "pdf"
    DOCX = "docx"


TEXT_EXTENSIONS = frozenset(
    {
        ".txt",
        ".md",
        ".markdown",
        ".rst",
        ".rs",
        ".js",
        ".ts",
        ".py",
        ".java",
        ".c",
        ".h",
        ".cpp",
        ".go",
        ".json",
        ".yaml",
        ".yml",
        ".toml",
        ".html",
        ".css",
        ".sh",
    }
)

SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | {".pdf", ".docx"}


def detect_format(path: Path | str) -> Optional[DocumentFormat]:
    """Return the format of *path*, or ``None`` when it is not indexed."""

    suffix = Path(path).suffix.lower()
    if suffix == ".pdf":
        return DocumentFormat.PDF
    if suffix == ".docx":
        return DocumentFormat.DOCX
    if suffix in TEXT_EXTENSIONS:
        return DocumentFormat.TEXT
    return None


def is_supported(path: Path | str) -> bool:
    return detect_format(path) is not None


__all__ = ["DocumentFormat", "SUPPORTED_EXTENSIONS", "TEXT_EXTENSIONS", "detect_format", "is_supported"]
