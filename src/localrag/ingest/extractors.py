"""Extractors for supported document types.

Every extractor takes a file path and returns UTF-8 text, or raises one of
the typed :class:`~localrag.errors.ExtractionFailed` subclasses. Output that
does not decode cleanly as UTF-8 is a failure, never silently mangled.
"""
from __future__ import annotations

import io
import logging
import subprocess
import zipfile
from pathlib import Path
from typing import Dict, Optional

from localrag.errors import CorruptFile, ExtractionFailed, ExtractionToolMissing, UnsupportedFormat

from .formats import DocumentFormat, detect_format

LOGGER = logging.getLogger(__name__)


def _decode_utf8(path: Path, data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptFile(str(path), f"content is not valid UTF-8 ({exc.reason})", cause=exc) from exc


class TextExtractor:
    """Read plaintext and source files as strict UTF-8."""

    def extract(self, path: Path) -> str:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise CorruptFile(str(path), f"cannot read file: {exc}", cause=exc) from exc
        text = _decode_utf8(path, data)
        # A BOM is an encoding marker, not content.
        return text[1:] if text.startswith("\ufeff") else text


class PDFExtractor:
    """Extract text from PDF documents.

    ``pdftotext`` (poppler) runs as a subprocess with a timeout; ``pdfminer``
    parses the file in-process.
    """

    def __init__(self, backend: str = "pdftotext", *, timeout: float = 60.0, tool: str = "pdftotext") -> None:
        if backend not in {"pdftotext", "pdfminer"}:
            raise ValueError(f"Unsupported PDF extraction backend: {backend!r}")
        self.backend = backend
        self.timeout = timeout
        self.tool = tool

    def extract(self, path: Path) -> str:
        if self.backend == "pdfminer":
            text = self._extract_with_pdfminer(path)
        else:
            text = self._extract_with_pdftotext(path)
        if not text.strip():
            raise CorruptFile(str(path), "no text could be extracted from the PDF")
        return text

    def _extract_with_pdftotext(self, path: Path) -> str:
        cmd = [self.tool, "-layout", "-enc", "UTF-8", str(path), "-"]
        LOGGER.debug("Running PDF extraction command: %s", " ".join(cmd))
        try:
            completed = subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ExtractionToolMissing(str(path), f"{self.tool} is not installed", cause=exc) from exc
        except subprocess.TimeoutExpired as exc:
            raise CorruptFile(str(path), f"{self.tool} timed out after {self.timeout}s", cause=exc) from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.decode("utf-8", errors="replace").strip() if exc.stderr else ""
            raise CorruptFile(str(path), f"{self.tool} failed: {stderr or exc.returncode}", cause=exc) from exc
        return _decode_utf8(path, completed.stdout)

    def _extract_with_pdfminer(self, path: Path) -> str:
        from pdfminer.high_level import extract_text_to_fp
        from pdfminer.pdfparser import PDFSyntaxError
        from pdfminer.psparser import PSException

        out = io.StringIO()
        try:
            with path.open("rb") as handle:
                extract_text_to_fp(handle, out, codec="utf-8")
        except (PDFSyntaxError, PSException, ValueError, KeyError, TypeError) as exc:
            raise CorruptFile(str(path), f"pdfminer could not parse the file: {exc}", cause=exc) from exc
        except OSError as exc:
            raise CorruptFile(str(path), f"cannot read file: {exc}", cause=exc) from exc
        return out.getvalue()


class DocxExtractor:
    """Extract paragraph text from Microsoft Word documents."""

    def extract(self, path: Path) -> str:
        from docx import Document as DocxDocument
        from docx.opc.exceptions import PackageNotFoundError
        from lxml.etree import LxmlError

        try:
            document = DocxDocument(str(path))
        except (PackageNotFoundError, zipfile.BadZipFile, LxmlError, KeyError, ValueError) as exc:
            raise CorruptFile(str(path), f"python-docx failed to parse the file: {exc}", cause=exc) from exc
        paragraphs = [paragraph.text for paragraph in document.paragraphs if paragraph.text]
        return "\n\n".join(paragraphs)


class DocumentExtractor:
    """Dispatch a path to the extractor of its format."""

    def __init__(
        self,
        *,
        pdf_backend: str = "pdftotext",
        timeout: float = 60.0,
        extractors: Optional[Dict[DocumentFormat, object]] = None,
    ) -> None:
        self._extractors: Dict[DocumentFormat, object] = {
            DocumentFormat.TEXT: TextExtractor(),
            DocumentFormat.PDF: PDFExtractor(pdf_backend, timeout=timeout),
            DocumentFormat.DOCX: DocxExtractor(),
        }
        if extractors:
            self._extractors.update(extractors)

    def extract(self, path: Path | str) -> str:
        path = Path(path)
        document_format = detect_format(path)
        if document_format is None:
            raise UnsupportedFormat(str(path), f"unsupported file extension {path.suffix!r}")
        extractor = self._extractors[document_format]
        try:
            text = extractor.extract(path)  # type: ignore[attr-defined]
        except ExtractionFailed:
            raise
        except Exception as exc:
            LOGGER.warning("Unexpected %s while extracting %s", type(exc).__name__, path, exc_info=True)
            raise CorruptFile(str(path), f"extraction failed: {type(exc).__name__}: {exc}", cause=exc) from exc
        if not isinstance(text, str):
            raise ExtractionFailed(str(path), "extractor returned non-text output")
        return text


def failure_note(path: Path | str, error: ExtractionFailed) -> str:
    """Human-readable note stored on the sentinel chunk of a failed document."""

    label = Path(path).suffix.lstrip(".").upper() or "FILE"
    return f"[{label}] (no text extracted: {error.detail})"


__all__ = [
    "DocumentExtractor",
    "DocxExtractor",
    "PDFExtractor",
    "TextExtractor",
    "failure_note",
]
