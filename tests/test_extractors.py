import zipfile
from pathlib import Path

import pytest

from localrag.errors import CorruptFile, ExtractionFailed, ExtractionToolMissing, UnsupportedFormat
from localrag.ingest.extractors import DocumentExtractor, DocxExtractor, PDFExtractor, TextExtractor, failure_note
from localrag.ingest.formats import DocumentFormat, detect_format, is_supported


def test_text_extractor_reads_utf8_and_drops_bom(tmp_path: Path) -> None:
    path = tmp_path / "notes.md"
    path.write_bytes("\ufeffCafé au lait".encode("utf-8"))

    assert TextExtractor().extract(path) == "Café au lait"


def test_text_extractor_rejects_invalid_utf8(tmp_path: Path) -> None:
    path = tmp_path / "latin1.txt"
    path.write_bytes("Café".encode("latin-1"))

    with pytest.raises(CorruptFile) as excinfo:
        TextExtractor().extract(path)

    assert excinfo.value.reason == "corrupt_file"
    assert "UTF-8" in excinfo.value.detail


def test_unsupported_extension_is_a_typed_failure(tmp_path: Path) -> None:
    path = tmp_path / "image.png"
    path.write_bytes(b"\x89PNG")

    with pytest.raises(UnsupportedFormat) as excinfo:
        DocumentExtractor().extract(path)

    assert excinfo.value.reason == "unsupported_format"


def test_missing_pdftotext_binary_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "report.pdf"
    path.write_bytes(b"%PDF-1.4")
    extractor = PDFExtractor("pdftotext", tool="localrag-missing-pdftotext")

    with pytest.raises(ExtractionToolMissing) as excinfo:
        extractor.extract(path)

    assert excinfo.value.reason == "tool_missing"


def test_pdfminer_rejects_garbage(tmp_path: Path) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf at all")

    with pytest.raises(CorruptFile):
        PDFExtractor("pdfminer").extract(path)


def test_unknown_pdf_backend_is_rejected() -> None:
    with pytest.raises(ValueError):
        PDFExtractor("ocr")


def test_docx_paragraphs_are_extracted(tmp_path: Path) -> None:
    docx = pytest.importorskip("docx")
    path = tmp_path / "memo.docx"
    document = docx.Document()
    document.add_paragraph("First paragraph.")
    document.add_paragraph("Second paragraph.")
    document.save(str(path))

    assert DocxExtractor().extract(path) == "First paragraph.\n\nSecond paragraph."


def test_corrupt_docx_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "memo.docx"
    path.write_bytes(b"not a zip archive")

    with pytest.raises(CorruptFile):
        DocxExtractor().extract(path)


def test_injected_extractor_is_used_for_its_format(tmp_path: Path) -> None:
    class StaticPdf:
        def extract(self, path: Path) -> str:
            return f"text of {path.name}"

    path = tmp_path / "paper.pdf"
    path.write_bytes(b"%PDF")

    extractor = DocumentExtractor(extractors={DocumentFormat.PDF: StaticPdf()})

    assert extractor.extract(path) == "text of paper.pdf"


def test_failure_note_names_the_format() -> None:
    error = CorruptFile("broken.pdf", "pdftotext failed: 1")

    assert failure_note("broken.pdf", error) == "[PDF] (no text extracted: pdftotext failed: 1)"
    assert isinstance(error, ExtractionFailed)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("README.md", DocumentFormat.TEXT),
        ("main.RS", DocumentFormat.TEXT),
        ("config.yaml", DocumentFormat.TEXT),
        ("paper.pdf", DocumentFormat.PDF),
        ("memo.docx", DocumentFormat.DOCX),
        ("archive.zip", None),
        ("Makefile", None),
    ],
)
def test_allow_list(name: str, expected) -> None:
    assert detect_format(name) is expected
    assert is_supported(name) is (expected is not None)


def test_unexpected_extractor_error_becomes_corrupt_file(tmp_path: Path) -> None:
    class ExplodingPdf:
        def extract(self, path: Path) -> str:
            raise RuntimeError("unbalanced content stream")

    path = tmp_path / "paper.pdf"
    path.write_bytes(b"%PDF")
    extractor = DocumentExtractor(extractors={DocumentFormat.PDF: ExplodingPdf()})

    with pytest.raises(CorruptFile) as excinfo:
        extractor.extract(path)

    assert "RuntimeError: unbalanced content stream" in excinfo.value.detail
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_docx_with_malformed_xml_is_corrupt(tmp_path: Path) -> None:
    pytest.importorskip("docx")
    path = tmp_path / "memo.docx"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(
            "[Content_Types].xml",
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
            '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
            '<Override PartName="/word/document.xml" '
            'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
            "</Types>",
        )
        archive.writestr(
            "_rels/.rels",
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
            '<Relationship Id="rId1" '
            'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
            'Target="word/document.xml"/>'
            "</Relationships>",
        )
        archive.writestr("word/document.xml", "<w:document this is not xml")

    with pytest.raises(CorruptFile):
        DocumentExtractor().extract(path)
