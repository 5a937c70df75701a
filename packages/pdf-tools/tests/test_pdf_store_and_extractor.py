"""Tests for PDF storage and PyMuPDF extraction."""

import pytest

from ideagraph_common import TextExtractionError
from ideagraph_pdf import (
    PDFStore,
    extract_pdf,
    extract_pdf_bytes,
    get_full_text,
    get_text_with_page_markers,
)


class TestPyMuPDFExtractor:
    """Test PyMuPDF-based PDF extraction."""

    def test_extract_pdf_not_found(self):
        with pytest.raises(FileNotFoundError):
            extract_pdf("nonexistent.pdf")

    def test_extract_pages(self, two_page_pdf):
        doc = extract_pdf_bytes(two_page_pdf, name="two.pdf")

        assert doc.total_pages == 2
        assert [p.page_num for p in doc.pages] == [1, 2]
        assert "Lanthanide" in doc.pages[0].text
        assert doc.has_text
        assert doc.word_count >= 6

    def test_page_markers(self, two_page_pdf):
        text = get_text_with_page_markers(extract_pdf_bytes(two_page_pdf))

        assert text.startswith("[Page 1]\n")
        assert "[Page 2]\nSelectivity" in text

    def test_full_text(self, two_page_pdf):
        text = get_full_text(extract_pdf_bytes(two_page_pdf))

        assert "Lanthanide" in text
        assert "Selectivity" in text

    def test_blank_document_has_no_text(self, blank_pdf):
        doc = extract_pdf_bytes(blank_pdf)

        assert doc.total_pages == 1
        assert not doc.has_text

    def test_corrupted_pdf(self):
        with pytest.raises(TextExtractionError, match="corrupted"):
            extract_pdf_bytes(b"%PDF-1.7 this is not really a pdf")

    def test_encrypted_pdf(self, encrypted_pdf):
        with pytest.raises(TextExtractionError, match="encrypted"):
            extract_pdf_bytes(encrypted_pdf)

    def test_extract_from_disk(self, tmp_path, two_page_pdf):
        path = tmp_path / "paper.pdf"
        path.write_bytes(two_page_pdf)

        assert extract_pdf(path).total_pages == 2


class TestPDFStore:
    """Per-paper blob storage."""

    def test_put_and_get(self, pdf_store, two_page_pdf):
        meta = pdf_store.put("paper-1", two_page_pdf, filename="smith.pdf")

        assert meta.file_size == len(two_page_pdf)
        assert pdf_store.get("paper-1") == two_page_pdf
        assert pdf_store.has("paper-1")
        assert pdf_store.metadata("paper-1").filename == "smith.pdf"

    def test_missing_paper(self, pdf_store):
        assert pdf_store.get("nope") is None
        assert pdf_store.metadata("nope") is None
        assert not pdf_store.has("nope")

    def test_rejects_non_pdf(self, pdf_store):
        with pytest.raises(ValueError, match="not a PDF"):
            pdf_store.put("paper-1", b"hello")

    def test_replace_keeps_single_document(self, pdf_store, two_page_pdf, blank_pdf):
        pdf_store.put("paper-1", two_page_pdf)
        pdf_store.put("paper-1", blank_pdf)

        assert pdf_store.get("paper-1") == blank_pdf
        assert pdf_store.stats()["total_files"] == 1

    def test_delete(self, pdf_store, two_page_pdf):
        pdf_store.put("paper-1", two_page_pdf)

        assert pdf_store.delete("paper-1")
        assert not pdf_store.delete("paper-1")
        assert pdf_store.get("paper-1") is None

    def test_ids_with_path_separators_stay_inside_root(self, tmp_path, two_page_pdf):
        store = PDFStore(tmp_path / "pdfs")

        store.put("../escape/paper", two_page_pdf)

        assert store.get("../escape/paper") == two_page_pdf
        assert not (tmp_path / "escape").exists()

    def test_stats(self, pdf_store, two_page_pdf, blank_pdf):
        pdf_store.put("a", two_page_pdf)
        pdf_store.put("b", blank_pdf)

        stats = pdf_store.stats()

        assert stats["total_files"] == 2
        assert stats["total_size"] == len(two_page_pdf) + len(blank_pdf)
