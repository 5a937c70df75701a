"""Shared fixtures for pdf-tools tests. PDFs are generated with PyMuPDF."""

import fitz
import pytest

from ideagraph_pdf import PDFStore, SourceTextProvider


def make_pdf(pages: list[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def two_page_pdf() -> bytes:
    return make_pdf(["Lanthanide binding increases", "Selectivity depends on pH"])


@pytest.fixture
def blank_pdf() -> bytes:
    return make_pdf([""])


@pytest.fixture
def encrypted_pdf() -> bytes:
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "secret")
    data = doc.tobytes(
        encryption=fitz.PDF_ENCRYPT_AES_256,
        owner_pw="owner",
        user_pw="user",
    )
    doc.close()
    return data


@pytest.fixture
def pdf_store(tmp_path) -> PDFStore:
    return PDFStore(tmp_path / "pdfs")


@pytest.fixture
def provider(pdf_store) -> SourceTextProvider:
    return SourceTextProvider(pdf_store)
