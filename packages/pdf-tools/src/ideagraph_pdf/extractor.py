"""PyMuPDF-based PDF text extraction.

Extracts text from stored PDF bytes with page number tracking, so the
extraction prompts can ask for page-grounded quotes.
"""

from dataclasses import dataclass, field
from pathlib import Path

import fitz  # PyMuPDF

from ideagraph_common import TextExtractionError, get_logger

logger = get_logger(__name__)


@dataclass
class ExtractedPage:
    """Single page of extracted content."""

    page_num: int
    text: str
    char_count: int


@dataclass
class ExtractedDocument:
    """Complete extracted document."""

    name: str
    total_pages: int
    pages: list[ExtractedPage] = field(default_factory=list)
    total_chars: int = 0

    @property
    def word_count(self) -> int:
        return sum(len(page.text.split()) for page in self.pages)

    @property
    def has_text(self) -> bool:
        return self.total_chars > 0


def _clean_page_text(text: str) -> str:
    text = text.replace("\x00", "")
    return "\n".join(line.strip() for line in text.split("\n") if line.strip())


def extract_pdf_bytes(data: bytes, name: str = "document.pdf") -> ExtractedDocument:
    """Extract text from an in-memory PDF.

    Args:
        data: Raw PDF bytes
        name: Label used in logs and errors

    Returns:
        ExtractedDocument with text per page (1-indexed)

    Raises:
        TextExtractionError: If the PDF is corrupted or encrypted
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise TextExtractionError(f"Failed to open PDF '{name}' (corrupted?): {e}") from e

    try:
        if doc.needs_pass:
            raise TextExtractionError(f"PDF is encrypted: {name}")
        if len(doc) == 0:
            raise TextExtractionError(f"PDF '{name}' has no pages (corrupted?)")

        pages = []
        total_chars = 0
        for page_num in range(len(doc)):
            text = _clean_page_text(doc[page_num].get_text())
            total_chars += len(text)
            pages.append(ExtractedPage(page_num=page_num + 1, text=text, char_count=len(text)))
    finally:
        doc.close()

    logger.info("pdf_extracted", name=name, pages=len(pages), chars=total_chars)

    return ExtractedDocument(
        name=name,
        total_pages=len(pages),
        pages=pages,
        total_chars=total_chars,
    )


def extract_pdf(pdf_path: str | Path) -> ExtractedDocument:
    """Extract text from a PDF on disk.

    Raises:
        FileNotFoundError: If PDF doesn't exist
        TextExtractionError: If the PDF is corrupted or encrypted
    """
    pdf_path = Path(pdf_path)
    if not pdf_path.exists():
        raise FileNotFoundError(f"PDF not found: {pdf_path}")
    return extract_pdf_bytes(pdf_path.read_bytes(), name=str(pdf_path))


def get_text_with_page_markers(document: ExtractedDocument) -> str:
    """Concatenate pages, each preceded by a `[Page N]` marker.

    Empty pages are skipped so markers always precede real text.

    Example:
        >>> text = get_text_with_page_markers(extract_pdf("paper.pdf"))
        >>> text.splitlines()[0]
        '[Page 1]'
    """
    return "\n\n".join(
        f"[Page {page.page_num}]\n{page.text}" for page in document.pages if page.text
    )


def get_full_text(document: ExtractedDocument) -> str:
    """All pages concatenated with a blank line between them."""
    return "\n\n".join(page.text for page in document.pages)
