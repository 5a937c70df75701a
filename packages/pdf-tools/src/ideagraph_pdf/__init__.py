"""IdeaGraph PDF - document storage and text extraction.

Version: 1.0.0

This package provides:
- PDFStore: per-paper PDF blobs on the local filesystem
- PyMuPDF text extraction with page markers
- SourceTextProvider: paper id -> text, with stale-result protection
"""

from ideagraph_pdf.extractor import (
    ExtractedDocument,
    ExtractedPage,
    extract_pdf,
    extract_pdf_bytes,
    get_full_text,
    get_text_with_page_markers,
)
from ideagraph_pdf.provider import SourceTextProvider
from ideagraph_pdf.store import PDFStore, StoredPDF

__version__ = "1.0.0"

__all__ = [
    # Extraction
    "ExtractedDocument",
    "ExtractedPage",
    "extract_pdf",
    "extract_pdf_bytes",
    "get_full_text",
    "get_text_with_page_markers",
    # Storage
    "PDFStore",
    "StoredPDF",
    # Provider
    "SourceTextProvider",
]
