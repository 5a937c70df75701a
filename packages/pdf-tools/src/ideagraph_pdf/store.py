"""Filesystem store for PDF documents attached to papers.

Layout (one directory per paper):

    <root>/<encoded paper id>/document.pdf
    <root>/<encoded paper id>/meta.json

A paper has at most one stored document; storing again replaces it.
"""

import json
import shutil
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

from ideagraph_common import (
    atomic_write_bytes,
    atomic_write_text,
    expand_path,
    get_logger,
    safe_filename,
)

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"
_DOCUMENT = "document.pdf"
_META = "meta.json"


@dataclass
class StoredPDF:
    """Metadata of a stored PDF (without the bytes)."""

    id: str
    paper_id: str
    filename: str
    file_size: int
    added_at: str
    last_opened_at: str


class PDFStore:
    """Per-paper PDF blob storage on the local filesystem.

    Example:
        >>> store = PDFStore("~/.ideagraph/pdfs")
        >>> meta = store.put("paper-42", pdf_bytes, filename="smith2021.pdf")
        >>> store.get("paper-42")[:4]
        b'%PDF'
    """

    def __init__(self, root: str | Path):
        self.root = expand_path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _paper_dir(self, paper_id: str) -> Path:
        return self.root / safe_filename(paper_id)

    def put(self, paper_id: str, data: bytes, filename: str = "document.pdf") -> StoredPDF:
        """Store (or replace) the paper's document.

        Raises:
            ValueError: If `data` is not a PDF
        """
        if not data.startswith(PDF_MAGIC):
            raise ValueError("Uploaded document is not a PDF")

        now = datetime.now(timezone.utc).isoformat()
        meta = StoredPDF(
            id=str(uuid4()),
            paper_id=paper_id,
            filename=filename,
            file_size=len(data),
            added_at=now,
            last_opened_at=now,
        )
        paper_dir = self._paper_dir(paper_id)
        atomic_write_bytes(paper_dir / _DOCUMENT, data)
        atomic_write_text(paper_dir / _META, json.dumps(asdict(meta), indent=2))

        logger.info("pdf_stored", paper_id=paper_id, filename=filename, bytes=len(data))
        return meta

    def get(self, paper_id: str) -> Optional[bytes]:
        """Document bytes, or None when the paper has no stored PDF."""
        path = self._paper_dir(paper_id) / _DOCUMENT
        if not path.exists():
            return None
        data = path.read_bytes()
        meta = self.metadata(paper_id)
        if meta is not None:
            meta.last_opened_at = datetime.now(timezone.utc).isoformat()
            atomic_write_text(path.parent / _META, json.dumps(asdict(meta), indent=2))
        return data

    def metadata(self, paper_id: str) -> Optional[StoredPDF]:
        path = self._paper_dir(paper_id) / _META
        if not path.exists():
            return None
        return StoredPDF(**json.loads(path.read_text(encoding="utf-8")))

    def has(self, paper_id: str) -> bool:
        return (self._paper_dir(paper_id) / _DOCUMENT).exists()

    def delete(self, paper_id: str) -> bool:
        paper_dir = self._paper_dir(paper_id)
        if not paper_dir.exists():
            return False
        shutil.rmtree(paper_dir)
        logger.info("pdf_deleted", paper_id=paper_id)
        return True

    def stats(self) -> dict[str, int]:
        """Total number of stored files and bytes."""
        files = list(self.root.glob(f"*/{_DOCUMENT}"))
        return {
            "total_files": len(files),
            "total_size": sum(f.stat().st_size for f in files),
        }
