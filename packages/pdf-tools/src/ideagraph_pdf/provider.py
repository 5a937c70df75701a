"""Source Text Provider: paper id -> extractable text.

Resolves the paper's stored PDF, extracts its text in a worker thread and
caches the result per paper. `load_for_subject` adds the focused-paper
semantics used by interactive consumers: loading a new subject cancels the
previous load, and a result that arrives after the subject changed is
discarded instead of returned.
"""

import asyncio
from collections import OrderedDict
from typing import Optional

from ideagraph_common import NoSourceTextError, StaleGuard, get_logger, instrument_function

from ideagraph_pdf.extractor import extract_pdf_bytes, get_text_with_page_markers
from ideagraph_pdf.store import PDFStore

logger = get_logger(__name__)


class SourceTextProvider:
    """Text of stored papers, with a small LRU cache."""

    def __init__(self, store: PDFStore, cache_size: int = 32):
        self.store = store
        self.cache_size = cache_size
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._guard = StaleGuard()
        self._inflight: Optional[asyncio.Task] = None
        self._inflight_subject: Optional[str] = None

    @property
    def current_subject(self) -> Optional[str]:
        return self._guard.current

    @instrument_function("source_text_load")
    async def get_text(self, paper_id: str) -> str:
        """Extract (or return cached) text of the paper's stored PDF.

        Raises:
            NoSourceTextError: No stored document, or it has no text layer
            TextExtractionError: Stored document is corrupt or encrypted
        """
        cached = self._cache.get(paper_id)
        if cached is not None:
            self._cache.move_to_end(paper_id)
            return cached

        data = await asyncio.to_thread(self.store.get, paper_id)
        if data is None:
            raise NoSourceTextError(paper_id)

        document = await asyncio.to_thread(extract_pdf_bytes, data, paper_id)
        if not document.has_text:
            raise NoSourceTextError(paper_id, "document has no extractable text")

        text = get_text_with_page_markers(document)
        self._cache[paper_id] = text
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return text

    def invalidate(self, paper_id: str) -> None:
        """Forget cached text (the stored document changed)."""
        self._cache.pop(paper_id, None)

    async def load_for_subject(self, paper_id: str) -> Optional[str]:
        """Make `paper_id` the current subject and load its text.

        Returns None when the subject changed before the text arrived. Errors
        of a still-current load propagate like `get_text`.
        """
        token = self._guard.issue(paper_id)

        task = self._inflight
        if task is None or task.done() or self._inflight_subject != paper_id:
            if task is not None and not task.done():
                task.cancel()
                logger.debug("text_load_cancelled", paper_id=self._inflight_subject)
            task = asyncio.ensure_future(self.get_text(paper_id))
            self._inflight = task
            self._inflight_subject = paper_id

        try:
            text = await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if (current is not None and current.cancelling()) or self._guard.is_current(token):
                raise
            logger.debug("stale_text_discarded", paper_id=paper_id)
            return None
        except Exception:
            if not self._guard.is_current(token):
                logger.debug("stale_text_error_discarded", paper_id=paper_id)
                return None
            raise

        if not self._guard.is_current(token):
            logger.debug("stale_text_discarded", paper_id=paper_id, current=self._guard.current)
            return None
        return text

    def clear_subject(self) -> None:
        """Drop the current subject; any load in flight is cancelled and discarded."""
        self._guard.clear()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self._inflight_subject = None
