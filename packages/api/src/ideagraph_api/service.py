"""Shared service layer for the IdeaGraph API.

Owns the long-lived collaborators (graph store, PDF store, text provider,
credit gate, LLM client, session manager) and the operations the routes
delegate to. The routes stay thin; everything that touches more than one
collaborator lives here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ideagraph_common import Settings, get_logger
from ideagraph_contracts import ExtractionResult, PaperMetadata, ThesisContext
from ideagraph_extraction import (
    ExtractionSessionManager,
    LLMClient,
    get_llm_client_from_settings,
)
from ideagraph_pdf import PDFStore, SourceTextProvider, StoredPDF
from ideagraph_storage import FindingsGraphStore, create_graph_store
from ideagraph_usage import CreditGate

from ideagraph_api import schemas
from ideagraph_api.metrics import track_extraction_result, update_active_extractions

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Collaborators shared by all requests of one application."""

    store: FindingsGraphStore
    pdf_store: PDFStore
    text_provider: SourceTextProvider
    gate: CreditGate
    llm: LLMClient
    manager: ExtractionSessionManager

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        store = create_graph_store(settings)
        pdf_store = PDFStore(settings.pdf_storage_dir)
        text_provider = SourceTextProvider(pdf_store)
        gate = CreditGate.from_settings(settings)
        llm = get_llm_client_from_settings(settings)
        manager = ExtractionSessionManager.from_settings(
            settings, llm, gate, store, text_provider=text_provider
        )
        return cls(
            store=store,
            pdf_store=pdf_store,
            text_provider=text_provider,
            gate=gate,
            llm=llm,
            manager=manager,
        )

    async def close(self) -> None:
        """Cancel running sessions, then release every backend."""
        await self.manager.shutdown()
        await self.gate.close()
        await self.llm.close()
        await self.store.close()


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the application's container."""
    return request.app.state.services


def start_extraction(
    services: ServiceContainer,
    paper: PaperMetadata,
    thesis: Optional[ThesisContext] = None,
    text: Optional[str] = None,
) -> None:
    """Start a background extraction session for `paper`.

    Raises:
        SessionActiveError: A session for this paper is already running
    """

    def on_complete(result: ExtractionResult) -> None:
        track_extraction_result(result)
        update_active_extractions(len(services.manager.active_paper_ids()))

    services.manager.start(paper, text=text, thesis=thesis, on_complete=on_complete)
    update_active_extractions(len(services.manager.active_paper_ids()))
    logger.info("extraction_accepted", paper_id=paper.id, with_thesis=thesis is not None)


def extraction_status(services: ServiceContainer, paper_id: str) -> schemas.ExtractionStatus:
    manager = services.manager
    return schemas.ExtractionStatus(
        paper_id=paper_id,
        active=manager.is_active(paper_id),
        state=manager.get_state(paper_id),
        progress=manager.get_progress(paper_id),
        last_result=manager.last_result(paper_id),
    )


def store_pdf(
    services: ServiceContainer, paper_id: str, data: bytes, filename: str
) -> StoredPDF:
    """Store (or replace) a paper's PDF and drop any cached text of the old one.

    Raises:
        ValueError: If `data` is not a PDF
    """
    meta = services.pdf_store.put(paper_id, data, filename=filename)
    services.text_provider.invalidate(paper_id)
    return meta
