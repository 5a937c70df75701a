"""Test configuration for API tests.

The ASGI transport does not run the lifespan, so every test app gets an
injected service container built on in-memory backends.
"""

from __future__ import annotations

from typing import AsyncGenerator

import fitz
import pytest
from httpx import ASGITransport, AsyncClient

from ideagraph_api.main import create_app
from ideagraph_api.service import ServiceContainer
from ideagraph_contracts import PaperMetadata
from ideagraph_extraction import ExtractionSessionManager, MockLLMClient
from ideagraph_pdf import PDFStore, SourceTextProvider
from ideagraph_storage import InMemoryFindingsGraphStore
from ideagraph_usage import CreditGate

PAPER_TEXT = """[Page 1]
Introduction. We study whether the effect holds across cohorts.
Results. We observe a robust effect."""


@pytest.fixture
def paper() -> PaperMetadata:
    return PaperMetadata(id="paper-1", title="A robust effect across cohorts")


@pytest.fixture
def paper_text() -> str:
    return PAPER_TEXT


@pytest.fixture
def pdf_bytes() -> bytes:
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "Results. We observe a robust effect.")
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def llm() -> MockLLMClient:
    return MockLLMClient()


@pytest.fixture
def services(tmp_path, llm) -> ServiceContainer:
    store = InMemoryFindingsGraphStore()
    pdf_store = PDFStore(tmp_path / "pdfs")
    text_provider = SourceTextProvider(pdf_store)
    gate = CreditGate(guest_allowance=10)
    manager = ExtractionSessionManager(
        llm, gate, store, text_provider=text_provider, stage_timeout_seconds=5.0
    )
    return ServiceContainer(
        store=store,
        pdf_store=pdf_store,
        text_provider=text_provider,
        gate=gate,
        llm=llm,
        manager=manager,
    )


@pytest.fixture
async def app_client(services) -> AsyncGenerator[AsyncClient, None]:
    """Create test client over the injected services."""
    app = create_app(services)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await services.manager.shutdown()
