"""Pytest fixtures for extraction package tests."""

import pytest

from ideagraph_contracts import PaperMetadata, ThesisContext
from ideagraph_extraction import ExtractionSessionManager, MockLLMClient
from ideagraph_storage import InMemoryFindingsGraphStore
from ideagraph_usage import CreditGate

PAPER_TEXT = """[Page 1]
Introduction. We study whether the effect holds across cohorts.
Results. We observe a robust effect.

[Page 2]
The effect persists under an alternative specification.
Discussion. The sample is small, which limits generality."""


@pytest.fixture
def paper() -> PaperMetadata:
    return PaperMetadata(
        id="paper-1",
        title="A robust effect across cohorts",
        authors=["A. Author", "B. Author"],
        year=2021,
        journal="Journal of Results",
        abstract="We report a robust effect.",
    )


@pytest.fixture
def thesis() -> ThesisContext:
    return ThesisContext(
        id="thesis-1",
        title="The effect generalises",
        description="Argues the effect holds across populations.",
    )


@pytest.fixture
def paper_text() -> str:
    return PAPER_TEXT


@pytest.fixture
def llm() -> MockLLMClient:
    return MockLLMClient()


@pytest.fixture
def gate() -> CreditGate:
    """Guest gate with room for two full runs (default stage costs 1/2/2)."""
    return CreditGate(guest_allowance=10)


@pytest.fixture
def store() -> InMemoryFindingsGraphStore:
    return InMemoryFindingsGraphStore()


@pytest.fixture
def manager(llm, gate, store) -> ExtractionSessionManager:
    return ExtractionSessionManager(llm, gate, store, stage_timeout_seconds=5.0)


@pytest.fixture(autouse=True)
def _isolate_anthropic_base_url(monkeypatch):
    """Keep an ambient ANTHROPIC_BASE_URL from redirecting SDK calls past respx."""
    monkeypatch.delenv("ANTHROPIC_BASE_URL", raising=False)
