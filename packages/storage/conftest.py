"""Shared test fixtures for storage package.

The PostgreSQL backend is exercised only when IDEAGRAPH_TEST_DATABASE_URL
points at a disposable database; its table is truncated before each test.
"""

import os

import pytest
import pytest_asyncio

from ideagraph_contracts import (
    Connection,
    ExtractedFinding,
    PaperClassification,
    PaperKnowledgeGraph,
)
from ideagraph_storage import (
    DatabaseConfig,
    InMemoryFindingsGraphStore,
    JsonFileFindingsGraphStore,
    PostgresFindingsGraphStore,
    close_connection_pool,
    get_connection_pool,
)

TEST_DATABASE_URL = os.environ.get("IDEAGRAPH_TEST_DATABASE_URL")


def build_graph(paper_id: str = "paper-1", n_findings: int = 3) -> PaperKnowledgeGraph:
    findings = [
        ExtractedFinding(
            id=f"f{i}",
            finding_type="central-finding" if i == 0 else "supporting-finding",
            title=f"Finding {i}",
            description=f"Description {i}",
            confidence=0.6 + i / 10,
            page_numbers=[i + 1],
        )
        for i in range(n_findings)
    ]
    connections = [
        Connection(
            id=f"c{i}",
            from_finding_id=f"f{i + 1}",
            to_finding_id="f0",
            connection_type="supports",
            explanation="backs the main result",
        )
        for i in range(n_findings - 1)
    ]
    return PaperKnowledgeGraph(
        paper_id=paper_id,
        classification=PaperClassification(paper_type="research-article", summary="A study"),
        key_contributions=["First contribution"],
        findings=findings,
        intra_paper_connections=connections,
    )


@pytest.fixture
def graph() -> PaperKnowledgeGraph:
    return build_graph()


@pytest_asyncio.fixture(params=["memory", "json"])
async def store(request, tmp_path):
    """Each file-free backend, so the contract tests run against all of them."""
    if request.param == "memory":
        yield InMemoryFindingsGraphStore()
    else:
        yield JsonFileFindingsGraphStore(tmp_path / "graphs")


@pytest_asyncio.fixture
async def pg_store():
    """PostgreSQL store against the test database (skipped when unset)."""
    if not TEST_DATABASE_URL:
        pytest.skip("IDEAGRAPH_TEST_DATABASE_URL not set")

    await close_connection_pool()
    config = DatabaseConfig.from_dsn(TEST_DATABASE_URL)
    pool = await get_connection_pool(config)
    store = PostgresFindingsGraphStore(config=config, pool=pool)
    await store.list_paper_ids()  # creates the schema
    async with pool.acquire() as conn:
        await conn.execute("TRUNCATE TABLE paper_graphs")

    yield store

    await close_connection_pool()


@pytest.fixture
def make_graph():
    """Factory for graphs of a given paper id and size."""
    return build_graph
