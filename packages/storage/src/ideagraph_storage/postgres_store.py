"""PostgreSQL graph store (asyncpg).

One row per paper in `paper_graphs` (see schema.sql). A commit is a
single-row upsert; verification reads the row `FOR UPDATE` inside a
transaction so concurrent toggles on the same paper serialize.
"""

import json
from typing import Optional

import asyncpg
from ideagraph_common import NotFoundError, StorageError, get_logger
from ideagraph_contracts import PaperKnowledgeGraph

from ideagraph_storage.base import FindingsGraphStore, apply_verification
from ideagraph_storage.connection import (
    DatabaseConfig,
    ensure_schema,
    get_connection_pool,
)

logger = get_logger(__name__)


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


def _row_to_graph(row: asyncpg.Record) -> PaperKnowledgeGraph:
    """Convert a `paper_graphs` row to a graph."""
    return PaperKnowledgeGraph.model_validate(row["graph"])


class PostgresFindingsGraphStore(FindingsGraphStore):
    """Graph store backed by the global asyncpg pool."""

    backend_name = "postgres"

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        pool: Optional[asyncpg.Pool] = None,
    ):
        self.config = config
        self._pool = pool
        self._schema_ready = False

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await get_connection_pool(self.config)
        if not self._schema_ready:
            await ensure_schema(self._pool)
            self._schema_ready = True
        return self._pool

    async def get(self, paper_id: str) -> Optional[PaperKnowledgeGraph]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                await _init_connection(conn)
                row = await conn.fetchrow(
                    "SELECT graph FROM paper_graphs WHERE paper_id = $1", paper_id
                )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to load graph for paper '{paper_id}': {e}") from e
        return _row_to_graph(row) if row is not None else None

    async def _write(self, paper_id: str, graph: PaperKnowledgeGraph) -> None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                await _init_connection(conn)
                await conn.execute(
                    """
                    INSERT INTO paper_graphs (paper_id, graph, created_at, updated_at)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (paper_id) DO UPDATE
                    SET graph = EXCLUDED.graph,
                        created_at = EXCLUDED.created_at,
                        updated_at = EXCLUDED.updated_at
                    """,
                    paper_id,
                    graph.model_dump(mode="json"),
                    graph.created_at,
                    graph.updated_at,
                )
        except asyncpg.PostgresError as e:
            logger.error("graph_commit_failed", paper_id=paper_id, error=str(e))
            raise StorageError(f"Failed to commit graph for paper '{paper_id}': {e}") from e
        logger.info("graph_committed", paper_id=paper_id, findings=len(graph.findings))

    async def verify_finding(
        self, paper_id: str, finding_id: str, verified: bool
    ) -> PaperKnowledgeGraph:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                await _init_connection(conn)
                async with conn.transaction():
                    row = await conn.fetchrow(
                        "SELECT graph FROM paper_graphs WHERE paper_id = $1 FOR UPDATE",
                        paper_id,
                    )
                    if row is None:
                        raise NotFoundError(paper_id)
                    graph = apply_verification(_row_to_graph(row), finding_id, verified)
                    await conn.execute(
                        "UPDATE paper_graphs SET graph = $2, updated_at = $3 WHERE paper_id = $1",
                        paper_id,
                        graph.model_dump(mode="json"),
                        graph.updated_at,
                    )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to verify finding in paper '{paper_id}': {e}") from e
        logger.info("finding_verified", paper_id=paper_id, finding_id=finding_id, verified=verified)
        return graph

    async def delete(self, paper_id: str) -> bool:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM paper_graphs WHERE paper_id = $1", paper_id)
        deleted = result.endswith(" 1")
        if deleted:
            logger.info("graph_deleted", paper_id=paper_id)
        return deleted

    async def list_paper_ids(self) -> list[str]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch("SELECT paper_id FROM paper_graphs ORDER BY paper_id")
        return [row["paper_id"] for row in rows]
