"""JSON-file graph store: one document per paper under a directory.

Writes go through a temp file that is `os.replace`d over the target, so a
concurrent reader (or a crash) never observes a half-written graph.
"""

import asyncio
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from pydantic import ValidationError

from ideagraph_common import (
    NotFoundError,
    StorageError,
    atomic_write_text,
    expand_path,
    get_logger,
    safe_filename,
)
from ideagraph_contracts import PaperKnowledgeGraph

from ideagraph_storage.base import FindingsGraphStore, apply_verification

logger = get_logger(__name__)

_SUFFIX = ".graph.json"


class JsonFileFindingsGraphStore(FindingsGraphStore):
    """Local default store.

    Example:
        >>> store = JsonFileFindingsGraphStore("~/.ideagraph/graphs")
        >>> await store.commit("paper-42", graph)
        >>> (await store.get("paper-42")).review_status
        <ReviewStatus.UNREVIEWED: 'unreviewed'>
    """

    backend_name = "json"

    def __init__(self, root: str | Path):
        self.root = expand_path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}

    def _path(self, paper_id: str) -> Path:
        return self.root / f"{safe_filename(paper_id)}{_SUFFIX}"

    def _lock(self, paper_id: str) -> asyncio.Lock:
        return self._locks.setdefault(paper_id, asyncio.Lock())

    def _read(self, paper_id: str) -> Optional[PaperKnowledgeGraph]:
        path = self._path(paper_id)
        if not path.exists():
            return None
        try:
            return PaperKnowledgeGraph.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StorageError(f"Failed to read graph for paper '{paper_id}': {e}") from e

    def _dump(self, paper_id: str, graph: PaperKnowledgeGraph) -> None:
        atomic_write_text(self._path(paper_id), graph.model_dump_json(indent=2))

    async def get(self, paper_id: str) -> Optional[PaperKnowledgeGraph]:
        return await asyncio.to_thread(self._read, paper_id)

    async def _write(self, paper_id: str, graph: PaperKnowledgeGraph) -> None:
        async with self._lock(paper_id):
            await asyncio.to_thread(self._dump, paper_id, graph)
        logger.info("graph_committed", paper_id=paper_id, findings=len(graph.findings))

    async def verify_finding(
        self, paper_id: str, finding_id: str, verified: bool
    ) -> PaperKnowledgeGraph:
        async with self._lock(paper_id):
            graph = await asyncio.to_thread(self._read, paper_id)
            if graph is None:
                raise NotFoundError(paper_id)
            apply_verification(graph, finding_id, verified)
            await asyncio.to_thread(self._dump, paper_id, graph)
        logger.info("finding_verified", paper_id=paper_id, finding_id=finding_id, verified=verified)
        return graph

    async def delete(self, paper_id: str) -> bool:
        path = self._path(paper_id)
        async with self._lock(paper_id):
            if not path.exists():
                return False
            await asyncio.to_thread(path.unlink)
        logger.info("graph_deleted", paper_id=paper_id)
        return True

    async def list_paper_ids(self) -> list[str]:
        names = [p.name[: -len(_SUFFIX)] for p in self.root.glob(f"*{_SUFFIX}")]
        return sorted(unquote(name) for name in names)
