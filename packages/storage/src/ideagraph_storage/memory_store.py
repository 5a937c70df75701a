"""In-process graph store for tests and ephemeral runs."""

from typing import Optional

from ideagraph_common import NotFoundError, get_logger
from ideagraph_contracts import PaperKnowledgeGraph

from ideagraph_storage.base import FindingsGraphStore, apply_verification

logger = get_logger(__name__)


class InMemoryFindingsGraphStore(FindingsGraphStore):
    """Dict-backed store. Graphs are deep-copied on the way in and out."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._graphs: dict[str, PaperKnowledgeGraph] = {}

    async def get(self, paper_id: str) -> Optional[PaperKnowledgeGraph]:
        graph = self._graphs.get(paper_id)
        return graph.model_copy(deep=True) if graph is not None else None

    async def _write(self, paper_id: str, graph: PaperKnowledgeGraph) -> None:
        self._graphs[paper_id] = graph
        logger.info("graph_committed", paper_id=paper_id, findings=len(graph.findings))

    async def verify_finding(
        self, paper_id: str, finding_id: str, verified: bool
    ) -> PaperKnowledgeGraph:
        graph = self._graphs.get(paper_id)
        if graph is None:
            raise NotFoundError(paper_id)
        updated = apply_verification(graph.model_copy(deep=True), finding_id, verified)
        self._graphs[paper_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, paper_id: str) -> bool:
        return self._graphs.pop(paper_id, None) is not None

    async def list_paper_ids(self) -> list[str]:
        return sorted(self._graphs)
