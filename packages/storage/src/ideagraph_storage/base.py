"""FindingsGraphStore - the persistence contract for findings graphs.

Invariants every backend honours:
- `get` returns a copy; mutating it never touches the store.
- `commit` replaces the whole graph at once; a reader sees the old graph
  or the new one, never a mix.
- Only complete graphs that pass referential integrity are written.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from ideagraph_common import GraphIntegrityError, NotFoundError, get_tracer
from ideagraph_contracts import PaperKnowledgeGraph, utc_now

tracer = get_tracer(__name__)


def validated_copy(paper_id: str, graph: PaperKnowledgeGraph) -> PaperKnowledgeGraph:
    """Re-validate `graph` for a commit under `paper_id` and return a deep copy.

    Raises:
        GraphIntegrityError: Wrong paper id, duplicate ids or dangling connections
    """
    if graph.paper_id != paper_id:
        raise GraphIntegrityError(
            f"Graph for paper '{graph.paper_id}' cannot be committed under '{paper_id}'"
        )
    try:
        return PaperKnowledgeGraph.model_validate(graph.model_dump())
    except ValidationError as e:
        raise GraphIntegrityError(f"Graph for paper '{paper_id}' is invalid: {e}") from e


def apply_verification(
    graph: PaperKnowledgeGraph, finding_id: str, verified: bool
) -> PaperKnowledgeGraph:
    """Set one finding's `user_verified` flag in place and bump `updated_at`."""
    finding = graph.finding(finding_id)
    if finding is None:
        raise NotFoundError(graph.paper_id, finding_id)
    finding.user_verified = verified
    graph.updated_at = utc_now()
    return graph


class FindingsGraphStore(ABC):
    """Abstract store of one `PaperKnowledgeGraph` per paper."""

    backend_name = "abstract"

    @abstractmethod
    async def get(self, paper_id: str) -> Optional[PaperKnowledgeGraph]:
        """Current graph of the paper, or None."""

    async def commit(self, paper_id: str, graph: PaperKnowledgeGraph) -> None:
        """Atomically replace the paper's graph.

        Raises:
            GraphIntegrityError: If the graph is not a valid graph for `paper_id`
        """
        with tracer.start_as_current_span("graph_store_commit") as span:
            span.set_attribute("paper_id", paper_id)
            span.set_attribute("backend", self.backend_name)
            span.set_attribute("findings", len(graph.findings))
            await self._write(paper_id, validated_copy(paper_id, graph))

    @abstractmethod
    async def _write(self, paper_id: str, graph: PaperKnowledgeGraph) -> None:
        """Persist an already validated graph in one atomic step."""

    @abstractmethod
    async def verify_finding(
        self, paper_id: str, finding_id: str, verified: bool
    ) -> PaperKnowledgeGraph:
        """Toggle a finding's verification flag and persist.

        Raises:
            NotFoundError: Unknown paper graph or finding
        """

    @abstractmethod
    async def delete(self, paper_id: str) -> bool:
        """Remove the paper's graph. Returns False when there was none."""

    @abstractmethod
    async def list_paper_ids(self) -> list[str]:
        """Ids of all papers that have a graph."""

    async def close(self) -> None:
        """Release backend resources."""
