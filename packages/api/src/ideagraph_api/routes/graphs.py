"""Findings graph endpoints.

Read, delete and verify the committed graph of a paper. Graphs are only
written by a finished extraction; this router never creates one.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from ideagraph_common import NotFoundError, get_logger
from ideagraph_contracts import PaperKnowledgeGraph
from ideagraph_contracts.formatters import format_graph_markdown

from ideagraph_api import schemas
from ideagraph_api.service import ServiceContainer, get_services

logger = get_logger(__name__)

router = APIRouter()


@router.get("/{paper_id}/graph", response_model=PaperKnowledgeGraph)
async def get_graph(
    paper_id: str,
    format: Literal["json", "markdown"] = Query("json", description="Response format"),
    services: ServiceContainer = Depends(get_services),
):
    """Get the paper's findings graph.

    Parameters
    ----------
    paper_id : str
        Paper identifier
    format : str
        "json" for the graph model, "markdown" for an outline

    Returns
    -------
    PaperKnowledgeGraph
        The committed graph, including the derived review status.

    Raises
    ------
    HTTPException
        404 if the paper has no graph.
    """
    graph = await services.store.get(paper_id)
    if graph is None:
        raise HTTPException(status_code=404, detail=f"No findings graph for paper: {paper_id}")
    if format == "markdown":
        return PlainTextResponse(format_graph_markdown(graph), media_type="text/markdown")
    return graph


@router.delete("/{paper_id}/graph", response_model=schemas.DeleteResponse)
async def delete_graph(
    paper_id: str,
    services: ServiceContainer = Depends(get_services),
) -> schemas.DeleteResponse:
    """Delete the paper's findings graph. `deleted` is false when there was none."""
    deleted = await services.store.delete(paper_id)
    return schemas.DeleteResponse(deleted=deleted)


@router.post(
    "/{paper_id}/graph/findings/{finding_id}/verify",
    response_model=PaperKnowledgeGraph,
)
async def verify_finding(
    paper_id: str,
    finding_id: str,
    body: schemas.VerifyRequest,
    services: ServiceContainer = Depends(get_services),
) -> PaperKnowledgeGraph:
    """Set or clear a finding's verification flag.

    Parameters
    ----------
    paper_id : str
        Paper identifier
    finding_id : str
        Finding identifier within the paper's graph
    body : VerifyRequest
        New flag value

    Returns
    -------
    PaperKnowledgeGraph
        The updated graph.

    Raises
    ------
    HTTPException
        404 if the graph or the finding does not exist.
    """
    try:
        return await services.store.verify_finding(paper_id, finding_id, body.verified)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
