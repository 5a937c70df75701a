"""Extraction endpoints.

Start, observe and cancel the extraction session of a paper. Sessions run
in the background; clients poll `GET /papers/{paper_id}/extraction`.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ideagraph_common import SessionActiveError
from ideagraph_contracts import ExtractionState

from ideagraph_api import schemas
from ideagraph_api import service
from ideagraph_api.service import ServiceContainer, get_services

router = APIRouter()


@router.post(
    "/{paper_id}/extraction",
    response_model=schemas.ExtractionAccepted,
    status_code=202,
)
async def start_extraction(
    paper_id: str,
    body: schemas.ExtractionRequest,
    services: ServiceContainer = Depends(get_services),
) -> schemas.ExtractionAccepted:
    """Start extracting the paper's findings graph.

    Parameters
    ----------
    paper_id : str
        Paper identifier; must match `body.paper.id`
    body : ExtractionRequest
        Paper metadata, optional thesis and optional source text

    Returns
    -------
    ExtractionAccepted
        The paper id and the session's current state.

    Raises
    ------
    HTTPException
        409 if a session is already active for the paper,
        422 if the path and body paper ids differ.
    """
    if body.paper.id != paper_id:
        raise HTTPException(
            status_code=422,
            detail=f"Body paper id '{body.paper.id}' does not match path '{paper_id}'",
        )
    try:
        service.start_extraction(services, body.paper, thesis=body.thesis, text=body.text)
    except SessionActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))

    state = services.manager.get_state(paper_id) or ExtractionState.IDLE
    return schemas.ExtractionAccepted(paper_id=paper_id, state=state)


@router.get("/{paper_id}/extraction", response_model=schemas.ExtractionStatus)
async def get_extraction(
    paper_id: str,
    services: ServiceContainer = Depends(get_services),
) -> schemas.ExtractionStatus:
    """State and progress of the running session, plus the last terminal result."""
    return service.extraction_status(services, paper_id)


@router.delete("/{paper_id}/extraction", response_model=schemas.CancelResponse)
async def cancel_extraction(
    paper_id: str,
    services: ServiceContainer = Depends(get_services),
) -> schemas.CancelResponse:
    """Request cancellation. `cancelled` is false when nothing could be cancelled."""
    return schemas.CancelResponse(cancelled=services.manager.cancel(paper_id))
