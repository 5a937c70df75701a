"""PDF endpoints.

Attach the source document whose text the extraction pipeline reads.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from ideagraph_api import schemas
from ideagraph_api import service
from ideagraph_api.service import ServiceContainer, get_services

router = APIRouter()


@router.put("/{paper_id}/pdf", response_model=schemas.StoredPDFResponse)
async def put_pdf(
    paper_id: str,
    request: Request,
    x_filename: str = Header("document.pdf", description="Original file name"),
    services: ServiceContainer = Depends(get_services),
) -> schemas.StoredPDFResponse:
    """Store (or replace) the paper's PDF from the raw request body.

    Raises
    ------
    HTTPException
        422 if the body is not a PDF.
    """
    data = await request.body()
    try:
        meta = service.store_pdf(services, paper_id, data, x_filename)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return schemas.StoredPDFResponse(**asdict(meta))


@router.get("/{paper_id}/pdf", response_model=schemas.StoredPDFResponse)
async def get_pdf_metadata(
    paper_id: str,
    services: ServiceContainer = Depends(get_services),
) -> schemas.StoredPDFResponse:
    """Metadata of the paper's stored PDF (404 when none)."""
    meta = services.pdf_store.metadata(paper_id)
    if meta is None:
        raise HTTPException(status_code=404, detail=f"No PDF for paper: {paper_id}")
    return schemas.StoredPDFResponse(**asdict(meta))
