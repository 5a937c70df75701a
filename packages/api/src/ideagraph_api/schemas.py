"""Pydantic schemas for API request/response models.

Graphs, progress and results are served as the shared contract models
from ideagraph_contracts; this module only adds the request bodies and
the small envelope responses of the HTTP surface.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ideagraph_contracts import (
    ExtractionProgress,
    ExtractionResult,
    ExtractionState,
    PaperMetadata,
    ThesisContext,
)


# === Request Models ===


class VerifyRequest(BaseModel):
    """Finding verification toggle."""

    verified: bool


class ExtractionRequest(BaseModel):
    """Start-extraction request body."""

    paper: PaperMetadata
    thesis: Optional[ThesisContext] = None
    text: Optional[str] = Field(
        None,
        description="Source text; when omitted the paper's stored PDF is used",
    )


# === Response Models ===


class HealthCheck(BaseModel):
    """Health check response."""

    status: str
    version: str
    graph_store: str
    llm: str
    active_extractions: int


class ExtractionAccepted(BaseModel):
    """Response of a started extraction."""

    paper_id: str
    state: ExtractionState


class ExtractionStatus(BaseModel):
    """Current session (if any) and last terminal result of a paper."""

    paper_id: str
    active: bool
    state: Optional[ExtractionState] = None
    progress: Optional[ExtractionProgress] = None
    last_result: Optional[ExtractionResult] = None


class CancelResponse(BaseModel):
    cancelled: bool


class DeleteResponse(BaseModel):
    deleted: bool


class StoredPDFResponse(BaseModel):
    """Metadata of a stored PDF."""

    id: str
    paper_id: str
    filename: str
    file_size: int
    added_at: str
    last_opened_at: str
