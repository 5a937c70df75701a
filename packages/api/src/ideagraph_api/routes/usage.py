"""Credit usage endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ideagraph_contracts import UsageRecord
from ideagraph_usage import UsageSnapshot

from ideagraph_api.service import ServiceContainer, get_services

router = APIRouter()


@router.get("", response_model=UsageSnapshot)
async def get_usage(services: ServiceContainer = Depends(get_services)) -> UsageSnapshot:
    """Credit snapshot of the active pool (guest or signed-in user)."""
    return services.gate.snapshot()


@router.get("/history", response_model=list[UsageRecord])
async def get_usage_history(
    limit: int = Query(20, ge=1, le=100, description="Maximum records"),
    services: ServiceContainer = Depends(get_services),
) -> list[UsageRecord]:
    """Most recent usage records, newest first."""
    return services.gate.history[:limit]
