"""Health check and metrics endpoints.

Kubernetes-style health checks:
- /health/live - Liveness probe (is the process alive?)
- /health - Combined check of the graph store and the LLM backend
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ideagraph_api import schemas
from ideagraph_api.metrics import metrics_response, update_active_extractions
from ideagraph_api.service import ServiceContainer, get_services

router = APIRouter()


@router.get("/health/live")
async def liveness() -> dict:
    """Liveness probe - is the process alive?"""
    return {"status": "alive"}


@router.get("/health", response_model=schemas.HealthCheck)
async def health_check(
    services: ServiceContainer = Depends(get_services),
) -> schemas.HealthCheck:
    """Primary health check.

    Lists stored graphs to prove the store answers, and asks the LLM backend
    whether it is reachable. Either failing reports "degraded".
    """
    status = "healthy"

    try:
        await services.store.list_paper_ids()
        store_status = services.store.backend_name
    except Exception as e:
        store_status = f"unavailable: {str(e)[:100]}"
        status = "degraded"

    if await services.llm.is_available():
        llm_status = services.llm.extraction_method
    else:
        llm_status = f"unavailable: {services.llm.extraction_method}"
        status = "degraded"

    return schemas.HealthCheck(
        status=status,
        version="1.0.0",
        graph_store=store_status,
        llm=llm_status,
        active_extractions=len(services.manager.active_paper_ids()),
    )


@router.get("/metrics")
async def metrics(services: ServiceContainer = Depends(get_services)):
    """Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    """
    update_active_extractions(len(services.manager.active_paper_ids()))
    return metrics_response()
