"""FastAPI application for IdeaGraph.

Main entry point for the REST API server.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ideagraph_common import configure_logging_from_settings, get_logger, get_settings

from ideagraph_api.metrics import REQUESTS_IN_PROGRESS, track_request
from ideagraph_api.service import ServiceContainer

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown.

    - Startup: Build the service container from settings, unless one was injected
    - Shutdown: Cancel running extractions and close all backends
    """
    logger.info("api_starting")

    services: Optional[ServiceContainer] = getattr(app.state, "services", None)
    if services is None:
        settings = get_settings()
        configure_logging_from_settings(settings)
        services = ServiceContainer.from_settings(settings)
        app.state.services = services

    logger.info(
        "api_started",
        graph_store=services.store.backend_name,
        llm=services.llm.extraction_method,
    )

    yield

    logger.info("api_stopping")
    await services.close()
    logger.info("api_stopped")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built collaborators (tests); built from settings at startup when None
    """
    app = FastAPI(
        title="IdeaGraph API",
        description="Findings-graph extraction for research papers",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    if services is not None:
        app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        REQUESTS_IN_PROGRESS.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            REQUESTS_IN_PROGRESS.dec()
        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")
        track_request(endpoint, request.method, response.status_code, time.perf_counter() - start)
        return response

    # Import and include routers
    from ideagraph_api.routes.health import router as health_router
    from ideagraph_api.routes.graphs import router as graphs_router
    from ideagraph_api.routes.pdfs import router as pdfs_router
    from ideagraph_api.routes.extraction import router as extraction_router
    from ideagraph_api.routes.usage import router as usage_router

    app.include_router(health_router, tags=["Health"])
    app.include_router(graphs_router, prefix="/papers", tags=["Graphs"])
    app.include_router(pdfs_router, prefix="/papers", tags=["PDFs"])
    app.include_router(extraction_router, prefix="/papers", tags=["Extraction"])
    app.include_router(usage_router, prefix="/usage", tags=["Usage"])

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "ideagraph_api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
