"""API route handlers."""

from ideagraph_api.routes.extraction import router as extraction_router
from ideagraph_api.routes.graphs import router as graphs_router
from ideagraph_api.routes.health import router as health_router
from ideagraph_api.routes.pdfs import router as pdfs_router
from ideagraph_api.routes.usage import router as usage_router

__all__ = [
    "health_router",
    "graphs_router",
    "pdfs_router",
    "extraction_router",
    "usage_router",
]
