"""IdeaGraph REST API.

FastAPI-based REST API over the findings graphs and the extraction pipeline.
"""

from ideagraph_api.main import app, create_app

__all__ = ["app", "create_app"]
