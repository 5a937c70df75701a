"""Backend selection from settings."""

from ideagraph_common import Settings, expand_path, get_logger

from ideagraph_storage.base import FindingsGraphStore
from ideagraph_storage.connection import DatabaseConfig
from ideagraph_storage.json_store import JsonFileFindingsGraphStore
from ideagraph_storage.memory_store import InMemoryFindingsGraphStore
from ideagraph_storage.postgres_store import PostgresFindingsGraphStore

logger = get_logger(__name__)


def create_graph_store(settings: Settings) -> FindingsGraphStore:
    """Build the store named by `settings.graph_store_backend`.

    Example:
        >>> store = create_graph_store(get_settings())
    """
    backend = settings.graph_store_backend
    logger.info("graph_store_selected", backend=backend)

    if backend == "memory":
        return InMemoryFindingsGraphStore()
    if backend == "json":
        return JsonFileFindingsGraphStore(expand_path(settings.graph_store_dir))
    if backend == "postgres":
        return PostgresFindingsGraphStore(DatabaseConfig.from_dsn(settings.database_url))
    raise ValueError(f"Unknown graph store backend: {backend}")
