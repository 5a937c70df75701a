"""IdeaGraph Storage - Findings Graph Store.

Version: 1.0.0

This package provides:
- FindingsGraphStore (abstract persistence contract)
- InMemoryFindingsGraphStore (tests, ephemeral runs)
- JsonFileFindingsGraphStore (local default, atomic file replace)
- PostgresFindingsGraphStore (asyncpg pooling, JSONB rows)
- create_graph_store (backend selection from settings)

Exclusive graph ownership - consumers read graphs only through a store.
"""

from ideagraph_storage.base import FindingsGraphStore
from ideagraph_storage.connection import (
    DatabaseConfig,
    close_connection_pool,
    get_connection_pool,
)
from ideagraph_storage.factory import create_graph_store
from ideagraph_storage.json_store import JsonFileFindingsGraphStore
from ideagraph_storage.memory_store import InMemoryFindingsGraphStore
from ideagraph_storage.postgres_store import PostgresFindingsGraphStore

__version__ = "1.0.0"

__all__ = [
    # Stores
    "FindingsGraphStore",
    "InMemoryFindingsGraphStore",
    "JsonFileFindingsGraphStore",
    "PostgresFindingsGraphStore",
    "create_graph_store",
    # Connection
    "DatabaseConfig",
    "get_connection_pool",
    "close_connection_pool",
]
