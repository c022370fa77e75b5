"""Graph store contract and its in-memory / SQL implementations."""

from codegraph.services.graph_store.factory import create_graph_store
from codegraph.services.graph_store.id_cache import CacheStage, SymbolIdCache
from codegraph.services.graph_store.interface import (
    BatchResult,
    GraphBatch,
    GraphStore,
    PruneResult,
)
from codegraph.services.graph_store.memory import InMemoryGraphStore
from codegraph.services.graph_store.sql import SqlGraphStore

__all__ = [
    "BatchResult",
    "CacheStage",
    "GraphBatch",
    "GraphStore",
    "InMemoryGraphStore",
    "PruneResult",
    "SqlGraphStore",
    "SymbolIdCache",
    "create_graph_store",
]
