"""Graph store selection by configuration."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from codegraph.core.config import Settings, settings as default_settings
from codegraph.core.database import create_engine_from_settings
from codegraph.services.embedding import EmbeddingProvider, HashEmbeddingProvider
from codegraph.services.graph_store.interface import GraphStore
from codegraph.services.graph_store.memory import InMemoryGraphStore
from codegraph.services.graph_store.sql import SqlGraphStore

logger = logging.getLogger(__name__)


def create_graph_store(
    config: Settings | None = None,
    *,
    engine: AsyncEngine | None = None,
    embedding_provider: EmbeddingProvider | None = None,
) -> GraphStore:
    """
    Build the store named by ``GRAPH_STORE_BACKEND``.

    Args:
        config: Settings; the process-wide settings when omitted
        engine: Reuse an existing engine for the SQL backend
        embedding_provider: Overrides the hash embedding provider
    """
    cfg = config or default_settings
    provider = embedding_provider or HashEmbeddingProvider(cfg.EMBEDDING_DIMENSIONS)

    if cfg.uses_sql_store:
        sql_engine = engine or create_engine_from_settings(cfg)
        logger.info("Using SQL graph store (%s)", sql_engine.dialect.name)
        return SqlGraphStore(
            sql_engine,
            embedding_provider=provider,
            chunk_size=cfg.SQL_BULK_CHUNK_SIZE,
        )

    logger.info("Using in-memory graph store")
    return InMemoryGraphStore(embedding_provider=provider)
