"""Tests for settings parsing and store selection."""

import pytest
from pydantic import ValidationError

from codegraph.core.config import DEFAULT_FLOW_EXCLUDED_EDGE_TYPES, Settings
from codegraph.services.graph_store.factory import create_graph_store
from codegraph.services.graph_store.memory import InMemoryGraphStore
from codegraph.services.graph_store.sql import SqlGraphStore


def test_defaults_use_memory_store_and_in_memory_sqlite():
    cfg = Settings(GRAPH_STORE_BACKEND="memory", POSTGRES_HOST=None, POSTGRES_URL=None, POSTGRES_URL_SYNC=None)

    assert cfg.uses_sql_store is False
    assert cfg.DATABASE_URL == "sqlite+aiosqlite:///:memory:"
    assert cfg.DATABASE_URL_SYNC == "sqlite:///:memory:"
    assert cfg.FLOW_EXCLUDED_EDGE_TYPES == DEFAULT_FLOW_EXCLUDED_EDGE_TYPES


def test_postgres_url_is_built_from_parts():
    cfg = Settings(
        POSTGRES_HOST="db",
        POSTGRES_USER="graph",
        POSTGRES_PASSWORD="secret",
        POSTGRES_DB="codegraph",
        POSTGRES_URL=None,
        POSTGRES_URL_SYNC=None,
    )

    assert cfg.DATABASE_URL == "postgresql+asyncpg://graph:secret@db:5432/codegraph"
    assert cfg.DATABASE_URL_SYNC == "postgresql://graph:secret@db:5432/codegraph"


def test_explicit_url_overrides_parts():
    cfg = Settings(POSTGRES_HOST="db", POSTGRES_URL="sqlite+aiosqlite:///./graph.db", POSTGRES_URL_SYNC=None)

    assert cfg.DATABASE_URL == "sqlite+aiosqlite:///./graph.db"
    assert cfg.DATABASE_URL_SYNC == "sqlite:///./graph.db"


@pytest.mark.parametrize("value", ["SQL", " sql "])
def test_backend_is_normalized(value):
    assert Settings(GRAPH_STORE_BACKEND=value).uses_sql_store


def test_unknown_backend_is_rejected():
    with pytest.raises(ValidationError):
        Settings(GRAPH_STORE_BACKEND="neo4j")


@pytest.mark.parametrize("field,value", [("IMPACT_DEPTH", 6), ("FLOW_GRAPH_DEPTH", 11), ("IMPACT_DEPTH", -1)])
def test_depth_bounds(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Imports, Defines", ["Imports", "Defines"]),
        ('["Imports", "Reads"]', ["Imports", "Reads"]),
        ("", []),
    ],
)
def test_excluded_edge_types_from_environment(monkeypatch, raw, expected):
    monkeypatch.setenv("FLOW_EXCLUDED_EDGE_TYPES", raw)

    assert Settings().FLOW_EXCLUDED_EDGE_TYPES == expected


def test_factory_builds_memory_store():
    store = create_graph_store(Settings(GRAPH_STORE_BACKEND="memory", EMBEDDING_DIMENSIONS=12))

    assert isinstance(store, InMemoryGraphStore)
    assert store.embedding_provider.dimensions == 12


@pytest.mark.asyncio
async def test_factory_builds_sql_store(sql_engine):
    store = create_graph_store(
        Settings(GRAPH_STORE_BACKEND="sql", SQL_BULK_CHUNK_SIZE=50), engine=sql_engine
    )

    assert isinstance(store, SqlGraphStore)
    assert store.chunk_size == 50
    assert store.engine is sql_engine
