"""Pytest configuration.

Settings are environment-driven; minimal defaults are set here before the
package is imported so tests do not depend on a developer's local .env.

Store tests run against both backends through the ``graph_store``
fixture. The SQL backend uses an in-memory aiosqlite database unless
TEST_DATABASE_URL points at another async URL (e.g. postgresql+asyncpg).
"""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("GRAPH_STORE_BACKEND", "memory")
os.environ.setdefault("EMBEDDING_DIMENSIONS", "16")

import pytest
import pytest_asyncio

from codegraph.core.config import Settings
from codegraph.core.database import create_all, create_engine_from_settings, drop_all
from codegraph.schemas.records import GraphEdge, GraphNode
from codegraph.services.embedding import HashEmbeddingProvider
from codegraph.services.graph_store.memory import InMemoryGraphStore
from codegraph.services.graph_store.sql import SqlGraphStore


TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL") or "sqlite+aiosqlite:///:memory:"

TENANT = "tenant-a"
REPO = "repo-1"


def make_node(uid: str, file_path: str, **extra) -> GraphNode:
    data = {
        "symbol_uid": uid,
        "node_type": "symbol",
        "qualified_name": uid,
        "name": uid.rsplit(".", 1)[-1],
        "symbol_kind": "function",
        "language": "javascript",
        "file_path": file_path,
        "line_start": 1,
        "line_end": 10,
        "first_seen_sha": "sha1",
        "last_seen_sha": "sha1",
    }
    data.update(extra)
    return GraphNode(**data)


def make_edge(source: str, target: str, edge_type: str = "Calls", **extra) -> GraphEdge:
    data = {
        "source_symbol_uid": source,
        "edge_type": edge_type,
        "target_symbol_uid": target,
        "first_seen_sha": "sha1",
        "last_seen_sha": "sha1",
    }
    data.update(extra)
    return GraphEdge(**data)


def node_record(uid: str, file_path: str, **extra) -> dict:
    return {"type": "node", "data": make_node(uid, file_path, **extra).model_dump(exclude_none=True)}


def edge_record(source: str, target: str, edge_type: str = "Calls", **extra) -> dict:
    return {"type": "edge", "data": make_edge(source, target, edge_type, **extra).model_dump(exclude_none=True)}


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        APP_ENV="test",
        GRAPH_STORE_BACKEND="memory",
        EMBEDDING_DIMENSIONS=16,
        IMPACT_DEPTH=2,
        FLOW_GRAPH_DEPTH=3,
    )


@pytest.fixture
def embedding_provider() -> HashEmbeddingProvider:
    return HashEmbeddingProvider(16)


@pytest.fixture
def memory_store(embedding_provider) -> InMemoryGraphStore:
    return InMemoryGraphStore(embedding_provider=embedding_provider)


@pytest_asyncio.fixture(scope="function")
async def sql_engine(test_settings):
    """Fresh database per test with every graph table created."""
    engine = create_engine_from_settings(test_settings, url=TEST_DATABASE_URL)
    await drop_all(engine)
    await create_all(engine)

    yield engine

    await drop_all(engine)
    await engine.dispose()


@pytest.fixture
def sql_store(sql_engine, embedding_provider) -> SqlGraphStore:
    # Small chunks so multi-statement upserts are exercised
    return SqlGraphStore(sql_engine, embedding_provider=embedding_provider, chunk_size=2)


@pytest.fixture(params=["memory", "sql"])
def graph_store(request, embedding_provider):
    """Runs a test once per backend."""
    if request.param == "memory":
        return InMemoryGraphStore(embedding_provider=embedding_provider)
    return request.getfixturevalue("sql_store")
