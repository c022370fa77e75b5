"""The Alembic migration produces a schema the SQL store can run on."""

import asyncio
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from codegraph.core.database import create_engine_from_settings
from codegraph.models.base import Base
from codegraph.services.graph_store.interface import GraphBatch
from codegraph.services.graph_store.sql import SqlGraphStore

from tests.conftest import REPO, TENANT, make_edge, make_node


PROJECT_DIR = Path(__file__).resolve().parents[1]


def _alembic(command_name: str, sync_url: str, monkeypatch) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(PROJECT_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_DIR / "alembic"))
    monkeypatch.setenv("ALEMBIC_DATABASE_URL_SYNC", sync_url)
    if command_name == "upgrade":
        command.upgrade(cfg, "head")
    else:
        command.downgrade(cfg, "base")


@pytest.mark.asyncio
async def test_upgrade_creates_every_model_table(tmp_path, monkeypatch, test_settings):
    db_path = tmp_path / "migrated.db"
    sync_url = f"sqlite:///{db_path}"

    await asyncio.to_thread(_alembic, "upgrade", sync_url, monkeypatch)

    sync_engine = create_engine(sync_url)
    try:
        tables = set(inspect(sync_engine).get_table_names())
    finally:
        sync_engine.dispose()
    assert {t for t in Base.metadata.tables} <= tables

    engine = create_engine_from_settings(test_settings, url=f"sqlite+aiosqlite:///{db_path}")
    try:
        store = SqlGraphStore(engine)
        await store.apply_batch(
            tenant_id=TENANT,
            repo_id=REPO,
            batch=GraphBatch(
                nodes=[make_node("js::a", "a.js"), make_node("js::b", "b.js")],
                edges=[make_edge("js::a", "js::b", metadata={"weight": 2})],
            ),
        )
        [edge] = await store.list_edges(tenant_id=TENANT, repo_id=REPO)
        assert edge.metadata == {"weight": 2}
    finally:
        await engine.dispose()

    await asyncio.to_thread(_alembic, "downgrade", sync_url, monkeypatch)

    sync_engine = create_engine(sync_url)
    try:
        remaining = set(inspect(sync_engine).get_table_names())
    finally:
        sync_engine.dispose()
    assert not remaining & set(Base.metadata.tables)
