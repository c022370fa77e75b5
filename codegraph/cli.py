"""
Command line entry point.

    python -m codegraph init-db
    python -m codegraph ingest --tenant T --repo R --sha S [--changed F]... [--removed F]... records.ndjson

``ingest`` runs one indexing pass against the configured store and prints
the pass result as JSON. With the memory backend the graph only lives for
the duration of the command.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Optional, Sequence

from codegraph.core.config import Settings, get_settings
from codegraph.core.database import create_all, create_engine_from_settings
from codegraph.core.exceptions import CodeGraphError
from codegraph.core.logging import configure_logging, get_logger
from codegraph.services.graph_store.factory import create_graph_store
from codegraph.services.indexing_service import IndexingPass, IndexJob
from codegraph.services.ndjson import parse_ndjson

logger = get_logger(__name__)


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


async def _init_db(cfg: Settings) -> int:
    if not cfg.uses_sql_store:
        print("init-db requires GRAPH_STORE_BACKEND=sql")
        return 2
    engine = create_engine_from_settings(cfg)
    try:
        await create_all(engine)
    finally:
        await engine.dispose()
    logger.info("database_initialized", dialect=engine.dialect.name)
    return 0


async def _ingest(cfg: Settings, args: argparse.Namespace) -> dict[str, Any]:
    # Parse up front so a bad file fails before any store is touched
    records = list(parse_ndjson(_read_text(args.records)))

    engine = create_engine_from_settings(cfg) if cfg.uses_sql_store else None
    try:
        if engine is not None and args.create_tables:
            await create_all(engine)
        store = create_graph_store(cfg, engine=engine)
        job = IndexJob(
            tenant_id=args.tenant,
            repo_id=args.repo,
            sha=args.sha,
            changed_files=args.changed or [],
            removed_files=args.removed or [],
        )
        result = await IndexingPass(store, config=cfg).run(job, records)
        return result.as_dict()
    finally:
        if engine is not None:
            await engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="codegraph", description="Code intelligence graph engine.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create graph tables in the configured SQL database")

    ingest = sub.add_parser("ingest", help="Run an indexing pass over an NDJSON record file")
    ingest.add_argument("--tenant", required=True, help="Tenant id")
    ingest.add_argument("--repo", required=True, help="Repository id")
    ingest.add_argument("--sha", required=True, help="Commit sha of this pass")
    ingest.add_argument(
        "--changed", action="append", default=[], metavar="FILE", help="Changed file, repeat per file (incremental pass)"
    )
    ingest.add_argument(
        "--removed", action="append", default=[], metavar="FILE", help="Removed file, repeat per file (incremental pass)"
    )
    ingest.add_argument(
        "--create-tables",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Create tables before ingesting (SQL backend)",
    )
    ingest.add_argument("records", help="NDJSON file of {type, data} records, or - for stdin")
    return parser


def main(argv: Optional[Sequence[str]] = None, config: Settings | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = config or get_settings()
    configure_logging(cfg)

    if args.command == "init-db":
        return asyncio.run(_init_db(cfg))

    try:
        result = asyncio.run(_ingest(cfg, args))
    except (CodeGraphError, OSError) as exc:
        print(f"ingest failed: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0
