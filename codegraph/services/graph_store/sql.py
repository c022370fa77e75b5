"""
SQL Graph Store
===============

Transactional graph store on SQLAlchemy 2.0 async (PostgreSQL via asyncpg,
SQLite via aiosqlite).

Writes are set-based: each record type goes out as chunked multi-row
``INSERT ... ON CONFLICT DO UPDATE`` statements keyed on the natural-key
unique constraints. A whole ingestion batch, a flow-graph replace and a
prune each run in a single transaction; any exception rolls the
transaction back and propagates.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Optional, Sequence, TypeVar

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from codegraph.core.database import create_session_factory, transaction
from codegraph.core.exceptions import MissingGraphElementError
from codegraph.models import (
    CodeDeclaredDependency,
    CodeDependencyManifest,
    CodeDependencyMismatch,
    CodeEdge,
    CodeEdgeOccurrence,
    CodeFlowEntrypoint,
    CodeFlowGraph,
    CodeFlowGraphEdge,
    CodeFlowGraphNode,
    CodeIndexDiagnostic,
    CodeNode,
    CodeObservedDependency,
    CodeUnresolvedImport,
    generate_uuid,
    utc_now,
)
from codegraph.schemas.records import (
    DeclaredDependency,
    DependencyManifest,
    DependencyMismatch,
    Direction,
    EdgeOccurrence,
    EdgeRef,
    FlowEntrypoint,
    FlowGraph,
    FlowGraphSummary,
    GraphEdge,
    GraphNode,
    IndexDiagnostic,
    IndexMode,
    MismatchType,
    ObservedDependency,
    SearchHit,
    UnresolvedImport,
    make_edge_key,
    make_manifest_key,
    parse_flow_graph_key,
)
from codegraph.services.embedding import EmbeddingProvider, HashEmbeddingProvider, rank_by_similarity
from codegraph.services.graph_store.id_cache import CacheStage, SymbolIdCache
from codegraph.services.graph_store.interface import (
    IMPORT_EDGE_TYPE,
    BatchResult,
    GraphBatch,
    PruneResult,
    check_edge_endpoints,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NODE_COLUMNS = (
    "node_key",
    "node_type",
    "qualified_name",
    "name",
    "symbol_kind",
    "language",
    "file_path",
    "line_start",
    "line_end",
    "visibility",
    "signature",
    "signature_hash",
    "declaration",
    "docstring",
    "parameters",
    "contract",
    "constraints",
    "allowable_values",
    "external_ref",
    "embedding",
    "embedding_text",
)


def _chunks(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class SqlGraphStore:
    """
    Graph store backed by a relational database.

    Args:
        engine: Async engine (``postgresql+asyncpg`` or ``sqlite+aiosqlite``)
        embedding_provider: Embeds semantic_search queries
        id_cache: Shared symbol/edge id memo; one is created if omitted
        chunk_size: Rows per multi-row upsert statement
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        embedding_provider: EmbeddingProvider | None = None,
        id_cache: SymbolIdCache | None = None,
        chunk_size: int = 200,
    ):
        dialect = engine.dialect.name
        if dialect == "postgresql":
            self._insert = postgresql.insert
        elif dialect == "sqlite":
            self._insert = sqlite.insert
        else:
            raise ValueError(f"unsupported SQL dialect for graph store: {dialect}")

        self.engine = engine
        self.session_factory = session_factory or create_session_factory(engine)
        self.embedding_provider = embedding_provider or HashEmbeddingProvider()
        self.id_cache = id_cache or SymbolIdCache()
        self.chunk_size = max(1, int(chunk_size))

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _upsert(
        self,
        session: AsyncSession,
        model,
        rows: list[dict[str, Any]],
        *,
        conflict: Sequence[str],
        update: Iterable[str],
        coalesce: Iterable[str] = (),
    ) -> None:
        """Chunked multi-row upsert on ``conflict``; ``coalesce`` columns keep the old value over NULL."""
        if not rows:
            return
        table = model.__table__
        update = list(update)
        coalesce = set(coalesce)
        for chunk in _chunks(rows, self.chunk_size):
            stmt = self._insert(table).values(list(chunk))
            set_: dict[str, Any] = {}
            for col in update:
                if col in coalesce:
                    set_[col] = func.coalesce(stmt.excluded[col], table.c[col])
                else:
                    set_[col] = stmt.excluded[col]
            if "updated_at" in table.c:
                set_["updated_at"] = func.now()
            stmt = stmt.on_conflict_do_update(index_elements=list(conflict), set_=set_)
            await session.execute(stmt)

    @staticmethod
    async def _delete(session: AsyncSession, stmt) -> int:
        """Run a bulk DELETE without syncing the identity map; returns rows removed."""
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount or 0

    async def _resolve_node_ids(
        self,
        session: AsyncSession,
        stage: CacheStage,
        tenant_id: str,
        repo_id: str,
        symbol_uids: Iterable[str],
    ) -> dict[str, str]:
        wanted = set(symbol_uids)
        found = self.id_cache.node_ids(stage, wanted)
        missing = sorted(wanted - found.keys())
        for chunk in _chunks(missing, self.chunk_size):
            rows = await session.execute(
                select(CodeNode.symbol_uid, CodeNode.id).where(
                    CodeNode.tenant_id == tenant_id,
                    CodeNode.repo_id == repo_id,
                    CodeNode.symbol_uid.in_(chunk),
                )
            )
            for uid, node_id in rows:
                found[uid] = str(node_id)
                stage.node_ids[uid] = str(node_id)
        return found

    async def _resolve_edge_ids(
        self,
        session: AsyncSession,
        stage: CacheStage,
        tenant_id: str,
        repo_id: str,
        refs: dict[str, EdgeRef],
    ) -> dict[str, str]:
        found = self.id_cache.edge_ids(stage, refs)
        missing = {k: r for k, r in refs.items() if k not in found}
        sources = sorted({r.source_symbol_uid for r in missing.values()})
        for chunk in _chunks(sources, self.chunk_size):
            rows = await session.execute(
                select(
                    CodeEdge.id,
                    CodeEdge.source_symbol_uid,
                    CodeEdge.edge_type,
                    CodeEdge.target_symbol_uid,
                ).where(
                    CodeEdge.tenant_id == tenant_id,
                    CodeEdge.repo_id == repo_id,
                    CodeEdge.source_symbol_uid.in_(chunk),
                )
            )
            for edge_id, src, edge_type, dst in rows:
                key = make_edge_key(src, edge_type, dst)
                if key in missing:
                    found[key] = str(edge_id)
                    stage.edge_ids[key] = str(edge_id)
        return found

    @staticmethod
    def _node_row(tenant_id: str, repo_id: str, node: GraphNode) -> dict[str, Any]:
        row = {col: getattr(node, col) for col in _NODE_COLUMNS}
        row.update(
            id=generate_uuid(),
            tenant_id=tenant_id,
            repo_id=repo_id,
            symbol_uid=node.symbol_uid,
            extra=node.model_extra or None,
            first_seen_sha=node.first_seen_sha,
            last_seen_sha=node.last_seen_sha,
        )
        return row

    @staticmethod
    def _to_node(row: CodeNode) -> GraphNode:
        data = dict(row.extra or {})
        data.update({col: getattr(row, col) for col in _NODE_COLUMNS})
        data.update(
            symbol_uid=row.symbol_uid,
            first_seen_sha=row.first_seen_sha,
            last_seen_sha=row.last_seen_sha,
        )
        return GraphNode(**data)

    @staticmethod
    def _to_edge(row: CodeEdge) -> GraphEdge:
        data = dict(row.extra or {})
        data.update(
            source_symbol_uid=row.source_symbol_uid,
            edge_type=row.edge_type,
            target_symbol_uid=row.target_symbol_uid,
            metadata=row.metadata_,
            first_seen_sha=row.first_seen_sha,
            last_seen_sha=row.last_seen_sha,
        )
        return GraphEdge(**data)

    # =========================================================================
    # Mutation
    # =========================================================================

    async def apply_batch(self, *, tenant_id: str, repo_id: str, batch: GraphBatch) -> BatchResult:
        batch = batch.deduplicated()
        stage = self.id_cache.stage(tenant_id, repo_id)
        implied: list[GraphEdge] = []

        async with transaction(self.session_factory) as session:
            await self._upsert(
                session,
                CodeNode,
                [self._node_row(tenant_id, repo_id, n) for n in batch.nodes],
                conflict=("tenant_id", "repo_id", "symbol_uid"),
                update=_NODE_COLUMNS + ("extra", "last_seen_sha"),
            )

            # Edges named only by occurrences are created when absent from the store.
            candidates = {e.key: EdgeRef.of(e) for e in batch.implied_edges()}
            if candidates:
                existing = await self._resolve_edge_ids(session, stage, tenant_id, repo_id, candidates)
                implied = [e for e in batch.implied_edges() if e.key not in existing]

            edges = batch.edges + implied
            endpoint_uids = {uid for e in edges for uid in (e.source_symbol_uid, e.target_symbol_uid)}
            node_ids = await self._resolve_node_ids(
                session, stage, tenant_id, repo_id, endpoint_uids | {n.symbol_uid for n in batch.nodes}
            )
            check_edge_endpoints(edges, set(node_ids))

            await self._upsert(
                session,
                CodeEdge,
                [
                    {
                        "id": generate_uuid(),
                        "tenant_id": tenant_id,
                        "repo_id": repo_id,
                        "source_node_id": node_ids[e.source_symbol_uid],
                        "target_node_id": node_ids[e.target_symbol_uid],
                        "source_symbol_uid": e.source_symbol_uid,
                        "edge_type": e.edge_type,
                        "target_symbol_uid": e.target_symbol_uid,
                        "metadata": e.metadata,
                        "extra": e.model_extra or None,
                        "first_seen_sha": e.first_seen_sha,
                        "last_seen_sha": e.last_seen_sha,
                    }
                    for e in edges
                ],
                conflict=("tenant_id", "repo_id", "source_symbol_uid", "edge_type", "target_symbol_uid"),
                update=("source_node_id", "target_node_id", "metadata", "extra", "last_seen_sha"),
                coalesce=("metadata",),
            )

            if batch.occurrences:
                edge_ids = await self._resolve_edge_ids(
                    session,
                    stage,
                    tenant_id,
                    repo_id,
                    {o.edge_key: EdgeRef.of(o) for o in batch.occurrences},
                )
                await self._upsert(
                    session,
                    CodeEdgeOccurrence,
                    [
                        {
                            "id": generate_uuid(),
                            "tenant_id": tenant_id,
                            "repo_id": repo_id,
                            "edge_id": edge_ids[o.edge_key],
                            "file_path": o.file_path,
                            "line_start": o.line_start,
                            "line_end": o.line_end,
                            "occurrence_kind": o.occurrence_kind,
                            "sha": o.sha,
                        }
                        for o in batch.occurrences
                    ],
                    conflict=("edge_id", "file_path", "line_start", "line_end"),
                    update=("occurrence_kind", "sha"),
                )

            await self._upsert(
                session,
                CodeFlowEntrypoint,
                [
                    {
                        "id": generate_uuid(),
                        "tenant_id": tenant_id,
                        "repo_id": repo_id,
                        "entrypoint_key": ep.entrypoint_key,
                        "entrypoint_type": ep.entrypoint_type,
                        "method": ep.method,
                        "path": ep.path,
                        "symbol_uid": ep.symbol_uid,
                        "file_path": ep.file_path,
                        "line_start": ep.line_start,
                        "line_end": ep.line_end,
                        "sha": ep.sha,
                    }
                    for ep in batch.entrypoints
                ],
                conflict=("tenant_id", "repo_id", "entrypoint_key"),
                update=(
                    "entrypoint_type", "method", "path", "symbol_uid",
                    "file_path", "line_start", "line_end", "sha",
                ),
            )

            now = utc_now()
            await self._upsert(
                session,
                CodeDependencyManifest,
                [
                    {
                        "id": generate_uuid(),
                        "tenant_id": tenant_id,
                        "repo_id": repo_id,
                        "manifest_type": m.manifest_type,
                        "file_path": m.file_path,
                        "sha": m.sha,
                        "parsed": m.parsed,
                        "indexed_at": m.indexed_at or now,
                    }
                    for m in batch.manifests
                ],
                conflict=("tenant_id", "repo_id", "file_path", "sha"),
                update=("manifest_type", "parsed", "indexed_at"),
            )

            await self._upsert(
                session,
                CodeDeclaredDependency,
                [
                    {
                        "id": generate_uuid(),
                        "tenant_id": tenant_id,
                        "repo_id": repo_id,
                        "manifest_key": d.manifest_key,
                        "package_key": d.package_key,
                        "scope": d.scope,
                        "version_range": d.version_range,
                        "metadata": d.metadata,
                        "sha": d.sha,
                    }
                    for d in batch.declared
                ],
                conflict=("tenant_id", "repo_id", "manifest_key", "package_key", "scope"),
                update=("version_range", "metadata", "sha"),
            )

            await self._upsert(
                session,
                CodeObservedDependency,
                [
                    {
                        "id": generate_uuid(),
                        "tenant_id": tenant_id,
                        "repo_id": repo_id,
                        "source_symbol_uid": o.source_symbol_uid,
                        "package_key": o.package_key,
                        "file_path": o.file_path,
                        "evidence": o.evidence,
                        "first_seen_sha": o.first_seen_sha,
                        "last_seen_sha": o.last_seen_sha,
                    }
                    for o in batch.observed
                ],
                conflict=("tenant_id", "repo_id", "source_symbol_uid", "package_key"),
                update=("file_path", "evidence", "last_seen_sha"),
            )

            by_sha: dict[str, list[DependencyMismatch]] = {}
            for m in batch.mismatches:
                by_sha.setdefault(m.sha, []).append(m)
            for sha, rows in by_sha.items():
                await self._replace_mismatches(session, tenant_id, repo_id, sha, rows)

            if batch.diagnostics:
                await session.execute(
                    self._insert(CodeIndexDiagnostic.__table__).values(
                        [self._diagnostic_row(tenant_id, repo_id, d, now) for d in batch.diagnostics]
                    )
                )

            await self._upsert(
                session,
                CodeUnresolvedImport,
                [
                    {
                        "id": generate_uuid(),
                        "tenant_id": tenant_id,
                        "repo_id": repo_id,
                        "file_path": u.file_path,
                        "line": u.line,
                        "spec": u.spec,
                        "kind": u.kind,
                        "sha": u.sha,
                    }
                    for u in batch.unresolved_imports
                ],
                conflict=("tenant_id", "repo_id", "file_path", "line", "spec", "sha"),
                update=("kind",),
            )

        # Only ids from a committed transaction reach the shared cache.
        self.id_cache.publish(stage)

        result = BatchResult(
            nodes=len(batch.nodes),
            edges=len(batch.edges) + len(implied),
            occurrences=len(batch.occurrences),
            entrypoints=len(batch.entrypoints),
            manifests=len(batch.manifests),
            declared=len(batch.declared),
            observed=len(batch.observed),
            mismatches=len(batch.mismatches),
            diagnostics=len(batch.diagnostics),
            unresolved_imports=len(batch.unresolved_imports),
        )
        logger.debug("Applied graph batch for %s/%s: %s", tenant_id, repo_id, result.as_dict())
        return result

    @staticmethod
    def _diagnostic_row(tenant_id: str, repo_id: str, d: IndexDiagnostic, now) -> dict[str, Any]:
        return {
            "tenant_id": tenant_id,
            "repo_id": repo_id,
            "sha": d.sha,
            "mode": IndexMode(d.mode).value,
            "changed_files": list(d.changed_files),
            "removed_files": list(d.removed_files),
            "impacted_files": list(d.impacted_files),
            "reparsed_files": list(d.reparsed_files),
            "impacted_symbol_uids": list(d.impacted_symbol_uids),
            "note": d.note,
            "created_at": d.created_at or now,
        }

    async def _replace_mismatches(
        self,
        session: AsyncSession,
        tenant_id: str,
        repo_id: str,
        sha: str,
        mismatches: Sequence[DependencyMismatch],
    ) -> None:
        await self._delete(
            session,
            delete(CodeDependencyMismatch).where(
                CodeDependencyMismatch.tenant_id == tenant_id,
                CodeDependencyMismatch.repo_id == repo_id,
                CodeDependencyMismatch.sha == sha,
            ),
        )
        rows = [
            {
                "id": generate_uuid(),
                "tenant_id": tenant_id,
                "repo_id": repo_id,
                "sha": sha,
                "mismatch_type": MismatchType(m.mismatch_type).value,
                "package_key": m.package_key,
                "details": m.details,
            }
            for m in mismatches
        ]
        for chunk in _chunks(rows, self.chunk_size):
            await session.execute(self._insert(CodeDependencyMismatch.__table__).values(list(chunk)))

    async def upsert_node(self, *, tenant_id: str, repo_id: str, node: GraphNode) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(nodes=[node]))

    async def upsert_edge(self, *, tenant_id: str, repo_id: str, edge: GraphEdge) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(edges=[edge]))

    async def add_edge_occurrence(self, *, tenant_id: str, repo_id: str, occurrence: EdgeOccurrence) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(occurrences=[occurrence]))

    async def upsert_flow_entrypoint(self, *, tenant_id: str, repo_id: str, entrypoint: FlowEntrypoint) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(entrypoints=[entrypoint]))

    async def add_dependency_manifest(self, *, tenant_id: str, repo_id: str, manifest: DependencyManifest) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(manifests=[manifest]))

    async def add_declared_dependency(self, *, tenant_id: str, repo_id: str, declared: DeclaredDependency) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(declared=[declared]))

    async def add_observed_dependency(self, *, tenant_id: str, repo_id: str, observed: ObservedDependency) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(observed=[observed]))

    async def replace_dependency_mismatches(
        self, *, tenant_id: str, repo_id: str, sha: str, mismatches: Sequence[DependencyMismatch]
    ) -> int:
        async with transaction(self.session_factory) as session:
            await self._replace_mismatches(session, tenant_id, repo_id, sha, list(mismatches))
        return len(mismatches)

    async def add_index_diagnostic(self, *, tenant_id: str, repo_id: str, diagnostic: IndexDiagnostic) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(diagnostics=[diagnostic]))

    async def add_unresolved_import(
        self, *, tenant_id: str, repo_id: str, unresolved_import: UnresolvedImport
    ) -> None:
        await self.apply_batch(
            tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(unresolved_imports=[unresolved_import])
        )

    async def upsert_flow_graph(self, *, tenant_id: str, repo_id: str, flow_graph: FlowGraph) -> None:
        """Replace the membership stored under the flow graph's key in one transaction."""
        stage = self.id_cache.stage(tenant_id, repo_id)
        async with transaction(self.session_factory) as session:
            node_ids = await self._resolve_node_ids(session, stage, tenant_id, repo_id, flow_graph.node_uids)
            missing_nodes = [uid for uid in flow_graph.node_uids if uid not in node_ids]
            if missing_nodes:
                raise MissingGraphElementError(f"flow graph references unknown nodes: {missing_nodes}")
            edge_ids = await self._resolve_edge_ids(
                session, stage, tenant_id, repo_id, {e.key: e for e in flow_graph.edges}
            )
            missing_edges = [e.key for e in flow_graph.edges if e.key not in edge_ids]
            if missing_edges:
                raise MissingGraphElementError(f"flow graph references unknown edges: {missing_edges}")

            await self._upsert(
                session,
                CodeFlowGraph,
                [
                    {
                        "id": generate_uuid(),
                        "tenant_id": tenant_id,
                        "repo_id": repo_id,
                        "entrypoint_key": flow_graph.entrypoint_key,
                        "sha": flow_graph.sha,
                        "depth": flow_graph.depth,
                        "start_symbol_uid": flow_graph.start_symbol_uid,
                    }
                ],
                conflict=("tenant_id", "repo_id", "entrypoint_key", "sha", "depth"),
                update=("start_symbol_uid",),
            )
            flow_graph_id = (
                await session.execute(
                    select(CodeFlowGraph.id).where(
                        CodeFlowGraph.tenant_id == tenant_id,
                        CodeFlowGraph.repo_id == repo_id,
                        CodeFlowGraph.entrypoint_key == flow_graph.entrypoint_key,
                        CodeFlowGraph.sha == flow_graph.sha,
                        CodeFlowGraph.depth == flow_graph.depth,
                    )
                )
            ).scalar_one()

            await self._delete(
                session, delete(CodeFlowGraphNode).where(CodeFlowGraphNode.flow_graph_id == flow_graph_id)
            )
            await self._delete(
                session, delete(CodeFlowGraphEdge).where(CodeFlowGraphEdge.flow_graph_id == flow_graph_id)
            )

            node_rows = [{"flow_graph_id": flow_graph_id, "symbol_uid": uid} for uid in flow_graph.node_uids]
            for chunk in _chunks(node_rows, self.chunk_size):
                await session.execute(self._insert(CodeFlowGraphNode.__table__).values(list(chunk)))
            edge_rows = [
                {
                    "flow_graph_id": flow_graph_id,
                    "source_symbol_uid": e.source_symbol_uid,
                    "edge_type": e.edge_type,
                    "target_symbol_uid": e.target_symbol_uid,
                }
                for e in flow_graph.edges
            ]
            for chunk in _chunks(edge_rows, self.chunk_size):
                await session.execute(self._insert(CodeFlowGraphEdge.__table__).values(list(chunk)))

        self.id_cache.publish(stage)

    async def delete_graph_for_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> PruneResult:
        paths = sorted({p for p in file_paths if p})
        result = PruneResult()
        if not paths:
            return result

        removed_edge_keys: list[str] = []
        seen_edge_keys: set[str] = set()

        async with transaction(self.session_factory) as session:
            removed_uids: list[str] = []
            for chunk in _chunks(paths, self.chunk_size):
                rows = await session.execute(
                    select(CodeNode.symbol_uid).where(
                        CodeNode.tenant_id == tenant_id,
                        CodeNode.repo_id == repo_id,
                        CodeNode.file_path.in_(chunk),
                    )
                )
                removed_uids.extend(rows.scalars())
            removed_uids = sorted(set(removed_uids))

            removed_edge_ids: list[str] = []
            for chunk in _chunks(removed_uids, self.chunk_size):
                rows = await session.execute(
                    select(
                        CodeEdge.id,
                        CodeEdge.source_symbol_uid,
                        CodeEdge.edge_type,
                        CodeEdge.target_symbol_uid,
                    ).where(
                        CodeEdge.tenant_id == tenant_id,
                        CodeEdge.repo_id == repo_id,
                        or_(CodeEdge.source_symbol_uid.in_(chunk), CodeEdge.target_symbol_uid.in_(chunk)),
                    )
                )
                for edge_id, src, edge_type, dst in rows:
                    key = make_edge_key(src, edge_type, dst)
                    if key not in seen_edge_keys:
                        seen_edge_keys.add(key)
                        removed_edge_keys.append(key)
                        removed_edge_ids.append(str(edge_id))

            for chunk in _chunks(removed_edge_ids, self.chunk_size):
                removed = await self._delete(
                    session,
                    delete(CodeEdgeOccurrence).where(CodeEdgeOccurrence.edge_id.in_(chunk)),
                )
                result.occurrences += removed
            for chunk in _chunks(paths, self.chunk_size):
                removed = await self._delete(
                    session,
                    delete(CodeEdgeOccurrence).where(
                        CodeEdgeOccurrence.tenant_id == tenant_id,
                        CodeEdgeOccurrence.repo_id == repo_id,
                        CodeEdgeOccurrence.file_path.in_(chunk),
                    )
                )
                result.occurrences += removed

            for chunk in _chunks(removed_edge_ids, self.chunk_size):
                removed = await self._delete(
                    session,
                    delete(CodeEdge).where(CodeEdge.id.in_(chunk)),
                )
                result.edges += removed

            for chunk in _chunks(paths, self.chunk_size):
                removed = await self._delete(
                    session,
                    delete(CodeNode).where(
                        CodeNode.tenant_id == tenant_id,
                        CodeNode.repo_id == repo_id,
                        CodeNode.file_path.in_(chunk),
                    )
                )
                result.nodes += removed

                removed = await self._delete(
                    session,
                    delete(CodeFlowEntrypoint).where(
                        CodeFlowEntrypoint.tenant_id == tenant_id,
                        CodeFlowEntrypoint.repo_id == repo_id,
                        CodeFlowEntrypoint.file_path.in_(chunk),
                    )
                )
                result.entrypoints += removed

                removed = await self._delete(
                    session,
                    delete(CodeUnresolvedImport).where(
                        CodeUnresolvedImport.tenant_id == tenant_id,
                        CodeUnresolvedImport.repo_id == repo_id,
                        CodeUnresolvedImport.file_path.in_(chunk),
                    )
                )
                result.unresolved_imports += removed

                removed = await self._delete(
                    session,
                    delete(CodeObservedDependency).where(
                        CodeObservedDependency.tenant_id == tenant_id,
                        CodeObservedDependency.repo_id == repo_id,
                        CodeObservedDependency.file_path.in_(chunk),
                    )
                )
                result.observed_dependencies += removed

            for chunk in _chunks(removed_uids, self.chunk_size):
                removed = await self._delete(
                    session,
                    delete(CodeObservedDependency).where(
                        CodeObservedDependency.tenant_id == tenant_id,
                        CodeObservedDependency.repo_id == repo_id,
                        CodeObservedDependency.source_symbol_uid.in_(chunk),
                    )
                )
                result.observed_dependencies += removed

            manifest_keys: list[str] = []
            for chunk in _chunks(paths, self.chunk_size):
                rows = await session.execute(
                    select(CodeDependencyManifest.file_path, CodeDependencyManifest.sha).where(
                        CodeDependencyManifest.tenant_id == tenant_id,
                        CodeDependencyManifest.repo_id == repo_id,
                        CodeDependencyManifest.file_path.in_(chunk),
                    )
                )
                manifest_keys.extend(make_manifest_key(fp, sha) for fp, sha in rows)
                removed = await self._delete(
                    session,
                    delete(CodeDependencyManifest).where(
                        CodeDependencyManifest.tenant_id == tenant_id,
                        CodeDependencyManifest.repo_id == repo_id,
                        CodeDependencyManifest.file_path.in_(chunk),
                    )
                )
                result.manifests += removed
            for chunk in _chunks(manifest_keys, self.chunk_size):
                removed = await self._delete(
                    session,
                    delete(CodeDeclaredDependency).where(
                        CodeDeclaredDependency.tenant_id == tenant_id,
                        CodeDeclaredDependency.repo_id == repo_id,
                        CodeDeclaredDependency.manifest_key.in_(chunk),
                    )
                )
                result.declared_dependencies += removed

            scope_graphs = select(CodeFlowGraph.id).where(
                CodeFlowGraph.tenant_id == tenant_id,
                CodeFlowGraph.repo_id == repo_id,
            )
            for chunk in _chunks(removed_uids, self.chunk_size):
                removed = await self._delete(
                    session,
                    delete(CodeFlowGraphNode).where(
                        CodeFlowGraphNode.flow_graph_id.in_(scope_graphs),
                        CodeFlowGraphNode.symbol_uid.in_(chunk),
                    )
                )
                result.flow_graph_nodes += removed
                removed = await self._delete(
                    session,
                    delete(CodeFlowGraphEdge).where(
                        CodeFlowGraphEdge.flow_graph_id.in_(scope_graphs),
                        or_(
                            CodeFlowGraphEdge.source_symbol_uid.in_(chunk),
                            CodeFlowGraphEdge.target_symbol_uid.in_(chunk),
                        ),
                    )
                )
                result.flow_graph_edges += removed

            result.removed_symbol_uids = removed_uids

        self.id_cache.evict(tenant_id, repo_id, symbol_uids=removed_uids, edge_keys=removed_edge_keys)
        logger.debug("Pruned %d file path(s) for %s/%s: %s", len(paths), tenant_id, repo_id, result.as_dict())
        return result

    # =========================================================================
    # Query
    # =========================================================================

    async def list_nodes(self, *, tenant_id: str, repo_id: str) -> list[GraphNode]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeNode)
                .where(CodeNode.tenant_id == tenant_id, CodeNode.repo_id == repo_id)
                .order_by(CodeNode.symbol_uid)
            )
            return [self._to_node(r) for r in rows.scalars()]

    async def get_node_by_symbol_uid(
        self, *, tenant_id: str, repo_id: str, symbol_uid: str
    ) -> Optional[GraphNode]:
        async with self.session_factory() as session:
            row = (
                await session.execute(
                    select(CodeNode).where(
                        CodeNode.tenant_id == tenant_id,
                        CodeNode.repo_id == repo_id,
                        CodeNode.symbol_uid == symbol_uid,
                    )
                )
            ).scalar_one_or_none()
            return self._to_node(row) if row is not None else None

    async def list_edges(self, *, tenant_id: str, repo_id: str) -> list[GraphEdge]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeEdge).where(CodeEdge.tenant_id == tenant_id, CodeEdge.repo_id == repo_id)
            )
            return sorted((self._to_edge(r) for r in rows.scalars()), key=lambda e: e.key)

    async def list_edges_by_node(
        self, *, tenant_id: str, repo_id: str, symbol_uid: str, direction: Direction | str = Direction.BOTH
    ) -> list[GraphEdge]:
        return await self.list_edges_by_nodes(
            tenant_id=tenant_id, repo_id=repo_id, symbol_uids=[symbol_uid], direction=direction
        )

    async def list_edges_by_nodes(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        symbol_uids: Sequence[str],
        direction: Direction | str = Direction.BOTH,
    ) -> list[GraphEdge]:
        d = Direction(direction)
        uids = sorted(set(symbol_uids))
        edges: dict[str, GraphEdge] = {}
        async with self.session_factory() as session:
            for chunk in _chunks(uids, self.chunk_size):
                if d is Direction.OUT:
                    cond = CodeEdge.source_symbol_uid.in_(chunk)
                elif d is Direction.IN:
                    cond = CodeEdge.target_symbol_uid.in_(chunk)
                else:
                    cond = or_(CodeEdge.source_symbol_uid.in_(chunk), CodeEdge.target_symbol_uid.in_(chunk))
                rows = await session.execute(
                    select(CodeEdge).where(CodeEdge.tenant_id == tenant_id, CodeEdge.repo_id == repo_id, cond)
                )
                for r in rows.scalars():
                    edge = self._to_edge(r)
                    edges[edge.key] = edge
        return [edges[k] for k in sorted(edges)]

    def _occurrence_query(self, tenant_id: str, repo_id: str):
        return (
            select(
                CodeEdgeOccurrence,
                CodeEdge.source_symbol_uid,
                CodeEdge.edge_type,
                CodeEdge.target_symbol_uid,
            )
            .join(CodeEdge, CodeEdge.id == CodeEdgeOccurrence.edge_id)
            .where(CodeEdgeOccurrence.tenant_id == tenant_id, CodeEdgeOccurrence.repo_id == repo_id)
        )

    @staticmethod
    def _to_occurrence(occ: CodeEdgeOccurrence, src: str, edge_type: str, dst: str) -> EdgeOccurrence:
        return EdgeOccurrence(
            source_symbol_uid=src,
            edge_type=edge_type,
            target_symbol_uid=dst,
            file_path=occ.file_path,
            line_start=occ.line_start,
            line_end=occ.line_end,
            occurrence_kind=occ.occurrence_kind,
            sha=occ.sha,
        )

    async def list_edge_occurrences(self, *, tenant_id: str, repo_id: str) -> list[EdgeOccurrence]:
        async with self.session_factory() as session:
            rows = await session.execute(self._occurrence_query(tenant_id, repo_id))
            return sorted((self._to_occurrence(*r) for r in rows), key=lambda o: o.key)

    async def list_edge_occurrences_for_edge(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        source_symbol_uid: str,
        edge_type: str,
        target_symbol_uid: str,
    ) -> list[EdgeOccurrence]:
        async with self.session_factory() as session:
            rows = await session.execute(
                self._occurrence_query(tenant_id, repo_id)
                .where(
                    CodeEdge.source_symbol_uid == source_symbol_uid,
                    CodeEdge.edge_type == edge_type,
                    CodeEdge.target_symbol_uid == target_symbol_uid,
                )
                .order_by(CodeEdgeOccurrence.file_path, CodeEdgeOccurrence.line_start, CodeEdgeOccurrence.line_end)
            )
            return [self._to_occurrence(*r) for r in rows]

    async def semantic_search(
        self, *, tenant_id: str, repo_id: str, query: str, limit: int = 10
    ) -> list[SearchHit]:
        q = str(query or "").strip()
        if not q:
            return []
        qvec = self.embedding_provider.embed(q)
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeNode).where(
                    CodeNode.tenant_id == tenant_id,
                    CodeNode.repo_id == repo_id,
                    CodeNode.embedding.is_not(None),
                )
            )
            nodes = [self._to_node(r) for r in rows.scalars()]
        ranked = rank_by_similarity(qvec, ((n.symbol_uid, n.embedding, n) for n in nodes), limit=limit)
        return [SearchHit(node=n, score=score) for n, score in ranked]

    async def list_flow_entrypoints(self, *, tenant_id: str, repo_id: str) -> list[FlowEntrypoint]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeFlowEntrypoint)
                .where(CodeFlowEntrypoint.tenant_id == tenant_id, CodeFlowEntrypoint.repo_id == repo_id)
                .order_by(CodeFlowEntrypoint.entrypoint_key)
            )
            return [FlowEntrypoint.model_validate(r) for r in rows.scalars()]

    async def get_flow_graph(
        self, *, tenant_id: str, repo_id: str, flow_graph_key: str
    ) -> Optional[FlowGraph]:
        parsed = parse_flow_graph_key(flow_graph_key)
        if parsed is None:
            return None
        entrypoint_key, sha, depth = parsed
        async with self.session_factory() as session:
            fg = (
                await session.execute(
                    select(CodeFlowGraph).where(
                        CodeFlowGraph.tenant_id == tenant_id,
                        CodeFlowGraph.repo_id == repo_id,
                        CodeFlowGraph.entrypoint_key == entrypoint_key,
                        CodeFlowGraph.sha == sha,
                        CodeFlowGraph.depth == depth,
                    )
                )
            ).scalar_one_or_none()
            if fg is None:
                return None
            node_uids = (
                await session.execute(
                    select(CodeFlowGraphNode.symbol_uid).where(CodeFlowGraphNode.flow_graph_id == fg.id)
                )
            ).scalars().all()
            edge_rows = await session.execute(
                select(
                    CodeFlowGraphEdge.source_symbol_uid,
                    CodeFlowGraphEdge.edge_type,
                    CodeFlowGraphEdge.target_symbol_uid,
                ).where(CodeFlowGraphEdge.flow_graph_id == fg.id)
            )
            edges = [
                EdgeRef(source_symbol_uid=s, edge_type=t, target_symbol_uid=d) for s, t, d in edge_rows
            ]
            return FlowGraph(
                entrypoint_key=fg.entrypoint_key,
                start_symbol_uid=fg.start_symbol_uid,
                sha=fg.sha,
                depth=fg.depth,
                node_uids=list(node_uids),
                edges=edges,
            )

    async def list_flow_graphs(self, *, tenant_id: str, repo_id: str) -> list[FlowGraphSummary]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeFlowGraph).where(CodeFlowGraph.tenant_id == tenant_id, CodeFlowGraph.repo_id == repo_id)
            )
            summaries = [
                FlowGraphSummary(
                    entrypoint_key=r.entrypoint_key,
                    start_symbol_uid=r.start_symbol_uid,
                    sha=r.sha,
                    depth=r.depth,
                )
                for r in rows.scalars()
            ]
        return sorted(summaries, key=lambda s: s.flow_graph_key)

    async def list_dependency_manifests(self, *, tenant_id: str, repo_id: str) -> list[DependencyManifest]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeDependencyManifest).where(
                    CodeDependencyManifest.tenant_id == tenant_id,
                    CodeDependencyManifest.repo_id == repo_id,
                )
            )
            manifests = [DependencyManifest.model_validate(r) for r in rows.scalars()]
        return sorted(manifests, key=lambda m: m.manifest_key)

    async def list_declared_dependencies(self, *, tenant_id: str, repo_id: str) -> list[DeclaredDependency]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeDeclaredDependency).where(
                    CodeDeclaredDependency.tenant_id == tenant_id,
                    CodeDeclaredDependency.repo_id == repo_id,
                )
            )
            declared = [
                DeclaredDependency(
                    manifest_key=r.manifest_key,
                    package_key=r.package_key,
                    scope=r.scope,
                    version_range=r.version_range,
                    metadata=r.metadata_,
                    sha=r.sha,
                )
                for r in rows.scalars()
            ]
        return sorted(declared, key=lambda d: d.key)

    async def list_observed_dependencies(self, *, tenant_id: str, repo_id: str) -> list[ObservedDependency]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeObservedDependency).where(
                    CodeObservedDependency.tenant_id == tenant_id,
                    CodeObservedDependency.repo_id == repo_id,
                )
            )
            observed = [ObservedDependency.model_validate(r) for r in rows.scalars()]
        return sorted(observed, key=lambda o: o.key)

    async def list_dependency_mismatches(
        self, *, tenant_id: str, repo_id: str, sha: Optional[str] = None
    ) -> list[DependencyMismatch]:
        stmt = select(CodeDependencyMismatch).where(
            CodeDependencyMismatch.tenant_id == tenant_id,
            CodeDependencyMismatch.repo_id == repo_id,
        )
        if sha is not None:
            stmt = stmt.where(CodeDependencyMismatch.sha == sha)
        async with self.session_factory() as session:
            rows = await session.execute(stmt)
            mismatches = [
                DependencyMismatch(
                    mismatch_type=r.mismatch_type,
                    package_key=r.package_key,
                    details=r.details or {},
                    sha=r.sha,
                )
                for r in rows.scalars()
            ]
        return sorted(mismatches, key=lambda m: m.key)

    async def list_index_diagnostics(
        self, *, tenant_id: str, repo_id: str, limit: Optional[int] = None
    ) -> list[IndexDiagnostic]:
        stmt = select(CodeIndexDiagnostic).where(
            CodeIndexDiagnostic.tenant_id == tenant_id,
            CodeIndexDiagnostic.repo_id == repo_id,
        )
        if limit is not None:
            if limit <= 0:
                return []
            stmt = stmt.order_by(CodeIndexDiagnostic.id.desc()).limit(limit)
        else:
            stmt = stmt.order_by(CodeIndexDiagnostic.id)
        async with self.session_factory() as session:
            rows = list((await session.execute(stmt)).scalars())
        if limit is not None:
            rows.reverse()
        return [IndexDiagnostic.model_validate(r) for r in rows]

    async def list_unresolved_imports(self, *, tenant_id: str, repo_id: str) -> list[UnresolvedImport]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(CodeUnresolvedImport).where(
                    CodeUnresolvedImport.tenant_id == tenant_id,
                    CodeUnresolvedImport.repo_id == repo_id,
                )
            )
            imports = [UnresolvedImport.model_validate(r) for r in rows.scalars()]
        return sorted(imports, key=lambda u: u.key)

    async def list_symbol_uids_for_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> list[str]:
        paths = sorted({p for p in file_paths if p})
        out: set[str] = set()
        async with self.session_factory() as session:
            for chunk in _chunks(paths, self.chunk_size):
                rows = await session.execute(
                    select(CodeNode.symbol_uid).where(
                        CodeNode.tenant_id == tenant_id,
                        CodeNode.repo_id == repo_id,
                        CodeNode.file_path.in_(chunk),
                    )
                )
                out.update(rows.scalars())
        return sorted(out)

    async def list_file_paths_for_symbol_uids(
        self, *, tenant_id: str, repo_id: str, symbol_uids: Sequence[str]
    ) -> list[str]:
        uids = sorted(set(symbol_uids))
        out: set[str] = set()
        async with self.session_factory() as session:
            for chunk in _chunks(uids, self.chunk_size):
                rows = await session.execute(
                    select(CodeNode.file_path).where(
                        CodeNode.tenant_id == tenant_id,
                        CodeNode.repo_id == repo_id,
                        CodeNode.symbol_uid.in_(chunk),
                        CodeNode.file_path.is_not(None),
                    )
                )
                out.update(p for p in rows.scalars() if p)
        return sorted(out)

    async def list_importer_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> list[str]:
        paths = sorted({p for p in file_paths if p})
        source = aliased(CodeNode)
        target = aliased(CodeNode)
        out: set[str] = set()
        async with self.session_factory() as session:
            for chunk in _chunks(paths, self.chunk_size):
                rows = await session.execute(
                    select(source.file_path)
                    .select_from(CodeEdge)
                    .join(source, source.id == CodeEdge.source_node_id)
                    .join(target, target.id == CodeEdge.target_node_id)
                    .where(
                        CodeEdge.tenant_id == tenant_id,
                        CodeEdge.repo_id == repo_id,
                        CodeEdge.edge_type == IMPORT_EDGE_TYPE,
                        target.file_path.in_(chunk),
                        source.file_path.is_not(None),
                    )
                    .distinct()
                )
                out.update(p for p in rows.scalars() if p)
        return sorted(out)
