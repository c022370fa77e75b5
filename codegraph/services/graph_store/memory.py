"""
In-memory Graph Store
=====================

Reference implementation of the GraphStore contract. State is held per
``(tenant_id, repo_id)`` in plain dicts; nothing is shared between repos.

Each mutation validates everything up front and only then touches state,
with no ``await`` in between, so a batch is either fully applied or not at
all and other coroutines never observe a half-written batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from codegraph.core.exceptions import MissingGraphElementError
from codegraph.schemas.records import (
    DeclaredDependency,
    DependencyManifest,
    DependencyMismatch,
    Direction,
    EdgeOccurrence,
    FlowEntrypoint,
    FlowGraph,
    FlowGraphSummary,
    GraphEdge,
    GraphNode,
    IndexDiagnostic,
    ObservedDependency,
    SearchHit,
    UnresolvedImport,
    make_edge_key,
    make_flow_graph_key,
    parse_flow_graph_key,
)
from codegraph.services.embedding import EmbeddingProvider, HashEmbeddingProvider, rank_by_similarity
from codegraph.services.graph_store.interface import (
    IMPORT_EDGE_TYPE,
    BatchResult,
    GraphBatch,
    PruneResult,
    check_edge_endpoints,
    edge_matches_direction,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _RepoGraph:
    nodes: dict[str, GraphNode] = field(default_factory=dict)
    edges: dict[str, GraphEdge] = field(default_factory=dict)
    occurrences: dict[tuple, EdgeOccurrence] = field(default_factory=dict)
    entrypoints: dict[str, FlowEntrypoint] = field(default_factory=dict)
    manifests: dict[str, DependencyManifest] = field(default_factory=dict)
    declared: dict[tuple, DeclaredDependency] = field(default_factory=dict)
    observed: dict[tuple, ObservedDependency] = field(default_factory=dict)
    mismatches_by_sha: dict[str, list[DependencyMismatch]] = field(default_factory=dict)
    diagnostics: list[IndexDiagnostic] = field(default_factory=list)
    unresolved_imports: dict[tuple, UnresolvedImport] = field(default_factory=dict)
    flow_graphs: dict[str, FlowGraph] = field(default_factory=dict)


def _merge_node(existing: GraphNode | None, incoming: GraphNode) -> GraphNode:
    node = incoming.model_copy(deep=True)
    if existing is not None:
        node.first_seen_sha = existing.first_seen_sha
    return node


def _merge_edge(existing: GraphEdge | None, incoming: GraphEdge) -> GraphEdge:
    edge = incoming.model_copy(deep=True)
    if existing is not None:
        edge.first_seen_sha = existing.first_seen_sha
        if edge.metadata is None:
            edge.metadata = existing.metadata
    return edge


def _merge_observed(existing: ObservedDependency | None, incoming: ObservedDependency) -> ObservedDependency:
    observed = incoming.model_copy(deep=True)
    if existing is not None:
        observed.first_seen_sha = existing.first_seen_sha
    return observed


class InMemoryGraphStore:
    """Dict-backed graph store for tests, local runs and small repos."""

    def __init__(self, embedding_provider: EmbeddingProvider | None = None):
        self.embedding_provider = embedding_provider or HashEmbeddingProvider()
        self._repos: dict[tuple[str, str], _RepoGraph] = {}

    def _repo(self, tenant_id: str, repo_id: str) -> _RepoGraph:
        key = (tenant_id, repo_id)
        repo = self._repos.get(key)
        if repo is None:
            repo = self._repos[key] = _RepoGraph()
        return repo

    def _peek(self, tenant_id: str, repo_id: str) -> _RepoGraph:
        return self._repos.get((tenant_id, repo_id)) or _RepoGraph()

    # =========================================================================
    # Mutation
    # =========================================================================

    async def apply_batch(self, *, tenant_id: str, repo_id: str, batch: GraphBatch) -> BatchResult:
        batch = batch.deduplicated()
        repo = self._repo(tenant_id, repo_id)

        known = set(repo.nodes) | {n.symbol_uid for n in batch.nodes}
        implied = [e for e in batch.implied_edges() if e.key not in repo.edges]
        check_edge_endpoints(batch.edges + implied, known)

        # Validation passed; from here on nothing raises.
        for node in batch.nodes:
            repo.nodes[node.symbol_uid] = _merge_node(repo.nodes.get(node.symbol_uid), node)
        for edge in batch.edges + implied:
            repo.edges[edge.key] = _merge_edge(repo.edges.get(edge.key), edge)
        for occ in batch.occurrences:
            repo.occurrences[occ.key] = occ.model_copy(deep=True)
        for ep in batch.entrypoints:
            repo.entrypoints[ep.entrypoint_key] = ep.model_copy(deep=True)
        now = utc_now()
        for manifest in batch.manifests:
            repo.manifests[manifest.manifest_key] = manifest.model_copy(
                deep=True, update={"indexed_at": manifest.indexed_at or now}
            )
        for declared in batch.declared:
            repo.declared[declared.key] = declared.model_copy(deep=True)
        for observed in batch.observed:
            repo.observed[observed.key] = _merge_observed(repo.observed.get(observed.key), observed)

        by_sha: dict[str, list[DependencyMismatch]] = {}
        for mismatch in batch.mismatches:
            by_sha.setdefault(mismatch.sha, []).append(mismatch.model_copy(deep=True))
        repo.mismatches_by_sha.update(by_sha)

        for diagnostic in batch.diagnostics:
            repo.diagnostics.append(
                diagnostic.model_copy(deep=True, update={"created_at": diagnostic.created_at or now})
            )
        for unresolved in batch.unresolved_imports:
            repo.unresolved_imports[unresolved.key] = unresolved.model_copy(deep=True)

        return BatchResult(
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
        rows = [m.model_copy(deep=True, update={"sha": sha}) for m in mismatches]
        self._repo(tenant_id, repo_id).mismatches_by_sha[sha] = rows
        return len(rows)

    async def add_index_diagnostic(self, *, tenant_id: str, repo_id: str, diagnostic: IndexDiagnostic) -> None:
        await self.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(diagnostics=[diagnostic]))

    async def add_unresolved_import(
        self, *, tenant_id: str, repo_id: str, unresolved_import: UnresolvedImport
    ) -> None:
        await self.apply_batch(
            tenant_id=tenant_id, repo_id=repo_id, batch=GraphBatch(unresolved_imports=[unresolved_import])
        )

    async def upsert_flow_graph(self, *, tenant_id: str, repo_id: str, flow_graph: FlowGraph) -> None:
        repo = self._repo(tenant_id, repo_id)
        missing_nodes = [uid for uid in flow_graph.node_uids if uid not in repo.nodes]
        if missing_nodes:
            raise MissingGraphElementError(f"flow graph references unknown nodes: {missing_nodes}")
        missing_edges = [e.key for e in flow_graph.edges if e.key not in repo.edges]
        if missing_edges:
            raise MissingGraphElementError(f"flow graph references unknown edges: {missing_edges}")
        # Full replace: prior membership under this key is dropped.
        repo.flow_graphs[flow_graph.flow_graph_key] = flow_graph.model_copy(deep=True)

    async def delete_graph_for_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> PruneResult:
        paths = {p for p in file_paths if p}
        repo = self._repos.get((tenant_id, repo_id))
        if not paths or repo is None:
            return PruneResult()

        result = PruneResult()
        removed_uids = sorted(uid for uid, n in repo.nodes.items() if n.file_path in paths)
        for uid in removed_uids:
            del repo.nodes[uid]
        result.nodes = len(removed_uids)
        result.removed_symbol_uids = removed_uids

        dangling = [
            k
            for k, e in repo.edges.items()
            if e.source_symbol_uid not in repo.nodes or e.target_symbol_uid not in repo.nodes
        ]
        for k in dangling:
            del repo.edges[k]
        result.edges = len(dangling)

        stale_occ = [
            k for k, o in repo.occurrences.items() if o.edge_key not in repo.edges or o.file_path in paths
        ]
        for k in stale_occ:
            del repo.occurrences[k]
        result.occurrences = len(stale_occ)

        stale_eps = [k for k, ep in repo.entrypoints.items() if ep.file_path in paths]
        for k in stale_eps:
            del repo.entrypoints[k]
        result.entrypoints = len(stale_eps)

        stale_manifests = {k for k, m in repo.manifests.items() if m.file_path in paths}
        for k in stale_manifests:
            del repo.manifests[k]
        result.manifests = len(stale_manifests)

        stale_declared = [k for k, d in repo.declared.items() if d.manifest_key in stale_manifests]
        for k in stale_declared:
            del repo.declared[k]
        result.declared_dependencies = len(stale_declared)

        removed = set(removed_uids)
        stale_observed = [
            k for k, o in repo.observed.items() if o.source_symbol_uid in removed or o.file_path in paths
        ]
        for k in stale_observed:
            del repo.observed[k]
        result.observed_dependencies = len(stale_observed)

        stale_unresolved = [k for k, u in repo.unresolved_imports.items() if u.file_path in paths]
        for k in stale_unresolved:
            del repo.unresolved_imports[k]
        result.unresolved_imports = len(stale_unresolved)

        for key, fg in list(repo.flow_graphs.items()):
            kept_nodes = [uid for uid in fg.node_uids if uid not in removed]
            kept_edges = [e for e in fg.edges if e.key in repo.edges]
            result.flow_graph_nodes += len(fg.node_uids) - len(kept_nodes)
            result.flow_graph_edges += len(fg.edges) - len(kept_edges)
            if len(kept_nodes) != len(fg.node_uids) or len(kept_edges) != len(fg.edges):
                repo.flow_graphs[key] = fg.model_copy(update={"node_uids": kept_nodes, "edges": kept_edges})

        return result

    # =========================================================================
    # Query
    # =========================================================================

    async def list_nodes(self, *, tenant_id: str, repo_id: str) -> list[GraphNode]:
        nodes = self._peek(tenant_id, repo_id).nodes
        return [nodes[uid].model_copy(deep=True) for uid in sorted(nodes)]

    async def get_node_by_symbol_uid(
        self, *, tenant_id: str, repo_id: str, symbol_uid: str
    ) -> Optional[GraphNode]:
        node = self._peek(tenant_id, repo_id).nodes.get(symbol_uid)
        return node.model_copy(deep=True) if node is not None else None

    async def list_edges(self, *, tenant_id: str, repo_id: str) -> list[GraphEdge]:
        edges = self._peek(tenant_id, repo_id).edges
        return [edges[k].model_copy(deep=True) for k in sorted(edges)]

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
        wanted = set(symbol_uids)
        edges = self._peek(tenant_id, repo_id).edges
        return [
            edges[k].model_copy(deep=True)
            for k in sorted(edges)
            if edge_matches_direction(edges[k], wanted, direction)
        ]

    async def list_edge_occurrences(self, *, tenant_id: str, repo_id: str) -> list[EdgeOccurrence]:
        occurrences = self._peek(tenant_id, repo_id).occurrences
        return [occurrences[k].model_copy(deep=True) for k in sorted(occurrences)]

    async def list_edge_occurrences_for_edge(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        source_symbol_uid: str,
        edge_type: str,
        target_symbol_uid: str,
    ) -> list[EdgeOccurrence]:
        edge_key = make_edge_key(source_symbol_uid, edge_type, target_symbol_uid)
        occurrences = self._peek(tenant_id, repo_id).occurrences
        return [
            occurrences[k].model_copy(deep=True)
            for k in sorted(occurrences, key=lambda k: (k[1], k[2], k[3]))
            if k[0] == edge_key
        ]

    async def semantic_search(
        self, *, tenant_id: str, repo_id: str, query: str, limit: int = 10
    ) -> list[SearchHit]:
        q = str(query or "").strip()
        if not q:
            return []
        qvec = self.embedding_provider.embed(q)
        nodes = self._peek(tenant_id, repo_id).nodes
        ranked = rank_by_similarity(
            qvec,
            ((uid, n.embedding, n) for uid, n in nodes.items()),
            limit=limit,
        )
        return [SearchHit(node=n.model_copy(deep=True), score=score) for n, score in ranked]

    async def list_flow_entrypoints(self, *, tenant_id: str, repo_id: str) -> list[FlowEntrypoint]:
        eps = self._peek(tenant_id, repo_id).entrypoints
        return [eps[k].model_copy(deep=True) for k in sorted(eps)]

    async def get_flow_graph(
        self, *, tenant_id: str, repo_id: str, flow_graph_key: str
    ) -> Optional[FlowGraph]:
        parsed = parse_flow_graph_key(flow_graph_key)
        if parsed is None:
            return None
        fg = self._peek(tenant_id, repo_id).flow_graphs.get(make_flow_graph_key(*parsed))
        return fg.model_copy(deep=True) if fg is not None else None

    async def list_flow_graphs(self, *, tenant_id: str, repo_id: str) -> list[FlowGraphSummary]:
        graphs = self._peek(tenant_id, repo_id).flow_graphs
        return [
            FlowGraphSummary(
                entrypoint_key=fg.entrypoint_key,
                start_symbol_uid=fg.start_symbol_uid,
                sha=fg.sha,
                depth=fg.depth,
            )
            for fg in (graphs[k] for k in sorted(graphs))
        ]

    async def list_dependency_manifests(self, *, tenant_id: str, repo_id: str) -> list[DependencyManifest]:
        manifests = self._peek(tenant_id, repo_id).manifests
        return [manifests[k].model_copy(deep=True) for k in sorted(manifests)]

    async def list_declared_dependencies(self, *, tenant_id: str, repo_id: str) -> list[DeclaredDependency]:
        declared = self._peek(tenant_id, repo_id).declared
        return [declared[k].model_copy(deep=True) for k in sorted(declared)]

    async def list_observed_dependencies(self, *, tenant_id: str, repo_id: str) -> list[ObservedDependency]:
        observed = self._peek(tenant_id, repo_id).observed
        return [observed[k].model_copy(deep=True) for k in sorted(observed)]

    async def list_dependency_mismatches(
        self, *, tenant_id: str, repo_id: str, sha: Optional[str] = None
    ) -> list[DependencyMismatch]:
        by_sha = self._peek(tenant_id, repo_id).mismatches_by_sha
        shas = [sha] if sha is not None else sorted(by_sha)
        rows = [m for s in shas for m in by_sha.get(s, [])]
        return [m.model_copy(deep=True) for m in sorted(rows, key=lambda m: m.key)]

    async def list_index_diagnostics(
        self, *, tenant_id: str, repo_id: str, limit: Optional[int] = None
    ) -> list[IndexDiagnostic]:
        rows = self._peek(tenant_id, repo_id).diagnostics
        if limit is not None:
            rows = rows[-limit:] if limit > 0 else []
        return [d.model_copy(deep=True) for d in rows]

    async def list_unresolved_imports(self, *, tenant_id: str, repo_id: str) -> list[UnresolvedImport]:
        rows = self._peek(tenant_id, repo_id).unresolved_imports
        return [rows[k].model_copy(deep=True) for k in sorted(rows)]

    async def list_symbol_uids_for_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> list[str]:
        paths = set(file_paths)
        nodes = self._peek(tenant_id, repo_id).nodes
        return sorted(uid for uid, n in nodes.items() if n.file_path in paths)

    async def list_file_paths_for_symbol_uids(
        self, *, tenant_id: str, repo_id: str, symbol_uids: Sequence[str]
    ) -> list[str]:
        nodes = self._peek(tenant_id, repo_id).nodes
        return sorted({nodes[uid].file_path for uid in set(symbol_uids) if uid in nodes and nodes[uid].file_path})

    async def list_importer_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> list[str]:
        paths = set(file_paths)
        repo = self._peek(tenant_id, repo_id)
        out: set[str] = set()
        for edge in repo.edges.values():
            if edge.edge_type != IMPORT_EDGE_TYPE:
                continue
            target = repo.nodes.get(edge.target_symbol_uid)
            source = repo.nodes.get(edge.source_symbol_uid)
            if target is None or source is None or target.file_path not in paths:
                continue
            if source.file_path:
                out.add(source.file_path)
        return sorted(out)
