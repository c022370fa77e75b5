"""
Graph Store Interface
=====================

The contract shared by the in-memory and SQL graph stores. Both satisfy
``GraphStore`` structurally; neither inherits from the other or from a
common base. Which one runs is decided by configuration (see factory.py).

Every operation is scoped by ``(tenant_id, repo_id)``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Iterable, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from codegraph.core.exceptions import ReferentialIntegrityError
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
)


T = TypeVar("T")


def dedupe_last_wins(items: Iterable[T], key) -> list[T]:
    """Keep the last item per key, in first-seen key order."""
    out: dict = {}
    for item in items:
        k = key(item)
        out.pop(k, None)
        out[k] = item
    return list(out.values())


@dataclass
class GraphBatch:
    """Typed, grouped records applied to a store in one transaction."""

    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    occurrences: list[EdgeOccurrence] = field(default_factory=list)
    entrypoints: list[FlowEntrypoint] = field(default_factory=list)
    manifests: list[DependencyManifest] = field(default_factory=list)
    declared: list[DeclaredDependency] = field(default_factory=list)
    observed: list[ObservedDependency] = field(default_factory=list)
    mismatches: list[DependencyMismatch] = field(default_factory=list)
    diagnostics: list[IndexDiagnostic] = field(default_factory=list)
    unresolved_imports: list[UnresolvedImport] = field(default_factory=list)

    def deduplicated(self) -> GraphBatch:
        """Collapse records sharing a natural key; the last one in the batch wins."""
        return GraphBatch(
            nodes=dedupe_last_wins(self.nodes, lambda n: n.symbol_uid),
            edges=dedupe_last_wins(self.edges, lambda e: e.key),
            occurrences=dedupe_last_wins(self.occurrences, lambda o: o.key),
            entrypoints=dedupe_last_wins(self.entrypoints, lambda e: e.entrypoint_key),
            manifests=dedupe_last_wins(self.manifests, lambda m: m.manifest_key),
            declared=dedupe_last_wins(self.declared, lambda d: d.key),
            observed=dedupe_last_wins(self.observed, lambda o: o.key),
            mismatches=dedupe_last_wins(self.mismatches, lambda m: m.key),
            # diagnostics are append-only audit rows, never collapsed
            diagnostics=list(self.diagnostics),
            unresolved_imports=dedupe_last_wins(self.unresolved_imports, lambda u: u.key),
        )

    def counts(self) -> dict[str, int]:
        return {name: len(values) for name, values in vars(self).items()}

    def is_empty(self) -> bool:
        return not any(self.counts().values())

    def implied_edges(self) -> list[GraphEdge]:
        """Edges named only by occurrences, to be created if absent."""
        declared = {e.key for e in self.edges}
        implied: dict[str, GraphEdge] = {}
        for occ in self.occurrences:
            if occ.edge_key in declared or occ.edge_key in implied:
                continue
            implied[occ.edge_key] = GraphEdge(
                source_symbol_uid=occ.source_symbol_uid,
                edge_type=occ.edge_type,
                target_symbol_uid=occ.target_symbol_uid,
                first_seen_sha=occ.sha,
                last_seen_sha=occ.sha,
            )
        return list(implied.values())


def check_edge_endpoints(edges: Sequence[GraphEdge], known_symbol_uids: set[str]) -> None:
    """Raise for the first edge whose endpoints are not all known."""
    for edge in edges:
        missing = [
            uid
            for uid in (edge.source_symbol_uid, edge.target_symbol_uid)
            if uid not in known_symbol_uids
        ]
        if missing:
            raise ReferentialIntegrityError(
                source_symbol_uid=edge.source_symbol_uid,
                edge_type=edge.edge_type,
                target_symbol_uid=edge.target_symbol_uid,
                missing_symbol_uids=missing,
            )


@dataclass
class BatchResult:
    nodes: int = 0
    edges: int = 0
    occurrences: int = 0
    entrypoints: int = 0
    manifests: int = 0
    declared: int = 0
    observed: int = 0
    mismatches: int = 0
    diagnostics: int = 0
    unresolved_imports: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class PruneResult:
    """Rows removed by delete_graph_for_file_paths."""

    nodes: int = 0
    edges: int = 0
    occurrences: int = 0
    entrypoints: int = 0
    manifests: int = 0
    declared_dependencies: int = 0
    observed_dependencies: int = 0
    unresolved_imports: int = 0
    flow_graph_nodes: int = 0
    flow_graph_edges: int = 0
    removed_symbol_uids: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(v for v in asdict(self).values() if isinstance(v, int))

    def as_dict(self) -> dict:
        return asdict(self)


@runtime_checkable
class GraphStore(Protocol):
    """Tenant-scoped CRUD and query over the code intelligence graph."""

    # -- mutation ------------------------------------------------------------

    async def apply_batch(self, *, tenant_id: str, repo_id: str, batch: GraphBatch) -> BatchResult: ...

    async def upsert_node(self, *, tenant_id: str, repo_id: str, node: GraphNode) -> None: ...

    async def upsert_edge(self, *, tenant_id: str, repo_id: str, edge: GraphEdge) -> None: ...

    async def add_edge_occurrence(self, *, tenant_id: str, repo_id: str, occurrence: EdgeOccurrence) -> None: ...

    async def upsert_flow_entrypoint(self, *, tenant_id: str, repo_id: str, entrypoint: FlowEntrypoint) -> None: ...

    async def add_dependency_manifest(self, *, tenant_id: str, repo_id: str, manifest: DependencyManifest) -> None: ...

    async def add_declared_dependency(self, *, tenant_id: str, repo_id: str, declared: DeclaredDependency) -> None: ...

    async def add_observed_dependency(self, *, tenant_id: str, repo_id: str, observed: ObservedDependency) -> None: ...

    async def replace_dependency_mismatches(
        self, *, tenant_id: str, repo_id: str, sha: str, mismatches: Sequence[DependencyMismatch]
    ) -> int: ...

    async def add_index_diagnostic(self, *, tenant_id: str, repo_id: str, diagnostic: IndexDiagnostic) -> None: ...

    async def add_unresolved_import(
        self, *, tenant_id: str, repo_id: str, unresolved_import: UnresolvedImport
    ) -> None: ...

    async def upsert_flow_graph(self, *, tenant_id: str, repo_id: str, flow_graph: FlowGraph) -> None: ...

    async def delete_graph_for_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> PruneResult: ...

    # -- query ---------------------------------------------------------------

    async def list_nodes(self, *, tenant_id: str, repo_id: str) -> list[GraphNode]: ...

    async def get_node_by_symbol_uid(
        self, *, tenant_id: str, repo_id: str, symbol_uid: str
    ) -> Optional[GraphNode]: ...

    async def list_edges(self, *, tenant_id: str, repo_id: str) -> list[GraphEdge]: ...

    async def list_edges_by_node(
        self, *, tenant_id: str, repo_id: str, symbol_uid: str, direction: Direction | str = Direction.BOTH
    ) -> list[GraphEdge]: ...

    async def list_edges_by_nodes(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        symbol_uids: Sequence[str],
        direction: Direction | str = Direction.BOTH,
    ) -> list[GraphEdge]: ...

    async def list_edge_occurrences(self, *, tenant_id: str, repo_id: str) -> list[EdgeOccurrence]: ...

    async def list_edge_occurrences_for_edge(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        source_symbol_uid: str,
        edge_type: str,
        target_symbol_uid: str,
    ) -> list[EdgeOccurrence]: ...

    async def semantic_search(
        self, *, tenant_id: str, repo_id: str, query: str, limit: int = 10
    ) -> list[SearchHit]: ...

    async def list_flow_entrypoints(self, *, tenant_id: str, repo_id: str) -> list[FlowEntrypoint]: ...

    async def get_flow_graph(
        self, *, tenant_id: str, repo_id: str, flow_graph_key: str
    ) -> Optional[FlowGraph]: ...

    async def list_flow_graphs(self, *, tenant_id: str, repo_id: str) -> list[FlowGraphSummary]: ...

    async def list_dependency_manifests(self, *, tenant_id: str, repo_id: str) -> list[DependencyManifest]: ...

    async def list_declared_dependencies(self, *, tenant_id: str, repo_id: str) -> list[DeclaredDependency]: ...

    async def list_observed_dependencies(self, *, tenant_id: str, repo_id: str) -> list[ObservedDependency]: ...

    async def list_dependency_mismatches(
        self, *, tenant_id: str, repo_id: str, sha: Optional[str] = None
    ) -> list[DependencyMismatch]: ...

    async def list_index_diagnostics(
        self, *, tenant_id: str, repo_id: str, limit: Optional[int] = None
    ) -> list[IndexDiagnostic]: ...

    async def list_unresolved_imports(self, *, tenant_id: str, repo_id: str) -> list[UnresolvedImport]: ...

    async def list_symbol_uids_for_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> list[str]: ...

    async def list_file_paths_for_symbol_uids(
        self, *, tenant_id: str, repo_id: str, symbol_uids: Sequence[str]
    ) -> list[str]: ...

    async def list_importer_file_paths(
        self, *, tenant_id: str, repo_id: str, file_paths: Sequence[str]
    ) -> list[str]: ...


def edge_matches_direction(edge: GraphEdge, symbol_uids: set[str], direction: Direction | str) -> bool:
    d = Direction(direction)
    if d is Direction.OUT:
        return edge.source_symbol_uid in symbol_uids
    if d is Direction.IN:
        return edge.target_symbol_uid in symbol_uids
    return edge.source_symbol_uid in symbol_uids or edge.target_symbol_uid in symbol_uids


IMPORT_EDGE_TYPE = "Imports"
