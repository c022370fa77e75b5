"""Read-side helpers composed from GraphStore queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Collection, Optional

from codegraph.schemas.records import Direction, GraphEdge, GraphNode, SearchHit
from codegraph.services.graph_store.interface import GraphStore
from codegraph.services.impact_service import validate_depth

EdgePredicate = Callable[[GraphEdge], bool]

MAX_FLOW_DEPTH = 10


def allow_edge_types(edge_types: Collection[str]) -> EdgePredicate:
    allowed = frozenset(edge_types)
    return lambda edge: edge.edge_type in allowed


def exclude_edge_types(edge_types: Collection[str]) -> EdgePredicate:
    excluded = frozenset(edge_types)
    return lambda edge: edge.edge_type not in excluded


@dataclass
class EdgeOccurrenceCount:
    source_symbol_uid: str
    edge_type: str
    target_symbol_uid: str
    occurrences: int


@dataclass
class Neighborhood:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    edge_occurrence_counts: list[EdgeOccurrenceCount] = field(default_factory=list)


@dataclass
class FlowTrace:
    start_symbol_uid: str
    depth: int
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)


async def neighborhood(
    store: GraphStore,
    *,
    tenant_id: str,
    repo_id: str,
    symbol_uid: str,
    direction: Direction | str = Direction.BOTH,
    edge_types: Optional[Collection[str]] = None,
    limit_edges: int = 200,
) -> Neighborhood:
    """A symbol, its adjacent edges, the nodes at their ends and per-edge call-site counts."""
    if not symbol_uid:
        raise ValueError("symbol_uid is required")

    edges = await store.list_edges_by_node(
        tenant_id=tenant_id, repo_id=repo_id, symbol_uid=symbol_uid, direction=direction
    )
    if edge_types is not None:
        allowed = set(edge_types)
        edges = [e for e in edges if e.edge_type in allowed]
    edges = edges[: max(0, limit_edges)]

    nodes: dict[str, GraphNode] = {}
    for uid in [symbol_uid] + [u for e in edges for u in (e.source_symbol_uid, e.target_symbol_uid)]:
        if uid in nodes:
            continue
        node = await store.get_node_by_symbol_uid(tenant_id=tenant_id, repo_id=repo_id, symbol_uid=uid)
        if node is not None:
            nodes[uid] = node

    counts = []
    for e in edges:
        occurrences = await store.list_edge_occurrences_for_edge(
            tenant_id=tenant_id,
            repo_id=repo_id,
            source_symbol_uid=e.source_symbol_uid,
            edge_type=e.edge_type,
            target_symbol_uid=e.target_symbol_uid,
        )
        counts.append(
            EdgeOccurrenceCount(
                source_symbol_uid=e.source_symbol_uid,
                edge_type=e.edge_type,
                target_symbol_uid=e.target_symbol_uid,
                occurrences=len(occurrences),
            )
        )

    return Neighborhood(nodes=list(nodes.values()), edges=edges, edge_occurrence_counts=counts)


async def trace_flow(
    store: GraphStore,
    *,
    tenant_id: str,
    repo_id: str,
    start_symbol_uid: str,
    depth: int = 2,
    edge_filter: Optional[EdgePredicate] = None,
) -> FlowTrace:
    """
    Outbound breadth-first trace from ``start_symbol_uid``.

    Collects every edge accepted by ``edge_filter`` that leaves a node
    within ``depth - 1`` hops of the start, and the nodes those edges reach.
    A start symbol missing from the store yields an empty trace.
    """
    validate_depth(depth, MAX_FLOW_DEPTH)
    if not start_symbol_uid:
        raise ValueError("start_symbol_uid is required")

    start = await store.get_node_by_symbol_uid(tenant_id=tenant_id, repo_id=repo_id, symbol_uid=start_symbol_uid)
    trace = FlowTrace(start_symbol_uid=start_symbol_uid, depth=depth)
    if start is None:
        return trace

    nodes: dict[str, GraphNode] = {start.symbol_uid: start}
    edges: dict[str, GraphEdge] = {}
    frontier = {start.symbol_uid}

    for _ in range(depth):
        if not frontier:
            break
        out_edges = await store.list_edges_by_nodes(
            tenant_id=tenant_id, repo_id=repo_id, symbol_uids=sorted(frontier), direction=Direction.OUT
        )
        next_frontier: set[str] = set()
        for edge in out_edges:
            if edge_filter is not None and not edge_filter(edge):
                continue
            edges[edge.key] = edge
            target = edge.target_symbol_uid
            if target in nodes:
                continue
            node = await store.get_node_by_symbol_uid(tenant_id=tenant_id, repo_id=repo_id, symbol_uid=target)
            if node is None:
                continue
            nodes[target] = node
            next_frontier.add(target)
        frontier = next_frontier

    trace.nodes = [nodes[uid] for uid in sorted(nodes)]
    trace.edges = [edges[k] for k in sorted(edges)]
    return trace


async def text_search(
    store: GraphStore,
    *,
    tenant_id: str,
    repo_id: str,
    query: str,
    limit: int = 10,
) -> list[SearchHit]:
    """Case-insensitive substring match over qualified_name and name."""
    q = str(query or "").strip().lower()
    if not q or limit <= 0:
        return []
    hits: list[SearchHit] = []
    for node in await store.list_nodes(tenant_id=tenant_id, repo_id=repo_id):
        haystack = f"{node.qualified_name or ''} {node.name or ''}".lower()
        if q in haystack:
            hits.append(SearchHit(node=node, score=1.0))
            if len(hits) >= limit:
                break
    return hits
