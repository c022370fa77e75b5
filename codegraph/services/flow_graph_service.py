"""
Flow Graph Materialization
==========================

Derives the bounded subgraph reachable from an entrypoint's symbol and
stores it under ``(entrypoint_key, sha, depth)``. The store replaces any
prior membership for that key in one transaction, so materializing the
same inputs twice yields the same graph.

Which edges count as runtime flow is configurable. By default structural
edge types (``FLOW_EXCLUDED_EDGE_TYPES``: Imports, Defines, DependsOn,
UsesPackage) are not followed.
"""

from __future__ import annotations

from typing import Optional

from codegraph.core.config import Settings, settings as default_settings
from codegraph.core.exceptions import MissingGraphElementError
from codegraph.core.logging import get_logger
from codegraph.schemas.records import EdgeRef, FlowEntrypoint, FlowGraph
from codegraph.services.graph_store.interface import GraphStore
from codegraph.services.impact_service import validate_depth
from codegraph.services.query_service import MAX_FLOW_DEPTH, EdgePredicate, exclude_edge_types, trace_flow

logger = get_logger(__name__)


def default_flow_edge_filter(config: Settings | None = None) -> EdgePredicate:
    cfg = config or default_settings
    return exclude_edge_types(cfg.FLOW_EXCLUDED_EDGE_TYPES)


class FlowGraphMaterializer:
    """
    Builds and persists entrypoint-rooted flow graphs.

    Args:
        store: Graph store to trace and persist into
        depth: Default depth (``FLOW_GRAPH_DEPTH``)
        edge_filter: Predicate selecting flow edges; defaults to excluding
            ``FLOW_EXCLUDED_EDGE_TYPES``
    """

    def __init__(
        self,
        store: GraphStore,
        *,
        depth: Optional[int] = None,
        edge_filter: Optional[EdgePredicate] = None,
        config: Settings | None = None,
    ):
        cfg = config or default_settings
        self.store = store
        self.depth = validate_depth(cfg.FLOW_GRAPH_DEPTH if depth is None else depth, MAX_FLOW_DEPTH)
        self.edge_filter = edge_filter or default_flow_edge_filter(cfg)

    async def materialize(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        entrypoint: FlowEntrypoint,
        sha: str,
        depth: Optional[int] = None,
    ) -> FlowGraph:
        """
        Trace and persist the flow graph for one entrypoint.

        Raises:
            InvalidTraversalDepthError: depth is not an int in 0..10
            MissingGraphElementError: the entrypoint's symbol is not in the store
        """
        hops = validate_depth(self.depth if depth is None else depth, MAX_FLOW_DEPTH)
        if not sha:
            raise ValueError("sha is required")
        if not entrypoint.symbol_uid:
            raise MissingGraphElementError(f"entrypoint {entrypoint.entrypoint_key} is not bound to a symbol")

        trace = await trace_flow(
            self.store,
            tenant_id=tenant_id,
            repo_id=repo_id,
            start_symbol_uid=entrypoint.symbol_uid,
            depth=hops,
            edge_filter=self.edge_filter,
        )
        if not trace.nodes:
            raise MissingGraphElementError(
                f"entrypoint {entrypoint.entrypoint_key} references unknown symbol {entrypoint.symbol_uid}"
            )

        flow_graph = FlowGraph(
            entrypoint_key=entrypoint.entrypoint_key,
            start_symbol_uid=entrypoint.symbol_uid,
            sha=sha,
            depth=hops,
            node_uids=[n.symbol_uid for n in trace.nodes],
            edges=[EdgeRef.of(e) for e in trace.edges],
        )
        await self.store.upsert_flow_graph(tenant_id=tenant_id, repo_id=repo_id, flow_graph=flow_graph)
        return flow_graph

    async def materialize_all(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        sha: str,
        depth: Optional[int] = None,
    ) -> list[FlowGraph]:
        """Materialize every entrypoint bound to a symbol present in the store."""
        graphs: list[FlowGraph] = []
        for entrypoint in await self.store.list_flow_entrypoints(tenant_id=tenant_id, repo_id=repo_id):
            if not entrypoint.symbol_uid:
                continue
            node = await self.store.get_node_by_symbol_uid(
                tenant_id=tenant_id, repo_id=repo_id, symbol_uid=entrypoint.symbol_uid
            )
            if node is None:
                logger.debug(
                    "flow_entrypoint_unbound",
                    tenant_id=tenant_id,
                    repo_id=repo_id,
                    entrypoint_key=entrypoint.entrypoint_key,
                )
                continue
            graphs.append(
                await self.materialize(
                    tenant_id=tenant_id, repo_id=repo_id, entrypoint=entrypoint, sha=sha, depth=depth
                )
            )
        return graphs
