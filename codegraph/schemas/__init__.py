"""
Pydantic Schemas
================

Typed records exchanged with the external indexer and returned by queries.
"""

from codegraph.schemas.base import BaseSchema, StrictSchema
from codegraph.schemas.records import (
    KEY_SEPARATOR,
    UNKNOWN,
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
    RecordEnvelope,
    SearchHit,
    UnresolvedImport,
    make_edge_key,
    make_flow_graph_key,
    make_manifest_key,
    parse_flow_graph_key,
)

__all__ = [
    "BaseSchema",
    "StrictSchema",
    "KEY_SEPARATOR",
    "UNKNOWN",
    "DeclaredDependency",
    "DependencyManifest",
    "DependencyMismatch",
    "Direction",
    "EdgeOccurrence",
    "EdgeRef",
    "FlowEntrypoint",
    "FlowGraph",
    "FlowGraphSummary",
    "GraphEdge",
    "GraphNode",
    "IndexDiagnostic",
    "IndexMode",
    "MismatchType",
    "ObservedDependency",
    "RecordEnvelope",
    "SearchHit",
    "UnresolvedImport",
    "make_edge_key",
    "make_flow_graph_key",
    "make_manifest_key",
    "parse_flow_graph_key",
]
