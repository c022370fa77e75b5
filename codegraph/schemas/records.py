"""
Graph Record Schemas
====================

Typed records exchanged with the graph stores and the external indexer.
Records are addressed by natural keys (symbol_uid, package_key,
entrypoint_key, manifest_key), never by database ids.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import Field, ValidationInfo, field_validator, model_validator

from codegraph.schemas.base import BaseSchema, StrictSchema


UNKNOWN = "unknown"
KEY_SEPARATOR = "::"


def make_edge_key(source_symbol_uid: str, edge_type: str, target_symbol_uid: str) -> str:
    return f"{source_symbol_uid}{KEY_SEPARATOR}{edge_type}{KEY_SEPARATOR}{target_symbol_uid}"


def make_manifest_key(file_path: str, sha: str) -> str:
    return f"{file_path}{KEY_SEPARATOR}{sha}"


def make_flow_graph_key(entrypoint_key: str, sha: str, depth: int) -> str:
    return f"{entrypoint_key}{KEY_SEPARATOR}{sha}{KEY_SEPARATOR}{depth}"


def parse_flow_graph_key(flow_graph_key: str) -> tuple[str, str, int] | None:
    """Split ``entrypoint_key::sha::depth``; entrypoint keys may contain ``::``."""
    parts = str(flow_graph_key or "").rsplit(KEY_SEPARATOR, 2)
    if len(parts) != 3 or not parts[0] or not parts[1]:
        return None
    try:
        depth = int(parts[2])
    except ValueError:
        return None
    return parts[0], parts[1], depth


def _fill_seen_shas(values: dict[str, Any]) -> dict[str, Any]:
    first = values.get("first_seen_sha") or values.get("last_seen_sha") or UNKNOWN
    last = values.get("last_seen_sha") or values.get("first_seen_sha") or UNKNOWN
    values["first_seen_sha"] = first
    values["last_seen_sha"] = last
    return values


class Direction(str, Enum):
    OUT = "out"
    IN = "in"
    BOTH = "both"


class MismatchType(str, Enum):
    DECLARED_NOT_OBSERVED = "declared_not_observed"
    OBSERVED_NOT_DECLARED = "observed_not_declared"
    VERSION_CONFLICT = "version_conflict"


class IndexMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


# =============================================================================
# Graph
# =============================================================================

class GraphNode(BaseSchema):
    """A code symbol with a stable cross-commit identity."""

    symbol_uid: str = Field(..., min_length=1)
    node_type: str = Field(..., min_length=1)
    node_key: Optional[str] = None
    qualified_name: Optional[str] = None
    name: Optional[str] = None
    symbol_kind: Optional[str] = None
    language: Optional[str] = None
    file_path: Optional[str] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    visibility: Optional[str] = None
    signature: Optional[str] = None
    signature_hash: Optional[str] = None
    declaration: Optional[str] = None
    docstring: Optional[str] = None
    parameters: Any = None
    contract: Any = None
    constraints: Any = None
    allowable_values: Any = None
    external_ref: Any = None
    embedding: Optional[List[float]] = None
    embedding_text: Optional[str] = None
    first_seen_sha: str = UNKNOWN
    last_seen_sha: str = UNKNOWN

    @model_validator(mode="before")
    @classmethod
    def _defaults(cls, values: Any) -> Any:
        if isinstance(values, dict):
            values = _fill_seen_shas(dict(values))
            if not values.get("node_key"):
                values["node_key"] = values.get("symbol_uid")
        return values


class GraphEdge(BaseSchema):
    """Directed, typed relation between two symbols."""

    source_symbol_uid: str = Field(..., min_length=1)
    edge_type: str = Field(..., min_length=1)
    target_symbol_uid: str = Field(..., min_length=1)
    metadata: Optional[dict[str, Any]] = None
    first_seen_sha: str = UNKNOWN
    last_seen_sha: str = UNKNOWN

    @model_validator(mode="before")
    @classmethod
    def _defaults(cls, values: Any) -> Any:
        if isinstance(values, dict):
            values = _fill_seen_shas(dict(values))
        return values

    @property
    def key(self) -> str:
        return make_edge_key(self.source_symbol_uid, self.edge_type, self.target_symbol_uid)


class EdgeRef(StrictSchema):
    """Natural key of an edge."""

    source_symbol_uid: str
    edge_type: str
    target_symbol_uid: str

    @property
    def key(self) -> str:
        return make_edge_key(self.source_symbol_uid, self.edge_type, self.target_symbol_uid)

    @classmethod
    def of(cls, edge: GraphEdge | EdgeOccurrence | EdgeRef) -> EdgeRef:
        return cls(
            source_symbol_uid=edge.source_symbol_uid,
            edge_type=edge.edge_type,
            target_symbol_uid=edge.target_symbol_uid,
        )


class EdgeOccurrence(BaseSchema):
    """Provenance of an edge: one call site / import line."""

    source_symbol_uid: str = Field(..., min_length=1)
    edge_type: str = Field(..., min_length=1)
    target_symbol_uid: str = Field(..., min_length=1)
    file_path: str = Field(..., min_length=1)
    line_start: int = Field(..., ge=1)
    line_end: int = Field(..., ge=1)
    occurrence_kind: str = "other"
    sha: str = UNKNOWN

    @field_validator("line_end")
    @classmethod
    def _check_lines(cls, v: int, info: ValidationInfo) -> int:
        start = info.data.get("line_start")
        if start is not None and v < start:
            raise ValueError("line_end must be >= line_start")
        return v

    @property
    def edge_key(self) -> str:
        return make_edge_key(self.source_symbol_uid, self.edge_type, self.target_symbol_uid)

    @property
    def key(self) -> tuple[str, str, int, int]:
        return (self.edge_key, self.file_path, self.line_start, self.line_end)


class UnresolvedImport(BaseSchema):
    """Import specifier the indexer could not resolve to a node."""

    file_path: str = Field(..., min_length=1)
    spec: str = Field(..., min_length=1)
    line: int = 0
    kind: Optional[str] = None
    sha: str = UNKNOWN

    @property
    def key(self) -> tuple[str, int, str, str]:
        return (self.file_path, self.line, self.spec, self.sha)


# =============================================================================
# Flows
# =============================================================================

class FlowEntrypoint(BaseSchema):
    """Logical entry into the program (HTTP route, queue consumer, cron job)."""

    entrypoint_key: str = Field(..., min_length=1)
    entrypoint_type: str = Field(..., min_length=1)
    method: Optional[str] = None
    path: Optional[str] = None
    symbol_uid: Optional[str] = None
    file_path: Optional[str] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    sha: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _entrypoint_symbol_alias(cls, values: Any) -> Any:
        if isinstance(values, dict) and not values.get("symbol_uid") and values.get("entrypoint_symbol_uid"):
            values = dict(values)
            values["symbol_uid"] = values.pop("entrypoint_symbol_uid")
        return values


class FlowGraphSummary(StrictSchema):
    entrypoint_key: str
    start_symbol_uid: str
    sha: str
    depth: int

    @property
    def flow_graph_key(self) -> str:
        return make_flow_graph_key(self.entrypoint_key, self.sha, self.depth)


class FlowGraph(FlowGraphSummary):
    """Materialized, bounded subgraph rooted at an entrypoint."""

    node_uids: List[str] = Field(default_factory=list)
    edges: List[EdgeRef] = Field(default_factory=list)

    @model_validator(mode="after")
    def _canonical_order(self) -> FlowGraph:
        self.node_uids = sorted(set(self.node_uids))
        unique = {e.key: e for e in self.edges}
        self.edges = [unique[k] for k in sorted(unique)]
        return self

    @property
    def edge_keys(self) -> List[str]:
        return [e.key for e in self.edges]


# =============================================================================
# Dependencies
# =============================================================================

class DependencyManifest(BaseSchema):
    """A dependency-declaration file at a given commit."""

    manifest_type: Optional[str] = None
    file_path: str = Field(..., min_length=1)
    sha: str = Field(..., min_length=1)
    parsed: Any = None
    indexed_at: Optional[datetime] = None

    @property
    def manifest_key(self) -> str:
        return make_manifest_key(self.file_path, self.sha)


class DeclaredDependency(BaseSchema):
    """Package asserted by a manifest."""

    manifest_key: str = Field(..., min_length=1)
    package_key: str = Field(..., min_length=1)
    scope: str = UNKNOWN
    version_range: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    sha: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _scope_default(cls, values: Any) -> Any:
        if isinstance(values, dict) and not values.get("scope"):
            values = dict(values)
            values["scope"] = UNKNOWN
        return values

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.manifest_key, self.package_key, self.scope)

    @property
    def manifest_file_path(self) -> str | None:
        idx = self.manifest_key.rfind(KEY_SEPARATOR)
        if idx <= 0:
            return None
        return self.manifest_key[:idx]


class ObservedDependency(BaseSchema):
    """Package inferred from a usage edge."""

    source_symbol_uid: str = Field(..., min_length=1)
    package_key: str = Field(..., min_length=1)
    file_path: Optional[str] = None
    evidence: Any = None
    first_seen_sha: str = UNKNOWN
    last_seen_sha: str = UNKNOWN

    @model_validator(mode="before")
    @classmethod
    def _defaults(cls, values: Any) -> Any:
        if isinstance(values, dict):
            values = _fill_seen_shas(dict(values))
        return values

    @property
    def key(self) -> tuple[str, str]:
        return (self.source_symbol_uid, self.package_key)


class DependencyMismatch(BaseSchema):
    """Derived drift between declared and observed dependencies."""

    mismatch_type: MismatchType
    package_key: str = Field(..., min_length=1)
    details: dict[str, Any] = Field(default_factory=dict)
    sha: str = Field(..., min_length=1)

    @property
    def key(self) -> tuple[str, str, str]:
        return (MismatchType(self.mismatch_type).value, self.package_key, self.sha)


# =============================================================================
# Diagnostics / search
# =============================================================================

class IndexDiagnostic(BaseSchema):
    """Append-only audit row for one indexing pass."""

    sha: str = Field(..., min_length=1)
    mode: IndexMode = IndexMode.INCREMENTAL
    changed_files: List[str] = Field(default_factory=list)
    removed_files: List[str] = Field(default_factory=list)
    impacted_files: List[str] = Field(default_factory=list)
    reparsed_files: List[str] = Field(default_factory=list)
    impacted_symbol_uids: List[str] = Field(default_factory=list)
    note: Optional[str] = None
    created_at: Optional[datetime] = None


class SearchHit(StrictSchema):
    node: GraphNode
    score: float


class RecordEnvelope(StrictSchema):
    """``{type, data}`` wrapper produced by the external indexer."""

    type: str = Field(..., min_length=1)
    data: Any = None
