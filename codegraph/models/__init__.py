"""
Database Models
===============

SQLAlchemy models backing the SQL graph store.
All tables carry tenant_id / repo_id for per-repository isolation.
"""

from codegraph.models.base import (
    Base,
    JSONType,
    TenantMixin,
    TimestampMixin,
    UUIDMixin,
    generate_uuid,
    utc_now,
)
from codegraph.models.graph import (
    CodeEdge,
    CodeEdgeOccurrence,
    CodeNode,
    CodeUnresolvedImport,
)
from codegraph.models.flow import (
    CodeFlowEntrypoint,
    CodeFlowGraph,
    CodeFlowGraphEdge,
    CodeFlowGraphNode,
)
from codegraph.models.dependency import (
    CodeDeclaredDependency,
    CodeDependencyManifest,
    CodeDependencyMismatch,
    CodeObservedDependency,
)
from codegraph.models.diagnostic import CodeIndexDiagnostic

__all__ = [
    "Base",
    "JSONType",
    "TenantMixin",
    "TimestampMixin",
    "UUIDMixin",
    "generate_uuid",
    "utc_now",
    "CodeNode",
    "CodeEdge",
    "CodeEdgeOccurrence",
    "CodeUnresolvedImport",
    "CodeFlowEntrypoint",
    "CodeFlowGraph",
    "CodeFlowGraphNode",
    "CodeFlowGraphEdge",
    "CodeDependencyManifest",
    "CodeDeclaredDependency",
    "CodeObservedDependency",
    "CodeDependencyMismatch",
    "CodeIndexDiagnostic",
]
