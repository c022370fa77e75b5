"""Symbol graph tables: nodes, edges, edge occurrences, unresolved imports.

Every table is scoped by (tenant_id, repo_id). Edges reference their
endpoint node rows by surrogate id; the natural key columns are kept
alongside so reads never need a join back to the node table.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from codegraph.models.base import Base, JSONType, TenantMixin, TimestampMixin, UUIDMixin


class CodeNode(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_nodes"

    symbol_uid: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        doc="Stable cross-commit symbol identifier",
    )
    node_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    node_type: Mapped[str] = mapped_column(String(64), nullable=False)
    qualified_name: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    symbol_kind: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    line_start: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    line_end: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    visibility: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    signature: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signature_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    declaration: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    docstring: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    parameters: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    contract: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    constraints: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    allowable_values: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    external_ref: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)

    embedding: Mapped[Optional[list]] = mapped_column(
        JSONType,
        nullable=True,
        doc="Fixed-length float vector for semantic search",
    )
    embedding_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Indexer-specific fields not modelled as columns
    extra: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    first_seen_sha: Mapped[str] = mapped_column(String(64), nullable=False)
    last_seen_sha: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "repo_id", "symbol_uid", name="ux_cig_nodes_symbol"),
        Index("ix_cig_nodes_file", "tenant_id", "repo_id", "file_path"),
    )


class CodeEdge(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_edges"

    source_node_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cig_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_node_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cig_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_symbol_uid: Mapped[str] = mapped_column(String(1024), nullable=False)
    edge_type: Mapped[str] = mapped_column(String(64), nullable=False)
    target_symbol_uid: Mapped[str] = mapped_column(String(1024), nullable=False)

    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    extra: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    first_seen_sha: Mapped[str] = mapped_column(String(64), nullable=False)
    last_seen_sha: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "repo_id", "source_symbol_uid", "edge_type", "target_symbol_uid",
            name="ux_cig_edges_natural",
        ),
        Index("ix_cig_edges_source", "tenant_id", "repo_id", "source_symbol_uid"),
        Index("ix_cig_edges_target", "tenant_id", "repo_id", "target_symbol_uid"),
    )


class CodeEdgeOccurrence(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_edge_occurrences"

    edge_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cig_edges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    line_start: Mapped[int] = mapped_column(Integer, nullable=False)
    line_end: Mapped[int] = mapped_column(Integer, nullable=False)
    occurrence_kind: Mapped[str] = mapped_column(String(32), nullable=False, default="other")
    sha: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "edge_id", "file_path", "line_start", "line_end",
            name="ux_cig_edge_occurrences_site",
        ),
        Index("ix_cig_edge_occurrences_file", "tenant_id", "repo_id", "file_path"),
    )


class CodeUnresolvedImport(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_unresolved_imports"

    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    line: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    spec: Mapped[str] = mapped_column(String(1024), nullable=False)
    kind: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    sha: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "repo_id", "file_path", "line", "spec", "sha",
            name="ux_cig_unresolved_imports_site",
        ),
    )
