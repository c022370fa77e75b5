"""Flow tables: entrypoints and materialized flow graphs.

Flow graph membership is stored by natural key (symbol uid, edge triple)
rather than by foreign key, so a graph keeps describing the subgraph it
was materialized from; pruning strips members that no longer exist.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from codegraph.models.base import Base, TenantMixin, TimestampMixin, UUIDMixin


class CodeFlowEntrypoint(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_flow_entrypoints"

    entrypoint_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    entrypoint_type: Mapped[str] = mapped_column(String(64), nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    symbol_uid: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    line_start: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    line_end: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sha: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "repo_id", "entrypoint_key", name="ux_cig_flow_entrypoints_key"),
    )


class CodeFlowGraph(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_flow_graphs"

    entrypoint_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    sha: Mapped[str] = mapped_column(String(64), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False)
    start_symbol_uid: Mapped[str] = mapped_column(String(1024), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "repo_id", "entrypoint_key", "sha", "depth",
            name="ux_cig_flow_graphs_key",
        ),
    )


class CodeFlowGraphNode(Base):
    __tablename__ = "cig_flow_graph_nodes"

    flow_graph_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cig_flow_graphs.id", ondelete="CASCADE"),
        primary_key=True,
    )
    symbol_uid: Mapped[str] = mapped_column(String(1024), primary_key=True)


class CodeFlowGraphEdge(Base):
    __tablename__ = "cig_flow_graph_edges"

    flow_graph_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cig_flow_graphs.id", ondelete="CASCADE"),
        primary_key=True,
    )
    source_symbol_uid: Mapped[str] = mapped_column(String(1024), primary_key=True)
    edge_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    target_symbol_uid: Mapped[str] = mapped_column(String(1024), primary_key=True)
