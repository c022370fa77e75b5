"""Append-only indexing pass diagnostics."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from codegraph.models.base import Base, JSONType, TenantMixin, utc_now


class CodeIndexDiagnostic(Base, TenantMixin):
    """
    One row per indexing pass.

    Uses an integer identity key instead of a UUID so rows list in
    insertion order even when two passes share a timestamp.
    """

    __tablename__ = "cig_index_diagnostics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sha: Mapped[str] = mapped_column(String(64), nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False)
    changed_files: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    removed_files: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    impacted_files: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    reparsed_files: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    impacted_symbol_uids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    __table_args__ = (
        Index("ix_cig_index_diagnostics_scope", "tenant_id", "repo_id", "id"),
    )
