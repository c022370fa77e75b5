"""Dependency tables: manifests, declared / observed dependencies, mismatches."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from codegraph.models.base import Base, JSONType, TenantMixin, TimestampMixin, UUIDMixin, utc_now


class CodeDependencyManifest(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_dependency_manifests"

    manifest_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    sha: Mapped[str] = mapped_column(String(64), nullable=False)
    parsed: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    indexed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        doc="When this manifest version was last ingested",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "repo_id", "file_path", "sha", name="ux_cig_manifests_key"),
    )


class CodeDeclaredDependency(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_declared_dependencies"

    manifest_key: Mapped[str] = mapped_column(
        String(1100),
        nullable=False,
        doc="file_path::sha of the declaring manifest",
    )
    package_key: Mapped[str] = mapped_column(String(512), nullable=False)
    scope: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    version_range: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    sha: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "repo_id", "manifest_key", "package_key", "scope",
            name="ux_cig_declared_key",
        ),
    )


class CodeObservedDependency(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_observed_dependencies"

    source_symbol_uid: Mapped[str] = mapped_column(String(1024), nullable=False)
    package_key: Mapped[str] = mapped_column(String(512), nullable=False)
    file_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    evidence: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    first_seen_sha: Mapped[str] = mapped_column(String(64), nullable=False)
    last_seen_sha: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "repo_id", "source_symbol_uid", "package_key",
            name="ux_cig_observed_key",
        ),
    )


class CodeDependencyMismatch(Base, UUIDMixin, TimestampMixin, TenantMixin):
    __tablename__ = "cig_dependency_mismatches"

    sha: Mapped[str] = mapped_column(String(64), nullable=False)
    mismatch_type: Mapped[str] = mapped_column(String(32), nullable=False)
    package_key: Mapped[str] = mapped_column(String(512), nullable=False)
    details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "repo_id", "sha", "mismatch_type", "package_key",
            name="ux_cig_mismatches_key",
        ),
        Index("ix_cig_mismatches_sha", "tenant_id", "repo_id", "sha"),
    )
