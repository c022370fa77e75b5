"""
Base Model Classes
==================

Shared base classes and mixins for all SQLAlchemy models.

Column types are chosen so the same metadata runs on PostgreSQL
(asyncpg) and SQLite (aiosqlite): generic ``Uuid`` and ``JSON`` that
upgrade to native UUID / JSONB on PostgreSQL.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on PostgreSQL, TEXT-backed JSON elsewhere. None is stored as SQL NULL
# so COALESCE-based upserts can keep an existing value.
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""


class UUIDMixin:
    """
    Mixin that adds a UUID primary key.
    """

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=generate_uuid,
        doc="Unique identifier (UUID)",
    )


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamps.

    - created_at: Set automatically on insert
    - updated_at: Updated automatically on every change
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        doc="Record creation timestamp",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
        doc="Last update timestamp",
    )


class TenantMixin:
    """
    Mixin that adds tenant_id / repo_id scoping.

    CRITICAL: every query against a tenant-scoped table must filter on
    both columns; there is no cross-repo read path.
    """

    tenant_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        doc="Tenant this record belongs to (isolation boundary)",
    )

    repo_id: Mapped[str] = mapped_column(
        String(256),
        nullable=False,
        doc="Repository within the tenant",
    )
