"""
Engine Exceptions
=================

Errors raised by ingestion, traversal and the graph stores.
"""

from __future__ import annotations

from typing import Iterable


class CodeGraphError(Exception):
    """Base class for all code graph engine errors."""


class MalformedRecordError(CodeGraphError, ValueError):
    """A record is missing a required natural-key field or has an invalid value."""

    def __init__(
        self,
        record_type: str,
        field: str,
        reason: str = "missing",
        *,
        index: int | None = None,
    ):
        self.record_type = record_type
        self.field = field
        self.reason = reason
        self.index = index
        where = f" (record #{index})" if index is not None else ""
        super().__init__(f"{record_type}.{field} {reason}{where}")


class ReferentialIntegrityError(CodeGraphError):
    """An edge references a node absent from both the store and the batch."""

    def __init__(
        self,
        *,
        source_symbol_uid: str,
        edge_type: str,
        target_symbol_uid: str,
        missing_symbol_uids: Iterable[str],
    ):
        self.source_symbol_uid = source_symbol_uid
        self.edge_type = edge_type
        self.target_symbol_uid = target_symbol_uid
        self.missing_symbol_uids = sorted(set(missing_symbol_uids))
        super().__init__(
            f"edge {source_symbol_uid}::{edge_type}::{target_symbol_uid} references "
            f"unknown node(s): {', '.join(self.missing_symbol_uids)}"
        )


class FlowGraphIngestRejectedError(CodeGraphError):
    """flow_graph records cannot go through the generic ingest path."""

    def __init__(self, index: int | None = None):
        self.index = index
        super().__init__(
            "flow_graph records are not accepted by ingest_records; "
            "use FlowGraphMaterializer.materialize() so prior membership is cleared atomically"
        )


class InvalidTraversalDepthError(CodeGraphError, ValueError):
    """Traversal depth is not an int within the allowed bound."""

    def __init__(self, depth: object, max_depth: int):
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(f"depth must be an int in 0..{max_depth}, got {depth!r}")


class MissingGraphElementError(CodeGraphError):
    """A flow graph references a node or edge that does not exist in the store."""
