"""
Ingestion Pipeline
==================

Validates ``{type, data}`` envelopes from the external indexer, groups them
into a GraphBatch and applies it to the store as one atomic unit.

Validation happens before any write: a malformed record raises
MalformedRecordError and nothing is applied. Edges whose endpoints exist
neither in the store nor in the batch raise ReferentialIntegrityError from
the store, which rolls back the whole batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ValidationError

from codegraph.core.exceptions import FlowGraphIngestRejectedError, MalformedRecordError
from codegraph.core.logging import get_logger
from codegraph.schemas.records import (
    DeclaredDependency,
    DependencyManifest,
    DependencyMismatch,
    EdgeOccurrence,
    FlowEntrypoint,
    GraphEdge,
    GraphNode,
    IndexDiagnostic,
    ObservedDependency,
    RecordEnvelope,
    UnresolvedImport,
)
from codegraph.services.graph_store.interface import BatchResult, GraphBatch, GraphStore
from codegraph.services.ndjson import parse_ndjson

logger = get_logger(__name__)

FLOW_GRAPH_RECORD_TYPE = "flow_graph"

# record type -> (schema, GraphBatch field)
RECORD_TYPES: dict[str, tuple[type[BaseModel], str]] = {
    "node": (GraphNode, "nodes"),
    "edge": (GraphEdge, "edges"),
    "edge_occurrence": (EdgeOccurrence, "occurrences"),
    "flow_entrypoint": (FlowEntrypoint, "entrypoints"),
    "dependency_manifest": (DependencyManifest, "manifests"),
    "declared_dependency": (DeclaredDependency, "declared"),
    "observed_dependency": (ObservedDependency, "observed"),
    "dependency_mismatch": (DependencyMismatch, "mismatches"),
    "index_diagnostic": (IndexDiagnostic, "diagnostics"),
    "unresolved_import": (UnresolvedImport, "unresolved_imports"),
}


@dataclass
class IngestResult:
    """What an ingest call applied, plus envelopes skipped for unknown types."""

    applied: BatchResult = field(default_factory=BatchResult)
    skipped: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"applied": self.applied.as_dict(), "skipped": dict(self.skipped)}


def _malformed(record_type: str, exc: ValidationError, index: int) -> MalformedRecordError:
    err = exc.errors()[0]
    loc = err.get("loc") or ()
    field_name = ".".join(str(part) for part in loc) or "data"
    # absent, null and empty key fields all read as "missing"
    if err.get("type") in ("missing", "string_too_short") or err.get("input", "") is None:
        reason = "missing"
    else:
        reason = str(err.get("msg", "invalid"))
    return MalformedRecordError(record_type, field_name, reason, index=index)


def parse_record(envelope: Any, index: int = 0) -> tuple[str, BaseModel | None]:
    """
    Validate one envelope.

    Returns ``(type, record)``; ``record`` is None for types this engine
    does not know.

    Raises:
        MalformedRecordError: envelope or data is malformed
        FlowGraphIngestRejectedError: envelope type is ``flow_graph``
    """
    if isinstance(envelope, RecordEnvelope):
        record_type, data = envelope.type, envelope.data
    elif isinstance(envelope, Mapping):
        record_type, data = envelope.get("type"), envelope.get("data")
    else:
        raise MalformedRecordError("record", "type", "must be a {type, data} object", index=index)

    if not isinstance(record_type, str) or not record_type.strip():
        raise MalformedRecordError("record", "type", index=index)
    record_type = record_type.strip()

    if record_type == FLOW_GRAPH_RECORD_TYPE:
        raise FlowGraphIngestRejectedError(index=index)

    spec = RECORD_TYPES.get(record_type)
    if spec is None:
        return record_type, None

    schema, _ = spec
    if isinstance(data, schema):
        return record_type, data
    if not isinstance(data, Mapping):
        raise MalformedRecordError(record_type, "data", "must be an object", index=index)
    try:
        return record_type, schema.model_validate(dict(data))
    except ValidationError as exc:
        raise _malformed(record_type, exc, index) from exc


def build_batch(envelopes: Iterable[Any]) -> tuple[GraphBatch, dict[str, int]]:
    """Validate every envelope and group the records by type."""
    batch = GraphBatch()
    skipped: dict[str, int] = {}
    for index, envelope in enumerate(envelopes):
        record_type, record = parse_record(envelope, index)
        if record is None:
            skipped[record_type] = skipped.get(record_type, 0) + 1
            continue
        getattr(batch, RECORD_TYPES[record_type][1]).append(record)
    return batch, skipped


class IngestionPipeline:
    """Applies indexer output to a graph store."""

    def __init__(self, store: GraphStore):
        self.store = store

    async def ingest_records(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        records: Iterable[Any],
    ) -> IngestResult:
        batch, skipped = build_batch(records)
        if skipped:
            logger.warning(
                "unknown_record_types_skipped",
                tenant_id=tenant_id,
                repo_id=repo_id,
                skipped=skipped,
            )

        if batch.is_empty():
            return IngestResult(skipped=skipped)

        applied = await self.store.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=batch)
        logger.info(
            "graph_batch_applied",
            tenant_id=tenant_id,
            repo_id=repo_id,
            **applied.as_dict(),
        )
        return IngestResult(applied=applied, skipped=skipped)

    async def ingest_batch(self, *, tenant_id: str, repo_id: str, batch: GraphBatch) -> IngestResult:
        """Apply an already-typed batch."""
        if batch.is_empty():
            return IngestResult()
        applied = await self.store.apply_batch(tenant_id=tenant_id, repo_id=repo_id, batch=batch)
        return IngestResult(applied=applied)

    async def ingest_ndjson(self, *, tenant_id: str, repo_id: str, text: str) -> IngestResult:
        return await self.ingest_records(tenant_id=tenant_id, repo_id=repo_id, records=parse_ndjson(text))
