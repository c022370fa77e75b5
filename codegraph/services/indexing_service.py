"""
Indexing Pass
=============

One indexing pass for one commit of one repository. The external worker
holds a per-(tenant, repo) lease for the duration of ``run``; this class
does no locking of its own.

Order of work:

1. Mode: ``incremental`` when changed or removed files are given, else ``full``.
2. Impact of removed files, before pruning, so dependents of deleted
   symbols are still reachable.
3. Prune removed files.
4. Ingest the batch atomically. A failure here stops the pass.
5. Impact of changed files, merged with step 2.
6. Recompute dependency mismatches for the sha (best effort).
7. Materialize flow graphs for every bound entrypoint.
8. Record an IndexDiagnostic.
9. Hand impacted symbols to the staleness propagator.

Steps 2, 5 and 9 run for incremental passes only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from codegraph.core.config import Settings, settings as default_settings
from codegraph.core.logging import get_logger
from codegraph.schemas.records import DependencyMismatch, IndexDiagnostic, IndexMode
from codegraph.services.dependency_mismatch_service import DependencyMismatchComputer
from codegraph.services.flow_graph_service import FlowGraphMaterializer
from codegraph.services.graph_store.interface import GraphStore, PruneResult
from codegraph.services.impact_service import ImpactAnalyzer, ImpactResult
from codegraph.services.ingestion_service import IngestionPipeline, IngestResult
from codegraph.services.prune_service import PruneOnDelete
from codegraph.services.staleness_service import DocStore, StalenessPropagator

logger = get_logger(__name__)


@dataclass
class IndexJob:
    """Work item supplied by the job queue."""

    tenant_id: str
    repo_id: str
    sha: str
    changed_files: Sequence[str] = field(default_factory=list)
    removed_files: Sequence[str] = field(default_factory=list)

    @property
    def mode(self) -> IndexMode:
        if self.changed_files or self.removed_files:
            return IndexMode.INCREMENTAL
        return IndexMode.FULL


@dataclass
class IndexPassResult:
    mode: IndexMode
    impact: Optional[ImpactResult] = None
    prune: PruneResult = field(default_factory=PruneResult)
    ingest: IngestResult = field(default_factory=IngestResult)
    mismatch_count: Optional[int] = None
    flow_graph_keys: list[str] = field(default_factory=list)
    stale_blocks: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "mode": IndexMode(self.mode).value,
            "impact": self.impact.as_dict() if self.impact is not None else None,
            "prune": self.prune.as_dict(),
            "ingest": self.ingest.as_dict(),
            "mismatch_count": self.mismatch_count,
            "flow_graph_keys": list(self.flow_graph_keys),
            "stale_blocks": self.stale_blocks,
        }


class IndexingPass:
    """
    Runs the ordered steps of an indexing pass against one store.

    Args:
        store: Graph store for this pass
        doc_store: Documentation store to notify of stale symbols; skipped when None
        config: Settings; defaults to the module-level settings
    """

    def __init__(
        self,
        store: GraphStore,
        doc_store: Optional[DocStore] = None,
        config: Settings | None = None,
    ):
        cfg = config or default_settings
        self.store = store
        self.pipeline = IngestionPipeline(store)
        self.pruner = PruneOnDelete(store)
        self.analyzer = ImpactAnalyzer(store, config=cfg)
        self.mismatches = DependencyMismatchComputer(store)
        self.materializer = FlowGraphMaterializer(store, config=cfg)
        self.propagator = StalenessPropagator(doc_store) if doc_store is not None else None

    async def _recompute_mismatches(self, job: IndexJob, log) -> Optional[list[DependencyMismatch]]:
        try:
            return await self.mismatches.recompute(tenant_id=job.tenant_id, repo_id=job.repo_id, sha=job.sha)
        except Exception as exc:
            log.warning("dependency_mismatch_recompute_failed", error=str(exc), exc_info=True)
            return None

    async def run(self, job: IndexJob, records: Iterable[Any] = ()) -> IndexPassResult:
        if not job.sha:
            raise ValueError("sha is required")

        mode = job.mode
        incremental = mode is IndexMode.INCREMENTAL
        log = logger.bind(tenant_id=job.tenant_id, repo_id=job.repo_id, sha=job.sha, mode=mode.value)
        scope = {"tenant_id": job.tenant_id, "repo_id": job.repo_id}
        result = IndexPassResult(mode=mode)

        changed = sorted({f for f in job.changed_files if f})
        removed = sorted({f for f in job.removed_files if f})

        pre_prune: Optional[ImpactResult] = None
        if incremental and removed:
            pre_prune = await self.analyzer.compute_impact(changed_files=(), removed_files=removed, **scope)

        result.prune = await self.pruner.prune(removed_files=removed, **scope)

        result.ingest = await self.pipeline.ingest_records(records=records, **scope)

        if incremental:
            impact = await self.analyzer.compute_impact(changed_files=changed, **scope)
            if pre_prune is not None:
                impact = impact.merge(pre_prune)
            impact.removed_files = removed
            result.impact = impact

        computed = await self._recompute_mismatches(job, log)
        if computed is not None:
            result.mismatch_count = len(computed)

        flow_graphs = await self.materializer.materialize_all(sha=job.sha, **scope)
        result.flow_graph_keys = [g.flow_graph_key for g in flow_graphs]

        impact = result.impact or ImpactResult()
        await self.store.add_index_diagnostic(
            diagnostic=IndexDiagnostic(
                sha=job.sha,
                mode=mode,
                changed_files=changed,
                removed_files=removed,
                impacted_files=impact.impacted_files,
                reparsed_files=impact.reparsed_files,
                impacted_symbol_uids=impact.impacted_symbol_uids,
            ),
            **scope,
        )

        if incremental and self.propagator is not None:
            result.stale_blocks = await self.propagator.propagate(
                impacted_symbol_uids=impact.impacted_symbol_uids, **scope
            )

        log.info(
            "index_pass_completed",
            nodes=result.ingest.applied.nodes,
            edges=result.ingest.applied.edges,
            pruned=result.prune.total,
            impacted_symbols=len(impact.impacted_symbol_uids),
            flow_graphs=len(result.flow_graph_keys),
            mismatches=result.mismatch_count,
            stale_blocks=result.stale_blocks,
        )
        return result
