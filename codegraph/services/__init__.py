"""
Services module initialization.
"""

from codegraph.services.dependency_mismatch_service import (
    DependencyMismatchComputer,
    compute_dependency_mismatches,
)
from codegraph.services.flow_graph_service import FlowGraphMaterializer
from codegraph.services.impact_service import ImpactAnalyzer, ImpactResult, blast_radius
from codegraph.services.indexing_service import IndexingPass, IndexJob, IndexPassResult
from codegraph.services.ingestion_service import IngestionPipeline, IngestResult
from codegraph.services.prune_service import PruneOnDelete
from codegraph.services.staleness_service import DocStore, InMemoryDocStore, StalenessPropagator

__all__ = [
    "DependencyMismatchComputer",
    "compute_dependency_mismatches",
    "FlowGraphMaterializer",
    "ImpactAnalyzer",
    "ImpactResult",
    "blast_radius",
    "IndexingPass",
    "IndexJob",
    "IndexPassResult",
    "IngestionPipeline",
    "IngestResult",
    "PruneOnDelete",
    "DocStore",
    "InMemoryDocStore",
    "StalenessPropagator",
]
