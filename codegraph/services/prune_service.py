"""Removal of file-scoped graph state for files deleted from the repository."""

from __future__ import annotations

from typing import Sequence

from codegraph.core.logging import get_logger
from codegraph.services.graph_store.interface import GraphStore, PruneResult

logger = get_logger(__name__)


class PruneOnDelete:
    """
    Deletes nodes located in removed files and everything that hung off them.

    Symbols in other files survive even when they had an edge into a
    removed symbol; only the dangling edge goes. Unknown paths are a no-op.
    """

    def __init__(self, store: GraphStore):
        self.store = store

    async def prune(self, *, tenant_id: str, repo_id: str, removed_files: Sequence[str]) -> PruneResult:
        paths = sorted({p for p in removed_files if p})
        if not paths:
            return PruneResult()

        result = await self.store.delete_graph_for_file_paths(
            tenant_id=tenant_id, repo_id=repo_id, file_paths=paths
        )
        logger.info(
            "graph_pruned",
            tenant_id=tenant_id,
            repo_id=repo_id,
            files=len(paths),
            nodes=result.nodes,
            edges=result.edges,
            occurrences=result.occurrences,
            total=result.total,
        )
        return result
