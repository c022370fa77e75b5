"""
Impact Analysis
===============

Bounded reachability over the symbol graph.

``blast_radius`` walks the edge table breadth-first with an explicit
frontier and visited set, one set-based edge query per hop, and never
recurses: graphs contain cycles (mutual imports, recursion). The start
symbol is not part of its own blast radius.

``ImpactAnalyzer.compute_impact`` turns a set of changed files into the
symbols and files whose derived artifacts are stale.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Collection, Iterable, Optional, Sequence

from codegraph.core.config import Settings, settings as default_settings
from codegraph.core.exceptions import InvalidTraversalDepthError
from codegraph.core.logging import get_logger
from codegraph.schemas.records import Direction
from codegraph.services.graph_store.interface import GraphStore

logger = get_logger(__name__)

MAX_BLAST_RADIUS_DEPTH = 5
MAX_IMPORTER_FILES = 5000


def validate_depth(depth: object, max_depth: int) -> int:
    if isinstance(depth, bool) or not isinstance(depth, int) or not 0 <= depth <= max_depth:
        raise InvalidTraversalDepthError(depth, max_depth)
    return depth


async def reachable_from(
    store: GraphStore,
    *,
    tenant_id: str,
    repo_id: str,
    seeds: Iterable[str],
    depth: int,
    direction: Direction | str = Direction.BOTH,
    edge_types: Optional[Collection[str]] = None,
) -> set[str]:
    """Symbols within ``depth`` hops of any seed, seeds included."""
    d = Direction(direction)
    visited = {uid for uid in seeds if uid}
    frontier = set(visited)

    for _ in range(depth):
        if not frontier:
            break
        edges = await store.list_edges_by_nodes(
            tenant_id=tenant_id, repo_id=repo_id, symbol_uids=sorted(frontier), direction=d
        )
        next_frontier: set[str] = set()
        for edge in edges:
            if edge_types is not None and edge.edge_type not in edge_types:
                continue
            if d is not Direction.IN and edge.source_symbol_uid in frontier:
                if edge.target_symbol_uid not in visited:
                    next_frontier.add(edge.target_symbol_uid)
            if d is not Direction.OUT and edge.target_symbol_uid in frontier:
                if edge.source_symbol_uid not in visited:
                    next_frontier.add(edge.source_symbol_uid)
        visited |= next_frontier
        frontier = next_frontier

    return visited


async def blast_radius(
    store: GraphStore,
    *,
    tenant_id: str,
    repo_id: str,
    symbol_uid: str,
    depth: int = 1,
    direction: Direction | str = Direction.BOTH,
) -> list[str]:
    """
    Symbols reachable from ``symbol_uid`` within ``depth`` hops.

    ``out`` follows source -> target, ``in`` follows target -> source and
    ``both`` follows either. ``depth=0`` returns nothing.

    Raises:
        InvalidTraversalDepthError: depth is not an int in 0..5
        ValueError: symbol_uid is empty
    """
    validate_depth(depth, MAX_BLAST_RADIUS_DEPTH)
    if not symbol_uid:
        raise ValueError("symbol_uid is required")
    found = await reachable_from(
        store,
        tenant_id=tenant_id,
        repo_id=repo_id,
        seeds=[symbol_uid],
        depth=depth,
        direction=direction,
    )
    found.discard(symbol_uid)
    return sorted(found)


@dataclass
class ImpactResult:
    changed_files: list[str] = field(default_factory=list)
    removed_files: list[str] = field(default_factory=list)
    changed_symbol_uids: list[str] = field(default_factory=list)
    impacted_symbol_uids: list[str] = field(default_factory=list)
    impacted_files: list[str] = field(default_factory=list)
    reparsed_files: list[str] = field(default_factory=list)

    def merge(self, other: ImpactResult) -> ImpactResult:
        """Union of two results, e.g. pre-prune and post-ingest impact."""
        return ImpactResult(
            **{name: sorted(set(getattr(self, name)) | set(getattr(other, name))) for name in asdict(self)}
        )

    def as_dict(self) -> dict[str, list[str]]:
        return asdict(self)


class ImpactAnalyzer:
    """
    Computes the impacted scope of a set of changed files.

    Args:
        store: Graph store to traverse
        depth: Default blast-radius depth (``IMPACT_DEPTH``)
        importer_depth: Reverse-importer file expansion hops
            (``IMPACT_IMPORTER_DEPTH``); 0 disables it
    """

    def __init__(
        self,
        store: GraphStore,
        *,
        depth: Optional[int] = None,
        importer_depth: Optional[int] = None,
        config: Settings | None = None,
    ):
        cfg = config or default_settings
        self.store = store
        self.depth = validate_depth(cfg.IMPACT_DEPTH if depth is None else depth, MAX_BLAST_RADIUS_DEPTH)
        self.importer_depth = cfg.IMPACT_IMPORTER_DEPTH if importer_depth is None else importer_depth

    async def expand_importers(self, *, tenant_id: str, repo_id: str, start_files: Sequence[str]) -> list[str]:
        """Files reaching ``start_files`` through chains of Imports edges, start files included."""
        seen = set(start_files)
        frontier = sorted(seen)
        for _ in range(self.importer_depth):
            if not frontier:
                break
            importers = await self.store.list_importer_file_paths(
                tenant_id=tenant_id, repo_id=repo_id, file_paths=frontier
            )
            next_frontier = []
            for path in importers:
                if path in seen:
                    continue
                seen.add(path)
                next_frontier.append(path)
                if len(seen) >= MAX_IMPORTER_FILES:
                    return sorted(seen)
            frontier = next_frontier
        return sorted(seen)

    async def compute_impact(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        changed_files: Sequence[str],
        removed_files: Sequence[str] = (),
        depth: Optional[int] = None,
    ) -> ImpactResult:
        """
        Impacted symbols and files for a set of changed (and removed) files.

        1. Changed symbols are the nodes located in changed or removed files.
        2. Impacted symbols are the changed symbols plus their blast radius
           in both directions.
        3. Impacted files are the files of the impacted symbols.
        4. Reparsed files are the changed files plus the impacted files.
        """
        hops = validate_depth(self.depth if depth is None else depth, MAX_BLAST_RADIUS_DEPTH)
        changed = sorted({f for f in changed_files if f})
        removed = sorted({f for f in removed_files if f})
        start_files = sorted(set(changed) | set(removed))

        changed_uids = await self.store.list_symbol_uids_for_file_paths(
            tenant_id=tenant_id, repo_id=repo_id, file_paths=start_files
        )
        # The union of per-symbol blast radii equals one multi-source walk.
        impacted = await reachable_from(
            self.store,
            tenant_id=tenant_id,
            repo_id=repo_id,
            seeds=changed_uids,
            depth=hops,
            direction=Direction.BOTH,
        )

        impacted_files = set(
            await self.store.list_file_paths_for_symbol_uids(
                tenant_id=tenant_id, repo_id=repo_id, symbol_uids=sorted(impacted)
            )
        )
        if self.importer_depth > 0 and start_files:
            impacted_files.update(
                await self.expand_importers(tenant_id=tenant_id, repo_id=repo_id, start_files=start_files)
            )

        result = ImpactResult(
            changed_files=changed,
            removed_files=removed,
            changed_symbol_uids=sorted(changed_uids),
            impacted_symbol_uids=sorted(impacted),
            impacted_files=sorted(impacted_files),
            reparsed_files=sorted(set(changed) | impacted_files),
        )
        logger.debug(
            "impact_computed",
            tenant_id=tenant_id,
            repo_id=repo_id,
            depth=hops,
            changed_symbols=len(result.changed_symbol_uids),
            impacted_symbols=len(result.impacted_symbol_uids),
            impacted_files=len(result.impacted_files),
        )
        return result
