"""
Dependency Mismatch Computation
===============================

Diffs declared (manifest-asserted) against observed (usage-inferred)
dependencies. ``compute_dependency_mismatches`` is pure and deterministic;
``DependencyMismatchComputer`` reads the persisted tables and replaces the
mismatch set stored for a sha.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence

from codegraph.core.logging import get_logger
from codegraph.schemas.records import (
    UNKNOWN,
    DeclaredDependency,
    DependencyManifest,
    DependencyMismatch,
    MismatchType,
    ObservedDependency,
)
from codegraph.services.graph_store.interface import GraphStore

logger = get_logger(__name__)

ANY_VERSION = "*"


@dataclass
class _DeclaredGroup:
    ranges: set[str] = field(default_factory=set)
    scopes: set[str] = field(default_factory=set)
    manifests: set[str] = field(default_factory=set)
    files: set[str] = field(default_factory=set)


def compute_dependency_mismatches(
    declared: Iterable[DeclaredDependency],
    observed: Iterable[ObservedDependency],
    sha: str,
) -> list[DependencyMismatch]:
    """
    Categorize drift between declared and observed packages.

    - ``declared_not_observed``: declared somewhere, never observed
    - ``observed_not_declared``: observed, never declared
    - ``version_conflict``: declared with more than one distinct range

    Every list in ``details`` is sorted; the result is ordered by
    (mismatch_type, package_key).
    """
    declared_by_pkg: dict[str, _DeclaredGroup] = {}
    observed_by_pkg: dict[str, set[str]] = {}

    for d in declared:
        if not d.package_key:
            continue
        group = declared_by_pkg.setdefault(d.package_key, _DeclaredGroup())
        group.ranges.add(d.version_range or ANY_VERSION)
        group.scopes.add(d.scope or UNKNOWN)
        if d.manifest_key:
            group.manifests.add(d.manifest_key)
        file_path = d.manifest_file_path
        if file_path:
            group.files.add(file_path)

    for o in observed:
        if not o.package_key:
            continue
        files = observed_by_pkg.setdefault(o.package_key, set())
        if o.file_path:
            files.add(o.file_path)

    mismatches: list[DependencyMismatch] = []

    for pkg, group in declared_by_pkg.items():
        if pkg in observed_by_pkg:
            continue
        mismatches.append(
            DependencyMismatch(
                mismatch_type=MismatchType.DECLARED_NOT_OBSERVED,
                package_key=pkg,
                details={
                    "declared_in_files": sorted(group.files),
                    "scopes": sorted(group.scopes),
                    "version_ranges": sorted(group.ranges),
                },
                sha=sha,
            )
        )

    for pkg, files in observed_by_pkg.items():
        if pkg in declared_by_pkg:
            continue
        mismatches.append(
            DependencyMismatch(
                mismatch_type=MismatchType.OBSERVED_NOT_DECLARED,
                package_key=pkg,
                details={"observed_in_files": sorted(files)},
                sha=sha,
            )
        )

    for pkg, group in declared_by_pkg.items():
        if len(group.ranges) <= 1:
            continue
        mismatches.append(
            DependencyMismatch(
                mismatch_type=MismatchType.VERSION_CONFLICT,
                package_key=pkg,
                details={
                    "package_key": pkg,
                    "version_ranges": sorted(group.ranges),
                    "manifests": sorted(group.manifests),
                },
                sha=sha,
            )
        )

    return sorted(mismatches, key=lambda m: (MismatchType(m.mismatch_type).value, m.package_key))


def _indexed_at(manifest: DependencyManifest) -> datetime:
    ts = manifest.indexed_at
    if ts is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    # SQLite hands back naive datetimes
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def current_manifest_keys(manifests: Sequence[DependencyManifest], sha: str) -> set[str]:
    """Per manifest file: the version at ``sha`` if indexed, else the most recently indexed one."""
    by_file: dict[str, list[DependencyManifest]] = {}
    for m in manifests:
        by_file.setdefault(m.file_path, []).append(m)

    current: set[str] = set()
    for versions in by_file.values():
        at_sha = [m for m in versions if m.sha == sha]
        if at_sha:
            current.add(at_sha[0].manifest_key)
            continue
        latest = max(versions, key=lambda m: (_indexed_at(m), m.manifest_key))
        current.add(latest.manifest_key)
    return current


def select_current_declared(
    declared: Sequence[DeclaredDependency],
    manifests: Sequence[DependencyManifest],
    sha: str,
) -> list[DeclaredDependency]:
    """
    Drop declarations from superseded manifest versions.

    Declarations whose manifest was never ingested are kept: there is no
    newer version to prefer over them.
    """
    known = {m.manifest_key for m in manifests}
    current = current_manifest_keys(manifests, sha)
    return [d for d in declared if d.manifest_key in current or d.manifest_key not in known]


class DependencyMismatchComputer:
    """Recomputes and replaces the persisted mismatch set for a sha."""

    def __init__(self, store: GraphStore):
        self.store = store

    async def recompute(self, *, tenant_id: str, repo_id: str, sha: str) -> list[DependencyMismatch]:
        manifests = await self.store.list_dependency_manifests(tenant_id=tenant_id, repo_id=repo_id)
        declared = await self.store.list_declared_dependencies(tenant_id=tenant_id, repo_id=repo_id)
        observed = await self.store.list_observed_dependencies(tenant_id=tenant_id, repo_id=repo_id)

        mismatches = compute_dependency_mismatches(
            select_current_declared(declared, manifests, sha),
            observed,
            sha,
        )
        await self.store.replace_dependency_mismatches(
            tenant_id=tenant_id, repo_id=repo_id, sha=sha, mismatches=mismatches
        )
        logger.info(
            "dependency_mismatches_recomputed",
            tenant_id=tenant_id,
            repo_id=repo_id,
            sha=sha,
            count=len(mismatches),
        )
        return mismatches
