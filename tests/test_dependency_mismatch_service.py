"""Tests for declared/observed dependency drift."""

from datetime import datetime, timedelta, timezone

import pytest

from codegraph.schemas.records import (
    DeclaredDependency,
    DependencyManifest,
    DependencyMismatch,
    MismatchType,
    ObservedDependency,
)
from codegraph.services.dependency_mismatch_service import (
    DependencyMismatchComputer,
    compute_dependency_mismatches,
    current_manifest_keys,
    select_current_declared,
)
from codegraph.services.graph_store.interface import GraphBatch

from tests.conftest import REPO, TENANT, make_node


SCOPE = {"tenant_id": TENANT, "repo_id": REPO}


def _declared(package_key, version_range=None, manifest_key="package.json::s1", scope="prod"):
    return DeclaredDependency(
        manifest_key=manifest_key, package_key=package_key, version_range=version_range, scope=scope
    )


def _observed(package_key, source="js::a.run", file_path="a.js"):
    return ObservedDependency(source_symbol_uid=source, package_key=package_key, file_path=file_path)


def test_observed_but_not_declared():
    mismatches = compute_dependency_mismatches([], [_observed("npm:axios"), _observed("npm:axios", "js::b", "b.js")], "s1")

    [m] = mismatches
    assert m.mismatch_type == "observed_not_declared"
    assert m.package_key == "npm:axios"
    assert m.details == {"observed_in_files": ["a.js", "b.js"]}
    assert m.sha == "s1"


def test_declared_but_never_observed():
    [m] = compute_dependency_mismatches([_declared("npm:left-pad", "^1.0.0")], [], "s1")

    assert m.mismatch_type == "declared_not_observed"
    assert m.details == {
        "declared_in_files": ["package.json"],
        "scopes": ["prod"],
        "version_ranges": ["^1.0.0"],
    }


def test_conflicting_version_ranges():
    declared = [
        _declared("npm:react", "^2.0.0", manifest_key="web/package.json::s1"),
        _declared("npm:react", "^1.0.0", manifest_key="api/package.json::s1"),
    ]

    mismatches = compute_dependency_mismatches(declared, [_observed("npm:react")], "s1")

    [m] = mismatches
    assert m.mismatch_type == "version_conflict"
    assert m.details["version_ranges"] == ["^1.0.0", "^2.0.0"]
    assert m.details["manifests"] == ["api/package.json::s1", "web/package.json::s1"]


def test_missing_range_counts_as_any_version():
    declared = [_declared("npm:lodash", None), _declared("npm:lodash", "^4.0.0", manifest_key="b/package.json::s1")]

    [m] = compute_dependency_mismatches(declared, [_observed("npm:lodash")], "s1")

    assert m.details["version_ranges"] == ["*", "^4.0.0"]


def test_consistent_dependencies_produce_nothing():
    declared = [_declared("npm:react", "^18.0.0"), _declared("npm:react", "^18.0.0", scope="dev")]

    assert compute_dependency_mismatches(declared, [_observed("npm:react")], "s1") == []


def test_result_is_ordered_by_type_then_package():
    mismatches = compute_dependency_mismatches(
        [_declared("npm:z"), _declared("npm:y"), _declared("npm:c", "1"), _declared("npm:c", "2", scope="dev")],
        [_observed("npm:b"), _observed("npm:a"), _observed("npm:c")],
        "s1",
    )

    assert [(m.mismatch_type, m.package_key) for m in mismatches] == [
        ("declared_not_observed", "npm:y"),
        ("declared_not_observed", "npm:z"),
        ("observed_not_declared", "npm:a"),
        ("observed_not_declared", "npm:b"),
        ("version_conflict", "npm:c"),
    ]


def test_mismatch_key_uses_the_type_value():
    validated = DependencyMismatch(mismatch_type=MismatchType.VERSION_CONFLICT, package_key="npm:x", sha="s1")
    # model_construct skips validation, so the enum member is kept as is
    constructed = DependencyMismatch.model_construct(
        mismatch_type=MismatchType.VERSION_CONFLICT, package_key="npm:x", details={}, sha="s1"
    )

    assert validated.key == ("version_conflict", "npm:x", "s1")
    assert constructed.key == ("version_conflict", "npm:x", "s1")


def test_current_manifest_prefers_pass_sha_then_latest():
    now = datetime.now(timezone.utc)
    manifests = [
        DependencyManifest(manifest_type="npm", file_path="package.json", sha="old", indexed_at=now - timedelta(days=2)),
        DependencyManifest(manifest_type="npm", file_path="package.json", sha="new", indexed_at=now),
        DependencyManifest(manifest_type="npm", file_path="api/package.json", sha="s1", indexed_at=now - timedelta(days=9)),
    ]

    assert current_manifest_keys(manifests, "old") == {"package.json::old", "api/package.json::s1"}
    assert current_manifest_keys(manifests, "unrelated") == {"package.json::new", "api/package.json::s1"}


def test_superseded_declarations_are_ignored():
    now = datetime.now(timezone.utc)
    manifests = [
        DependencyManifest(manifest_type="npm", file_path="package.json", sha="s1", indexed_at=now - timedelta(hours=1)),
        DependencyManifest(manifest_type="npm", file_path="package.json", sha="s2", indexed_at=now),
    ]
    declared = [
        _declared("npm:react", "^17.0.0", manifest_key="package.json::s1"),
        _declared("npm:react", "^18.0.0", manifest_key="package.json::s2"),
        _declared("npm:orphan", "1.0.0", manifest_key="never-ingested.json::s0"),
    ]

    current = select_current_declared(declared, manifests, "s2")

    assert [(d.manifest_key, d.package_key) for d in current] == [
        ("package.json::s2", "npm:react"),
        ("never-ingested.json::s0", "npm:orphan"),
    ]


@pytest.mark.asyncio
async def test_recompute_replaces_persisted_set(graph_store):
    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[make_node("js::a.run", "a.js")],
            manifests=[DependencyManifest(manifest_type="npm", file_path="package.json", sha="s1")],
            declared=[_declared("npm:left-pad", "^1.0.0")],
            observed=[_observed("npm:axios")],
        ),
        **SCOPE,
    )
    computer = DependencyMismatchComputer(graph_store)

    first = await computer.recompute(sha="s1", **SCOPE)
    assert [(m.mismatch_type, m.package_key) for m in first] == [
        ("declared_not_observed", "npm:left-pad"),
        ("observed_not_declared", "npm:axios"),
    ]

    await graph_store.add_declared_dependency(declared=_declared("npm:axios", "^1.6.0"), **SCOPE)
    second = await computer.recompute(sha="s1", **SCOPE)

    stored = await graph_store.list_dependency_mismatches(sha="s1", **SCOPE)
    assert [(m.mismatch_type, m.package_key) for m in stored] == [("declared_not_observed", "npm:left-pad")]
    assert [m.package_key for m in second] == ["npm:left-pad"]
