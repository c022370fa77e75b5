"""Behaviour shared by the in-memory and SQL graph stores."""

import pytest

from codegraph.core.exceptions import MissingGraphElementError, ReferentialIntegrityError
from codegraph.schemas.records import (
    DeclaredDependency,
    DependencyManifest,
    DependencyMismatch,
    EdgeOccurrence,
    EdgeRef,
    FlowEntrypoint,
    FlowGraph,
    IndexDiagnostic,
    ObservedDependency,
    UnresolvedImport,
)
from codegraph.services.graph_store.interface import GraphBatch, GraphStore

from tests.conftest import REPO, TENANT, make_edge, make_node


SCOPE = {"tenant_id": TENANT, "repo_id": REPO}


def _occurrence(source, target, file_path, line, edge_type="Calls", sha="sha1"):
    return EdgeOccurrence(
        source_symbol_uid=source,
        edge_type=edge_type,
        target_symbol_uid=target,
        file_path=file_path,
        line_start=line,
        line_end=line,
        occurrence_kind="call",
        sha=sha,
    )


def _basic_batch() -> GraphBatch:
    return GraphBatch(
        nodes=[make_node("js::a.run", "a.js"), make_node("js::b.work", "b.js")],
        edges=[make_edge("js::a.run", "js::b.work")],
        occurrences=[_occurrence("js::a.run", "js::b.work", "a.js", 3)],
    )


def test_both_backends_satisfy_the_protocol(memory_store, sql_store):
    assert isinstance(memory_store, GraphStore)
    assert isinstance(sql_store, GraphStore)


@pytest.mark.asyncio
async def test_ingesting_the_same_batch_twice_is_idempotent(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)
    first = (
        await graph_store.list_nodes(**SCOPE),
        await graph_store.list_edges(**SCOPE),
        await graph_store.list_edge_occurrences(**SCOPE),
    )

    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)
    second = (
        await graph_store.list_nodes(**SCOPE),
        await graph_store.list_edges(**SCOPE),
        await graph_store.list_edge_occurrences(**SCOPE),
    )

    assert [n.symbol_uid for n in first[0]] == [n.symbol_uid for n in second[0]] == ["js::a.run", "js::b.work"]
    assert [e.key for e in second[1]] == ["js::a.run::Calls::js::b.work"]
    assert len(second[2]) == 1
    assert first[2][0].key == second[2][0].key


@pytest.mark.asyncio
async def test_last_record_in_batch_wins(graph_store):
    batch = GraphBatch(
        nodes=[
            make_node("js::a.run", "a.js", signature="run()"),
            make_node("js::a.run", "a.js", signature="run(x)"),
        ]
    )
    result = await graph_store.apply_batch(batch=batch, **SCOPE)

    assert result.nodes == 1
    node = await graph_store.get_node_by_symbol_uid(symbol_uid="js::a.run", **SCOPE)
    assert node.signature == "run(x)"


@pytest.mark.asyncio
async def test_reupsert_keeps_first_seen_and_advances_last_seen(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)

    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[make_node("js::a.run", "a.js", first_seen_sha="sha2", last_seen_sha="sha2")],
            edges=[make_edge("js::a.run", "js::b.work", first_seen_sha="sha2", last_seen_sha="sha2")],
        ),
        **SCOPE,
    )

    node = await graph_store.get_node_by_symbol_uid(symbol_uid="js::a.run", **SCOPE)
    assert (node.first_seen_sha, node.last_seen_sha) == ("sha1", "sha2")
    [edge] = await graph_store.list_edges(**SCOPE)
    assert (edge.first_seen_sha, edge.last_seen_sha) == ("sha1", "sha2")


@pytest.mark.asyncio
async def test_edge_metadata_kept_when_update_omits_it(graph_store):
    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[make_node("js::a.run", "a.js"), make_node("js::b.work", "b.js")],
            edges=[make_edge("js::a.run", "js::b.work", metadata={"async": True})],
        ),
        **SCOPE,
    )
    await graph_store.upsert_edge(edge=make_edge("js::a.run", "js::b.work", last_seen_sha="sha2"), **SCOPE)

    [edge] = await graph_store.list_edges(**SCOPE)
    assert edge.metadata == {"async": True}
    assert edge.last_seen_sha == "sha2"


@pytest.mark.asyncio
async def test_indexer_specific_fields_survive_a_round_trip(graph_store):
    await graph_store.upsert_node(node=make_node("js::a.run", "a.js", complexity=7), **SCOPE)

    node = await graph_store.get_node_by_symbol_uid(symbol_uid="js::a.run", **SCOPE)
    assert node.model_extra["complexity"] == 7


@pytest.mark.asyncio
async def test_edge_to_unknown_node_rolls_back_whole_batch(graph_store):
    batch = GraphBatch(
        nodes=[make_node("js::a.run", "a.js")],
        edges=[make_edge("js::a.run", "js::missing")],
    )

    with pytest.raises(ReferentialIntegrityError) as exc_info:
        await graph_store.apply_batch(batch=batch, **SCOPE)

    assert exc_info.value.missing_symbol_uids == ["js::missing"]
    assert exc_info.value.edge_type == "Calls"
    assert await graph_store.list_nodes(**SCOPE) == []
    assert await graph_store.list_edges(**SCOPE) == []


@pytest.mark.asyncio
async def test_edge_may_reference_nodes_already_in_store(graph_store):
    await graph_store.upsert_node(node=make_node("js::a.run", "a.js"), **SCOPE)
    await graph_store.upsert_node(node=make_node("js::b.work", "b.js"), **SCOPE)

    await graph_store.upsert_edge(edge=make_edge("js::a.run", "js::b.work"), **SCOPE)

    assert [e.key for e in await graph_store.list_edges(**SCOPE)] == ["js::a.run::Calls::js::b.work"]


@pytest.mark.asyncio
async def test_occurrence_creates_its_edge_when_absent(graph_store):
    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[make_node("js::a.run", "a.js"), make_node("js::b.work", "b.js")],
            occurrences=[_occurrence("js::a.run", "js::b.work", "a.js", 4, sha="sha9")],
        ),
        **SCOPE,
    )

    [edge] = await graph_store.list_edges(**SCOPE)
    assert edge.key == "js::a.run::Calls::js::b.work"
    assert edge.first_seen_sha == "sha9"


@pytest.mark.asyncio
async def test_occurrence_with_unknown_endpoint_is_rejected(graph_store):
    await graph_store.upsert_node(node=make_node("js::a.run", "a.js"), **SCOPE)

    with pytest.raises(ReferentialIntegrityError):
        await graph_store.add_edge_occurrence(
            occurrence=_occurrence("js::a.run", "js::ghost", "a.js", 2), **SCOPE
        )

    assert await graph_store.list_edge_occurrences(**SCOPE) == []


@pytest.mark.asyncio
async def test_occurrences_for_edge_are_ordered_by_site(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)
    await graph_store.apply_batch(
        batch=GraphBatch(
            occurrences=[
                _occurrence("js::a.run", "js::b.work", "a.js", 9),
                _occurrence("js::a.run", "js::b.work", "a.js", 1),
            ]
        ),
        **SCOPE,
    )

    occurrences = await graph_store.list_edge_occurrences_for_edge(
        source_symbol_uid="js::a.run", edge_type="Calls", target_symbol_uid="js::b.work", **SCOPE
    )
    assert [o.line_start for o in occurrences] == [1, 3, 9]
    assert {o.occurrence_kind for o in occurrences} == {"call"}


@pytest.mark.asyncio
async def test_list_edges_by_node_respects_direction(graph_store):
    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[
                make_node("js::a", "a.js"),
                make_node("js::b", "b.js"),
                make_node("js::c", "c.js"),
            ],
            edges=[make_edge("js::a", "js::b"), make_edge("js::b", "js::c")],
        ),
        **SCOPE,
    )

    out_edges = await graph_store.list_edges_by_node(symbol_uid="js::b", direction="out", **SCOPE)
    in_edges = await graph_store.list_edges_by_node(symbol_uid="js::b", direction="in", **SCOPE)
    both = await graph_store.list_edges_by_node(symbol_uid="js::b", direction="both", **SCOPE)

    assert [e.target_symbol_uid for e in out_edges] == ["js::c"]
    assert [e.source_symbol_uid for e in in_edges] == ["js::a"]
    assert len(both) == 2


@pytest.mark.asyncio
async def test_prune_removes_file_symbols_but_keeps_their_neighbours(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)

    result = await graph_store.delete_graph_for_file_paths(file_paths=["a.js"], **SCOPE)

    assert result.nodes == 1
    assert result.edges == 1
    assert result.occurrences == 1
    assert result.removed_symbol_uids == ["js::a.run"]
    assert await graph_store.get_node_by_symbol_uid(symbol_uid="js::a.run", **SCOPE) is None
    assert await graph_store.get_node_by_symbol_uid(symbol_uid="js::b.work", **SCOPE) is not None
    assert await graph_store.list_edges(**SCOPE) == []
    assert await graph_store.list_edge_occurrences(**SCOPE) == []


@pytest.mark.asyncio
async def test_pruning_the_target_file_drops_incoming_edges_only(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)

    await graph_store.delete_graph_for_file_paths(file_paths=["b.js"], **SCOPE)

    assert [n.symbol_uid for n in await graph_store.list_nodes(**SCOPE)] == ["js::a.run"]
    assert await graph_store.list_edges(**SCOPE) == []


@pytest.mark.asyncio
async def test_pruning_unknown_files_is_a_no_op(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)

    result = await graph_store.delete_graph_for_file_paths(file_paths=["nope.js"], **SCOPE)
    empty = await graph_store.delete_graph_for_file_paths(file_paths=[], **SCOPE)

    assert result.total == 0
    assert empty.total == 0
    assert len(await graph_store.list_nodes(**SCOPE)) == 2


@pytest.mark.asyncio
async def test_prune_removes_file_scoped_records(graph_store):
    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[make_node("js::a.run", "a.js"), make_node("js::b.work", "b.js")],
            edges=[make_edge("js::a.run", "js::b.work")],
            entrypoints=[
                FlowEntrypoint(
                    entrypoint_key="GET /a",
                    entrypoint_type="http_route",
                    method="GET",
                    path="/a",
                    symbol_uid="js::a.run",
                    file_path="a.js",
                ),
                FlowEntrypoint(
                    entrypoint_key="GET /b",
                    entrypoint_type="http_route",
                    symbol_uid="js::b.work",
                    file_path="b.js",
                ),
            ],
            manifests=[DependencyManifest(manifest_type="npm", file_path="a.js", sha="sha1")],
            declared=[DeclaredDependency(manifest_key="a.js::sha1", package_key="npm:left-pad", version_range="^1.0.0")],
            observed=[
                ObservedDependency(source_symbol_uid="js::a.run", package_key="npm:lodash", file_path="a.js"),
                ObservedDependency(source_symbol_uid="js::b.work", package_key="npm:lodash", file_path="b.js"),
            ],
            unresolved_imports=[UnresolvedImport(file_path="a.js", line=1, spec="./gone", sha="sha1")],
        ),
        **SCOPE,
    )

    result = await graph_store.delete_graph_for_file_paths(file_paths=["a.js"], **SCOPE)

    assert result.entrypoints == 1
    assert result.manifests == 1
    assert result.declared_dependencies == 1
    assert result.observed_dependencies == 1
    assert result.unresolved_imports == 1
    assert [e.entrypoint_key for e in await graph_store.list_flow_entrypoints(**SCOPE)] == ["GET /b"]
    assert await graph_store.list_dependency_manifests(**SCOPE) == []
    assert await graph_store.list_declared_dependencies(**SCOPE) == []
    assert [o.source_symbol_uid for o in await graph_store.list_observed_dependencies(**SCOPE)] == ["js::b.work"]
    assert await graph_store.list_unresolved_imports(**SCOPE) == []


@pytest.mark.asyncio
async def test_prune_strips_removed_members_from_flow_graphs(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)
    flow_graph = FlowGraph(
        entrypoint_key="GET /b",
        start_symbol_uid="js::b.work",
        sha="sha1",
        depth=2,
        node_uids=["js::a.run", "js::b.work"],
        edges=[EdgeRef(source_symbol_uid="js::a.run", edge_type="Calls", target_symbol_uid="js::b.work")],
    )
    await graph_store.upsert_flow_graph(flow_graph=flow_graph, **SCOPE)

    result = await graph_store.delete_graph_for_file_paths(file_paths=["a.js"], **SCOPE)

    assert result.flow_graph_nodes == 1
    assert result.flow_graph_edges == 1
    stored = await graph_store.get_flow_graph(flow_graph_key=flow_graph.flow_graph_key, **SCOPE)
    assert stored.node_uids == ["js::b.work"]
    assert stored.edges == []


@pytest.mark.asyncio
async def test_tenants_and_repos_are_isolated(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)

    assert await graph_store.list_nodes(tenant_id="tenant-b", repo_id=REPO) == []
    assert await graph_store.list_nodes(tenant_id=TENANT, repo_id="repo-2") == []
    assert await graph_store.get_node_by_symbol_uid(tenant_id="tenant-b", repo_id=REPO, symbol_uid="js::a.run") is None

    # Same symbol uid in another tenant is a different node
    await graph_store.upsert_node(tenant_id="tenant-b", repo_id=REPO, node=make_node("js::a.run", "other.js"))
    result = await graph_store.delete_graph_for_file_paths(tenant_id="tenant-b", repo_id=REPO, file_paths=["a.js"])

    assert result.nodes == 0
    mine = await graph_store.get_node_by_symbol_uid(symbol_uid="js::a.run", **SCOPE)
    theirs = await graph_store.get_node_by_symbol_uid(tenant_id="tenant-b", repo_id=REPO, symbol_uid="js::a.run")
    assert mine.file_path == "a.js"
    assert theirs.file_path == "other.js"


@pytest.mark.asyncio
async def test_edge_cannot_reach_a_node_in_another_tenant(graph_store):
    await graph_store.upsert_node(tenant_id="tenant-b", repo_id=REPO, node=make_node("js::b.work", "b.js"))
    await graph_store.upsert_node(node=make_node("js::a.run", "a.js"), **SCOPE)

    with pytest.raises(ReferentialIntegrityError):
        await graph_store.upsert_edge(edge=make_edge("js::a.run", "js::b.work"), **SCOPE)


@pytest.mark.asyncio
async def test_semantic_search_ranks_by_cosine_similarity(graph_store, embedding_provider):
    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[
                make_node("js::parse", "p.js", embedding=embedding_provider.embed("parse config file")),
                make_node("js::render", "r.js", embedding=embedding_provider.embed("render html page")),
                make_node("js::plain", "x.js"),
            ]
        ),
        **SCOPE,
    )

    hits = await graph_store.semantic_search(query="parse config file", limit=5, **SCOPE)

    assert [h.node.symbol_uid for h in hits] == ["js::parse", "js::render"]
    assert hits[0].score == pytest.approx(1.0)
    assert hits[0].score > hits[1].score
    assert await graph_store.semantic_search(query="   ", **SCOPE) == []
    assert len(await graph_store.semantic_search(query="parse config file", limit=1, **SCOPE)) == 1


@pytest.mark.asyncio
async def test_diagnostics_are_append_only_in_insertion_order(graph_store):
    for sha in ("s1", "s2", "s3"):
        await graph_store.add_index_diagnostic(
            diagnostic=IndexDiagnostic(sha=sha, mode="incremental", changed_files=[f"{sha}.js"]), **SCOPE
        )

    rows = await graph_store.list_index_diagnostics(**SCOPE)
    latest = await graph_store.list_index_diagnostics(limit=2, **SCOPE)

    assert [d.sha for d in rows] == ["s1", "s2", "s3"]
    assert [d.sha for d in latest] == ["s2", "s3"]
    assert rows[0].changed_files == ["s1.js"]
    assert rows[0].mode == "incremental"
    assert rows[0].created_at is not None


@pytest.mark.asyncio
async def test_replace_dependency_mismatches_replaces_only_that_sha(graph_store):
    old = DependencyMismatch(mismatch_type="observed_not_declared", package_key="npm:a", sha="s1")
    other = DependencyMismatch(mismatch_type="observed_not_declared", package_key="npm:z", sha="s0")
    await graph_store.replace_dependency_mismatches(sha="s1", mismatches=[old], **SCOPE)
    await graph_store.replace_dependency_mismatches(sha="s0", mismatches=[other], **SCOPE)

    count = await graph_store.replace_dependency_mismatches(
        sha="s1",
        mismatches=[
            DependencyMismatch(
                mismatch_type="version_conflict",
                package_key="npm:b",
                sha="s1",
                details={"version_ranges": ["^1.0.0", "^2.0.0"]},
            )
        ],
        **SCOPE,
    )

    assert count == 1
    current = await graph_store.list_dependency_mismatches(sha="s1", **SCOPE)
    assert [(m.mismatch_type, m.package_key) for m in current] == [("version_conflict", "npm:b")]
    assert current[0].details == {"version_ranges": ["^1.0.0", "^2.0.0"]}
    assert len(await graph_store.list_dependency_mismatches(**SCOPE)) == 2


@pytest.mark.asyncio
async def test_flow_graph_referencing_unknown_node_is_rejected(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)

    with pytest.raises(MissingGraphElementError):
        await graph_store.upsert_flow_graph(
            flow_graph=FlowGraph(
                entrypoint_key="GET /a",
                start_symbol_uid="js::a.run",
                sha="sha1",
                depth=1,
                node_uids=["js::a.run", "js::ghost"],
            ),
            **SCOPE,
        )

    assert await graph_store.list_flow_graphs(**SCOPE) == []


@pytest.mark.asyncio
async def test_flow_graph_upsert_fully_replaces_membership(graph_store):
    await graph_store.apply_batch(batch=_basic_batch(), **SCOPE)
    wide = FlowGraph(
        entrypoint_key="GET /a",
        start_symbol_uid="js::a.run",
        sha="sha1",
        depth=1,
        node_uids=["js::a.run", "js::b.work"],
        edges=[EdgeRef(source_symbol_uid="js::a.run", edge_type="Calls", target_symbol_uid="js::b.work")],
    )
    narrow = wide.model_copy(update={"node_uids": ["js::a.run"], "edges": []})

    await graph_store.upsert_flow_graph(flow_graph=wide, **SCOPE)
    await graph_store.upsert_flow_graph(flow_graph=narrow, **SCOPE)

    stored = await graph_store.get_flow_graph(flow_graph_key="GET /a::sha1::1", **SCOPE)
    assert stored.node_uids == ["js::a.run"]
    assert stored.edges == []
    assert [s.flow_graph_key for s in await graph_store.list_flow_graphs(**SCOPE)] == ["GET /a::sha1::1"]
    assert await graph_store.get_flow_graph(flow_graph_key="not-a-key", **SCOPE) is None


@pytest.mark.asyncio
async def test_file_and_symbol_lookups(graph_store):
    await graph_store.apply_batch(
        batch=GraphBatch(
            nodes=[
                make_node("js::a.run", "a.js"),
                make_node("js::a.helper", "a.js"),
                make_node("js::b.work", "b.js"),
                make_node("js::c.main", "c.js"),
            ],
            edges=[
                make_edge("js::c.main", "js::a.run", edge_type="Imports"),
                make_edge("js::b.work", "js::a.helper", edge_type="Calls"),
            ],
        ),
        **SCOPE,
    )

    uids = await graph_store.list_symbol_uids_for_file_paths(file_paths=["a.js"], **SCOPE)
    files = await graph_store.list_file_paths_for_symbol_uids(symbol_uids=["js::b.work", "js::a.run", "js::x"], **SCOPE)
    importers = await graph_store.list_importer_file_paths(file_paths=["a.js"], **SCOPE)

    assert uids == ["js::a.helper", "js::a.run"]
    assert files == ["a.js", "b.js"]
    assert importers == ["c.js"]


@pytest.mark.asyncio
async def test_manifests_get_an_indexed_at_timestamp(graph_store):
    await graph_store.add_dependency_manifest(
        manifest=DependencyManifest(manifest_type="npm", file_path="package.json", sha="s1", parsed={"name": "x"}),
        **SCOPE,
    )

    [manifest] = await graph_store.list_dependency_manifests(**SCOPE)
    assert manifest.manifest_key == "package.json::s1"
    assert manifest.indexed_at is not None
    assert manifest.parsed == {"name": "x"}
