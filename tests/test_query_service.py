"""Tests for read-side graph queries."""

import pytest

from codegraph.core.exceptions import InvalidTraversalDepthError
from codegraph.schemas.records import EdgeOccurrence
from codegraph.services.graph_store.interface import GraphBatch
from codegraph.services.query_service import (
    allow_edge_types,
    exclude_edge_types,
    neighborhood,
    text_search,
    trace_flow,
)

from tests.conftest import REPO, TENANT, make_edge, make_node


SCOPE = {"tenant_id": TENANT, "repo_id": REPO}


async def _seed(store):
    await store.apply_batch(
        batch=GraphBatch(
            nodes=[
                make_node("js::api.handle", "api.js", qualified_name="api.handle", name="handle"),
                make_node("js::db.query", "db.js", qualified_name="db.query", name="query"),
                make_node("js::db.connect", "db.js", qualified_name="db.connect", name="connect"),
                make_node("js::log.write", "log.js", qualified_name="log.write", name="write"),
            ],
            edges=[
                make_edge("js::api.handle", "js::db.query"),
                make_edge("js::db.query", "js::db.connect"),
                make_edge("js::api.handle", "js::log.write", edge_type="Imports"),
            ],
            occurrences=[
                EdgeOccurrence(
                    source_symbol_uid="js::api.handle",
                    edge_type="Calls",
                    target_symbol_uid="js::db.query",
                    file_path="api.js",
                    line_start=line,
                    line_end=line,
                )
                for line in (4, 12)
            ],
        ),
        **SCOPE,
    )


@pytest.mark.asyncio
async def test_neighborhood_counts_call_sites(graph_store):
    await _seed(graph_store)

    hood = await neighborhood(graph_store, symbol_uid="js::api.handle", direction="out", **SCOPE)

    assert {n.symbol_uid for n in hood.nodes} == {"js::api.handle", "js::db.query", "js::log.write"}
    counts = {c.target_symbol_uid: c.occurrences for c in hood.edge_occurrence_counts}
    assert counts == {"js::db.query": 2, "js::log.write": 0}


@pytest.mark.asyncio
async def test_neighborhood_edge_type_filter_and_limit(graph_store):
    await _seed(graph_store)

    calls_only = await neighborhood(graph_store, symbol_uid="js::api.handle", edge_types={"Calls"}, **SCOPE)
    capped = await neighborhood(graph_store, symbol_uid="js::api.handle", limit_edges=1, **SCOPE)

    assert [e.edge_type for e in calls_only.edges] == ["Calls"]
    assert len(capped.edges) == 1


@pytest.mark.asyncio
async def test_trace_flow_is_outbound_and_bounded(graph_store):
    await _seed(graph_store)

    one = await trace_flow(graph_store, start_symbol_uid="js::api.handle", depth=1, **SCOPE)
    two = await trace_flow(
        graph_store,
        start_symbol_uid="js::api.handle",
        depth=2,
        edge_filter=exclude_edge_types({"Imports"}),
        **SCOPE,
    )
    upstream = await trace_flow(graph_store, start_symbol_uid="js::db.connect", depth=3, **SCOPE)

    assert [n.symbol_uid for n in one.nodes] == ["js::api.handle", "js::db.query", "js::log.write"]
    assert [n.symbol_uid for n in two.nodes] == ["js::api.handle", "js::db.connect", "js::db.query"]
    assert len(two.edges) == 2
    assert [n.symbol_uid for n in upstream.nodes] == ["js::db.connect"]
    assert upstream.edges == []


@pytest.mark.asyncio
async def test_trace_flow_from_unknown_symbol_is_empty(graph_store):
    trace = await trace_flow(graph_store, start_symbol_uid="js::ghost", depth=2, **SCOPE)

    assert trace.nodes == []
    assert trace.edges == []


@pytest.mark.asyncio
async def test_trace_flow_rejects_depth_above_ten(memory_store):
    with pytest.raises(InvalidTraversalDepthError):
        await trace_flow(memory_store, start_symbol_uid="js::a", depth=11, **SCOPE)


@pytest.mark.asyncio
async def test_text_search_matches_names_case_insensitively(graph_store):
    await _seed(graph_store)

    hits = await text_search(graph_store, query="DB.", **SCOPE)
    limited = await text_search(graph_store, query="db", limit=1, **SCOPE)

    assert [h.node.symbol_uid for h in hits] == ["js::db.connect", "js::db.query"]
    assert {h.score for h in hits} == {1.0}
    assert [h.node.symbol_uid for h in limited] == ["js::db.connect"]
    assert await text_search(graph_store, query="  ", **SCOPE) == []


def test_edge_predicates():
    call = make_edge("js::a", "js::b")
    imp = make_edge("js::a", "js::b", edge_type="Imports")

    assert allow_edge_types({"Calls"})(call)
    assert not allow_edge_types({"Calls"})(imp)
    assert exclude_edge_types({"Imports"})(call)
    assert not exclude_edge_types({"Imports"})(imp)
