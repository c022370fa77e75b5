"""
Symbol Id Cache
===============

Write-through memo of natural key -> surrogate row id for the SQL store.

Lookups made inside a transaction go into a ``CacheStage`` owned by that
transaction. The stage is published into the shared maps only after the
transaction commits and is simply dropped on rollback, so the cache never
holds ids that were not durably written.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable


Scope = tuple[str, str]


@dataclass
class CacheStage:
    """Ids learned during one transaction, keyed by (tenant_id, repo_id)."""

    scope: Scope
    node_ids: dict[str, str] = field(default_factory=dict)
    edge_ids: dict[str, str] = field(default_factory=dict)


class SymbolIdCache:
    """
    Per-(tenant, repo) maps of symbol_uid -> node id and edge_key -> edge id.

    Each map is bounded; the least recently published scope is dropped
    when ``max_scopes`` is exceeded.
    """

    def __init__(self, max_scopes: int = 256):
        self.max_scopes = max_scopes
        self._nodes: OrderedDict[Scope, dict[str, str]] = OrderedDict()
        self._edges: OrderedDict[Scope, dict[str, str]] = OrderedDict()

    def stage(self, tenant_id: str, repo_id: str) -> CacheStage:
        return CacheStage(scope=(tenant_id, repo_id))

    def node_ids(self, stage: CacheStage, symbol_uids: Iterable[str]) -> dict[str, str]:
        """Known ids for ``symbol_uids``: staged first, then published."""
        published = self._nodes.get(stage.scope, {})
        out: dict[str, str] = {}
        for uid in symbol_uids:
            node_id = stage.node_ids.get(uid) or published.get(uid)
            if node_id is not None:
                out[uid] = node_id
        return out

    def edge_ids(self, stage: CacheStage, edge_keys: Iterable[str]) -> dict[str, str]:
        published = self._edges.get(stage.scope, {})
        out: dict[str, str] = {}
        for key in edge_keys:
            edge_id = stage.edge_ids.get(key) or published.get(key)
            if edge_id is not None:
                out[key] = edge_id
        return out

    def publish(self, stage: CacheStage) -> None:
        """Merge a committed stage into the shared maps."""
        if stage.node_ids:
            self._scope_map(self._nodes, stage.scope).update(stage.node_ids)
        if stage.edge_ids:
            self._scope_map(self._edges, stage.scope).update(stage.edge_ids)

    def evict(
        self,
        tenant_id: str,
        repo_id: str,
        *,
        symbol_uids: Iterable[str] = (),
        edge_keys: Iterable[str] = (),
    ) -> None:
        scope = (tenant_id, repo_id)
        nodes = self._nodes.get(scope)
        if nodes is not None:
            for uid in symbol_uids:
                nodes.pop(uid, None)
        edges = self._edges.get(scope)
        if edges is not None:
            for key in edge_keys:
                edges.pop(key, None)

    def clear(self, tenant_id: str | None = None, repo_id: str | None = None) -> None:
        if tenant_id is None:
            self._nodes.clear()
            self._edges.clear()
            return
        self._nodes.pop((tenant_id, repo_id), None)
        self._edges.pop((tenant_id, repo_id), None)

    def __len__(self) -> int:
        return sum(len(m) for m in self._nodes.values()) + sum(len(m) for m in self._edges.values())

    def _scope_map(self, maps: OrderedDict[Scope, dict[str, str]], scope: Scope) -> dict[str, str]:
        entry = maps.get(scope)
        if entry is None:
            entry = maps[scope] = {}
        maps.move_to_end(scope)
        while len(maps) > self.max_scopes:
            maps.popitem(last=False)
        return entry
