"""
Staleness Propagation
=====================

Hands impacted symbol uids to the documentation store so blocks whose
evidence cites those symbols are marked stale. Blocks in the ``locked``
state are never touched.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence, runtime_checkable

from codegraph.core.logging import get_logger

logger = get_logger(__name__)

STATUS_FRESH = "fresh"
STATUS_STALE = "stale"
STATUS_LOCKED = "locked"


@runtime_checkable
class DocStore(Protocol):
    """Documentation store collaborator; may be remote, always awaited."""

    async def mark_blocks_stale_for_symbol_uids(
        self, *, tenant_id: str, repo_id: str, symbol_uids: Sequence[str]
    ) -> int: ...


@dataclass
class DocBlock:
    doc_file: str
    block_anchor: str
    block_type: str = "section"
    content: str = ""
    status: str = STATUS_FRESH
    evidence_symbol_uids: set[str] = field(default_factory=set)

    @property
    def block_id(self) -> str:
        return hashlib.sha256(f"{self.doc_file}::{self.block_anchor}".encode("utf-8")).hexdigest()[:16]


class InMemoryDocStore:
    """Doc blocks with symbol evidence, held per (tenant_id, repo_id)."""

    def __init__(self):
        self._blocks: dict[tuple[str, str], dict[str, DocBlock]] = {}

    def upsert_block(
        self,
        *,
        tenant_id: str,
        repo_id: str,
        doc_file: str,
        block_anchor: str,
        block_type: str = "section",
        content: str = "",
        status: str = STATUS_FRESH,
        evidence_symbol_uids: Iterable[str] = (),
    ) -> DocBlock:
        block = DocBlock(
            doc_file=doc_file,
            block_anchor=block_anchor,
            block_type=block_type,
            content=content,
            status=status,
            evidence_symbol_uids=set(evidence_symbol_uids),
        )
        self._blocks.setdefault((tenant_id, repo_id), {})[block.block_id] = block
        return block

    def get_block(self, *, tenant_id: str, repo_id: str, doc_file: str, block_anchor: str) -> Optional[DocBlock]:
        lookup = DocBlock(doc_file=doc_file, block_anchor=block_anchor)
        return self._blocks.get((tenant_id, repo_id), {}).get(lookup.block_id)

    def list_blocks(self, *, tenant_id: str, repo_id: str, status: Optional[str] = None) -> list[DocBlock]:
        blocks = sorted(
            self._blocks.get((tenant_id, repo_id), {}).values(),
            key=lambda b: (b.doc_file, b.block_anchor),
        )
        return [b for b in blocks if status is None or b.status == status]

    async def mark_blocks_stale_for_symbol_uids(
        self, *, tenant_id: str, repo_id: str, symbol_uids: Sequence[str]
    ) -> int:
        """Mark unlocked blocks citing any of ``symbol_uids``; returns how many changed state."""
        wanted = set(symbol_uids)
        count = 0
        for block in self._blocks.get((tenant_id, repo_id), {}).values():
            if block.status in (STATUS_LOCKED, STATUS_STALE):
                continue
            if block.evidence_symbol_uids & wanted:
                block.status = STATUS_STALE
                count += 1
        return count


class StalenessPropagator:
    def __init__(self, doc_store: DocStore):
        self.doc_store = doc_store

    async def propagate(self, *, tenant_id: str, repo_id: str, impacted_symbol_uids: Sequence[str]) -> int:
        uids = sorted({u for u in impacted_symbol_uids if u})
        if not uids:
            return 0
        count = await self.doc_store.mark_blocks_stale_for_symbol_uids(
            tenant_id=tenant_id, repo_id=repo_id, symbol_uids=uids
        )
        logger.info(
            "doc_blocks_marked_stale",
            tenant_id=tenant_id,
            repo_id=repo_id,
            symbols=len(uids),
            blocks=count,
        )
        return count
