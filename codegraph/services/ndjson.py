"""Newline-delimited JSON record intake."""

from __future__ import annotations

import json
from typing import Iterator

from codegraph.core.exceptions import MalformedRecordError


def parse_ndjson(text: str) -> Iterator[dict]:
    """
    Yield one envelope per non-blank line.

    Raises:
        MalformedRecordError: a line is not a JSON object (``index`` is the
            1-based line number)
    """
    for lineno, line in enumerate(str(text or "").splitlines(), start=1):
        raw = line.strip()
        if not raw:
            continue
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedRecordError("ndjson", "line", f"invalid JSON ({exc.msg})", index=lineno) from exc
        if not isinstance(value, dict):
            raise MalformedRecordError("ndjson", "line", "must be a JSON object", index=lineno)
        yield value
