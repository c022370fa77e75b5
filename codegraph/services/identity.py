"""Stable symbol identity helpers.

A symbol uid is ``language::qualified_name::signature_hash`` (``nosig`` when
the symbol has no signature), so a symbol keeps its uid across commits as
long as its name and signature are unchanged.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

from codegraph.schemas.records import KEY_SEPARATOR

NO_SIGNATURE = "nosig"
HASH_LENGTH = 16


def hash_string(value: str) -> str:
    """SHA-256 of ``value``, truncated to 16 hex characters."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def stable_json(value: Any) -> str:
    """JSON with sorted keys and no whitespace, identical across runs."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_signature_hash(signature: Optional[str]) -> Optional[str]:
    if not signature:
        return None
    return hash_string(signature)


def compute_contract_hash(
    contract: Any = None,
    constraints: Any = None,
    allowable_values: Any = None,
) -> str:
    payload = {
        "allowableValues": allowable_values,
        "constraints": constraints,
        "contract": contract,
    }
    return hash_string(stable_json(payload))


def make_symbol_uid(language: str, qualified_name: str, signature_hash: Optional[str] = None) -> str:
    if not isinstance(language, str) or not language:
        raise ValueError("language is required")
    if not isinstance(qualified_name, str) or not qualified_name:
        raise ValueError("qualified_name is required")
    sig = signature_hash if isinstance(signature_hash, str) and signature_hash else NO_SIGNATURE
    return KEY_SEPARATOR.join((language, qualified_name, sig))
