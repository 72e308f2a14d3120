"""
domain/hashing.py
──────────────────────────────────────────────────────────────────────────────
Canonical JSON serialisation and SHA-256 content hashing.

Decisions, audit entries and reports are each hashed independently from a
canonical JSON rendering of their content (sorted keys, compact separators,
non-JSON values rendered via str()).  Hashes are NOT chained: a per-entry
hash detects tampering with an entry's content but not the deletion or
reordering of whole entries.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(payload: Any) -> str:
    """Render *payload* as deterministic JSON."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def content_hash(payload: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of *payload*."""
    return sha256_hex(canonical_json(payload))
