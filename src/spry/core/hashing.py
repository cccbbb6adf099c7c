"""
Deterministic hashing for response envelopes.

Callers use the envelope ``hash`` for idempotent-response detection: the same
response code and the same body always produce the same hash, regardless of
when or how often the response is built.

Examples:
    >>> envelope_hash("0-200", {"id": 1}) == envelope_hash("0-200", {"id": 1})
    True
    >>> envelope_hash("0-200", {"id": 1}) == envelope_hash("0-400", {"id": 1})
    False

Tags:
    hashing, idempotency, spry-core

Doc-Types:
    api-reference
"""

import hashlib
import json
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Values are converted to strings and joined with ``|`` before hashing
    with SHA-256, so ``(a, b)`` and ``(b, a)`` hash differently.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def serialize_body(body: Any) -> str:
    """Stable serialization of an envelope body (key order independent)."""
    return json.dumps(body, sort_keys=True, default=str, separators=(",", ":"))


def envelope_hash(code: str, body: Any) -> str:
    """Hash of a response code plus its serialized body."""
    return compute_hash(code, serialize_body(body))


__all__ = ["compute_hash", "serialize_body", "envelope_hash"]
