"""Canonical serialization and digests for determinism checks.

Replaying the same placement log over the same timeslot order must always
produce the same state. These helpers turn records and computed states into
stable bytes so that two states can be compared by digest.
"""

import hashlib
from typing import Any

import orjson
from pydantic import BaseModel


def canonical_json(obj: Any) -> bytes:
    """Generate canonical JSON serialization for consistent hashing.

    Uses orjson with sorted keys to ensure deterministic output regardless
    of dictionary key ordering. Pydantic models are dumped in JSON mode
    first.

    Args:
        obj: Dictionary, list or model to serialize

    Returns:
        Canonical JSON bytes representation

    Example:
        >>> canonical_json({"b": 2, "a": 1})
        b'{"a":1,"b":2}'
    """
    if isinstance(obj, BaseModel):
        obj = obj.model_dump(mode="json")
    return orjson.dumps(obj, option=orjson.OPT_SORT_KEYS)


def digest(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``obj``."""
    return hashlib.sha256(canonical_json(obj)).hexdigest()


def sequence_digest(items: list[Any]) -> str:
    """Digest an ordered sequence of records.

    Order matters: the same records in a different order give a different
    digest.

    Args:
        items: Records (dicts or models) in their canonical order

    Returns:
        Hexadecimal SHA-256 hash string
    """
    hasher = hashlib.sha256()
    for item in items:
        hasher.update(canonical_json(item))
        hasher.update(b"\n")
    return hasher.hexdigest()
