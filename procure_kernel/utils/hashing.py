"""
Deterministic hashing utilities.

Audit events and policy snapshots are fingerprinted with SHA-256 over a
canonical JSON rendering, so the same content always hashes the same.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Normalize so 500 and 500.00 hash identically
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, tuple):
        return list(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, stable rendering of Decimal/UUID/datetime."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: Any) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_event(
    seq: int,
    category: str,
    action: str,
    resource: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Hash for one audit event, chained to its predecessor.

    Args:
        seq: Global audit sequence number.
        category: SECURITY or COMPLIANCE.
        action: Event action name.
        resource: Resource the event is about.
        payload_hash: Hash of the event payload.
        prev_hash: Hash of the previous event (None for genesis).
    """
    components = [
        str(seq),
        category,
        action,
        resource,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
