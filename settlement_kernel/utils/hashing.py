"""
Deterministic hashing utilities for the audit chain.

All hashing must be deterministic and reproducible: the same payload
always produces the same digest regardless of key order or Decimal scale.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 100.00 and 100 hash identically
        return format(obj.normalize(), "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, stable handling of Decimal/date/UUID."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_safe(data: Any) -> Any:
    """Round-trip through the canonical encoder so the value fits a JSON column."""
    if data is None:
        return None
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain hash of an audit event.

    Includes the previous event's hash, so altering any earlier row breaks
    every hash after it.
    """
    parts = [entity_type, entity_id, action, payload_hash, prev_hash or ""]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
