"""
Canonical JSON and SHA-256 helpers.

Audit payloads, alert payloads and configuration checksums all go through
``canonicalize_json`` so that equal values always produce equal bytes:
sorted keys, no whitespace, and one textual form per value type.
"""

import hashlib
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _encode(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        # 1.50 and 1.5 are the same amount
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    raise TypeError(f"Cannot canonicalize {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    """Deterministic JSON text of ``data``."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def to_json_safe(data: Any) -> Any:
    """``data`` as plain JSON types, ready for a JSON column."""
    return json.loads(canonicalize_json(data))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: Any) -> str:
    """SHA-256 of the canonical JSON of ``payload``."""
    return sha256_hex(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain hash of one audit event.

    Covers the event's identity, its payload hash and the previous
    event's hash, so altering or removing any earlier event breaks every
    later hash.
    """
    return sha256_hex("|".join((
        entity_type,
        str(entity_id),
        action,
        payload_hash,
        prev_hash or GENESIS,
    )))
