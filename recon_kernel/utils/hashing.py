"""
Deterministic hashing utilities.

Report fingerprints and configuration checksums must be reproducible
across runs and processes. This module provides the canonical hashing
functions used for both.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Remove trailing zeros so 100.0 and 100.00 hash identically
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, whitespace is removed and Decimal/date/UUID/Enum are
    rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict | list) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
