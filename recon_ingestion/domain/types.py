"""
recon_ingestion.domain.types -- Pure frozen dataclasses for field mapping.

ZERO I/O. A ``RecordMapping`` describes how one kind of storage record
(invoice or statement line) maps onto canonical field names: which source
aliases to try, in which order, and what type the value must coerce to.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FieldType(str, Enum):
    """Target type of a mapped field."""

    STRING = "string"
    DECIMAL = "decimal"
    DATE = "date"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    CURRENCY = "currency"
    CHOICE = "choice"  # Closed set of string values (see FieldMapping.choices)


@dataclass(frozen=True)
class ValidationError:
    """
    A single field mapping failure.

    Contract:
        Carries a machine-readable code, a human-readable message and the
        canonical field name.
    Non-goals:
        - Does NOT raise; the adapter turns it into a ShapeError.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class FieldMapping:
    """Canonical field fed by the first present source alias."""

    target: str  # Canonical field name
    aliases: tuple[str, ...]  # Source keys, in priority order
    field_type: FieldType
    required: bool = False
    default: Any = None
    transform: str | None = None  # e.g. "strip", "upper"
    choices: tuple[str, ...] = ()  # For FieldType.CHOICE
    metadata_fallback: bool = False  # Also look in a nested "metadata" mapping


@dataclass(frozen=True)
class RecordMapping:
    """All field mappings for one kind of storage record."""

    name: str
    record_kind: str  # "invoice" or "soa_line"
    field_mappings: tuple[FieldMapping, ...] = ()
    ref_aliases: tuple[str, ...] = ("id",)  # Storage identifier keys
