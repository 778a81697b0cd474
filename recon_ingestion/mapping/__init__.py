"""Mapping engine: pure alias resolution and type coercion."""

from recon_ingestion.mapping.engine import (
    CoercionResult,
    MappingResult,
    apply_mapping,
    apply_transform,
    coerce_value,
    parse_date,
    resolve_alias,
)

__all__ = [
    "CoercionResult",
    "MappingResult",
    "apply_mapping",
    "apply_transform",
    "coerce_value",
    "parse_date",
    "resolve_alias",
]
