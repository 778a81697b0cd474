"""
Mapping engine: pure transformation from a raw storage record to a typed dict.

Resolves each canonical field from the first present source alias, applies
the named transform, then coerces the value to the target type. ZERO I/O.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from recon_ingestion.domain.types import FieldMapping, FieldType, ValidationError

DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d/%m/%Y")

_MISSING = object()


# -----------------------------------------------------------------------------
# Result types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CoercionResult:
    """Result of coercing a value to a target type."""

    success: bool
    value: Any = None
    error: ValidationError | None = None


@dataclass(frozen=True)
class MappingResult:
    """Result of applying field mappings to a raw record."""

    success: bool
    mapped_data: dict[str, Any] = field(default_factory=dict)
    errors: tuple[ValidationError, ...] = ()


# -----------------------------------------------------------------------------
# Alias resolution and transforms (pure)
# -----------------------------------------------------------------------------


def resolve_alias(
    raw_data: Mapping[str, Any],
    aliases: tuple[str, ...],
) -> tuple[str | None, Any]:
    """Return ``(alias, value)`` for the first alias present with a non-None value."""
    for alias in aliases:
        value = raw_data.get(alias, _MISSING)
        if value is not _MISSING and value is not None:
            return alias, value
    return None, None


def metadata_of(raw_data: Mapping[str, Any]) -> Mapping[str, Any]:
    """Nested ``metadata`` blob of a record; JSON text is decoded.

    Returns an empty mapping when the blob is absent, not an object, or
    not valid JSON.
    """
    blob = raw_data.get("metadata")
    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except json.JSONDecodeError:
            return {}
    return blob if isinstance(blob, Mapping) else {}


def apply_transform(value: Any, transform: str) -> Any:
    """Apply a named transform. Pure function."""
    if value is None:
        return None
    t = (transform or "").strip().lower()
    if t in ("strip", "trim"):
        return value.strip() if isinstance(value, str) else value
    if t == "upper":
        return value.strip().upper() if isinstance(value, str) else value
    if t == "lower":
        return value.strip().lower() if isinstance(value, str) else value
    return value


# -----------------------------------------------------------------------------
# Coercion: raw -> typed
# -----------------------------------------------------------------------------


def _type_error(path: str, expected: str, value: Any) -> CoercionResult:
    return CoercionResult(success=False, error=ValidationError(
        code="INVALID_TYPE",
        message=f"expected {expected}, got {type(value).__name__}",
        field=path,
    ))


def parse_date(value: str) -> date | None:
    """Parse a date string in any accepted format; None if none fits.

    ISO timestamps (``2025-01-15T00:00:00``, ``...Z``, ``...+02:00``) keep
    their calendar date.
    """
    s = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def coerce_value(
    value: Any,
    fm: FieldMapping,
) -> CoercionResult:
    """
    Coerce a raw value to the mapping's target type. Pure function.

    ``bool`` is never accepted where a number or string is expected, and
    only a real ``bool`` is accepted where a boolean is expected.
    """
    path = fm.target
    field_type = fm.field_type

    if field_type in (FieldType.STRING, FieldType.CURRENCY):
        if isinstance(value, bool):
            return _type_error(path, "string", value)
        if isinstance(value, int):
            value = str(value)
        if not isinstance(value, str):
            return _type_error(path, "string", value)
        if not value.strip():
            return CoercionResult(success=False, error=ValidationError(
                code="MISSING_VALUE", message="is empty", field=path,
            ))
        return CoercionResult(success=True, value=value)

    if field_type == FieldType.DECIMAL:
        if isinstance(value, bool) or not isinstance(value, (Decimal, int, float, str)):
            return _type_error(path, "decimal", value)
        try:
            # Floats go through str so 0.1 stays 0.1
            parsed = Decimal(value.strip() if isinstance(value, str) else str(value))
        except (InvalidOperation, ValueError):
            return CoercionResult(success=False, error=ValidationError(
                code="INVALID_DECIMAL",
                message=f"cannot be parsed as a decimal: {value!r}",
                field=path,
            ))
        if not parsed.is_finite():
            return CoercionResult(success=False, error=ValidationError(
                code="INVALID_DECIMAL",
                message=f"must be finite, got {value!r}",
                field=path,
            ))
        return CoercionResult(success=True, value=parsed)

    if field_type == FieldType.DATE:
        if isinstance(value, datetime):
            return CoercionResult(success=True, value=value.date())
        if isinstance(value, date):
            return CoercionResult(success=True, value=value)
        if not isinstance(value, str):
            return _type_error(path, "date", value)
        parsed_date = parse_date(value)
        if parsed_date is None:
            return CoercionResult(success=False, error=ValidationError(
                code="INVALID_DATE_FORMAT",
                message=f"cannot be parsed as a date: {value!r}",
                field=path,
            ))
        return CoercionResult(success=True, value=parsed_date)

    if field_type == FieldType.BOOLEAN:
        if not isinstance(value, bool):
            return _type_error(path, "boolean", value)
        return CoercionResult(success=True, value=value)

    if field_type == FieldType.INTEGER:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            return _type_error(path, "integer", value)
        try:
            return CoercionResult(success=True, value=int(value))
        except ValueError:
            return CoercionResult(success=False, error=ValidationError(
                code="INVALID_INTEGER",
                message=f"cannot be parsed as an integer: {value!r}",
                field=path,
            ))

    if field_type == FieldType.CHOICE:
        if not isinstance(value, str):
            return _type_error(path, "string", value)
        normalized = value.strip().lower()
        if normalized not in fm.choices:
            return CoercionResult(success=False, error=ValidationError(
                code="INVALID_CHOICE",
                message=f"must be one of {list(fm.choices)}, got {value!r}",
                field=path,
            ))
        return CoercionResult(success=True, value=normalized)

    return CoercionResult(success=False, error=ValidationError(
        code="UNSUPPORTED_TYPE",
        message=f"unsupported field_type: {field_type}",
        field=path,
    ))


# -----------------------------------------------------------------------------
# Apply mapping (pure)
# -----------------------------------------------------------------------------


def apply_mapping(
    raw_data: Mapping[str, Any],
    field_mappings: tuple[FieldMapping, ...],
) -> MappingResult:
    """
    Apply field mappings to a raw record. Pure function.

    For each mapping: resolve the first present alias (falling back to the
    nested metadata blob where allowed), apply the transform, coerce.
    Missing required -> error; missing optional -> default.
    """
    if not isinstance(raw_data, Mapping):
        return MappingResult(success=False, errors=(ValidationError(
            code="INVALID_RECORD",
            message=f"record must be a mapping, got {type(raw_data).__name__}",
            field="<record>",
        ),))

    errors: list[ValidationError] = []
    mapped: dict[str, Any] = {}
    metadata: Mapping[str, Any] | None = None

    for fm in field_mappings:
        alias, raw_value = resolve_alias(raw_data, fm.aliases)
        if alias is None and fm.metadata_fallback:
            if metadata is None:
                metadata = metadata_of(raw_data)
            alias, raw_value = resolve_alias(metadata, fm.aliases)

        # Missing value
        if alias is None or (isinstance(raw_value, str) and not raw_value.strip()):
            if fm.required:
                errors.append(ValidationError(
                    code="MISSING_REQUIRED_FIELD",
                    message=f"is missing (tried {', '.join(fm.aliases)})",
                    field=fm.target,
                ))
                continue
            mapped[fm.target] = fm.default
            continue

        value = apply_transform(raw_value, fm.transform) if fm.transform else raw_value

        coerced = coerce_value(value, fm)
        if not coerced.success:
            errors.append(coerced.error)
            continue

        mapped[fm.target] = coerced.value

    return MappingResult(
        success=len(errors) == 0,
        mapped_data=mapped,
        errors=tuple(errors),
    )
