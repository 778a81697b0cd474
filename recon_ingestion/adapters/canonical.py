"""
recon_ingestion.adapters.canonical -- Storage record to canonical shape.

Responsibility:
    The only place in the system that knows storage-native field names.
    ``to_canonical_invoice`` and ``to_canonical_soa_line`` resolve the
    legacy aliases, coerce types, and return frozen canonical records.

Architecture position:
    Ingestion -- pure, zero I/O.  Called by the orchestrator for every
    record before the engine sees it.

Invariants enforced:
    - The first present alias wins, in the order listed in the mapping.
    - Strings are trimmed; currency codes are upper-cased.
    - Amounts are ``Decimal``; ``bool`` is never accepted as an amount.
    - Per-line opt-in flags are read from the top level first and from
      the nested ``metadata`` blob only when the top level has neither.

Failure modes:
    - ``ShapeError`` carrying the first failing canonical field and the
      reason.  The record is unusable; no partial canonical record is
      produced.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from recon_ingestion.domain.types import FieldMapping, FieldType, RecordMapping
from recon_ingestion.mapping.engine import apply_mapping, resolve_alias
from recon_kernel.domain.canonical import (
    CanonicalInvoice,
    CanonicalSoaLine,
    MatchMode,
)
from recon_kernel.exceptions import ShapeError

INVOICE_MAPPING = RecordMapping(
    name="ledger_invoice",
    record_kind="invoice",
    field_mappings=(
        FieldMapping(
            target="invoice_number",
            aliases=(
                "invoice_number", "invoiceNumber", "invoice_num",
                "invoice_no", "doc_number", "number",
            ),
            field_type=FieldType.STRING,
            required=True,
            transform="strip",
        ),
        FieldMapping(
            target="total_amount",
            aliases=("total_amount", "totalAmount", "amount", "invoice_amount"),
            field_type=FieldType.DECIMAL,
            required=True,
        ),
        FieldMapping(
            target="currency",
            aliases=("currency", "currency_code", "currencyCode"),
            field_type=FieldType.CURRENCY,
            required=True,
            transform="upper",
        ),
        FieldMapping(
            target="invoice_date",
            aliases=("invoice_date", "invoiceDate", "date"),
            field_type=FieldType.DATE,
        ),
    ),
)

SOA_LINE_MAPPING = RecordMapping(
    name="statement_line",
    record_kind="soa_line",
    field_mappings=(
        FieldMapping(
            target="doc_number",
            aliases=(
                "doc_number", "docNumber", "doc_no",
                "invoice_number", "invoiceNumber", "reference",
            ),
            field_type=FieldType.STRING,
            required=True,
            transform="strip",
        ),
        FieldMapping(
            target="amount",
            aliases=("amount", "soa_amount", "line_amount"),
            field_type=FieldType.DECIMAL,
            required=True,
        ),
        FieldMapping(
            target="currency",
            aliases=("currency_code", "currency", "currencyCode"),
            field_type=FieldType.CURRENCY,
            required=True,
            transform="upper",
        ),
        FieldMapping(
            target="date",
            aliases=("invoice_date", "date", "doc_date", "docDate"),
            field_type=FieldType.DATE,
        ),
        FieldMapping(
            target="allow_partial",
            aliases=("allow_partial", "allowPartial"),
            field_type=FieldType.BOOLEAN,
            default=False,
            metadata_fallback=True,
        ),
        FieldMapping(
            target="match_mode",
            aliases=("match_mode", "matchMode"),
            field_type=FieldType.CHOICE,
            choices=tuple(m.value for m in MatchMode),
            metadata_fallback=True,
        ),
        FieldMapping(
            target="line_number",
            aliases=("line_number", "lineNumber"),
            field_type=FieldType.INTEGER,
        ),
    ),
)


def _record_ref(raw: Any, mapping: RecordMapping) -> str | None:
    if not isinstance(raw, Mapping):
        return None
    _, ref = resolve_alias(raw, mapping.ref_aliases)
    return str(ref) if ref is not None else None


def _map_or_raise(raw: Any, mapping: RecordMapping) -> tuple[dict[str, Any], str | None]:
    record_ref = _record_ref(raw, mapping)
    result = apply_mapping(raw, mapping.field_mappings)
    if not result.success:
        first = result.errors[0]
        raise ShapeError(
            record_kind=mapping.record_kind,
            field=first.field or "<record>",
            reason=first.message,
            record_ref=record_ref,
        )
    return result.mapped_data, record_ref


def _positional_ref(position: int | None, fallback: str) -> str:
    return f"invoice-{position}" if position is not None else fallback


def to_canonical_invoice(
    raw: Mapping[str, Any],
    position: int | None = None,
) -> CanonicalInvoice:
    """Map a ledger invoice record onto ``CanonicalInvoice``.

    A record without an id gets the ref ``invoice-{position}``, so two
    ledger invoices sharing a number stay distinct within a run. With no
    position either, the invoice number is the ref.

    Raises:
        ShapeError: invoice number, amount or currency missing or mistyped,
            or an unparseable date.
    """
    data, record_ref = _map_or_raise(raw, INVOICE_MAPPING)
    return CanonicalInvoice(
        invoice_number=data["invoice_number"],
        total_amount=data["total_amount"],
        currency=data["currency"],
        invoice_date=data["invoice_date"],
        invoice_ref=record_ref or _positional_ref(position, data["invoice_number"]),
    )


def to_canonical_soa_line(
    raw: Mapping[str, Any],
    line_number: int | None = None,
) -> CanonicalSoaLine:
    """Map a statement line record onto ``CanonicalSoaLine``.

    ``line_number`` is the 1-based position in the statement; a line
    number stored on the record takes precedence.

    Raises:
        ShapeError: doc number, amount or currency missing or mistyped, an
            unparseable date, an unknown ``match_mode`` or a non-bool
            ``allow_partial``.
    """
    data, record_ref = _map_or_raise(raw, SOA_LINE_MAPPING)
    mode = data["match_mode"]
    stored_number = data["line_number"]
    return CanonicalSoaLine(
        doc_number=data["doc_number"],
        amount=data["amount"],
        currency=data["currency"],
        date=data["date"],
        allow_partial=data["allow_partial"],
        match_mode=MatchMode(mode) if mode is not None else None,
        line_ref=record_ref or "",
        line_number=stored_number if stored_number is not None else line_number,
    )
