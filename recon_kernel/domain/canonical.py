"""
Canonical shapes consumed by the SOA matching engine.

Responsibility:
    The single, storage-agnostic field-naming contract the matching engine
    and discrepancy classifier depend on.  Storage records (whatever their
    column names or legacy aliases) are translated into these types by
    ``recon_ingestion.adapters.canonical`` and validated exactly once there.

Architecture position:
    Kernel > Domain -- pure frozen dataclasses, zero I/O.

Invariants enforced:
    - Field names are never storage-native column names.
    - Amounts are ``Decimal``; floats never reach the engine.
    - Instances are immutable for the lifetime of a reconciliation run.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal
from enum import Enum


class MatchMode(str, Enum):
    """Per-line matching mode expressed on the statement."""

    STRICT = "strict"  # Pass 5 disabled for this line regardless of run options
    PARTIAL = "partial"  # Pass 5 enabled for this line


@dataclass(frozen=True)
class CanonicalInvoice:
    """One ledger invoice in the shape the engine understands."""

    invoice_number: str
    total_amount: Decimal
    currency: str
    invoice_date: date_type | None = None
    invoice_ref: str = ""

    def __post_init__(self) -> None:
        if not self.invoice_ref:
            object.__setattr__(self, "invoice_ref", self.invoice_number)

    @property
    def ref(self) -> str:
        return self.invoice_ref


@dataclass(frozen=True)
class CanonicalSoaLine:
    """One line item from a vendor-submitted statement of account."""

    doc_number: str
    amount: Decimal
    currency: str
    date: date_type | None = None
    allow_partial: bool = False
    match_mode: MatchMode | None = None
    line_ref: str = ""
    line_number: int | None = None

    def __post_init__(self) -> None:
        if not self.line_ref:
            fallback = (
                f"line-{self.line_number}" if self.line_number is not None
                else self.doc_number
            )
            object.__setattr__(self, "line_ref", fallback)

    @property
    def ref(self) -> str:
        return self.line_ref

    @property
    def opts_into_partial(self) -> bool:
        """True if the line itself carries a partial-matching opt-in."""
        return self.allow_partial is True or self.match_mode is MatchMode.PARTIAL

    @property
    def forbids_partial(self) -> bool:
        """True if the line is explicitly marked strict."""
        return self.match_mode is MatchMode.STRICT
