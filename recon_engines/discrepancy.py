"""
recon_engines.discrepancy -- Discrepancy classification for SOA match results.

Responsibility:
    Turn a ``MatchResult`` (or a line that failed canonical mapping) into
    a typed ``Discrepancy`` record with a closed type, a closed severity
    and a human-readable description.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Every ``Discrepancy`` has a non-empty description; construction with
      an empty or whitespace description raises ``ValueError``.
    - Type and severity are closed enumerations.
    - Exact (pass 1) and fuzzy document (pass 3) matches produce no
      discrepancy.

Failure modes:
    - ``ValueError`` from ``Discrepancy.__post_init__`` for a blank
      description.

Audit relevance:
    Error-severity discrepancies block statement sign-off; warning and
    info discrepancies are surfaced for review only.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from recon_engines.matching import MatchPass, MatchResult
from recon_engines.tracer import traced_engine
from recon_kernel.exceptions import ShapeError
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.discrepancy")


class DiscrepancyType(str, Enum):
    """Closed set of discrepancy kinds."""

    NO_MATCH = "no_match"
    AMOUNT_MISMATCH = "amount_mismatch"
    DATE_MISMATCH = "date_mismatch"
    PARTIAL_PAYMENT = "partial_payment"
    DUPLICATE_CANDIDATE = "duplicate_candidate"


class DiscrepancySeverity(str, Enum):
    """Closed set of discrepancy severities."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Discrepancy:
    """
    A typed finding about one SOA line.

    ``description`` is mandatory: it is written to a NOT NULL column.
    """

    discrepancy_type: DiscrepancyType
    severity: DiscrepancySeverity
    description: str
    soa_line_ref: str | None = None
    candidate_invoice_ref: str | None = None
    difference_amount: Decimal | None = None
    difference_days: int | None = None
    details: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.description, str) or not self.description.strip():
            raise ValueError("Discrepancy description must be a non-empty string")

    @property
    def is_blocking(self) -> bool:
        return self.severity is DiscrepancySeverity.ERROR


def _discrepancy_outcome(discrepancy: Discrepancy | None) -> dict[str, Any]:
    if discrepancy is None:
        return {"discrepancy_type": None}
    return {
        "discrepancy_type": discrepancy.discrepancy_type.value,
        "severity": discrepancy.severity.value,
        "soa_line_ref": discrepancy.soa_line_ref,
    }


class DiscrepancyClassifier:
    """
    Classifies match outcomes into discrepancies.

    Contract:
        Pure functions over ``MatchResult`` and ``ShapeError`` values.
    Guarantees:
        - ``classify`` returns at most one discrepancy per result.
        - Severity is fixed per type: NO_MATCH is error, DATE_MISMATCH,
          AMOUNT_MISMATCH and DUPLICATE_CANDIDATE are warning,
          PARTIAL_PAYMENT is info.
    Non-goals:
        - Does not decide what the business does with a discrepancy.
    """

    @traced_engine(
        "soa_discrepancy", "1.0",
        fingerprint_fields=("result",),
        summarize=_discrepancy_outcome,
    )
    def classify(self, result: MatchResult) -> Discrepancy | None:
        """Classify the pass outcome of a single result."""
        line = result.line
        invoice = result.matched_invoice

        if result.pass_used is None or invoice is None:
            return Discrepancy(
                discrepancy_type=DiscrepancyType.NO_MATCH,
                severity=DiscrepancySeverity.ERROR,
                description=(
                    f"No matching invoice found for document {line.doc_number} "
                    f"({line.amount} {line.currency}): {result.reason}"
                ),
                soa_line_ref=line.ref,
                details={"reason": result.reason},
            )

        diff = result.difference

        if result.pass_used is MatchPass.DATE_TOLERANCE:
            days = diff.days if diff else 0
            return Discrepancy(
                discrepancy_type=DiscrepancyType.DATE_MISMATCH,
                severity=DiscrepancySeverity.WARNING,
                description=(
                    f"Date differs by {days} day(s) between document "
                    f"{line.doc_number} and invoice {invoice.invoice_number}"
                ),
                soa_line_ref=line.ref,
                candidate_invoice_ref=invoice.ref,
                difference_days=days,
                details={
                    "soa_date": line.date.isoformat() if line.date else None,
                    "invoice_date": (
                        invoice.invoice_date.isoformat() if invoice.invoice_date else None
                    ),
                },
            )

        if result.pass_used is MatchPass.AMOUNT_TOLERANCE:
            amount = diff.amount if diff else abs(line.amount - invoice.total_amount)
            return Discrepancy(
                discrepancy_type=DiscrepancyType.AMOUNT_MISMATCH,
                severity=DiscrepancySeverity.WARNING,
                description=(
                    f"Amount differs by {amount} {line.currency}: statement "
                    f"{line.amount} vs invoice {invoice.total_amount}"
                ),
                soa_line_ref=line.ref,
                candidate_invoice_ref=invoice.ref,
                difference_amount=amount,
                difference_days=diff.days if diff else None,
                details={
                    "soa_amount": str(line.amount),
                    "invoice_amount": str(invoice.total_amount),
                },
            )

        if result.pass_used is MatchPass.PARTIAL:
            remaining = diff.amount if diff else invoice.total_amount - line.amount
            return Discrepancy(
                discrepancy_type=DiscrepancyType.PARTIAL_PAYMENT,
                severity=DiscrepancySeverity.INFO,
                description=(
                    f"Partial payment of {line.amount} {line.currency} against "
                    f"invoice {invoice.invoice_number}; {remaining} remaining"
                ),
                soa_line_ref=line.ref,
                candidate_invoice_ref=invoice.ref,
                difference_amount=remaining,
                difference_days=diff.days if diff else None,
                details={
                    "soa_amount": str(line.amount),
                    "invoice_amount": str(invoice.total_amount),
                },
            )

        # Exact and fuzzy document matches
        return None

    def classify_duplicates(self, result: MatchResult) -> Discrepancy | None:
        """Flag a match whose winning pass had more than one candidate."""
        if not result.is_matched or result.candidate_count <= 1:
            return None
        line = result.line
        return Discrepancy(
            discrepancy_type=DiscrepancyType.DUPLICATE_CANDIDATE,
            severity=DiscrepancySeverity.WARNING,
            description=(
                f"{result.candidate_count} invoices qualified for document "
                f"{line.doc_number} under pass {int(result.pass_used)}; "
                f"first in pool order was chosen"
            ),
            soa_line_ref=line.ref,
            candidate_invoice_ref=result.invoice_ref,
            details={
                "candidate_count": result.candidate_count,
                "pass_used": int(result.pass_used),
            },
        )

    def classify_shape_error(
        self,
        error: ShapeError,
        line_ref: str | None,
    ) -> Discrepancy:
        """NO_MATCH for a line that could not be mapped onto the canonical shape."""
        logger.warning("soa_line_shape_error", extra={
            "soa_line_ref": line_ref,
            "field": error.field,
            "reason": error.reason,
        })
        return Discrepancy(
            discrepancy_type=DiscrepancyType.NO_MATCH,
            severity=DiscrepancySeverity.ERROR,
            description=f"Malformed statement line: field {error.field!r} {error.reason}",
            soa_line_ref=line_ref,
            details={
                "error_code": error.code,
                "field": error.field,
                "reason": error.reason,
            },
        )
