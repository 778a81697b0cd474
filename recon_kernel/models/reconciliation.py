"""
Module: recon_kernel.models.reconciliation
Responsibility: ORM persistence for reconciliation outcomes and the human
    decisions recorded against them: matches, discrepancies and statement
    acknowledgements.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Closed enumerations: CHECK constraints on every status, type,
      severity, match type and resolution action column.
    - At most one match per SOA line and per invoice within a case
      (UNIQUE constraints).
    - Discrepancy description is NOT NULL.
    - One acknowledgement per case (UNIQUE case_id).

Failure modes:
    - IntegrityError on duplicate match, missing description, bad enum
      value or second acknowledgement; the persistence service maps these
      to typed PersistenceError subclasses.

Audit relevance:
    confirmed_by/rejected_by/resolved_by/acknowledged_by and their
    timestamps record who made each decision and when.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recon_kernel.db.base import TrackedBase, UUIDString


class SoaMatchModel(TrackedBase):
    """Persistent automated match between one SOA line and one invoice.

    Contract:
        Created ``pending`` by the recorder; moves to ``confirmed`` or
        ``rejected`` exactly once through the acknowledgement service.
    """

    __tablename__ = "soa_matches"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected', 'discrepancy')",
            name="ck_soa_matches_valid_status",
        ),
        CheckConstraint(
            "match_type IN ('deterministic', 'probabilistic')",
            name="ck_soa_matches_valid_match_type",
        ),
        CheckConstraint(
            "match_pass BETWEEN 1 AND 5",
            name="ck_soa_matches_valid_pass",
        ),
        UniqueConstraint("case_id", "soa_line_ref", name="uq_soa_matches_case_line"),
        UniqueConstraint("case_id", "invoice_ref", name="uq_soa_matches_case_invoice"),
        Index("ix_soa_matches_case_status", "case_id", "status"),
    )

    case_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    soa_line_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    match_pass: Mapped[int] = mapped_column(nullable=False)
    match_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_exact_match: Mapped[bool] = mapped_column(nullable=False, default=False)
    match_confidence: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    match_score: Mapped[int] = mapped_column(nullable=False)
    candidate_count: Mapped[int] = mapped_column(nullable=False, default=1)
    match_criteria: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    soa_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    invoice_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    amount_difference: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    soa_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    date_difference_days: Mapped[int | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    confirmed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    discrepancies: Mapped[list["SoaDiscrepancyModel"]] = relationship(
        "SoaDiscrepancyModel",
        back_populates="match",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<SoaMatch {self.soa_line_ref}->{self.invoice_ref} "
            f"pass={self.match_pass} status={self.status}>"
        )


class SoaDiscrepancyModel(TrackedBase):
    """Persistent discrepancy raised by a reconciliation run."""

    __tablename__ = "soa_discrepancies"

    __table_args__ = (
        CheckConstraint(
            "discrepancy_type IN ('no_match', 'amount_mismatch', 'date_mismatch', "
            "'partial_payment', 'duplicate_candidate')",
            name="ck_soa_discrepancies_valid_type",
        ),
        CheckConstraint(
            "severity IN ('info', 'warning', 'error')",
            name="ck_soa_discrepancies_valid_severity",
        ),
        CheckConstraint(
            "status IN ('open', 'investigating', 'resolved', 'waived', 'escalated')",
            name="ck_soa_discrepancies_valid_status",
        ),
        CheckConstraint(
            "resolution_action IS NULL OR resolution_action IN "
            "('corrected', 'waived', 'escalated', 'ignored')",
            name="ck_soa_discrepancies_valid_resolution",
        ),
        Index("ix_soa_discrepancies_case_status", "case_id", "status", "severity"),
    )

    case_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    match_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("soa_matches.id"), nullable=True,
    )
    soa_line_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    candidate_invoice_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    discrepancy_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    difference_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    difference_days: Mapped[int | None] = mapped_column(nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    resolution_action: Mapped[str | None] = mapped_column(String(20), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    match: Mapped[SoaMatchModel | None] = relationship(
        "SoaMatchModel",
        back_populates="discrepancies",
    )

    def __repr__(self) -> str:
        return (
            f"<SoaDiscrepancy {self.discrepancy_type}/{self.severity} "
            f"line={self.soa_line_ref} status={self.status}>"
        )


class SoaAcknowledgementModel(TrackedBase):
    """Statement sign-off for one case, with the summary at sign-off time."""

    __tablename__ = "soa_acknowledgements"

    __table_args__ = (
        CheckConstraint(
            "acknowledgement_type IN ('full', 'partial', 'with_exceptions')",
            name="ck_soa_acknowledgements_valid_type",
        ),
        UniqueConstraint("case_id", name="uq_soa_acknowledgements_case"),
    )

    case_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    acknowledged_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    acknowledged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    acknowledgement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    total_items: Mapped[int] = mapped_column(nullable=False, default=0)
    matched_items: Mapped[int] = mapped_column(nullable=False, default=0)
    discrepancy_items: Mapped[int] = mapped_column(nullable=False, default=0)
    unmatched_items: Mapped[int] = mapped_column(nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    matched_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    discrepancy_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    unmatched_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    report_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SoaAcknowledgement case={self.case_id} type={self.acknowledgement_type}>"
