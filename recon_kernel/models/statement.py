"""
Module: recon_kernel.models.statement
Responsibility: ORM persistence for vendor statement-of-account line items.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Valid status values (CHECK constraint mirrors SoaItemStatus).
    - One row per (statement, line_number).

Column names are storage-native; the legacy ``metadata`` JSON column may
carry per-line opt-in flags (``allow_partial``, ``match_mode``).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Date, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from recon_kernel.db.base import Base, UUIDString


class SoaItemModel(Base):
    """One line of a vendor-submitted statement of account."""

    __tablename__ = "soa_items"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'matched', 'discrepancy', 'resolved', 'ignored')",
            name="ck_soa_items_valid_status",
        ),
        UniqueConstraint(
            "statement_id", "line_number",
            name="uq_soa_items_statement_line",
        ),
    )

    statement_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    line_number: Mapped[int] = mapped_column(nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    item_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<SoaItem {self.statement_id}#{self.line_number} "
            f"{self.invoice_number} status={self.status}>"
        )

    def to_record(self) -> dict[str, Any]:
        """Raw record in storage field names, for the canonical adapter."""
        return {
            "id": str(self.id),
            "line_number": self.line_number,
            "invoice_number": self.invoice_number,
            "invoice_date": self.invoice_date,
            "amount": self.amount,
            "currency_code": self.currency_code,
            "reference": self.reference,
            "metadata": self.item_metadata,
        }
