"""
Module: recon_kernel.models.ledger
Responsibility: ORM persistence for the company's invoice ledger as seen by
    reconciliation.

Architecture position: Kernel > Models.  May import from db/base.py only.

Column names are storage-native (``invoice_num``, ``currency_code``); the
canonical shape adapter maps them, so nothing above the source layer reads
these names.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from recon_kernel.db.base import Base, UUIDString


class SoaInvoiceModel(Base):
    """One ledger invoice available for statement matching."""

    __tablename__ = "soa_invoices"

    __table_args__ = (
        Index("ix_soa_invoices_company", "company_id", "invoice_num"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    vendor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    invoice_num: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="open")

    def __repr__(self) -> str:
        return f"<SoaInvoice {self.invoice_num} {self.amount} {self.currency_code}>"

    def to_record(self) -> dict[str, Any]:
        """Raw record in storage field names, for the canonical adapter."""
        return {
            "id": str(self.id),
            "invoice_num": self.invoice_num,
            "invoice_date": self.invoice_date,
            "amount": self.amount,
            "currency_code": self.currency_code,
        }
