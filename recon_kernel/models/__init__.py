"""ORM models for statements, ledger invoices and reconciliation outcomes."""

from recon_kernel.models.ledger import SoaInvoiceModel
from recon_kernel.models.reconciliation import (
    SoaAcknowledgementModel,
    SoaDiscrepancyModel,
    SoaMatchModel,
)
from recon_kernel.models.statement import SoaItemModel

__all__ = [
    "SoaAcknowledgementModel",
    "SoaDiscrepancyModel",
    "SoaInvoiceModel",
    "SoaItemModel",
    "SoaMatchModel",
]
