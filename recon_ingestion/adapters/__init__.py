"""Adapters from storage records to canonical reconciliation types."""

from recon_ingestion.adapters.canonical import (
    INVOICE_MAPPING,
    SOA_LINE_MAPPING,
    to_canonical_invoice,
    to_canonical_soa_line,
)

__all__ = [
    "INVOICE_MAPPING",
    "SOA_LINE_MAPPING",
    "to_canonical_invoice",
    "to_canonical_soa_line",
]
