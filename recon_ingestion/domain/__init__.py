"""
recon_ingestion.domain -- Pure types for field mapping.

ZERO I/O. Imports only from recon_kernel.
"""

from recon_ingestion.domain.types import (
    FieldMapping,
    FieldType,
    RecordMapping,
    ValidationError,
)

__all__ = [
    "FieldMapping",
    "FieldType",
    "RecordMapping",
    "ValidationError",
]
