"""
recon_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure engines
    (recon_engines/) with sources, database sessions and an injected
    clock.  This is the **only** layer that holds sessions or reads time.

Architecture position:
    Services -- orchestration over engines + ingestion + kernel.

    Dependency direction:
        recon_services/ -> recon_engines/, recon_ingestion/, recon_kernel/  (allowed)
        recon_engines/  -> recon_services/ (FORBIDDEN)
        recon_kernel/   -> recon_services/ (FORBIDDEN)
"""

from recon_services.acknowledgement_service import AcknowledgementRecorder
from recon_services.persistence import RecordedReconciliation, ReconciliationRecorder
from recon_services.reconciliation_service import (
    ReconciliationOrchestrator,
    validate_match_options,
)
from recon_services.sources import (
    InMemoryReconciliationSource,
    ReconciliationSource,
    SqlReconciliationSource,
)

__all__ = [
    "AcknowledgementRecorder",
    "InMemoryReconciliationSource",
    "ReconciliationOrchestrator",
    "ReconciliationRecorder",
    "ReconciliationSource",
    "RecordedReconciliation",
    "SqlReconciliationSource",
    "validate_match_options",
]
