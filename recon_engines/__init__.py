"""
Module: recon_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure SOA
    reconciliation engines: the five-pass matcher, the discrepancy
    classifier and the run/report types.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import recon_kernel (and sibling engine modules).
    MUST NOT import recon_services or recon_config.

Invariants enforced:
    - Purity: engines NEVER read the clock or touch storage.
    - Decimal-only arithmetic: amounts and tolerances use ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine`` (see
    ``recon_engines.tracer``), emitting RECON_ENGINE_TRACE log records.

Usage:
    from recon_engines import SoaMatchingEngine, DiscrepancyClassifier
"""

from recon_kernel.logging_config import get_logger

logger = get_logger("engines")

from recon_engines.discrepancy import (
    Discrepancy,
    DiscrepancyClassifier,
    DiscrepancySeverity,
    DiscrepancyType,
)
from recon_engines.matching import (
    AmountToleranceRule,
    MatchDifference,
    MatchOptions,
    MatchPass,
    MatchResult,
    MatchTolerance,
    MatchType,
    SoaMatchingEngine,
    doc_numbers_equivalent,
    normalize_doc_number,
)
from recon_engines.report import (
    ReconciliationReport,
    ReconciliationRun,
    ReconciliationSummary,
    RunState,
)
from recon_engines.tracer import traced_engine

__all__ = [
    "AmountToleranceRule",
    "Discrepancy",
    "DiscrepancyClassifier",
    "DiscrepancySeverity",
    "DiscrepancyType",
    "MatchDifference",
    "MatchOptions",
    "MatchPass",
    "MatchResult",
    "MatchTolerance",
    "MatchType",
    "ReconciliationReport",
    "ReconciliationRun",
    "ReconciliationSummary",
    "RunState",
    "SoaMatchingEngine",
    "doc_numbers_equivalent",
    "normalize_doc_number",
    "traced_engine",
]
