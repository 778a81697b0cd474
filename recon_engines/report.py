"""
recon_engines.report -- Reconciliation run state machine and report types.

Responsibility:
    Accumulate per-line outcomes for one statement-to-ledger run and
    freeze them into an immutable ``ReconciliationReport`` with a
    ``ReconciliationSummary``.

Architecture position:
    Engines -- pure accumulation, zero I/O.  Driven by
    ``recon_services.reconciliation_service.ReconciliationOrchestrator``.

Invariants enforced:
    - Run lifecycle ``INITIALIZED -> MATCHING -> AGGREGATED -> DONE``;
      any other transition raises ``InvalidRunTransitionError``.
    - No mutation after ``AGGREGATED``: recording an outcome on a frozen
      run raises ``ReportFrozenError``.
    - An invoice ref appears in at most one match of a report.
    - ``fingerprint`` excludes ``run_id``, so two runs over identical
      inputs share a fingerprint.

Failure modes:
    - ``InvalidRunTransitionError`` for an out-of-order lifecycle call.
    - ``ReportFrozenError`` for a late ``record_*`` call.
    - ``ValueError`` if the same invoice is recorded as matched twice.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from recon_engines.discrepancy import Discrepancy, DiscrepancySeverity
from recon_engines.matching import MatchResult
from recon_kernel.domain.acknowledgement import AcknowledgementType
from recon_kernel.exceptions import InvalidRunTransitionError, ReportFrozenError
from recon_kernel.logging_config import get_logger
from recon_kernel.utils.hashing import hash_payload

logger = get_logger("engines.report")


class RunState(str, Enum):
    """Lifecycle of one reconciliation run."""

    INITIALIZED = "initialized"
    MATCHING = "matching"
    AGGREGATED = "aggregated"
    DONE = "done"


RUN_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.INITIALIZED: frozenset({RunState.MATCHING}),
    RunState.MATCHING: frozenset({RunState.AGGREGATED}),
    RunState.AGGREGATED: frozenset({RunState.DONE}),
    RunState.DONE: frozenset(),
}


@dataclass(frozen=True)
class ReconciliationSummary:
    """Counts and amounts over the lines of one run."""

    total_items: int = 0
    matched_items: int = 0
    discrepancy_items: int = 0
    unmatched_items: int = 0
    total_amount: Decimal = Decimal("0")
    matched_amount: Decimal = Decimal("0")
    discrepancy_amount: Decimal = Decimal("0")
    unmatched_amount: Decimal = Decimal("0")
    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0

    @property
    def acknowledgement_type(self) -> AcknowledgementType:
        """Kind of sign-off this outcome supports.

        ``full`` when every line matched cleanly, ``with_exceptions`` when
        every line matched but some carry discrepancies, ``partial`` when
        anything is unmatched.
        """
        if self.unmatched_items > 0:
            return AcknowledgementType.PARTIAL
        if self.discrepancy_items > 0:
            return AcknowledgementType.WITH_EXCEPTIONS
        return AcknowledgementType.FULL

    @property
    def has_blocking_discrepancies(self) -> bool:
        return self.error_count > 0


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Immutable aggregate of one statement-to-ledger run.

    ``matches`` holds the matched results in statement order; every line
    that did not match appears in ``discrepancies`` as a NO_MATCH.
    """

    run_id: str
    statement_id: str
    company_id: str
    state: RunState
    matches: tuple[MatchResult, ...]
    discrepancies: tuple[Discrepancy, ...]
    lines_processed: int
    invoices_considered: int
    unmatched_invoice_refs: tuple[str, ...]
    summary: ReconciliationSummary

    @property
    def matched_invoice_refs(self) -> tuple[str, ...]:
        return tuple(m.invoice_ref for m in self.matches if m.invoice_ref)

    @property
    def blocking_discrepancies(self) -> tuple[Discrepancy, ...]:
        return tuple(d for d in self.discrepancies if d.is_blocking)

    def discrepancies_for(self, soa_line_ref: str) -> tuple[Discrepancy, ...]:
        return tuple(d for d in self.discrepancies if d.soa_line_ref == soa_line_ref)

    def to_payload(self) -> dict[str, Any]:
        """Canonical content of the report, without the run id."""
        return {
            "statement_id": self.statement_id,
            "company_id": self.company_id,
            "lines_processed": self.lines_processed,
            "invoices_considered": self.invoices_considered,
            "unmatched_invoice_refs": list(self.unmatched_invoice_refs),
            "matches": [
                {
                    "soa_line_ref": m.soa_line_ref,
                    "invoice_ref": m.invoice_ref,
                    "pass_used": int(m.pass_used) if m.pass_used else None,
                    "difference_amount": m.difference.amount if m.difference else None,
                    "difference_days": m.difference.days if m.difference else None,
                    "candidate_count": m.candidate_count,
                    "reason": m.reason,
                }
                for m in self.matches
            ],
            "discrepancies": [
                {
                    "type": d.discrepancy_type,
                    "severity": d.severity,
                    "description": d.description,
                    "soa_line_ref": d.soa_line_ref,
                    "candidate_invoice_ref": d.candidate_invoice_ref,
                    "difference_amount": d.difference_amount,
                    "difference_days": d.difference_days,
                }
                for d in self.discrepancies
            ],
        }

    @property
    def fingerprint(self) -> str:
        return hash_payload(self.to_payload())


class ReconciliationRun:
    """
    Mutable accumulator for one run, frozen into a report on aggregation.

    Contract:
        Single-threaded; one instance per ``reconcile()`` call.
    Guarantees:
        - Outcomes are kept in the order they are recorded.
        - ``aggregate`` returns a report whose tuples can no longer change.
    Non-goals:
        - Does not run the matching engine or touch the invoice pool.
    """

    def __init__(self, run_id: str, statement_id: str, company_id: str) -> None:
        self.run_id = run_id
        self.statement_id = statement_id
        self.company_id = company_id
        self._state = RunState.INITIALIZED
        self._matches: list[MatchResult] = []
        self._discrepancies: list[Discrepancy] = []
        self._matched_invoice_refs: set[str] = set()
        self._lines = 0
        self._matched_clean = 0
        self._matched_flagged = 0
        self._unmatched = 0
        self._total_amount = Decimal("0")
        self._matched_amount = Decimal("0")
        self._discrepancy_amount = Decimal("0")
        self._unmatched_amount = Decimal("0")
        self._report: ReconciliationReport | None = None

    @property
    def state(self) -> RunState:
        return self._state

    def transition_to(self, target: RunState) -> None:
        if target not in RUN_TRANSITIONS[self._state]:
            raise InvalidRunTransitionError(
                self.run_id, self._state.value, target.value,
            )
        logger.debug("reconciliation_run_transition", extra={
            "run_id": self.run_id,
            "from_state": self._state.value,
            "to_state": target.value,
        })
        self._state = target

    def _ensure_open(self) -> None:
        if self._state in (RunState.AGGREGATED, RunState.DONE):
            raise ReportFrozenError(self.run_id)
        if self._state is not RunState.MATCHING:
            raise InvalidRunTransitionError(
                self.run_id, self._state.value, RunState.MATCHING.value,
            )

    def record_result(
        self,
        result: MatchResult,
        discrepancies: tuple[Discrepancy, ...] = (),
    ) -> None:
        """Record the engine outcome for one line and its discrepancies."""
        self._ensure_open()
        self._lines += 1
        amount = result.line.amount
        self._total_amount += amount

        if result.is_matched:
            ref = result.invoice_ref
            if ref in self._matched_invoice_refs:
                raise ValueError(f"Invoice {ref} already matched in run {self.run_id}")
            self._matched_invoice_refs.add(ref)
            self._matches.append(result)
            if discrepancies:
                self._matched_flagged += 1
                self._discrepancy_amount += amount
            else:
                self._matched_clean += 1
                self._matched_amount += amount
        else:
            self._unmatched += 1
            self._unmatched_amount += amount

        self._discrepancies.extend(discrepancies)

    def record_line_failure(self, discrepancy: Discrepancy) -> None:
        """Record a line that never reached the engine (malformed record)."""
        self._ensure_open()
        self._lines += 1
        self._unmatched += 1
        self._discrepancies.append(discrepancy)

    def _summary(self) -> ReconciliationSummary:
        severities = [d.severity for d in self._discrepancies]
        return ReconciliationSummary(
            total_items=self._lines,
            matched_items=self._matched_clean,
            discrepancy_items=self._matched_flagged,
            unmatched_items=self._unmatched,
            total_amount=self._total_amount,
            matched_amount=self._matched_amount,
            discrepancy_amount=self._discrepancy_amount,
            unmatched_amount=self._unmatched_amount,
            error_count=severities.count(DiscrepancySeverity.ERROR),
            warning_count=severities.count(DiscrepancySeverity.WARNING),
            info_count=severities.count(DiscrepancySeverity.INFO),
        )

    def aggregate(
        self,
        invoices_considered: int,
        unmatched_invoice_refs: tuple[str, ...],
    ) -> ReconciliationReport:
        """Freeze the run; further ``record_*`` calls raise ReportFrozenError."""
        self.transition_to(RunState.AGGREGATED)
        self._report = ReconciliationReport(
            run_id=self.run_id,
            statement_id=self.statement_id,
            company_id=self.company_id,
            state=RunState.AGGREGATED,
            matches=tuple(self._matches),
            discrepancies=tuple(self._discrepancies),
            lines_processed=self._lines,
            invoices_considered=invoices_considered,
            unmatched_invoice_refs=tuple(unmatched_invoice_refs),
            summary=self._summary(),
        )
        return self._report

    def complete(self) -> ReconciliationReport:
        """Mark the run DONE and return the final report."""
        self.transition_to(RunState.DONE)
        # AGGREGATED is only reachable through aggregate(), which sets _report
        self._report = replace(self._report, state=RunState.DONE)
        return self._report
