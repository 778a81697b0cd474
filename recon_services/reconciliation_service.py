"""
recon_services.reconciliation_service -- Statement-of-account reconciliation runs.

Responsibility:
    Drive one reconciliation run: validate the caller's options, load the
    raw invoices and statement lines from a ``ReconciliationSource``, map
    them onto canonical shapes, match every line in statement order
    against the shrinking invoice pool, classify discrepancies, and freeze
    the result into a ``ReconciliationReport``.

Architecture position:
    Services -- orchestration over engines + ingestion + a source.
    Composes SoaMatchingEngine and DiscrepancyClassifier (pure engines)
    with the canonical adapters and a ReconciliationSource (I/O).

Invariants enforced:
    - At-most-once: an invoice matched by a line leaves the pool before
      the next line is matched.
    - Options are validated before any line is read; bad options are
      fatal to the call (InvalidOptionsError).
    - A malformed line never aborts the run; it becomes a NO_MATCH
      discrepancy and processing continues.
    - A malformed invoice is excluded from the pool and logged.
    - Lines are processed in the order the source returns them.

Failure modes:
    - InvalidOptionsError: unknown option key or non-bool allow_partial.
    - Any exception raised by the source propagates unchanged.

Audit relevance:
    Every run logs reconciliation_started / reconciliation_completed with
    the run id bound into LogContext, and every line outcome is logged
    with its line ref and invoice ref.

Usage:
    from recon_services.reconciliation_service import ReconciliationOrchestrator
    from recon_services.sources import SqlReconciliationSource

    orchestrator = ReconciliationOrchestrator(SqlReconciliationSource(session))
    report = orchestrator.reconcile(statement_id, company_id, {"allow_partial": True})
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any
from uuid import uuid4

from recon_engines.discrepancy import Discrepancy, DiscrepancyClassifier
from recon_engines.matching import MatchOptions, MatchTolerance, SoaMatchingEngine
from recon_engines.report import ReconciliationReport, ReconciliationRun, RunState
from recon_ingestion.adapters.canonical import to_canonical_invoice, to_canonical_soa_line
from recon_kernel.domain.canonical import CanonicalInvoice
from recon_kernel.exceptions import ShapeError
from recon_kernel.logging_config import LogContext, get_logger
from recon_services.sources import ReconciliationSource

logger = get_logger("services.reconciliation")


def validate_match_options(match_options: Mapping[str, Any] | None) -> MatchOptions:
    """Validate caller options; raises InvalidOptionsError."""
    return MatchOptions.from_mapping(match_options)


class ReconciliationOrchestrator:
    """
    Runs statement-to-ledger reconciliation.

    Contract:
        ``reconcile`` is the sole public entry point.  Each call owns its
        own invoice pool and run state; instances hold no per-run state
        and may be reused.
    Guarantees:
        - Identical source contents, options and run id produce an
          identical report; the report fingerprint ignores the run id.
        - The returned report is in state DONE.
    Non-goals:
        - Does not persist the report (see ReconciliationRecorder).
        - Does not decide what to do about unmatched items.
    """

    def __init__(
        self,
        source: ReconciliationSource,
        engine: SoaMatchingEngine | None = None,
        classifier: DiscrepancyClassifier | None = None,
        tolerance: MatchTolerance | None = None,
        run_id_factory: Callable[[], str] | None = None,
    ):
        self._source = source
        self._engine = engine or SoaMatchingEngine(tolerance)
        self._classifier = classifier or DiscrepancyClassifier()
        self._tolerance = tolerance or self._engine.tolerance
        self._run_id_factory = run_id_factory or (lambda: str(uuid4()))

    def reconcile(
        self,
        statement_id: Any,
        company_id: Any,
        match_options: Mapping[str, Any] | None = None,
    ) -> ReconciliationReport:
        """
        Reconcile one statement against the company's invoice ledger.

        Args:
            statement_id: Statement whose lines are reconciled.
            company_id: Company whose invoices form the pool.
            match_options: Only ``{"allow_partial": bool}`` is accepted.

        Returns:
            Frozen ReconciliationReport in state DONE.

        Raises:
            InvalidOptionsError: Malformed options (before any I/O).
        """
        options = validate_match_options(match_options)

        run = ReconciliationRun(
            run_id=self._run_id_factory(),
            statement_id=str(statement_id),
            company_id=str(company_id),
        )

        with LogContext.bind(
            run_id=run.run_id,
            statement_id=run.statement_id,
            company_id=run.company_id,
        ):
            t0 = time.monotonic()
            logger.info("reconciliation_started", extra={
                "allow_partial": options.allow_partial,
            })

            pool = self._load_pool(company_id)
            invoices_considered = len(pool)
            raw_lines = self._source.get_soa_lines_for_statement(statement_id)

            run.transition_to(RunState.MATCHING)
            for position, raw in enumerate(raw_lines, start=1):
                self._process_line(run, raw, position, pool, options)

            run.aggregate(
                invoices_considered=invoices_considered,
                unmatched_invoice_refs=tuple(inv.ref for inv in pool),
            )
            report = run.complete()

            summary = report.summary
            logger.info("reconciliation_completed", extra={
                "lines_processed": report.lines_processed,
                "invoices_considered": invoices_considered,
                "matched_items": summary.matched_items,
                "discrepancy_items": summary.discrepancy_items,
                "unmatched_items": summary.unmatched_items,
                "error_count": summary.error_count,
                "warning_count": summary.warning_count,
                "info_count": summary.info_count,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })

        return report

    def _load_pool(self, company_id: Any) -> list[CanonicalInvoice]:
        pool: list[CanonicalInvoice] = []
        seen: set[str] = set()
        raw_invoices = self._source.get_invoices_for_company(company_id)
        for position, raw in enumerate(raw_invoices, start=1):
            try:
                invoice = to_canonical_invoice(raw, position=position)
            except ShapeError as exc:
                logger.warning("invoice_shape_error", extra={
                    "invoice_ref": exc.record_ref,
                    "field": exc.field,
                    "reason": exc.reason,
                })
                continue
            # Refs key the at-most-once guard; a repeated id is a source defect.
            if invoice.ref in seen:
                logger.warning("invoice_duplicate_ref", extra={
                    "invoice_ref": invoice.ref,
                    "position": position,
                })
                continue
            seen.add(invoice.ref)
            pool.append(invoice)
        return pool

    def _process_line(
        self,
        run: ReconciliationRun,
        raw: Mapping[str, Any],
        position: int,
        pool: list[CanonicalInvoice],
        options: MatchOptions,
    ) -> None:
        try:
            line = to_canonical_soa_line(raw, line_number=position)
        except ShapeError as exc:
            line_ref = exc.record_ref or f"line-{position}"
            run.record_line_failure(
                self._classifier.classify_shape_error(exc, line_ref)
            )
            return

        result = self._engine.match_line(
            line=line,
            pool=pool,
            options=options,
            tolerance=self._tolerance,
        )

        found: list[Discrepancy | None] = [
            self._classifier.classify(result=result),
            self._classifier.classify_duplicates(result),
        ]
        discrepancies = tuple(d for d in found if d is not None)

        if result.is_matched:
            # At-most-once: the winner leaves the pool before the next line.
            pool.remove(result.matched_invoice)
            logger.info("soa_line_matched", extra={
                "soa_line_ref": line.ref,
                "invoice_ref": result.invoice_ref,
                "pass_used": int(result.pass_used),
                "discrepancy_count": len(discrepancies),
            })
        else:
            logger.info("soa_line_unmatched", extra={
                "soa_line_ref": line.ref,
                "doc_number": line.doc_number,
                "reason": result.reason,
            })

        run.record_result(result, discrepancies)
