"""
Tests for the reconciliation run state machine and the frozen report.
"""

from decimal import Decimal

import pytest

from recon_engines.discrepancy import Discrepancy, DiscrepancySeverity, DiscrepancyType
from recon_engines.matching import MatchDifference, MatchPass, MatchResult
from recon_engines.report import (
    RUN_TRANSITIONS,
    ReconciliationRun,
    ReconciliationSummary,
    RunState,
)
from recon_kernel.domain.acknowledgement import AcknowledgementType
from recon_kernel.exceptions import InvalidRunTransitionError, ReportFrozenError
from tests.conftest import make_invoice, make_line


def _matched(line_ref: str, invoice_ref: str, amount: str = "100.00") -> MatchResult:
    return MatchResult(
        line=make_line(amount=amount, line_ref=line_ref),
        matched_invoice=make_invoice(amount=amount, ref=invoice_ref),
        pass_used=MatchPass.EXACT,
        difference=None,
        candidate_count=1,
        reason="Exact match found",
    )


def _unmatched(line_ref: str, amount: str = "50.00") -> MatchResult:
    return MatchResult(
        line=make_line("INV-404", amount=amount, line_ref=line_ref),
        matched_invoice=None,
        pass_used=None,
        difference=None,
        candidate_count=0,
        reason="No match found after all passes",
    )


def _discrepancy(line_ref: str, severity=DiscrepancySeverity.ERROR) -> Discrepancy:
    return Discrepancy(
        discrepancy_type=DiscrepancyType.NO_MATCH,
        severity=severity,
        description="No matching invoice",
        soa_line_ref=line_ref,
    )


def _open_run(run_id: str = "run-1") -> ReconciliationRun:
    run = ReconciliationRun(run_id, "stmt-1", "co-1")
    run.transition_to(RunState.MATCHING)
    return run


class TestRunLifecycle:

    def test_linear_chain(self):
        assert RUN_TRANSITIONS[RunState.INITIALIZED] == {RunState.MATCHING}
        assert RUN_TRANSITIONS[RunState.DONE] == frozenset()

    def test_happy_path(self):
        run = _open_run()
        run.aggregate(invoices_considered=0, unmatched_invoice_refs=())
        report = run.complete()
        assert run.state is RunState.DONE
        assert report.state is RunState.DONE

    def test_cannot_skip_matching(self):
        run = ReconciliationRun("run-1", "stmt-1", "co-1")
        with pytest.raises(InvalidRunTransitionError) as exc_info:
            run.aggregate(invoices_considered=0, unmatched_invoice_refs=())
        assert exc_info.value.from_state == "initialized"
        assert exc_info.value.to_state == "aggregated"

    def test_record_before_matching_rejected(self):
        run = ReconciliationRun("run-1", "stmt-1", "co-1")
        with pytest.raises(InvalidRunTransitionError):
            run.record_result(_matched("l1", "i1"))

    def test_record_after_aggregate_rejected(self):
        run = _open_run()
        run.aggregate(invoices_considered=0, unmatched_invoice_refs=())
        with pytest.raises(ReportFrozenError):
            run.record_result(_matched("l1", "i1"))
        with pytest.raises(ReportFrozenError):
            run.record_line_failure(_discrepancy("l2"))

    def test_cannot_complete_twice(self):
        run = _open_run()
        run.aggregate(invoices_considered=0, unmatched_invoice_refs=())
        run.complete()
        with pytest.raises(InvalidRunTransitionError):
            run.complete()


class TestRecording:

    def test_same_invoice_twice_rejected(self):
        run = _open_run()
        run.record_result(_matched("l1", "inv-1"))
        with pytest.raises(ValueError):
            run.record_result(_matched("l2", "inv-1"))

    def test_summary_counts_and_amounts(self):
        run = _open_run()
        run.record_result(_matched("l1", "inv-1", "100.00"))
        run.record_result(
            _matched("l2", "inv-2", "40.00"),
            (_discrepancy("l2", DiscrepancySeverity.WARNING),),
        )
        run.record_result(_unmatched("l3", "7.50"), (_discrepancy("l3"),))
        run.record_line_failure(_discrepancy("l4"))

        report = run.aggregate(invoices_considered=3, unmatched_invoice_refs=("inv-3",))
        s = report.summary

        assert s.total_items == 4
        assert s.matched_items == 1
        assert s.discrepancy_items == 1
        assert s.unmatched_items == 2
        assert s.total_amount == Decimal("147.50")
        assert s.matched_amount == Decimal("100.00")
        assert s.discrepancy_amount == Decimal("40.00")
        assert s.unmatched_amount == Decimal("7.50")
        assert (s.error_count, s.warning_count, s.info_count) == (2, 1, 0)
        assert report.lines_processed == 4
        assert report.matched_invoice_refs == ("inv-1", "inv-2")
        assert len(report.blocking_discrepancies) == 2
        assert report.discrepancies_for("l2")[0].severity is DiscrepancySeverity.WARNING

    def test_report_is_immutable(self):
        run = _open_run()
        run.record_result(_matched("l1", "inv-1"))
        report = run.aggregate(invoices_considered=1, unmatched_invoice_refs=())
        assert isinstance(report.matches, tuple)
        with pytest.raises(AttributeError):
            report.lines_processed = 5


class TestAcknowledgementType:

    def test_full(self):
        assert ReconciliationSummary(matched_items=2).acknowledgement_type is AcknowledgementType.FULL

    def test_with_exceptions(self):
        summary = ReconciliationSummary(matched_items=1, discrepancy_items=1)
        assert summary.acknowledgement_type is AcknowledgementType.WITH_EXCEPTIONS

    def test_partial(self):
        summary = ReconciliationSummary(matched_items=1, discrepancy_items=1, unmatched_items=1)
        assert summary.acknowledgement_type is AcknowledgementType.PARTIAL


class TestFingerprint:

    def _report(self, run_id: str):
        run = _open_run(run_id)
        run.record_result(
            MatchResult(
                line=make_line(amount="1004.00", line_ref="l1"),
                matched_invoice=make_invoice(amount="1000.00", ref="inv-1"),
                pass_used=MatchPass.AMOUNT_TOLERANCE,
                difference=MatchDifference(amount=Decimal("4.00"), days=0),
                candidate_count=1,
                reason="Amount tolerance match found",
            )
        )
        run.aggregate(invoices_considered=1, unmatched_invoice_refs=())
        return run.complete()

    def test_run_id_excluded(self):
        assert self._report("run-a").fingerprint == self._report("run-b").fingerprint

    def test_payload_has_no_run_id(self):
        assert "run_id" not in self._report("run-a").to_payload()
