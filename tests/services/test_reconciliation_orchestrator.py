"""
Tests for ReconciliationOrchestrator.

Covers:
- At-most-once: a matched invoice leaves the pool for later lines
- Partial-failure tolerance: a malformed line becomes NO_MATCH, the run
  continues
- Option validation before any I/O
- Replay: identical input and run id give an identical report
- Reading from the SQL source
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from recon_engines.discrepancy import DiscrepancySeverity, DiscrepancyType
from recon_engines.matching import MatchPass, MatchTolerance
from recon_engines.report import RunState
from recon_kernel.domain.acknowledgement import AcknowledgementType
from recon_kernel.exceptions import InvalidOptionsError
from recon_kernel.models import SoaInvoiceModel, SoaItemModel
from recon_services.reconciliation_service import ReconciliationOrchestrator
from recon_services.sources import InMemoryReconciliationSource, SqlReconciliationSource
from tests.conftest import raw_invoice, raw_line

STATEMENT = "stmt-1"
COMPANY = "co-1"


def _orchestrator(invoices, lines, **kwargs) -> ReconciliationOrchestrator:
    source = InMemoryReconciliationSource(
        invoices_by_company={COMPANY: invoices},
        lines_by_statement={STATEMENT: lines},
    )
    kwargs.setdefault("run_id_factory", lambda: "run-fixed")
    return ReconciliationOrchestrator(source, **kwargs)


class _ExplodingSource:
    """Source that fails the test if it is ever read."""

    def get_invoices_for_company(self, company_id):
        raise AssertionError("source read before options were validated")

    def get_soa_lines_for_statement(self, statement_id):
        raise AssertionError("source read before options were validated")


class TestReconcile:

    def test_reference_scenarios_in_one_run(self):
        """Exact, date, fuzzy, amount and no-match lines in one statement."""
        invoices = [
            raw_invoice("INV-001", "100.00"),
            raw_invoice("INV-002", "100.00"),
            raw_invoice("INV-003", "100.00", invoice_date=None),
            raw_invoice("INV-004", "1000.00"),
        ]
        lines = [
            raw_line("INV-001", "100.00"),
            raw_line("INV-002", "100.00", line_date="2025-01-20"),
            raw_line("INV003", "100.00", line_date=None),
            raw_line("INV-004", "1004.00"),
            raw_line("INV-999", "100.00"),
        ]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert report.state is RunState.DONE
        assert [m.pass_used for m in report.matches] == [
            MatchPass.EXACT,
            MatchPass.DATE_TOLERANCE,
            MatchPass.FUZZY_DOCUMENT,
            MatchPass.AMOUNT_TOLERANCE,
        ]
        types = [d.discrepancy_type for d in report.discrepancies]
        assert types == [
            DiscrepancyType.DATE_MISMATCH,
            DiscrepancyType.AMOUNT_MISMATCH,
            DiscrepancyType.NO_MATCH,
        ]
        assert report.summary.matched_items == 2
        assert report.summary.discrepancy_items == 2
        assert report.summary.unmatched_items == 1
        assert report.summary.acknowledgement_type is AcknowledgementType.PARTIAL
        assert report.unmatched_invoice_refs == ()

    def test_invoice_matched_at_most_once(self):
        """Two identical lines against one invoice: the second goes unmatched."""
        invoices = [raw_invoice("INV-001", "100.00")]
        lines = [
            raw_line("INV-001", "100.00", record_id="l1"),
            raw_line("INV-001", "100.00", record_id="l2"),
        ]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert len(report.matches) == 1
        assert report.matches[0].soa_line_ref == "l1"
        assert report.discrepancies[0].soa_line_ref == "l2"
        assert report.discrepancies[0].discrepancy_type is DiscrepancyType.NO_MATCH

    def test_second_line_takes_next_candidate(self):
        invoices = [
            raw_invoice("INV-001", "100.00", record_id="a"),
            raw_invoice("INV-001", "100.00", record_id="b"),
        ]
        lines = [
            raw_line("INV-001", "100.00", record_id="l1"),
            raw_line("INV-001", "100.00", record_id="l2"),
        ]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert report.matched_invoice_refs == ("a", "b")
        # Only the first line saw two candidates
        duplicates = [
            d for d in report.discrepancies
            if d.discrepancy_type is DiscrepancyType.DUPLICATE_CANDIDATE
        ]
        assert [d.soa_line_ref for d in duplicates] == ["l1"]

    def test_malformed_line_does_not_abort(self, captured_logs):
        invoices = [raw_invoice("INV-001", "100.00"), raw_invoice("INV-002", "5.00")]
        bad = raw_line("INV-001", "100.00", record_id="bad")
        del bad["currency_code"]
        lines = [bad, raw_line("INV-002", "5.00", record_id="good")]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert report.lines_processed == 2
        assert report.matches[0].soa_line_ref == "good"
        failure = report.discrepancies_for("bad")[0]
        assert failure.discrepancy_type is DiscrepancyType.NO_MATCH
        assert failure.severity is DiscrepancySeverity.ERROR
        assert failure.details["field"] == "currency"
        assert report.unmatched_invoice_refs == ("inv-INV-001",)
        assert any(r["message"] == "soa_line_shape_error" for r in captured_logs())

    def test_malformed_line_without_id_uses_position(self):
        bad = {"amount": "1.00", "currency_code": "USD"}
        report = _orchestrator([], [raw_line(), bad]).reconcile(STATEMENT, COMPANY)
        assert report.discrepancies_for("line-2")

    def test_malformed_invoice_dropped(self, captured_logs):
        invoices = [{"id": "broken", "amount": "1.00"}, raw_invoice("INV-001", "100.00")]
        report = _orchestrator(
            invoices, [raw_line("INV-001", "100.00")],
        ).reconcile(STATEMENT, COMPANY)

        assert report.invoices_considered == 1
        assert len(report.matches) == 1
        assert any(r["message"] == "invoice_shape_error" for r in captured_logs())

    def test_same_number_invoices_without_ids(self):
        """Two ledger invoices sharing a number stay distinct in the pool."""
        invoices = [
            {"invoice_num": "INV-1", "amount": "100.00", "currency_code": "USD"},
            {"invoice_num": "INV-1", "amount": "50.00", "currency_code": "USD"},
        ]
        lines = [
            raw_line("INV-1", "100.00", line_date=None, record_id="l1"),
            raw_line("INV-1", "50.00", line_date=None, record_id="l2"),
        ]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert report.state is RunState.DONE
        assert report.matched_invoice_refs == ("invoice-1", "invoice-2")
        assert [m.pass_used for m in report.matches] == [MatchPass.EXACT, MatchPass.EXACT]
        assert report.unmatched_invoice_refs == ()

    def test_repeated_invoice_id_dropped(self, captured_logs):
        invoices = [
            raw_invoice("INV-001", "100.00", record_id="dup"),
            raw_invoice("INV-002", "100.00", record_id="dup"),
        ]
        lines = [raw_line("INV-001", "100.00"), raw_line("INV-002", "100.00")]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert report.invoices_considered == 1
        assert report.matched_invoice_refs == ("dup",)
        assert report.summary.unmatched_items == 1
        assert any(r["message"] == "invoice_duplicate_ref" for r in captured_logs())

    def test_timestamp_invoice_date(self):
        invoices = [raw_invoice("INV-001", "100.00", invoice_date="2025-01-15T00:00:00")]
        lines = [raw_line("INV-001", "100.00", line_date="2025-01-15")]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert report.invoices_considered == 1
        assert report.matches[0].pass_used is MatchPass.EXACT

    def test_partial_requires_opt_in(self):
        invoices = [raw_invoice("INV-001", "1000.00")]
        lines = [raw_line("INV-001", "400.00")]

        off = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)
        on = _orchestrator(invoices, lines).reconcile(
            STATEMENT, COMPANY, {"allow_partial": True},
        )

        assert off.matches == ()
        assert on.matches[0].pass_used is MatchPass.PARTIAL
        assert on.discrepancies[0].discrepancy_type is DiscrepancyType.PARTIAL_PAYMENT

    def test_line_metadata_opt_in(self):
        invoices = [raw_invoice("INV-001", "1000.00")]
        lines = [raw_line("INV-001", "400.00", metadata={"match_mode": "partial"})]

        report = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert report.matches[0].pass_used is MatchPass.PARTIAL

    def test_tolerance_injected(self):
        invoices = [raw_invoice("INV-001", "100.00")]
        lines = [raw_line("INV-001", "100.00", line_date="2025-01-18")]

        report = _orchestrator(
            invoices, lines, tolerance=MatchTolerance(date_tolerance_days=2),
        ).reconcile(STATEMENT, COMPANY)

        assert report.matches[0].pass_used is MatchPass.FUZZY_DOCUMENT

    def test_empty_statement(self):
        report = _orchestrator([raw_invoice()], []).reconcile(STATEMENT, COMPANY)
        assert report.lines_processed == 0
        assert report.unmatched_invoice_refs == ("inv-INV-001",)
        assert report.summary.acknowledgement_type is AcknowledgementType.FULL

    def test_run_logged_with_context(self, captured_logs):
        _orchestrator([raw_invoice()], [raw_line()]).reconcile(STATEMENT, COMPANY)

        logs = captured_logs()
        completed = [r for r in logs if r["message"] == "reconciliation_completed"]
        assert completed[0]["run_id"] == "run-fixed"
        assert completed[0]["statement_id"] == STATEMENT
        assert completed[0]["matched_items"] == 1


class TestOptionValidation:

    @pytest.mark.parametrize("options", [
        {"allow_partial": "true"},
        {"allow_partial": 1},
        {"allowPartial": True},
        {"allow_partial": True, "strict": False},
    ])
    def test_invalid_options_raise_before_io(self, options):
        orchestrator = ReconciliationOrchestrator(_ExplodingSource())
        with pytest.raises(InvalidOptionsError):
            orchestrator.reconcile(STATEMENT, COMPANY, options)


class TestReplay:

    def test_identical_input_identical_report(self):
        invoices = [raw_invoice("INV-001", "100.00"), raw_invoice("INV-002", "1000.00")]
        lines = [raw_line("INV-002", "1004.00"), raw_line("INV-404", "3.00")]

        first = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)
        second = _orchestrator(invoices, lines).reconcile(STATEMENT, COMPANY)

        assert first == second
        assert first.fingerprint == second.fingerprint

    def test_fingerprint_ignores_run_id(self):
        invoices = [raw_invoice()]
        lines = [raw_line()]
        ids = iter(["run-a", "run-b"])
        orchestrator = _orchestrator(invoices, lines, run_id_factory=lambda: next(ids))

        first = orchestrator.reconcile(STATEMENT, COMPANY)
        second = orchestrator.reconcile(STATEMENT, COMPANY)

        assert first.run_id != second.run_id
        assert first.fingerprint == second.fingerprint


class TestSqlSource:

    def test_reconcile_from_database(self, session):
        company_id, statement_id = uuid4(), uuid4()
        session.add_all([
            SoaInvoiceModel(
                company_id=company_id, invoice_num="INV-001",
                invoice_date=date(2025, 1, 15), amount=Decimal("100.00"),
                currency_code="USD",
            ),
            SoaInvoiceModel(
                company_id=company_id, invoice_num="INV-002",
                invoice_date=date(2025, 1, 16), amount=Decimal("50.00"),
                currency_code="USD", status="void",
            ),
            SoaItemModel(
                statement_id=statement_id, company_id=company_id, line_number=2,
                invoice_number="INV-002", invoice_date=date(2025, 1, 16),
                amount=Decimal("50.00"), currency_code="USD",
            ),
            SoaItemModel(
                statement_id=statement_id, company_id=company_id, line_number=1,
                invoice_number="INV-001", invoice_date=date(2025, 1, 15),
                amount=Decimal("100.00"), currency_code="USD",
            ),
        ])
        session.flush()

        report = ReconciliationOrchestrator(SqlReconciliationSource(session)).reconcile(
            statement_id, company_id,
        )

        # Void invoices are never offered; lines come back in line_number order
        assert report.invoices_considered == 1
        assert report.matches[0].line.doc_number == "INV-001"
        assert report.matches[0].line.line_number == 1
        assert report.discrepancies[0].discrepancy_type is DiscrepancyType.NO_MATCH
        assert report.summary.unmatched_items == 1

    def test_unknown_company_yields_empty_pool(self, session):
        source = SqlReconciliationSource(session)
        assert source.get_invoices_for_company(uuid4()) == []
