"""
Tests for the five-pass SOA matching engine.

Covers:
- The five reference scenarios (exact, date tolerance, fuzzy document,
  amount tolerance, no match)
- Pass ordering and deterministic tie-break
- Pass 5 gating (run option, line opt-in, strict line mode)
- Document number normalization
- Option validation
"""

from datetime import date
from decimal import Decimal

import pytest

from recon_engines.matching import (
    REASON_EMPTY_POOL,
    REASON_NO_MATCH,
    AmountToleranceRule,
    MatchOptions,
    MatchPass,
    MatchTolerance,
    MatchType,
    SoaMatchingEngine,
    doc_numbers_equivalent,
    normalize_doc_number,
    partial_enabled,
)
from recon_kernel.domain.canonical import MatchMode
from recon_kernel.exceptions import InvalidOptionsError
from tests.conftest import make_invoice, make_line


@pytest.fixture
def engine():
    return SoaMatchingEngine()


class TestReferenceScenarios:
    """The canonical matching scenarios."""

    def test_exact_match(self, engine):
        """Identical number, amount, currency and date match in pass 1."""
        invoice = make_invoice("INV-001", "100.00")
        line = make_line("INV-001", "100.00")

        result = engine.match_line(line=line, pool=[invoice])

        assert result.pass_used is MatchPass.EXACT
        assert result.matched_invoice is invoice
        assert result.difference is None
        assert result.is_exact_match
        assert result.match_type is MatchType.DETERMINISTIC
        assert result.confidence == Decimal("1.00")
        assert result.match_score == 100

    def test_date_tolerance(self, engine):
        """A line five days after the invoice matches in pass 2."""
        invoice = make_invoice("INV-001", "100.00", invoice_date=date(2025, 1, 15))
        line = make_line("INV-001", "100.00", line_date=date(2025, 1, 20))

        result = engine.match_line(line=line, pool=[invoice])

        assert result.pass_used is MatchPass.DATE_TOLERANCE
        assert result.difference.days == 5
        assert result.difference.amount == Decimal("0")
        assert result.match_type is MatchType.PROBABILISTIC
        assert result.match_criteria["date_tolerance_days"] == 7

    def test_fuzzy_document(self, engine):
        """INV001 matches INV-001 in pass 3 when dates are omitted."""
        invoice = make_invoice("INV-001", "100.00", invoice_date=None)
        line = make_line("INV001", "100.00", line_date=None)

        result = engine.match_line(line=line, pool=[invoice])

        assert result.pass_used is MatchPass.FUZZY_DOCUMENT
        assert result.difference is None
        assert result.match_criteria["fuzzy_document"] is True
        assert result.match_criteria["invoice_number"] is False

    def test_amount_tolerance_relative_branch(self, engine):
        """1004.00 against 1000.00 is outside 1.00 absolute but inside 0.5%."""
        invoice = make_invoice("INV-001", "1000.00")
        line = make_line("INV-001", "1004.00")

        result = engine.match_line(line=line, pool=[invoice])

        assert result.pass_used is MatchPass.AMOUNT_TOLERANCE
        assert result.difference.amount == Decimal("4.00")
        assert result.difference.days == 0

    def test_no_match(self, engine):
        """A document number absent from the pool matches nothing."""
        invoice = make_invoice("INV-001", "100.00")
        line = make_line("INV-999", "100.00")

        result = engine.match_line(line=line, pool=[invoice])

        assert result.pass_used is None
        assert result.matched_invoice is None
        assert not result.is_matched
        assert result.reason == REASON_NO_MATCH
        assert result.confidence == Decimal("0")
        assert result.match_type is None


class TestPassOrdering:
    """The first qualifying pass wins; earlier passes are always preferred."""

    def test_exact_preferred_over_date_tolerance(self, engine):
        """An exact candidate later in the pool beats an earlier tolerance one."""
        shifted = make_invoice("INV-001", "100.00", invoice_date=date(2025, 1, 12), ref="a")
        exact = make_invoice("INV-001", "100.00", invoice_date=date(2025, 1, 15), ref="b")
        line = make_line("INV-001", "100.00", line_date=date(2025, 1, 15))

        result = engine.match_line(line=line, pool=[shifted, exact])

        assert result.pass_used is MatchPass.EXACT
        assert result.invoice_ref == "b"

    def test_first_in_pool_wins_tie(self, engine):
        """Two equally good candidates: pool order decides."""
        first = make_invoice("INV-001", "100.00", ref="first")
        second = make_invoice("INV-001", "100.00", ref="second")

        result = engine.match_line(line=make_line("INV-001", "100.00"), pool=[first, second])

        assert result.invoice_ref == "first"
        assert result.candidate_count == 2

    def test_date_outside_window_falls_through(self, engine):
        """Eight days apart with the 7-day window: no pass 2 match."""
        invoice = make_invoice("INV-001", "100.00", invoice_date=date(2025, 1, 15))
        line = make_line("INV-001", "100.00", line_date=date(2025, 1, 23))

        result = engine.match_line(line=line, pool=[invoice])

        # Pass 3 does not constrain the date
        assert result.pass_used is MatchPass.FUZZY_DOCUMENT
        assert result.match_criteria["date"] is False

    def test_window_is_inclusive(self, engine):
        invoice = make_invoice("INV-001", "100.00", invoice_date=date(2025, 1, 15))
        line = make_line("INV-001", "100.00", line_date=date(2025, 1, 22))

        result = engine.match_line(line=line, pool=[invoice])

        assert result.pass_used is MatchPass.DATE_TOLERANCE
        assert result.difference.days == 7

    def test_currency_must_match(self, engine):
        invoice = make_invoice("INV-001", "100.00", currency="EUR")

        result = engine.match_line(line=make_line("INV-001", "100.00"), pool=[invoice])

        assert not result.is_matched

    def test_empty_pool(self, engine):
        result = engine.match_line(line=make_line(), pool=[])

        assert not result.is_matched
        assert result.reason == REASON_EMPTY_POOL
        assert result.candidate_count == 0

    def test_pool_not_mutated(self, engine):
        pool = [make_invoice()]
        engine.match_line(line=make_line(), pool=pool)
        assert len(pool) == 1


class TestAmountTolerance:
    """Pass 4 thresholds."""

    def test_absolute_branch(self, engine):
        """0.80 over a 50.00 invoice: 1.6% relative, but within 1.00 absolute."""
        result = engine.match_line(
            line=make_line("INV-001", "50.80"),
            pool=[make_invoice("INV-001", "50.00")],
        )
        assert result.pass_used is MatchPass.AMOUNT_TOLERANCE
        assert result.difference.amount == Decimal("0.80")

    def test_outside_both_thresholds(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "1006.00"),
            pool=[make_invoice("INV-001", "1000.00")],
        )
        assert not result.is_matched

    def test_stricter_rule_requires_both(self):
        tolerance = MatchTolerance(amount_rule=AmountToleranceRule.STRICTER)
        engine = SoaMatchingEngine(tolerance)

        result = engine.match_line(
            line=make_line("INV-001", "1004.00"),
            pool=[make_invoice("INV-001", "1000.00")],
        )
        assert not result.is_matched

    def test_per_call_tolerance_override(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "1004.00"),
            pool=[make_invoice("INV-001", "1000.00")],
            tolerance=MatchTolerance(amount_relative=Decimal("0.001")),
        )
        assert not result.is_matched

    def test_zero_total_uses_absolute_only(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "0.50"),
            pool=[make_invoice("INV-001", "0.00")],
        )
        assert result.pass_used is MatchPass.AMOUNT_TOLERANCE


class TestPartialPass:
    """Pass 5 gating."""

    def test_disabled_by_default(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "400.00"),
            pool=[make_invoice("INV-001", "1000.00")],
        )
        assert not result.is_matched

    def test_enabled_by_run_option(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "400.00"),
            pool=[make_invoice("INV-001", "1000.00")],
            options=MatchOptions(allow_partial=True),
        )
        assert result.pass_used is MatchPass.PARTIAL
        assert result.difference.amount == Decimal("600.00")
        assert result.match_criteria["remaining_amount"] == "600.00"
        assert result.confidence == Decimal("0.75")

    def test_line_opt_in_overrides_run_option(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "400.00", allow_partial=True),
            pool=[make_invoice("INV-001", "1000.00")],
            options=MatchOptions(allow_partial=False),
        )
        assert result.pass_used is MatchPass.PARTIAL

    def test_strict_line_overrides_run_option(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "400.00", match_mode=MatchMode.STRICT),
            pool=[make_invoice("INV-001", "1000.00")],
            options=MatchOptions(allow_partial=True),
        )
        assert not result.is_matched

    def test_overpayment_is_not_partial(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "1500.00"),
            pool=[make_invoice("INV-001", "1000.00")],
            options=MatchOptions(allow_partial=True),
        )
        assert not result.is_matched

    def test_zero_amount_is_not_partial(self, engine):
        result = engine.match_line(
            line=make_line("INV-001", "0.00"),
            pool=[make_invoice("INV-001", "1000.00")],
            options=MatchOptions(allow_partial=True),
        )
        assert not result.is_matched

    @pytest.mark.parametrize("line_kwargs,run_option,expected", [
        ({}, False, False),
        ({}, True, True),
        ({"allow_partial": True}, False, True),
        ({"match_mode": MatchMode.PARTIAL}, False, True),
        ({"match_mode": MatchMode.STRICT}, True, False),
    ])
    def test_partial_enabled_table(self, line_kwargs, run_option, expected):
        line = make_line(**line_kwargs)
        assert partial_enabled(line, MatchOptions(allow_partial=run_option)) is expected


class TestDocumentNormalization:

    @pytest.mark.parametrize("a,b", [
        ("INV001", "INV-001"),
        ("inv-0001", "INV 1"),
        ("INV/2025/007", "INV-2025-7"),
        ("001", "INV-001"),
        ("1", "INV_0001"),
    ])
    def test_equivalent(self, a, b):
        assert doc_numbers_equivalent(a, b)
        assert doc_numbers_equivalent(b, a)

    @pytest.mark.parametrize("a,b", [
        ("INV-001", "INV-002"),
        ("INV-001", "CRN-001"),
        ("001", "INV-001-A"),
        ("", "INV-001"),
    ])
    def test_not_equivalent(self, a, b):
        assert not doc_numbers_equivalent(a, b)

    def test_normalized_key(self):
        assert normalize_doc_number(" inv-0001 ") == "INV1"
        assert normalize_doc_number("000123") == "123"


class TestMatchOptions:

    def test_none_gives_defaults(self):
        assert MatchOptions.from_mapping(None) == MatchOptions(allow_partial=False)

    def test_valid_mapping(self):
        assert MatchOptions.from_mapping({"allow_partial": True}).allow_partial is True

    def test_unknown_key(self):
        with pytest.raises(InvalidOptionsError) as exc_info:
            MatchOptions.from_mapping({"allowPartial": True})
        assert exc_info.value.key == "allowPartial"

    @pytest.mark.parametrize("value", ["true", 1, None])
    def test_non_bool_rejected(self, value):
        with pytest.raises(InvalidOptionsError):
            MatchOptions.from_mapping({"allow_partial": value})

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidOptionsError):
            MatchOptions.from_mapping([("allow_partial", True)])


class TestEngineTracing:

    def test_trace_emitted(self, engine, captured_logs):
        engine.match_line(line=make_line(), pool=[make_invoice()])

        traces = [r for r in captured_logs() if r["message"] == "RECON_ENGINE_TRACE"]
        assert traces
        assert traces[0]["engine_name"] == "soa_matching"
        assert len(traces[0]["input_fingerprint"]) == 16

    def test_same_input_same_fingerprint(self, engine, captured_logs):
        for _ in range(2):
            engine.match_line(line=make_line(), pool=[make_invoice()])

        fps = [
            r["input_fingerprint"] for r in captured_logs()
            if r["message"] == "RECON_ENGINE_TRACE"
        ]
        assert len(fps) == 2 and fps[0] == fps[1]

    def test_trace_carries_outcome(self, engine, captured_logs):
        pool = [make_invoice(), make_invoice(number="INV-002")]
        engine.match_line(line=make_line(), pool=pool)

        trace = next(r for r in captured_logs() if r["message"] == "RECON_ENGINE_TRACE")
        assert trace["input_sizes"] == {"pool_size": 2}
        assert trace["outcome"]["pass_used"] == 1
        assert trace["outcome"]["invoice_ref"] == "INV-001"
        assert trace["outcome"]["candidate_count"] == 1

    def test_fingerprint_sees_amount_scale(self, engine, captured_logs):
        engine.match_line(line=make_line(amount="100.00"), pool=[make_invoice()])
        engine.match_line(line=make_line(amount="100.0"), pool=[make_invoice()])

        fps = [
            r["input_fingerprint"] for r in captured_logs()
            if r["message"] == "RECON_ENGINE_TRACE"
        ]
        assert fps[0] != fps[1]
