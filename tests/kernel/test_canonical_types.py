"""
Tests for the canonical invoice / statement line shapes and the
acknowledgement lifecycle tables.
"""

from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from recon_kernel.domain.acknowledgement import (
    DISCREPANCY_TRANSITIONS,
    MATCH_TRANSITIONS,
    RESOLUTION_STATUS,
    UNRESOLVED_DISCREPANCY_STATUSES,
    DiscrepancyStatus,
    MatchStatus,
    ResolutionAction,
)
from recon_kernel.domain.canonical import CanonicalInvoice, CanonicalSoaLine, MatchMode


class TestCanonicalInvoice:

    def test_ref_defaults_to_invoice_number(self):
        inv = CanonicalInvoice("INV-001", Decimal("10"), "USD")
        assert inv.ref == "INV-001"

    def test_explicit_ref(self):
        inv = CanonicalInvoice("INV-001", Decimal("10"), "USD", invoice_ref="row-7")
        assert inv.ref == "row-7"

    def test_frozen(self):
        inv = CanonicalInvoice("INV-001", Decimal("10"), "USD")
        with pytest.raises(FrozenInstanceError):
            inv.total_amount = Decimal("11")


class TestCanonicalSoaLine:

    def test_ref_falls_back_to_line_number(self):
        line = CanonicalSoaLine("INV-001", Decimal("10"), "USD", line_number=4)
        assert line.ref == "line-4"

    def test_ref_falls_back_to_doc_number(self):
        line = CanonicalSoaLine("INV-001", Decimal("10"), "USD")
        assert line.ref == "INV-001"

    def test_partial_flags(self):
        plain = CanonicalSoaLine("A", Decimal("1"), "USD")
        opted = CanonicalSoaLine("A", Decimal("1"), "USD", allow_partial=True)
        partial_mode = CanonicalSoaLine("A", Decimal("1"), "USD", match_mode=MatchMode.PARTIAL)
        strict = CanonicalSoaLine("A", Decimal("1"), "USD", match_mode=MatchMode.STRICT)

        assert not plain.opts_into_partial and not plain.forbids_partial
        assert opted.opts_into_partial
        assert partial_mode.opts_into_partial
        assert strict.forbids_partial and not strict.opts_into_partial


class TestAcknowledgementTransitions:

    def test_pending_match_can_be_decided(self):
        assert MATCH_TRANSITIONS[MatchStatus.PENDING] == {
            MatchStatus.CONFIRMED, MatchStatus.REJECTED,
        }

    @pytest.mark.parametrize("status", [MatchStatus.CONFIRMED, MatchStatus.REJECTED])
    def test_decided_match_is_terminal(self, status):
        assert MATCH_TRANSITIONS[status] == frozenset()

    @pytest.mark.parametrize("status", [DiscrepancyStatus.RESOLVED, DiscrepancyStatus.WAIVED])
    def test_closed_discrepancy_is_terminal(self, status):
        assert DISCREPANCY_TRANSITIONS[status] == frozenset()
        assert status not in UNRESOLVED_DISCREPANCY_STATUSES

    def test_escalated_still_unresolved(self):
        assert DiscrepancyStatus.ESCALATED in UNRESOLVED_DISCREPANCY_STATUSES
        assert DiscrepancyStatus.RESOLVED in DISCREPANCY_TRANSITIONS[DiscrepancyStatus.ESCALATED]

    def test_every_action_has_a_status(self):
        assert set(RESOLUTION_STATUS) == set(ResolutionAction)
