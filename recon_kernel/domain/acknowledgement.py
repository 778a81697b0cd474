"""
Acknowledgement lifecycle -- statuses and transitions for human decisions.

Responsibility:
    Closed status enumerations for persisted matches, discrepancies,
    statement items and statement acknowledgements, plus the legal
    transitions a human decision may make.

Architecture position:
    Kernel > Domain -- pure enums and lookup tables, zero I/O.
    Used by the ORM models (CHECK constraints) and by
    ``recon_services.acknowledgement_service``.

Invariants enforced:
    * A match moves out of ``pending`` exactly once (confirm or reject).
    * A discrepancy may be resolved, waived or escalated only while
      ``open`` or ``investigating``; ``escalated`` may still be resolved.
"""

from __future__ import annotations

from enum import Enum


class SoaItemStatus(str, Enum):
    """Status of one statement line as stored."""

    PENDING = "pending"
    MATCHED = "matched"
    DISCREPANCY = "discrepancy"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class MatchStatus(str, Enum):
    """Status of a persisted match row."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    DISCREPANCY = "discrepancy"


MATCH_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({
        MatchStatus.CONFIRMED,
        MatchStatus.REJECTED,
    }),
    MatchStatus.DISCREPANCY: frozenset({
        MatchStatus.CONFIRMED,
        MatchStatus.REJECTED,
    }),
    MatchStatus.CONFIRMED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
}


class DiscrepancyStatus(str, Enum):
    """Status of a persisted discrepancy row."""

    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    WAIVED = "waived"
    ESCALATED = "escalated"


DISCREPANCY_TRANSITIONS: dict[DiscrepancyStatus, frozenset[DiscrepancyStatus]] = {
    DiscrepancyStatus.OPEN: frozenset({
        DiscrepancyStatus.INVESTIGATING,
        DiscrepancyStatus.RESOLVED,
        DiscrepancyStatus.WAIVED,
        DiscrepancyStatus.ESCALATED,
    }),
    DiscrepancyStatus.INVESTIGATING: frozenset({
        DiscrepancyStatus.RESOLVED,
        DiscrepancyStatus.WAIVED,
        DiscrepancyStatus.ESCALATED,
    }),
    DiscrepancyStatus.ESCALATED: frozenset({
        DiscrepancyStatus.RESOLVED,
        DiscrepancyStatus.WAIVED,
    }),
    DiscrepancyStatus.RESOLVED: frozenset(),
    DiscrepancyStatus.WAIVED: frozenset(),
}

UNRESOLVED_DISCREPANCY_STATUSES: frozenset[DiscrepancyStatus] = frozenset({
    DiscrepancyStatus.OPEN,
    DiscrepancyStatus.INVESTIGATING,
    DiscrepancyStatus.ESCALATED,
})


class ResolutionAction(str, Enum):
    """What a reviewer did about a discrepancy."""

    CORRECTED = "corrected"
    WAIVED = "waived"
    ESCALATED = "escalated"
    IGNORED = "ignored"


RESOLUTION_STATUS: dict[ResolutionAction, DiscrepancyStatus] = {
    ResolutionAction.CORRECTED: DiscrepancyStatus.RESOLVED,
    ResolutionAction.WAIVED: DiscrepancyStatus.WAIVED,
    ResolutionAction.ESCALATED: DiscrepancyStatus.ESCALATED,
    ResolutionAction.IGNORED: DiscrepancyStatus.RESOLVED,
}


class AcknowledgementType(str, Enum):
    """Kind of statement sign-off."""

    FULL = "full"
    PARTIAL = "partial"
    WITH_EXCEPTIONS = "with_exceptions"
