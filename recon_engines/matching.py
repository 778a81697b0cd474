"""
recon_engines.matching -- Five-pass SOA line matching engine.

Responsibility:
    Match one canonical statement-of-account line against a pool of
    canonical invoices using five ordered passes of widening tolerance:
    exact, date tolerance, fuzzy document number, amount tolerance, and
    (opt-in only) partial payment.  Produces a ``MatchResult`` that
    records which pass fired, the tolerated difference, and how many
    invoices qualified under that pass.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import recon_kernel (canonical types, exceptions, logging).
    Tolerances arrive as a ``MatchTolerance`` value; the config layer
    builds one via ``recon_config.bridges.build_match_tolerance``.

Invariants enforced:
    - Replay safety: identical (line, pool, options, tolerance) produce an
      identical ``MatchResult``; no clock access, no internal state.
    - Pass ordering: a line matched by pass k had no qualifying candidate
      in passes 1..k-1.
    - Pass 5 is disabled unless the line or the run opts in, and a line
      marked ``MatchMode.STRICT`` never runs it.
    - Deterministic tie-break: within a pass, the first candidate in pool
      order wins.
    - Amount comparisons use Decimal arithmetic; no float intermediates.

Failure modes:
    - ``InvalidOptionsError`` from ``MatchOptions.from_mapping`` for an
      unknown option key or a non-bool ``allow_partial``.
    - No other errors in normal operation: a line with no qualifying
      candidate yields a ``MatchResult`` with ``matched_invoice=None``.

Audit relevance:
    ``pass_used`` and ``match_criteria`` explain every automated match to
    the humans who later confirm or dispute it.  All engine invocations
    are traced via ``@traced_engine``.

Usage:
    from recon_engines.matching import SoaMatchingEngine, MatchOptions

    engine = SoaMatchingEngine()
    result = engine.match_line(
        line=soa_line,
        pool=invoices,
        options=MatchOptions(allow_partial=False),
    )
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any

from recon_engines.tracer import traced_engine
from recon_kernel.domain.canonical import CanonicalInvoice, CanonicalSoaLine
from recon_kernel.exceptions import InvalidOptionsError
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.matching")


class MatchPass(IntEnum):
    """The five matching passes, in execution order."""

    EXACT = 1
    DATE_TOLERANCE = 2
    FUZZY_DOCUMENT = 3
    AMOUNT_TOLERANCE = 4
    PARTIAL = 5


class MatchType(str, Enum):
    """How much judgement a match involved."""

    DETERMINISTIC = "deterministic"  # Pass 1 only
    PROBABILISTIC = "probabilistic"  # Passes 2-5


class AmountToleranceRule(str, Enum):
    """How the absolute and relative amount thresholds combine in pass 4."""

    EITHER = "either"  # Within the absolute OR the relative threshold
    STRICTER = "stricter"  # Within both thresholds


_PASS_CONFIDENCE: dict[MatchPass, Decimal] = {
    MatchPass.EXACT: Decimal("1.00"),
    MatchPass.DATE_TOLERANCE: Decimal("0.95"),
    MatchPass.FUZZY_DOCUMENT: Decimal("0.90"),
    MatchPass.AMOUNT_TOLERANCE: Decimal("0.85"),
    MatchPass.PARTIAL: Decimal("0.75"),
}

_PASS_SCORE: dict[MatchPass, int] = {
    MatchPass.EXACT: 100,
    MatchPass.DATE_TOLERANCE: 95,
    MatchPass.FUZZY_DOCUMENT: 90,
    MatchPass.AMOUNT_TOLERANCE: 85,
    MatchPass.PARTIAL: 75,
}

_PASS_REASON: dict[MatchPass, str] = {
    MatchPass.EXACT: "Exact match found",
    MatchPass.DATE_TOLERANCE: "Date tolerance match found",
    MatchPass.FUZZY_DOCUMENT: "Fuzzy document match found",
    MatchPass.AMOUNT_TOLERANCE: "Amount tolerance match found",
    MatchPass.PARTIAL: "Partial match found",
}

REASON_NO_MATCH = "No match found after all passes"
REASON_EMPTY_POOL = "No invoices available for matching"


@dataclass(frozen=True)
class MatchTolerance:
    """
    Tolerance rules for the widening passes.

    Immutable; the defaults are the production values.
    """

    date_tolerance_days: int = 7
    amount_absolute: Decimal = Decimal("1.00")
    amount_relative: Decimal = Decimal("0.005")
    amount_rule: AmountToleranceRule = AmountToleranceRule.EITHER


@dataclass(frozen=True)
class MatchOptions:
    """
    Run-level options supplied by the caller of a reconciliation.

    Per-line flags on ``CanonicalSoaLine`` take precedence over these.
    """

    allow_partial: bool = False

    _ALLOWED_KEYS = frozenset({"allow_partial"})

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> MatchOptions:
        """Validate a caller-supplied mapping.

        Raises:
            InvalidOptionsError: Unknown key, or ``allow_partial`` that is
                not a real ``bool`` (truthy strings and ints are rejected).
        """
        if options is None:
            return cls()
        if isinstance(options, MatchOptions):
            return options
        if not isinstance(options, Mapping):
            raise InvalidOptionsError(
                "<options>", f"expected a mapping, got {type(options).__name__}"
            )
        for key in options:
            if key not in cls._ALLOWED_KEYS:
                raise InvalidOptionsError(str(key), "unknown option")
        allow_partial = options.get("allow_partial", False)
        if not isinstance(allow_partial, bool):
            raise InvalidOptionsError(
                "allow_partial",
                f"must be a bool, got {type(allow_partial).__name__}",
            )
        return cls(allow_partial=allow_partial)


@dataclass(frozen=True)
class MatchDifference:
    """Tolerated difference between a line and its matched invoice."""

    amount: Decimal
    days: int


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of matching one SOA line.

    Immutable.  ``matched_invoice`` and ``pass_used`` are both None when no
    pass produced a candidate.
    """

    line: CanonicalSoaLine
    matched_invoice: CanonicalInvoice | None
    pass_used: MatchPass | None
    difference: MatchDifference | None
    candidate_count: int
    reason: str
    match_criteria: dict[str, Any] = field(default_factory=dict)

    @property
    def is_matched(self) -> bool:
        return self.matched_invoice is not None

    @property
    def is_exact_match(self) -> bool:
        return self.pass_used is MatchPass.EXACT

    @property
    def match_type(self) -> MatchType | None:
        if self.pass_used is None:
            return None
        if self.pass_used is MatchPass.EXACT:
            return MatchType.DETERMINISTIC
        return MatchType.PROBABILISTIC

    @property
    def confidence(self) -> Decimal:
        if self.pass_used is None:
            return Decimal("0")
        return _PASS_CONFIDENCE[self.pass_used]

    @property
    def match_score(self) -> int:
        if self.pass_used is None:
            return 0
        return _PASS_SCORE[self.pass_used]

    @property
    def soa_line_ref(self) -> str:
        return self.line.ref

    @property
    def invoice_ref(self) -> str | None:
        return self.matched_invoice.ref if self.matched_invoice else None


# ---------------------------------------------------------------------------
# Document number normalization
# ---------------------------------------------------------------------------

_SEPARATORS = re.compile(r"[\s\-/\\_.,]+")
_DIGIT_RUN = re.compile(r"\d+")
_TRAILING_DIGITS = re.compile(r"(\d+)$")


def _strip_zeros(run: str) -> str:
    return run.lstrip("0") or "0"


def strict_doc_key(value: str) -> str:
    """Key used by every pass except the fuzzy one."""
    return value.strip().upper()


def normalize_doc_number(value: str) -> str:
    """Fuzzy key: upper-case, separators removed, leading zeros stripped.

    Leading zeros are stripped from every digit run, so ``INV-0001`` and
    ``INV1`` share the key ``INV1``.
    """
    upper = value.strip().upper()
    compact = _DIGIT_RUN.sub(lambda m: _strip_zeros(m.group()), upper)
    key = _SEPARATORS.sub("", compact)
    return key.lstrip("0") or ("0" if key else "")


def _numeric_tail(value: str) -> str | None:
    """Last digit run of a document number, if the number ends in digits."""
    compact = _SEPARATORS.sub("", value.strip().upper())
    m = _TRAILING_DIGITS.search(compact)
    return _strip_zeros(m.group(1)) if m else None


def doc_numbers_equivalent(a: str, b: str) -> bool:
    """True if two document numbers are the same under fuzzy normalization.

    Equal fuzzy keys are equivalent.  A purely numeric number is also
    equivalent to any number whose trailing digit run equals it, so
    ``001`` matches ``INV-001``.
    """
    key_a, key_b = normalize_doc_number(a), normalize_doc_number(b)
    if not key_a or not key_b:
        return False
    if key_a == key_b:
        return True
    if key_a.isdigit() == key_b.isdigit():
        return False
    digits, other = (key_a, b) if key_a.isdigit() else (key_b, a)
    return _numeric_tail(other) == digits


# ---------------------------------------------------------------------------
# Pass predicates
# ---------------------------------------------------------------------------


def _day_delta(line: CanonicalSoaLine, invoice: CanonicalInvoice) -> int | None:
    if line.date is None or invoice.invoice_date is None:
        return None
    return abs((line.date - invoice.invoice_date).days)


def _same_document(line: CanonicalSoaLine, invoice: CanonicalInvoice) -> bool:
    return strict_doc_key(line.doc_number) == strict_doc_key(invoice.invoice_number)


def _same_currency(line: CanonicalSoaLine, invoice: CanonicalInvoice) -> bool:
    return line.currency == invoice.currency


def _within_amount_tolerance(
    line_amount: Decimal,
    invoice_amount: Decimal,
    tolerance: MatchTolerance,
) -> bool:
    delta = abs(line_amount - invoice_amount)
    absolute_ok = delta <= tolerance.amount_absolute
    # Relative branch is undefined for a zero total.
    relative_ok = (
        invoice_amount != 0
        and delta / abs(invoice_amount) <= tolerance.amount_relative
    )
    if tolerance.amount_rule is AmountToleranceRule.STRICTER:
        return absolute_ok and relative_ok
    return absolute_ok or relative_ok


def _qualifies_exact(line, invoice, tolerance) -> bool:
    if not (_same_document(line, invoice) and _same_currency(line, invoice)):
        return False
    if line.amount != invoice.total_amount:
        return False
    delta = _day_delta(line, invoice)
    return delta is None or delta == 0


def _qualifies_date_tolerance(line, invoice, tolerance) -> bool:
    if not (_same_document(line, invoice) and _same_currency(line, invoice)):
        return False
    if line.amount != invoice.total_amount:
        return False
    delta = _day_delta(line, invoice)
    return delta is not None and delta <= tolerance.date_tolerance_days


def _qualifies_fuzzy_document(line, invoice, tolerance) -> bool:
    return (
        _same_currency(line, invoice)
        and line.amount == invoice.total_amount
        and doc_numbers_equivalent(line.doc_number, invoice.invoice_number)
    )


def _qualifies_amount_tolerance(line, invoice, tolerance) -> bool:
    return (
        _same_document(line, invoice)
        and _same_currency(line, invoice)
        and _within_amount_tolerance(line.amount, invoice.total_amount, tolerance)
    )


def _qualifies_partial(line, invoice, tolerance) -> bool:
    return (
        _same_document(line, invoice)
        and _same_currency(line, invoice)
        and Decimal("0") < line.amount < invoice.total_amount
    )


_Predicate = Callable[[CanonicalSoaLine, CanonicalInvoice, MatchTolerance], bool]

_PASSES: tuple[tuple[MatchPass, _Predicate], ...] = (
    (MatchPass.EXACT, _qualifies_exact),
    (MatchPass.DATE_TOLERANCE, _qualifies_date_tolerance),
    (MatchPass.FUZZY_DOCUMENT, _qualifies_fuzzy_document),
    (MatchPass.AMOUNT_TOLERANCE, _qualifies_amount_tolerance),
    (MatchPass.PARTIAL, _qualifies_partial),
)


def partial_enabled(line: CanonicalSoaLine, options: MatchOptions) -> bool:
    """Whether pass 5 may run for this line.

    The line's own flags win: an opt-in enables it even when the run
    option is off, and ``MatchMode.STRICT`` disables it even when the run
    option is on.
    """
    if line.opts_into_partial:
        return True
    if line.forbids_partial:
        return False
    return options.allow_partial is True


def _match_outcome(result: MatchResult) -> dict[str, Any]:
    return {
        "soa_line_ref": result.soa_line_ref,
        "pass_used": int(result.pass_used) if result.pass_used is not None else None,
        "invoice_ref": result.invoice_ref,
        "candidate_count": result.candidate_count,
    }


class SoaMatchingEngine:
    """
    Five-pass SOA line matcher.

    Contract:
        Pure function with no I/O or database access.
        The pool is read, never mutated; removing a matched invoice from
        the pool is the orchestrator's job.
    Guarantees:
        - Passes run strictly in order 1..5 and the first qualifying pass
          wins.
        - Within a pass the first qualifying invoice in pool order wins.
        - ``candidate_count`` is the number of invoices that qualified
          under the winning pass.
    Non-goals:
        - Does not compute a globally optimal assignment across lines.
        - Does not convert currencies.
    """

    def __init__(self, tolerance: MatchTolerance | None = None) -> None:
        self._tolerance = tolerance or MatchTolerance()

    @property
    def tolerance(self) -> MatchTolerance:
        return self._tolerance

    @traced_engine(
        "soa_matching", "1.0",
        fingerprint_fields=("line", "pool", "options"),
        summarize=_match_outcome,
    )
    def match_line(
        self,
        line: CanonicalSoaLine,
        pool: Sequence[CanonicalInvoice],
        options: MatchOptions | None = None,
        tolerance: MatchTolerance | None = None,
    ) -> MatchResult:
        """
        Run the passes for one line against the current pool.

        Args:
            line: Canonical statement line.
            pool: Invoices still available in this run, in pool order.
            options: Run-level options; defaults to pass 5 disabled.
            tolerance: Overrides the engine's tolerance for this call.

        Returns:
            MatchResult for the line (matched or not).
        """
        t0 = time.monotonic()
        options = options or MatchOptions()
        tolerance = tolerance or self._tolerance

        if not pool:
            logger.info("soa_line_no_invoices", extra={
                "soa_line_ref": line.ref,
                "doc_number": line.doc_number,
            })
            return MatchResult(
                line=line,
                matched_invoice=None,
                pass_used=None,
                difference=None,
                candidate_count=0,
                reason=REASON_EMPTY_POOL,
            )

        allow_partial = partial_enabled(line, options)

        for match_pass, predicate in _PASSES:
            if match_pass is MatchPass.PARTIAL and not allow_partial:
                continue
            qualifying = [inv for inv in pool if predicate(line, inv, tolerance)]
            if not qualifying:
                continue

            winner = qualifying[0]
            result = MatchResult(
                line=line,
                matched_invoice=winner,
                pass_used=match_pass,
                difference=_difference_for(match_pass, line, winner),
                candidate_count=len(qualifying),
                reason=_PASS_REASON[match_pass],
                match_criteria=_criteria_for(match_pass, line, winner, tolerance),
            )
            logger.info("soa_line_pass_matched", extra={
                "soa_line_ref": line.ref,
                "invoice_ref": winner.ref,
                "pass_used": int(match_pass),
                "candidate_count": len(qualifying),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })
            return result

        logger.info("soa_line_no_pass_matched", extra={
            "soa_line_ref": line.ref,
            "doc_number": line.doc_number,
            "pool_size": len(pool),
            "partial_enabled": allow_partial,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return MatchResult(
            line=line,
            matched_invoice=None,
            pass_used=None,
            difference=None,
            candidate_count=0,
            reason=REASON_NO_MATCH,
        )


def _difference_for(
    match_pass: MatchPass,
    line: CanonicalSoaLine,
    invoice: CanonicalInvoice,
) -> MatchDifference | None:
    days = _day_delta(line, invoice)
    if match_pass is MatchPass.DATE_TOLERANCE:
        return MatchDifference(amount=Decimal("0"), days=days or 0)
    if match_pass is MatchPass.AMOUNT_TOLERANCE:
        return MatchDifference(
            amount=abs(line.amount - invoice.total_amount),
            days=days or 0,
        )
    if match_pass is MatchPass.PARTIAL:
        return MatchDifference(
            amount=invoice.total_amount - line.amount,
            days=days or 0,
        )
    return None


def _criteria_for(
    match_pass: MatchPass,
    line: CanonicalSoaLine,
    invoice: CanonicalInvoice,
    tolerance: MatchTolerance,
) -> dict[str, Any]:
    criteria: dict[str, Any] = {
        "invoice_number": match_pass is not MatchPass.FUZZY_DOCUMENT,
        "amount": match_pass in (
            MatchPass.EXACT, MatchPass.DATE_TOLERANCE, MatchPass.FUZZY_DOCUMENT,
        ),
        "currency": True,
        "date": _day_delta(line, invoice) == 0,
    }
    if match_pass is MatchPass.DATE_TOLERANCE:
        criteria["date_tolerance_days"] = tolerance.date_tolerance_days
    elif match_pass is MatchPass.FUZZY_DOCUMENT:
        criteria["fuzzy_document"] = True
    elif match_pass is MatchPass.AMOUNT_TOLERANCE:
        criteria["amount_tolerance"] = str(tolerance.amount_absolute)
        criteria["amount_relative_tolerance"] = str(tolerance.amount_relative)
    elif match_pass is MatchPass.PARTIAL:
        criteria["partial_match"] = True
        criteria["remaining_amount"] = str(invoice.total_amount - line.amount)
    return criteria
