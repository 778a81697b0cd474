"""
recon_services.persistence -- Writes a reconciliation report to storage.

Responsibility:
    Persist one ``ReconciliationReport`` for a case: a ``soa_matches`` row
    per match (status ``pending``), a ``soa_discrepancies`` row per
    discrepancy (status ``open``), and the resulting status on each
    ``soa_items`` row the report refers to.

Architecture position:
    Services -- imperative shell over the kernel models.  Reads nothing
    from the engines beyond the frozen report.

Invariants enforced:
    - Storage constraint failures surface as typed PersistenceError
      subclasses via the closed StorageErrorCode lookup; unknown failures
      fall back to the generic PersistenceError.
    - Every discrepancy row has a description (NOT NULL; the engine type
      guarantees it is non-empty).

Failure modes:
    - DuplicateMatchError: the case already has a match for a line or an
      invoice in this report.
    - MissingDescriptionError / InvalidEnumValueError: constraint failures
      that the typed report should make impossible.

Audit relevance:
    Every row carries the run id and ``created_by_id`` of the actor who
    recorded the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recon_engines.discrepancy import Discrepancy
from recon_engines.matching import MatchResult
from recon_engines.report import ReconciliationReport
from recon_kernel.domain.acknowledgement import (
    DiscrepancyStatus,
    MatchStatus,
    SoaItemStatus,
)
from recon_kernel.exceptions import StorageErrorCode, map_storage_error
from recon_kernel.logging_config import get_logger
from recon_kernel.models.reconciliation import SoaDiscrepancyModel, SoaMatchModel
from recon_kernel.models.statement import SoaItemModel

logger = get_logger("services.persistence")

# PostgreSQL SQLSTATE codes for integrity violations
_SQLSTATE_CODES: dict[str, StorageErrorCode] = {
    "23505": StorageErrorCode.UNIQUE_VIOLATION,
    "23502": StorageErrorCode.NOT_NULL_VIOLATION,
    "23514": StorageErrorCode.CHECK_VIOLATION,
    "23503": StorageErrorCode.FOREIGN_KEY_VIOLATION,
}

# SQLite reports the constraint class in the message text
_MESSAGE_PREFIXES: tuple[tuple[str, StorageErrorCode], ...] = (
    ("UNIQUE constraint failed", StorageErrorCode.UNIQUE_VIOLATION),
    ("NOT NULL constraint failed", StorageErrorCode.NOT_NULL_VIOLATION),
    ("CHECK constraint failed", StorageErrorCode.CHECK_VIOLATION),
    ("FOREIGN KEY constraint failed", StorageErrorCode.FOREIGN_KEY_VIOLATION),
)


def storage_error_code(exc: IntegrityError) -> StorageErrorCode:
    """Classify a driver integrity error into the closed StorageErrorCode set."""
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _SQLSTATE_CODES:
        return _SQLSTATE_CODES[sqlstate]
    message = str(orig)
    for prefix, code in _MESSAGE_PREFIXES:
        if prefix in message:
            return code
    return StorageErrorCode.UNKNOWN


@dataclass(frozen=True)
class RecordedReconciliation:
    """Ids of the rows written for one report."""

    case_id: UUID
    run_id: str
    match_ids: tuple[UUID, ...]
    discrepancy_ids: tuple[UUID, ...]
    items_updated: int


def _item_id(line_ref: str | None) -> UUID | None:
    if not line_ref:
        return None
    try:
        return UUID(line_ref)
    except ValueError:
        return None


class ReconciliationRecorder:
    """
    Persists reconciliation reports.

    Contract:
        Writes inside the caller's session and flushes; the caller owns
        the transaction (see ``recon_kernel.db.engine.session_scope``).
    Guarantees:
        - All rows of one report are flushed together; on a constraint
          failure the session is rolled back and a typed error is raised.
    Non-goals:
        - Does not decide whether a report should be recorded twice.
    """

    def __init__(self, session: Session):
        self._session = session

    def record(
        self,
        report: ReconciliationReport,
        case_id: UUID,
        actor_id: UUID,
    ) -> RecordedReconciliation:
        """Write the report's matches and discrepancies for a case."""
        logger.info("reconciliation_record_started", extra={
            "case_id": str(case_id),
            "run_id": report.run_id,
            "match_count": len(report.matches),
            "discrepancy_count": len(report.discrepancies),
        })

        match_rows: dict[str, SoaMatchModel] = {}
        for result in report.matches:
            row = self._match_row(result, report.run_id, case_id, actor_id)
            self._session.add(row)
            match_rows[result.soa_line_ref] = row

        discrepancy_rows: list[SoaDiscrepancyModel] = []
        for discrepancy in report.discrepancies:
            match_row = match_rows.get(discrepancy.soa_line_ref or "")
            row = self._discrepancy_row(
                discrepancy, report.run_id, case_id, actor_id, match_row,
            )
            self._session.add(row)
            discrepancy_rows.append(row)

        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            code = storage_error_code(exc)
            logger.warning("reconciliation_record_failed", extra={
                "case_id": str(case_id),
                "run_id": report.run_id,
                "storage_error_code": code.value,
            })
            raise map_storage_error(code, str(exc.orig)) from exc

        items_updated = self._mark_items(report, match_rows)
        self._session.flush()

        recorded = RecordedReconciliation(
            case_id=case_id,
            run_id=report.run_id,
            match_ids=tuple(row.id for row in match_rows.values()),
            discrepancy_ids=tuple(row.id for row in discrepancy_rows),
            items_updated=items_updated,
        )
        logger.info("reconciliation_recorded", extra={
            "case_id": str(case_id),
            "run_id": report.run_id,
            "match_count": len(recorded.match_ids),
            "discrepancy_count": len(recorded.discrepancy_ids),
            "items_updated": items_updated,
        })
        return recorded

    def _match_row(
        self,
        result: MatchResult,
        run_id: str,
        case_id: UUID,
        actor_id: UUID,
    ) -> SoaMatchModel:
        line = result.line
        invoice = result.matched_invoice
        diff = result.difference
        return SoaMatchModel(
            case_id=case_id,
            run_id=run_id,
            soa_line_ref=result.soa_line_ref,
            invoice_ref=result.invoice_ref,
            match_pass=int(result.pass_used),
            match_type=result.match_type.value,
            is_exact_match=result.is_exact_match,
            match_confidence=result.confidence,
            match_score=result.match_score,
            candidate_count=result.candidate_count,
            match_criteria=dict(result.match_criteria),
            soa_amount=line.amount,
            invoice_amount=invoice.total_amount,
            amount_difference=diff.amount if diff else line.amount - invoice.total_amount,
            soa_date=line.date,
            invoice_date=invoice.invoice_date,
            date_difference_days=diff.days if diff else None,
            status=MatchStatus.PENDING.value,
            created_by_id=actor_id,
        )

    def _discrepancy_row(
        self,
        discrepancy: Discrepancy,
        run_id: str,
        case_id: UUID,
        actor_id: UUID,
        match_row: SoaMatchModel | None,
    ) -> SoaDiscrepancyModel:
        return SoaDiscrepancyModel(
            case_id=case_id,
            run_id=run_id,
            match=match_row,
            soa_line_ref=discrepancy.soa_line_ref,
            candidate_invoice_ref=discrepancy.candidate_invoice_ref,
            discrepancy_type=discrepancy.discrepancy_type.value,
            severity=discrepancy.severity.value,
            description=discrepancy.description,
            difference_amount=discrepancy.difference_amount,
            difference_days=discrepancy.difference_days,
            details=dict(discrepancy.details) if discrepancy.details else None,
            status=DiscrepancyStatus.OPEN.value,
            created_by_id=actor_id,
        )

    def _mark_items(
        self,
        report: ReconciliationReport,
        match_rows: dict[str, SoaMatchModel],
    ) -> int:
        flagged = {d.soa_line_ref for d in report.discrepancies if d.soa_line_ref}
        statuses: dict[str, SoaItemStatus] = {}
        for line_ref in match_rows:
            statuses[line_ref] = (
                SoaItemStatus.DISCREPANCY if line_ref in flagged else SoaItemStatus.MATCHED
            )
        for line_ref in flagged - set(match_rows):
            statuses[line_ref] = SoaItemStatus.DISCREPANCY

        updated = 0
        for line_ref, status in statuses.items():
            item_id = _item_id(line_ref)
            if item_id is None:
                continue
            item = self._session.get(SoaItemModel, item_id)
            if item is None:
                continue
            item.status = status.value
            updated += 1
        return updated
