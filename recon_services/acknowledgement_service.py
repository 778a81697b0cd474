"""
recon_services.acknowledgement_service -- Human decisions on reconciliation output.

Responsibility:
    Record what people decide about a recorded reconciliation: confirm or
    dispute an automated match, resolve a discrepancy, and sign off the
    statement for a case.

Architecture position:
    Services -- imperative shell over the kernel models.  Timestamps come
    from the injected Clock; nothing here reads wall-clock time directly.

Invariants enforced:
    - Match and discrepancy status changes follow MATCH_TRANSITIONS and
      DISCREPANCY_TRANSITIONS.
    - A dispute (reject) always carries a reason.
    - Sign-off is refused while any unresolved error-severity discrepancy
      exists for the case; warning and info discrepancies never block.
    - One acknowledgement per case (service check + UNIQUE constraint).

Failure modes:
    - MatchNotFoundError / DiscrepancyNotFoundError for unknown ids.
    - InvalidAcknowledgementTransitionError for a decision on a row whose
      status does not allow it.
    - SignOffBlockedError, AcknowledgementAlreadyExistsError on sign-off.
    - ValueError for a blank rejection reason or unknown resolution action.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recon_engines.discrepancy import DiscrepancySeverity
from recon_engines.report import ReconciliationReport
from recon_kernel.domain.acknowledgement import (
    DISCREPANCY_TRANSITIONS,
    MATCH_TRANSITIONS,
    RESOLUTION_STATUS,
    UNRESOLVED_DISCREPANCY_STATUSES,
    DiscrepancyStatus,
    MatchStatus,
    ResolutionAction,
)
from recon_kernel.domain.clock import Clock, SystemClock
from recon_kernel.exceptions import (
    AcknowledgementAlreadyExistsError,
    DiscrepancyNotFoundError,
    InvalidAcknowledgementTransitionError,
    MatchNotFoundError,
    SignOffBlockedError,
)
from recon_kernel.logging_config import get_logger
from recon_kernel.models.reconciliation import (
    SoaAcknowledgementModel,
    SoaDiscrepancyModel,
    SoaMatchModel,
)

logger = get_logger("services.acknowledgement")


class AcknowledgementRecorder:
    """Records confirm / dispute / resolve / sign-off decisions."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    # =========================================================================
    # Matches
    # =========================================================================

    def confirm_match(self, match_id: UUID, user_id: UUID) -> SoaMatchModel:
        """Confirm an automated match."""
        model = self._load_match(match_id)
        self._check_match_transition(model, MatchStatus.CONFIRMED)

        model.status = MatchStatus.CONFIRMED.value
        model.confirmed_by = user_id
        model.confirmed_at = self._clock.now()
        model.updated_by_id = user_id
        self._session.flush()

        logger.info("soa_match_confirmed", extra={
            "match_id": str(match_id),
            "case_id": str(model.case_id),
            "actor_id": str(user_id),
        })
        return model

    def reject_match(self, match_id: UUID, user_id: UUID, reason: str) -> SoaMatchModel:
        """Dispute an automated match; a reason is mandatory."""
        if not reason or not reason.strip():
            raise ValueError("A rejection reason is required")

        model = self._load_match(match_id)
        self._check_match_transition(model, MatchStatus.REJECTED)

        model.status = MatchStatus.REJECTED.value
        model.rejected_by = user_id
        model.rejected_at = self._clock.now()
        model.rejection_reason = reason.strip()
        model.updated_by_id = user_id
        self._session.flush()

        logger.info("soa_match_rejected", extra={
            "match_id": str(match_id),
            "case_id": str(model.case_id),
            "actor_id": str(user_id),
        })
        return model

    # =========================================================================
    # Discrepancies
    # =========================================================================

    def resolve_discrepancy(
        self,
        discrepancy_id: UUID,
        user_id: UUID,
        action: ResolutionAction | str,
        notes: str | None = None,
    ) -> SoaDiscrepancyModel:
        """Record a reviewer's resolution of a discrepancy.

        ``corrected`` and ``ignored`` resolve it, ``waived`` waives it and
        ``escalated`` escalates it (an escalated discrepancy still blocks
        sign-off if it is error-severity).
        """
        action = ResolutionAction(action)
        model = self._load_discrepancy(discrepancy_id)
        current = DiscrepancyStatus(model.status)
        target = RESOLUTION_STATUS[action]

        if target not in DISCREPANCY_TRANSITIONS[current]:
            raise InvalidAcknowledgementTransitionError(
                "discrepancy", str(discrepancy_id), current.value, target.value,
            )

        model.status = target.value
        model.resolution_action = action.value
        model.resolution_notes = notes
        model.updated_by_id = user_id
        if target not in UNRESOLVED_DISCREPANCY_STATUSES:
            model.resolved_by = user_id
            model.resolved_at = self._clock.now()
        self._session.flush()

        logger.info("soa_discrepancy_resolved", extra={
            "discrepancy_id": str(discrepancy_id),
            "case_id": str(model.case_id),
            "action": action.value,
            "status": target.value,
            "actor_id": str(user_id),
        })
        return model

    # =========================================================================
    # Sign-off
    # =========================================================================

    def blocking_discrepancy_count(self, case_id: UUID) -> int:
        """Unresolved error-severity discrepancies for a case."""
        return self._session.execute(
            select(func.count(SoaDiscrepancyModel.id)).where(
                SoaDiscrepancyModel.case_id == case_id,
                SoaDiscrepancyModel.severity == DiscrepancySeverity.ERROR.value,
                SoaDiscrepancyModel.status.in_(
                    [s.value for s in UNRESOLVED_DISCREPANCY_STATUSES]
                ),
            )
        ).scalar_one()

    def sign_off(
        self,
        case_id: UUID,
        vendor_id: UUID,
        company_id: UUID,
        user_id: UUID,
        report: ReconciliationReport,
        notes: str | None = None,
    ) -> SoaAcknowledgementModel:
        """Acknowledge the statement for a case.

        Raises:
            AcknowledgementAlreadyExistsError: The case is already signed off.
            SignOffBlockedError: Error-severity discrepancies are unresolved.
        """
        existing = self._session.execute(
            select(SoaAcknowledgementModel).where(
                SoaAcknowledgementModel.case_id == case_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise AcknowledgementAlreadyExistsError(str(case_id))

        blocking = self.blocking_discrepancy_count(case_id)
        if blocking:
            logger.warning("soa_sign_off_blocked", extra={
                "case_id": str(case_id),
                "blocking_count": blocking,
            })
            raise SignOffBlockedError(str(case_id), blocking)

        summary = report.summary
        model = SoaAcknowledgementModel(
            case_id=case_id,
            vendor_id=vendor_id,
            company_id=company_id,
            acknowledged_by=user_id,
            acknowledged_at=self._clock.now(),
            acknowledgement_type=summary.acknowledgement_type.value,
            total_items=summary.total_items,
            matched_items=summary.matched_items,
            discrepancy_items=summary.discrepancy_items,
            unmatched_items=summary.unmatched_items,
            total_amount=summary.total_amount,
            matched_amount=summary.matched_amount,
            discrepancy_amount=summary.discrepancy_amount,
            unmatched_amount=summary.unmatched_amount,
            report_fingerprint=report.fingerprint,
            notes=notes,
            created_by_id=user_id,
        )
        self._session.add(model)
        try:
            self._session.flush()
        except IntegrityError as exc:
            # Concurrent sign-off for the same case
            self._session.rollback()
            raise AcknowledgementAlreadyExistsError(str(case_id)) from exc

        logger.info("soa_signed_off", extra={
            "case_id": str(case_id),
            "acknowledgement_type": summary.acknowledgement_type.value,
            "actor_id": str(user_id),
        })
        return model

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_match(self, match_id: UUID) -> SoaMatchModel:
        model = self._session.get(SoaMatchModel, match_id)
        if model is None:
            raise MatchNotFoundError(str(match_id))
        return model

    def _load_discrepancy(self, discrepancy_id: UUID) -> SoaDiscrepancyModel:
        model = self._session.get(SoaDiscrepancyModel, discrepancy_id)
        if model is None:
            raise DiscrepancyNotFoundError(str(discrepancy_id))
        return model

    def _check_match_transition(self, model: SoaMatchModel, target: MatchStatus) -> None:
        current = MatchStatus(model.status)
        if target not in MATCH_TRANSITIONS[current]:
            raise InvalidAcknowledgementTransitionError(
                "match", str(model.id), current.value, target.value,
            )
