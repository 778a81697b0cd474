"""
Typed Exception Hierarchy for the Reconciliation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Reconciliation callers must react differently to bad data and to bad
configuration. A malformed statement line is recovered locally (it becomes
a discrepancy and the run continues); a malformed options mapping is a
caller bug and must stop the run before any line is processed. Catching by
message text cannot make that distinction reliably, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        line = to_canonical_soa_line(raw)
    except ShapeError as e:
        discrepancy = classifier.classify_shape_error(e, e.record_ref)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ReconciliationKernelError (base)
    |
    +-- ShapeError
    +-- InvalidOptionsError
    |
    +-- RunStateError
    |   +-- InvalidRunTransitionError
    |   +-- ReportFrozenError
    |
    +-- AcknowledgementError
    |   +-- MatchNotFoundError
    |   +-- DiscrepancyNotFoundError
    |   +-- InvalidAcknowledgementTransitionError
    |   +-- SignOffBlockedError
    |   +-- AcknowledgementAlreadyExistsError
    |
    +-- PersistenceError
    |   +-- DuplicateMatchError
    |   +-- MissingDescriptionError
    |   +-- InvalidEnumValueError
    |
    +-- ConfigError
        +-- ConfigNotFoundError
        +-- ConfigValidationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-------------------------------------
Input           | SHAPE_ERROR                   | Raw record missing/mistyped field
                | INVALID_OPTIONS               | Unknown option key or bad value
----------------|-------------------------------|-------------------------------------
Run state       | INVALID_RUN_TRANSITION        | Orchestrator state machine violated
                | REPORT_FROZEN                 | Mutation after aggregation
----------------|-------------------------------|-------------------------------------
Acknowledgement | MATCH_NOT_FOUND               | Match id does not exist
                | DISCREPANCY_NOT_FOUND         | Discrepancy id does not exist
                | INVALID_ACK_TRANSITION        | Confirm/dispute on a decided row
                | SIGN_OFF_BLOCKED              | Open error-severity discrepancies
                | ACKNOWLEDGEMENT_EXISTS        | Statement already signed off
----------------|-------------------------------|-------------------------------------
Persistence     | PERSISTENCE_ERROR             | Unclassified storage failure
                | DUPLICATE_MATCH               | Second match row for one SOA item
                | MISSING_DESCRIPTION           | NOT NULL description violated
                | INVALID_ENUM_VALUE            | CHECK constraint on an enum column
----------------|-------------------------------|-------------------------------------
Config          | CONFIG_NOT_FOUND              | No configuration set with that name
                | CONFIG_VALIDATION_FAILED      | Configuration values out of range

===============================================================================
"""

from __future__ import annotations

from enum import Enum


class ReconciliationKernelError(Exception):
    """
    Base exception for all reconciliation kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RECONCILIATION_KERNEL_ERROR"


# Input errors


class ShapeError(ReconciliationKernelError):
    """
    A raw storage record cannot be mapped onto the canonical shape.

    Fatal for that one record only: the orchestrator records a NO_MATCH
    discrepancy for the line and continues with the rest of the statement.
    """

    code: str = "SHAPE_ERROR"

    def __init__(
        self,
        record_kind: str,
        field: str,
        reason: str,
        record_ref: str | None = None,
    ):
        self.record_kind = record_kind
        self.field = field
        self.reason = reason
        self.record_ref = record_ref
        ref = f" {record_ref}" if record_ref else ""
        super().__init__(f"Malformed {record_kind}{ref}: field {field!r} {reason}")


class InvalidOptionsError(ReconciliationKernelError):
    """
    Caller-supplied match options are malformed.

    Fatal to the whole reconcile() call; raised before any line is matched.
    """

    code: str = "INVALID_OPTIONS"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid match option {key!r}: {reason}")


# Run state errors


class RunStateError(ReconciliationKernelError):
    """Base exception for reconciliation run lifecycle errors."""

    code: str = "RUN_STATE_ERROR"


class InvalidRunTransitionError(RunStateError):
    """The orchestrator was asked to move to a state it cannot reach."""

    code: str = "INVALID_RUN_TRANSITION"

    def __init__(self, run_id: str, from_state: str, to_state: str):
        self.run_id = run_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Run {run_id} cannot transition from {from_state} to {to_state}"
        )


class ReportFrozenError(RunStateError):
    """A result was appended after the report was aggregated."""

    code: str = "REPORT_FROZEN"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Report for run {run_id} is frozen")


# Acknowledgement errors


class AcknowledgementError(ReconciliationKernelError):
    """Base exception for human confirm/dispute/sign-off errors."""

    code: str = "ACKNOWLEDGEMENT_ERROR"


class MatchNotFoundError(AcknowledgementError):
    """Match row with the given id was not found."""

    code: str = "MATCH_NOT_FOUND"

    def __init__(self, match_id: str):
        self.match_id = match_id
        super().__init__(f"Match not found: {match_id}")


class DiscrepancyNotFoundError(AcknowledgementError):
    """Discrepancy row with the given id was not found."""

    code: str = "DISCREPANCY_NOT_FOUND"

    def __init__(self, discrepancy_id: str):
        self.discrepancy_id = discrepancy_id
        super().__init__(f"Discrepancy not found: {discrepancy_id}")


class InvalidAcknowledgementTransitionError(AcknowledgementError):
    """A decision was recorded on a row whose status does not allow it."""

    code: str = "INVALID_ACK_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{entity_type} {entity_id} cannot move from {from_status} to {to_status}"
        )


class SignOffBlockedError(AcknowledgementError):
    """Statement sign-off attempted while error-severity discrepancies are open."""

    code: str = "SIGN_OFF_BLOCKED"

    def __init__(self, case_id: str, blocking_count: int):
        self.case_id = case_id
        self.blocking_count = blocking_count
        super().__init__(
            f"Case {case_id} has {blocking_count} open error-severity "
            f"discrepancies; sign-off is blocked"
        )


class AcknowledgementAlreadyExistsError(AcknowledgementError):
    """The statement for this case was already signed off."""

    code: str = "ACKNOWLEDGEMENT_EXISTS"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case {case_id} already has an acknowledgement")


# Persistence errors


class PersistenceError(ReconciliationKernelError):
    """Storage-layer failure that is not otherwise classified."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, message: str, constraint: str | None = None):
        self.constraint = constraint
        super().__init__(message)


class DuplicateMatchError(PersistenceError):
    """Second match row written for the same SOA item."""

    code: str = "DUPLICATE_MATCH"


class MissingDescriptionError(PersistenceError):
    """Discrepancy row written without a description."""

    code: str = "MISSING_DESCRIPTION"


class InvalidEnumValueError(PersistenceError):
    """A CHECK constraint on a closed enumeration column rejected a value."""

    code: str = "INVALID_ENUM_VALUE"


class StorageErrorCode(str, Enum):
    """Closed set of storage failure classes the persistence layer recognises."""

    UNIQUE_VIOLATION = "unique_violation"
    NOT_NULL_VIOLATION = "not_null_violation"
    CHECK_VIOLATION = "check_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    UNKNOWN = "unknown"


_STORAGE_ERROR_MAP: dict[StorageErrorCode, type[PersistenceError]] = {
    StorageErrorCode.UNIQUE_VIOLATION: DuplicateMatchError,
    StorageErrorCode.NOT_NULL_VIOLATION: MissingDescriptionError,
    StorageErrorCode.CHECK_VIOLATION: InvalidEnumValueError,
    StorageErrorCode.FOREIGN_KEY_VIOLATION: PersistenceError,
    StorageErrorCode.UNKNOWN: PersistenceError,
}


def map_storage_error(
    code: StorageErrorCode,
    message: str,
    constraint: str | None = None,
) -> PersistenceError:
    """Build the typed exception for a storage error code.

    Every member of StorageErrorCode has an entry; anything not covered
    falls back to the generic PersistenceError.
    """
    exc_type = _STORAGE_ERROR_MAP.get(code, PersistenceError)
    return exc_type(message, constraint=constraint)


# Config errors


class ConfigError(ReconciliationKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigNotFoundError(ConfigError):
    """No configuration set exists with the requested name."""

    code: str = "CONFIG_NOT_FOUND"

    def __init__(self, name: str, config_dir: str):
        self.name = name
        self.config_dir = config_dir
        super().__init__(f"Configuration set {name!r} not found in {config_dir}")


class ConfigValidationError(ConfigError):
    """Configuration values failed validation."""

    code: str = "CONFIG_VALIDATION_FAILED"

    def __init__(self, config_id: str, errors: list[str]):
        self.config_id = config_id
        self.errors = errors
        super().__init__(
            f"Configuration {config_id!r} failed validation: {'; '.join(errors)}"
        )
