"""
Configuration Validator (``recon_config.validator``).

Responsibility
--------------
Validates a parsed ``MatchingPolicy`` before it is handed to the engines.

Invariants enforced
-------------------
* ``date_tolerance_days`` is a non-negative integer.
* Amount tolerances are finite and non-negative; the relative tolerance
  is at most 1.
* ``amount_tolerance_rule`` is one of ``either`` / ``stricter``.
* ``config_id`` is non-empty and ``version`` is at least 1.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the policy
  MUST NOT be used.
* Validation warnings  -> usable, but worth a review.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from recon_config.schema import AMOUNT_TOLERANCE_RULES, MatchingPolicy

# Windows wider than this are allowed but almost always a typo
_WIDE_DATE_WINDOW_DAYS = 31


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_matching_policy(policy: MatchingPolicy) -> ConfigValidationResult:
    """Validate a matching policy. A policy with errors MUST NOT be used."""
    result = ConfigValidationResult()

    if not policy.config_id.strip():
        result.add_error("config_id must not be empty")
    if policy.version < 1:
        result.add_error(f"version must be >= 1, got {policy.version}")

    if policy.date_tolerance_days < 0:
        result.add_error(
            f"date_tolerance_days must be >= 0, got {policy.date_tolerance_days}"
        )
    elif policy.date_tolerance_days > _WIDE_DATE_WINDOW_DAYS:
        result.add_warning(
            f"date_tolerance_days of {policy.date_tolerance_days} is unusually wide"
        )

    _validate_tolerance(
        policy.amount_absolute_tolerance, "amount_absolute_tolerance", result,
    )
    _validate_tolerance(
        policy.amount_relative_tolerance, "amount_relative_tolerance", result,
        upper=Decimal("1"),
    )

    if policy.amount_tolerance_rule not in AMOUNT_TOLERANCE_RULES:
        result.add_error(
            f"amount_tolerance_rule must be one of {list(AMOUNT_TOLERANCE_RULES)}, "
            f"got {policy.amount_tolerance_rule!r}"
        )

    return result


def _validate_tolerance(
    value: Decimal,
    name: str,
    result: ConfigValidationResult,
    upper: Decimal | None = None,
) -> None:
    if not value.is_finite():
        result.add_error(f"{name} must be finite, got {value}")
        return
    if value < 0:
        result.add_error(f"{name} must be >= 0, got {value}")
    if upper is not None and value > upper:
        result.add_error(f"{name} must be <= {upper}, got {value}")
