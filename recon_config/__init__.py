"""
recon_config -- single public entrypoint for matching configuration.

Responsibility:
    Provides the ONLY way to obtain matching configuration at runtime
    through ``get_active_config()``.  Returns a validated, frozen
    ``MatchingPolicy``.  YAML loading is internal tooling and never
    exposed to callers.

Architecture position:
    Configuration -- YAML-driven policy.  This package sits above
    ``recon_kernel`` and ``recon_engines`` and below ``recon_services``
    callers.  The kernel and engines MUST NEVER import from
    ``recon_config``; ``recon_config.bridges`` translates a policy into
    engine inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Validation: a policy with validation errors is never returned.
    - Deterministic checksum: the same YAML always yields the same checksum.

Failure modes:
    - ``ConfigNotFoundError`` -- no configuration set with the requested name.
    - ``ConfigValidationError`` -- unparseable or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``RECON_CONFIG_TRACE`` log entry containing the config_id, version,
    checksum and tolerances, tying each reconciliation run back to the
    configuration that governed its matching.
"""

from __future__ import annotations

import logging
from pathlib import Path

from recon_config.loader import load_matching_policy
from recon_config.schema import MatchingPolicy
from recon_config.validator import validate_matching_policy
from recon_kernel.exceptions import ConfigNotFoundError, ConfigValidationError

_logger = logging.getLogger("recon_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    name: str = "default",
    config_dir: Path | None = None,
) -> MatchingPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        name: Configuration set name (``<name>.yaml`` in the sets directory).
        config_dir: Override path to the configuration sets directory.
            Defaults to recon_config/sets/.

    Returns:
        A validated MatchingPolicy.

    Raises:
        ConfigNotFoundError: If no configuration set has that name.
        ConfigValidationError: If the set cannot be parsed or fails validation.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise ConfigNotFoundError(name, str(sets_dir))

    try:
        policy = load_matching_policy(path)
    except ValueError as exc:
        raise ConfigValidationError(name, [str(exc)]) from exc

    validation = validate_matching_policy(policy)
    if not validation.is_valid:
        raise ConfigValidationError(policy.config_id, validation.errors)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={
            "config_id": policy.config_id,
            "warning": warning,
        })

    _logger.info(
        "RECON_CONFIG_TRACE",
        extra={
            "trace_type": "RECON_CONFIG_TRACE",
            "config_id": policy.config_id,
            "config_version": policy.version,
            "checksum": policy.checksum,
            "date_tolerance_days": policy.date_tolerance_days,
            "amount_absolute_tolerance": str(policy.amount_absolute_tolerance),
            "amount_relative_tolerance": str(policy.amount_relative_tolerance),
            "amount_tolerance_rule": policy.amount_tolerance_rule,
        },
    )

    return policy


__all__ = ["MatchingPolicy", "get_active_config"]
