"""
Config -> Engine Bridges.

Functions that convert a validated ``MatchingPolicy`` into engine inputs.
These live in recon_config (the producer) because the engines must NEVER
import recon_config.

Usage:
    from recon_config import get_active_config
    from recon_config.bridges import build_match_tolerance

    tolerance = build_match_tolerance(get_active_config())
    orchestrator = ReconciliationOrchestrator(source, tolerance=tolerance)
"""

from __future__ import annotations

from recon_config.schema import MatchingPolicy
from recon_engines.matching import AmountToleranceRule, MatchTolerance


def build_match_tolerance(policy: MatchingPolicy) -> MatchTolerance:
    """Build the engine's MatchTolerance from a matching policy."""
    return MatchTolerance(
        date_tolerance_days=policy.date_tolerance_days,
        amount_absolute=policy.amount_absolute_tolerance,
        amount_relative=policy.amount_relative_tolerance,
        amount_rule=AmountToleranceRule(policy.amount_tolerance_rule),
    )
