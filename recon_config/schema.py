"""
Configuration schema (``recon_config.schema``).

Responsibility
--------------
Frozen dataclasses describing a parsed matching configuration set.  The
schema carries no behaviour beyond defaults; parsing lives in
``recon_config.loader`` and checks in ``recon_config.validator``.

Architecture position
---------------------
**Config layer** -- pure data.  No dependency on kernel or engines.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

AMOUNT_TOLERANCE_RULES: tuple[str, ...] = ("either", "stricter")


@dataclass(frozen=True)
class MatchingPolicy:
    """
    Tolerances for the widening matching passes.

    ``MatchingPolicy()`` built in code carries the production defaults, so
    callers that never load a YAML set still match the same way.
    """

    config_id: str = "builtin-default"
    version: int = 1
    description: str = ""
    date_tolerance_days: int = 7
    amount_absolute_tolerance: Decimal = Decimal("1.00")
    amount_relative_tolerance: Decimal = Decimal("0.005")
    amount_tolerance_rule: str = "either"
    checksum: str = ""
