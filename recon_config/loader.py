"""
Configuration Loader (``recon_config.loader``).

Responsibility
--------------
Loads a matching configuration set from a YAML file and parses it into a
frozen ``MatchingPolicy``.  This is internal tooling: runtime callers go
through ``recon_config.get_active_config()``.

Invariants enforced
-------------------
* Decimal tolerances are parsed from their string form; YAML floats are
  converted through ``str`` so ``0.005`` stays exact.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  YAML content for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unparseable values  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from recon_config.schema import MatchingPolicy


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    """Parse a Decimal from YAML (string, int or float)."""
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a decimal, got a boolean")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{key}: cannot parse decimal from {value!r}") from exc


def parse_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    return value


def parse_matching_policy(data: dict[str, Any], checksum: str = "") -> MatchingPolicy:
    """
    Build a ``MatchingPolicy`` from a parsed YAML document.

    Keys absent from the ``matching`` section take the built-in defaults.
    """
    defaults = MatchingPolicy()
    matching = data.get("matching") or {}
    if not isinstance(matching, dict):
        raise ValueError("matching: expected a mapping")

    return MatchingPolicy(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=parse_int(data.get("version", defaults.version), "version"),
        description=str(data.get("description", "")),
        date_tolerance_days=parse_int(
            matching.get("date_tolerance_days", defaults.date_tolerance_days),
            "matching.date_tolerance_days",
        ),
        amount_absolute_tolerance=parse_decimal(
            matching.get("amount_absolute_tolerance", defaults.amount_absolute_tolerance),
            "matching.amount_absolute_tolerance",
        ),
        amount_relative_tolerance=parse_decimal(
            matching.get("amount_relative_tolerance", defaults.amount_relative_tolerance),
            "matching.amount_relative_tolerance",
        ),
        amount_tolerance_rule=str(
            matching.get("amount_tolerance_rule", defaults.amount_tolerance_rule)
        ).strip().lower(),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_matching_policy(path: Path) -> MatchingPolicy:
    """Load and parse one configuration set file."""
    data = load_yaml_file(path)
    return parse_matching_policy(data, checksum=compute_checksum(data))
