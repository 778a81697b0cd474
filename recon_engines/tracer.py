"""
recon_engines.tracer -- RECON_ENGINE_TRACE records for matching engines.

Responsibility:
    ``@traced_engine`` wraps an engine entry point and logs one
    RECON_ENGINE_TRACE record per call: engine name and version, a
    fingerprint of the reconciliation inputs, the size of any pool-like
    input, a short outcome summary and the duration.

Architecture position:
    Engines -- infrastructure support for the pure matching layer.
    Emits a log record only; never touches the database.

Invariants enforced:
    - Replay safety: the fingerprint depends only on input values.
      Decimals keep their scale ("100.00" differs from "100.0"), dates are
      ISO strings, enums render their value and dataclasses render their
      fields in declaration order.
    - Engine purity: inputs and the return value are read, never changed.

Failure modes:
    - A fingerprint field missing from kwargs is recorded as "null".
    - Engines must be called with keyword arguments for their inputs to
      be fingerprinted; positional arguments are not seen.

Usage:
    @traced_engine(
        "soa_matching", "1.0",
        fingerprint_fields=("line", "pool"),
        summarize=lambda result: {"pass_used": result.pass_used},
    )
    def match_line(self, line, pool, options=None):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("recon_kernel.engines.tracer")

FINGERPRINT_LENGTH = 16


def _canonicalize(value: Any) -> str:
    """Stable text form of an engine input."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return _canonicalize(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        inner = ",".join(
            f"{f.name}:{_canonicalize(getattr(value, f.name))}"
            for f in dataclasses.fields(value)
        )
        return f"{type(value).__name__}({inner})"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """SHA-256 over the named keyword inputs, truncated to 16 hex chars."""
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def _input_sizes(fingerprint_fields: tuple[str, ...], kwargs: dict[str, Any]) -> dict[str, int]:
    # e.g. pool -> pool_size
    return {
        f"{name}_size": len(kwargs[name])
        for name in fingerprint_fields
        if isinstance(kwargs.get(name), (list, tuple))
    }


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], Mapping[str, Any]] | None = None,
) -> Callable:
    """Decorator that emits RECON_ENGINE_TRACE for an engine call.

    Args:
        engine_name: Engine identifier (e.g., "soa_matching").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Keyword argument names hashed into the
            input fingerprint.
        summarize: Maps the engine's return value to the ``outcome``
            fields of the trace (pass used, discrepancy type, ...).
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "RECON_ENGINE_TRACE",
                extra={
                    "trace_type": "RECON_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "input_sizes": _input_sizes(fingerprint_fields, kwargs),
                    "outcome": dict(summarize(result)) if summarize else {},
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
