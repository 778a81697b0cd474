"""
Pytest fixtures for the SOA reconciliation test suite.

Provides:
- Structured logging configuration and a ``captured_logs`` fixture
- In-memory SQLite database sessions (fresh schema per test)
- Deterministic clock and actor ids
- Builders for raw invoice / statement line records
"""

import json
import logging
from collections.abc import Generator
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from recon_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from recon_kernel.domain.canonical import CanonicalInvoice, CanonicalSoaLine
from recon_kernel.domain.clock import DeterministicClock
from recon_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture recon_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.reconcile("stmt-1", "co-1")
            logs = captured_logs()
            assert any(r["message"] == "reconciliation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("recon_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="function")
def session() -> Generator[Session, None, None]:
    """Provide a session on a fresh in-memory SQLite database.

    Every test gets its own schema, so nothing leaks between tests and
    services are free to commit or roll back.
    """
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    sess = get_session()
    yield sess
    try:
        sess.close()
    finally:
        reset_engine()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Record builders
# =============================================================================


def make_invoice(
    number: str = "INV-001",
    amount: str = "1000.00",
    currency: str = "USD",
    invoice_date: date | None = date(2025, 1, 15),
    ref: str | None = None,
) -> CanonicalInvoice:
    return CanonicalInvoice(
        invoice_number=number,
        total_amount=Decimal(amount),
        currency=currency,
        invoice_date=invoice_date,
        invoice_ref=ref or number,
    )


def make_line(
    doc: str = "INV-001",
    amount: str = "1000.00",
    currency: str = "USD",
    line_date: date | None = date(2025, 1, 15),
    **kwargs,
) -> CanonicalSoaLine:
    return CanonicalSoaLine(
        doc_number=doc,
        amount=Decimal(amount),
        currency=currency,
        date=line_date,
        **kwargs,
    )


def raw_invoice(
    number: str = "INV-001",
    amount="1000.00",
    currency: str = "USD",
    invoice_date="2025-01-15",
    record_id: str | None = None,
) -> dict:
    """Ledger record in storage field names."""
    return {
        "id": record_id or f"inv-{number}",
        "invoice_num": number,
        "amount": amount,
        "currency_code": currency,
        "invoice_date": invoice_date,
    }


def raw_line(
    doc: str = "INV-001",
    amount="1000.00",
    currency: str = "USD",
    line_date="2025-01-15",
    record_id: str | None = None,
    **extra,
) -> dict:
    """Statement line record in storage field names."""
    record = {
        "id": record_id or f"line-{doc}",
        "invoice_number": doc,
        "amount": amount,
        "currency_code": currency,
        "invoice_date": line_date,
    }
    record.update(extra)
    return record


@pytest.fixture
def invoice_factory():
    return make_invoice


@pytest.fixture
def line_factory():
    return make_line
