"""
recon_services.sources -- Collaborators that supply raw reconciliation inputs.

Responsibility:
    Fetch the raw ledger invoices for a company and the raw statement lines
    for a statement.  Records are returned in storage shape; the
    orchestrator passes every one through the canonical adapter.

Architecture position:
    Services -- the I/O boundary in front of the pure engines.

Invariants enforced:
    - Pool order and line order are deterministic for identical storage
      contents (the matcher's tie-break depends on pool order).
    - Returned sequences are copies; callers may not mutate storage
      through them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from recon_kernel.logging_config import get_logger
from recon_kernel.models.ledger import SoaInvoiceModel
from recon_kernel.models.statement import SoaItemModel

logger = get_logger("services.sources")


class ReconciliationSource(Protocol):
    """What the orchestrator needs from storage."""

    def get_invoices_for_company(self, company_id: Any) -> Sequence[Mapping[str, Any]]:
        ...

    def get_soa_lines_for_statement(self, statement_id: Any) -> Sequence[Mapping[str, Any]]:
        ...


class InMemoryReconciliationSource:
    """
    Source backed by plain dicts, for tests and callers that already hold
    the records.

    Contract:
        Unknown company or statement ids yield an empty sequence.
    """

    def __init__(
        self,
        invoices_by_company: Mapping[Any, Sequence[Mapping[str, Any]]] | None = None,
        lines_by_statement: Mapping[Any, Sequence[Mapping[str, Any]]] | None = None,
    ):
        self._invoices = {
            str(k): list(v) for k, v in (invoices_by_company or {}).items()
        }
        self._lines = {
            str(k): list(v) for k, v in (lines_by_statement or {}).items()
        }

    def add_invoices(self, company_id: Any, invoices: Sequence[Mapping[str, Any]]) -> None:
        self._invoices.setdefault(str(company_id), []).extend(invoices)

    def add_lines(self, statement_id: Any, lines: Sequence[Mapping[str, Any]]) -> None:
        self._lines.setdefault(str(statement_id), []).extend(lines)

    def get_invoices_for_company(self, company_id: Any) -> list[Mapping[str, Any]]:
        return list(self._invoices.get(str(company_id), ()))

    def get_soa_lines_for_statement(self, statement_id: Any) -> list[Mapping[str, Any]]:
        return list(self._lines.get(str(statement_id), ()))


def _as_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class SqlReconciliationSource:
    """
    Source reading ``soa_invoices`` and ``soa_items`` through SQLAlchemy.

    Contract:
        Invoices are ordered by (invoice_date, invoice_num, id); lines by
        line_number.  Invoices with status ``void`` are never offered for
        matching.
    Non-goals:
        - Does not lock rows; reconciliation only reads.
    """

    EXCLUDED_INVOICE_STATUSES = ("void",)

    def __init__(self, session: Session, vendor_id: UUID | None = None):
        self._session = session
        self._vendor_id = vendor_id

    def get_invoices_for_company(self, company_id: Any) -> list[dict[str, Any]]:
        stmt = (
            select(SoaInvoiceModel)
            .where(SoaInvoiceModel.company_id == _as_uuid(company_id))
            .where(SoaInvoiceModel.status.not_in(self.EXCLUDED_INVOICE_STATUSES))
        )
        if self._vendor_id is not None:
            stmt = stmt.where(SoaInvoiceModel.vendor_id == self._vendor_id)
        stmt = stmt.order_by(
            SoaInvoiceModel.invoice_date,
            SoaInvoiceModel.invoice_num,
            SoaInvoiceModel.id,
        )
        rows = self._session.execute(stmt).scalars().all()
        logger.debug("ledger_invoices_loaded", extra={
            "company_id": str(company_id),
            "invoice_count": len(rows),
        })
        return [row.to_record() for row in rows]

    def get_soa_lines_for_statement(self, statement_id: Any) -> list[dict[str, Any]]:
        stmt = (
            select(SoaItemModel)
            .where(SoaItemModel.statement_id == _as_uuid(statement_id))
            .order_by(SoaItemModel.line_number)
        )
        rows = self._session.execute(stmt).scalars().all()
        logger.debug("statement_lines_loaded", extra={
            "statement_id": str(statement_id),
            "line_count": len(rows),
        })
        return [row.to_record() for row in rows]
