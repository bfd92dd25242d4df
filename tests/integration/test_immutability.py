"""Settled and historical records cannot be modified."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from tutor_payroll.models import (
    AuditLog,
    ImmutableRecordError,
    Invoice,
    InvoiceLine,
    PayPeriod,
    SessionHistory,
)
from tutor_payroll.services import ApprovalService, PayrollService

WEEK_START = date(2024, 6, 3)


async def settled_week(session, admin, assignment, make_session) -> Invoice:
    """Approve a session and lock the week."""
    tutoring_session = await make_session(assignment)
    assert (await ApprovalService(session).approve(tutoring_session.id, admin.id)).ok
    assert (await PayrollService(session).lock_pay_period(WEEK_START, admin.id)).ok
    await session.commit()
    return (await session.execute(select(Invoice))).scalar_one()


class TestInvoiceImmutability:
    """Invoices and invoice lines are append-only."""

    async def test_cannot_update_invoice_total(self, session, admin, assignment, make_session):
        invoice = await settled_week(session, admin, assignment, make_session)
        invoice_id = invoice.id

        invoice.total_amount = Decimal("1.00")
        with pytest.raises(ImmutableRecordError):
            await session.flush()
        await session.rollback()

        stored = await session.get(Invoice, invoice_id, populate_existing=True)
        assert stored.total_amount == Decimal("300.00")

    async def test_cannot_update_invoice_line(self, session, admin, assignment, make_session):
        await settled_week(session, admin, assignment, make_session)
        line = (await session.execute(select(InvoiceLine))).scalar_one()

        line.amount = Decimal("0.01")
        with pytest.raises(ImmutableRecordError) as exc_info:
            await session.flush()

        assert exc_info.value.entity_type == "invoice_line"
        assert exc_info.value.operation == "update"
        await session.rollback()

    async def test_cannot_delete_invoice(self, session, admin, assignment, make_session):
        invoice = await settled_week(session, admin, assignment, make_session)

        await session.delete(invoice)
        with pytest.raises(ImmutableRecordError):
            await session.flush()
        await session.rollback()


class TestHistoryImmutability:
    async def test_cannot_update_history_entry(self, session, admin, assignment, make_session):
        tutoring_session = await make_session(assignment)
        await ApprovalService(session).approve(tutoring_session.id, admin.id)
        entry = (await session.execute(select(SessionHistory))).scalar_one()

        entry.change_type = "reject"
        with pytest.raises(ImmutableRecordError):
            await session.flush()
        await session.rollback()

    async def test_cannot_delete_audit_entry(self, session, admin, assignment, make_session):
        tutoring_session = await make_session(assignment)
        await ApprovalService(session).approve(tutoring_session.id, admin.id)
        audit = (await session.execute(select(AuditLog))).scalar_one()

        await session.delete(audit)
        with pytest.raises(ImmutableRecordError):
            await session.flush()
        await session.rollback()


class TestPayPeriodImmutability:
    """A LOCKED pay period never changes again."""

    async def test_cannot_reopen_locked_period(self, session, admin, assignment, make_session):
        await settled_week(session, admin, assignment, make_session)
        period = (await session.execute(select(PayPeriod))).scalar_one()
        period_id = period.id

        period.status = "OPEN"
        with pytest.raises(ImmutableRecordError):
            await session.flush()
        await session.rollback()

        stored = await session.get(PayPeriod, period_id, populate_existing=True)
        assert stored.status == "LOCKED"

    async def test_cannot_delete_period(self, session, admin):
        assert (await PayrollService(session).lock_pay_period(WEEK_START, admin.id)).ok
        period = (await session.execute(select(PayPeriod))).scalar_one()

        await session.delete(period)
        with pytest.raises(ImmutableRecordError):
            await session.flush()
        await session.rollback()
