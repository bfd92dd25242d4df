"""Payroll service - weekly invoice generation and pay period locking."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tutor_payroll.calculators.line_builder import LineItemBuilder, invoice_number
from tutor_payroll.calculators.pay_periods import get_pay_period_range, get_pay_period_start
from tutor_payroll.calculators.types import InvoiceCandidate, LineCandidate
from tutor_payroll.database import transaction
from tutor_payroll.models import (
    Adjustment,
    Assignment,
    Invoice,
    InvoiceLine,
    PayPeriod,
    Student,
    TutoringSession,
    TutorProfile,
    utcnow,
)
from tutor_payroll.services.audit_log import (
    AuditContext,
    AuditEntry,
    AuditLogWriter,
    DatabaseAuditLogWriter,
)
from tutor_payroll.services.pay_period_service import PayPeriodService
from tutor_payroll.services.results import BusinessRuleViolation, ErrorCode, ServiceResult
from tutor_payroll.services.state_machine import (
    PayPeriodStateMachine,
    PayPeriodStatus,
    SessionStatus,
)

logger = logging.getLogger(__name__)


class PayrollService:
    """Service for settling a pay period.

    Operations:
    - generate_payroll_week: build and persist one invoice per tutor with pay
    - lock_pay_period: freeze the period, generating first if nothing exists
    - list_invoices: read back a week's invoices with their lines

    Both mutations take an exclusive row lock on the pay period, so concurrent
    generate/lock calls for the same week serialize on it.
    """

    def __init__(self, session: AsyncSession, audit_writer: AuditLogWriter | None = None):
        self.session = session
        self.audit_writer = audit_writer or DatabaseAuditLogWriter()
        self.pay_periods = PayPeriodService(session)

    async def generate_payroll_week(
        self,
        week_start: date | datetime | str,
        admin_id: UUID | None = None,
        context: AuditContext | None = None,
    ) -> ServiceResult[list[Invoice]]:
        """Generate invoices for the week containing ``week_start``.

        Fails with invoices_already_generated if any invoice exists for the
        week, then pay_period_locked if the period is LOCKED.
        """
        period_start = get_pay_period_start(week_start)
        try:
            async with transaction(self.session):
                period = await self.pay_periods.get_or_create_pay_period(
                    period_start, for_update=True
                )
                if await self._invoices_exist(period.period_start_date):
                    raise BusinessRuleViolation(ErrorCode.INVOICES_ALREADY_GENERATED)
                if period.is_locked:
                    raise BusinessRuleViolation(ErrorCode.PAY_PERIOD_LOCKED)

                await self._generate(period, admin_id, context)
        except BusinessRuleViolation as exc:
            logger.warning("Payroll generation for %s refused: %s", period_start, exc.code.value)
            return ServiceResult.failure(exc.code)

        invoices = await self.list_invoices(period_start)
        logger.info("Generated %d invoice(s) for week %s", len(invoices), period_start)
        return ServiceResult.success(invoices)

    async def lock_pay_period(
        self,
        week_start: date | datetime | str,
        admin_id: UUID,
        context: AuditContext | None = None,
    ) -> ServiceResult[PayPeriod]:
        """Lock the week, generating invoices first when none exist.

        Fails with pay_period_locked if already LOCKED and pending_sessions if
        any session in the week is still SUBMITTED.
        """
        period_start = get_pay_period_start(week_start)
        try:
            async with transaction(self.session):
                period = await self.pay_periods.get_or_create_pay_period(
                    period_start, for_update=True
                )
                if period.is_locked:
                    raise BusinessRuleViolation(ErrorCode.PAY_PERIOD_LOCKED)

                pending = await self._count_pending_sessions(period)
                if pending:
                    raise BusinessRuleViolation(
                        ErrorCode.PENDING_SESSIONS,
                        f"{pending} submitted session(s) in week {period_start}",
                    )

                generated = False
                if not await self._invoices_exist(period.period_start_date):
                    await self._generate(period, admin_id, context)
                    generated = True
                invoice_count = await self._count_invoices(period.period_start_date)

                PayPeriodStateMachine.validate_transition(period.status, PayPeriodStatus.LOCKED)
                period.status = PayPeriodStatus.LOCKED.value
                period.locked_at = utcnow()
                period.locked_by_user_id = admin_id
                await self.session.flush()

                await self.audit_writer.write(
                    self.session,
                    AuditEntry.build(
                        action="payroll.pay_period.lock",
                        entity_type="pay_period",
                        entity_id=period.id,
                        actor_user_id=admin_id,
                        context=context,
                        meta={
                            "weekStart": period_start.isoformat(),
                            "generated": generated,
                            "invoiceCount": invoice_count,
                        },
                    ),
                )
        except BusinessRuleViolation as exc:
            logger.warning("Lock of week %s refused: %s", period_start, exc.code.value)
            return ServiceResult.failure(exc.code)

        logger.info(
            "Locked week %s (generated=%s, invoices=%d)", period_start, generated, invoice_count
        )
        return ServiceResult.success(period)

    async def get_pay_period(self, week_start: date | datetime | str) -> PayPeriod | None:
        return await self.pay_periods.get_pay_period(week_start)

    async def list_invoices(self, week_start: date | datetime | str) -> list[Invoice]:
        """Invoices of the week with lines and tutor, ordered by tutor name."""
        period_start = get_pay_period_start(week_start)
        result = await self.session.execute(
            select(Invoice)
            .join(TutorProfile, TutorProfile.id == Invoice.tutor_id)
            .where(Invoice.period_start == period_start)
            .options(selectinload(Invoice.lines), selectinload(Invoice.tutor))
            .order_by(TutorProfile.full_name, Invoice.invoice_number)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def build_invoice_candidates(self, period: PayPeriod) -> list[InvoiceCandidate]:
        """Compute the invoices a generation run would persist, without writing.

        Each tutor with at least one APPROVED session in the window or one
        non-voided APPROVED adjustment in the period gets a candidate:
        SESSION lines by date and start time, then ADJUSTMENT lines by
        creation order.
        """
        period_range = get_pay_period_range(period.period_start_date)
        lines_by_tutor: dict[UUID, list[LineCandidate]] = defaultdict(list)

        session_rows = await self.session.execute(
            select(TutoringSession, Assignment, Student.full_name, TutorProfile.default_hourly_rate)
            .join(Assignment, Assignment.id == TutoringSession.assignment_id)
            .join(Student, Student.id == TutoringSession.student_id)
            .join(TutorProfile, TutorProfile.id == TutoringSession.tutor_id)
            .where(
                TutoringSession.status == SessionStatus.APPROVED.value,
                TutoringSession.date >= period_range.start,
                TutoringSession.date <= period_range.end,
            )
            .order_by(TutoringSession.date, TutoringSession.start_time, TutoringSession.id)
        )
        for tutoring_session, assignment, student_name, default_rate in session_rows.all():
            rate = (
                assignment.rate_override
                if assignment.rate_override is not None
                else default_rate
            )
            lines_by_tutor[tutoring_session.tutor_id].append(
                LineItemBuilder.create_session_line(
                    session_id=tutoring_session.id,
                    minutes=tutoring_session.duration_minutes,
                    rate=Decimal(rate),
                    subject=assignment.subject,
                    student_name=student_name,
                    session_date=tutoring_session.date,
                    start_time=tutoring_session.start_time,
                    end_time=tutoring_session.end_time,
                )
            )

        adjustment_rows = await self.session.execute(
            select(Adjustment)
            .where(
                Adjustment.pay_period_id == period.id,
                Adjustment.status == "APPROVED",
                Adjustment.voided_at.is_(None),
            )
            .order_by(Adjustment.created_at, Adjustment.id)
        )
        for adjustment in adjustment_rows.scalars().all():
            lines_by_tutor[adjustment.tutor_id].append(
                LineItemBuilder.create_adjustment_line(
                    adjustment_id=adjustment.id,
                    adjustment_type=adjustment.type,
                    amount=adjustment.amount,
                    reason=adjustment.reason,
                )
            )

        candidates: list[InvoiceCandidate] = []
        for tutor_id in sorted(lines_by_tutor, key=str):
            lines = lines_by_tutor[tutor_id]
            errors = LineItemBuilder.validate_line_signs(lines)
            if errors:
                raise ValueError(f"Invalid lines for tutor {tutor_id}: {'; '.join(errors)}")
            candidates.append(
                InvoiceCandidate(
                    tutor_id=tutor_id,
                    period_start=period_range.start,
                    period_end=period_range.end,
                    invoice_number=invoice_number(period_range.start, tutor_id),
                    lines=lines,
                )
            )
        return [c for c in candidates if not c.is_empty]

    async def _generate(
        self,
        period: PayPeriod,
        admin_id: UUID | None,
        context: AuditContext | None,
    ) -> list[Invoice]:
        """Persist invoices for the period. Caller holds the period row lock."""
        candidates = await self.build_invoice_candidates(period)

        invoices: list[Invoice] = []
        for candidate in candidates:
            invoice = Invoice(
                tutor_id=candidate.tutor_id,
                pay_period_id=period.id,
                period_start=candidate.period_start,
                period_end=candidate.period_end,
                invoice_number=candidate.invoice_number,
                total_amount=LineItemBuilder.calculate_total(candidate.lines),
                status="ISSUED",
            )
            self.session.add(invoice)
            await self.session.flush()

            for line_no, line in enumerate(candidate.lines, start=1):
                self.session.add(
                    InvoiceLine(
                        invoice_id=invoice.id,
                        line_no=line_no,
                        line_type=line.line_type.value,
                        session_id=line.session_id,
                        adjustment_id=line.adjustment_id,
                        description=line.description,
                        minutes=line.minutes,
                        rate=line.rate,
                        amount=line.amount,
                    )
                )
            invoices.append(invoice)
        await self.session.flush()

        await self.audit_writer.write(
            self.session,
            AuditEntry.build(
                action="payroll.generate",
                entity_type="pay_period",
                entity_id=period.id,
                actor_user_id=admin_id,
                context=context,
                meta={
                    "weekStart": period.period_start_date.isoformat(),
                    "invoiceCount": len(invoices),
                    "total": str(sum((i.total_amount for i in invoices), Decimal("0.00"))),
                },
            ),
        )
        return invoices

    async def _invoices_exist(self, period_start: date) -> bool:
        found = await self.session.scalar(
            select(Invoice.id).where(Invoice.period_start == period_start).limit(1)
        )
        return found is not None

    async def _count_invoices(self, period_start: date) -> int:
        count = await self.session.scalar(
            select(func.count()).select_from(Invoice).where(Invoice.period_start == period_start)
        )
        return int(count or 0)

    async def _count_pending_sessions(self, period: PayPeriod) -> int:
        count = await self.session.scalar(
            select(func.count())
            .select_from(TutoringSession)
            .where(
                TutoringSession.status == SessionStatus.SUBMITTED.value,
                TutoringSession.date >= period.period_start_date,
                TutoringSession.date <= period.period_end_date,
            )
        )
        return int(count or 0)
