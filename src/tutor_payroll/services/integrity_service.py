"""Read-only integrity report for a pay period."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from itertools import combinations
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutor_payroll.calculators.pay_periods import get_pay_period_range
from tutor_payroll.calculators.scheduling import is_within_assignment_window
from tutor_payroll.models import Assignment, Invoice, InvoiceLine, TutoringSession, TutorProfile
from tutor_payroll.services.pay_period_service import PayPeriodService
from tutor_payroll.services.state_machine import PayPeriodStatus, SessionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionOverlap:
    tutor_id: UUID
    date: date
    session_id: UUID
    overlap_id: UUID


@dataclass(frozen=True)
class OutsideWindowSession:
    session_id: UUID
    tutor_id: UUID
    student_id: UUID
    date: date
    start_time: time
    end_time: time


@dataclass(frozen=True)
class MissingInvoiceLine:
    session_id: UUID
    tutor_id: UUID
    date: date


@dataclass(frozen=True)
class InvoiceTotalMismatch:
    invoice_id: UUID
    invoice_number: str
    total_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class PendingSubmissions:
    tutor_id: UUID
    tutor_name: str
    pending: int


@dataclass(frozen=True)
class DuplicateSessions:
    tutor_id: UUID
    student_id: UUID
    date: date
    start_time: time
    end_time: time
    session_ids: tuple[UUID, ...]

    @property
    def count(self) -> int:
        return len(self.session_ids)


@dataclass
class IntegrityReport:
    """Consistency findings for one week. Empty lists mean nothing to fix."""

    week_start: date
    week_end: date
    pay_period_status: str
    pay_period_id: UUID | None = None
    overlaps: list[SessionOverlap] = field(default_factory=list)
    outside_assignment_window: list[OutsideWindowSession] = field(default_factory=list)
    missing_invoice_lines: list[MissingInvoiceLine] = field(default_factory=list)
    invoice_total_mismatches: list[InvoiceTotalMismatch] = field(default_factory=list)
    pending_submissions: list[PendingSubmissions] = field(default_factory=list)
    duplicate_sessions: list[DuplicateSessions] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.overlaps
            or self.outside_assignment_window
            or self.missing_invoice_lines
            or self.invoice_total_mismatches
            or self.pending_submissions
            or self.duplicate_sessions
        )


def _overlaps(first: TutoringSession, second: TutoringSession) -> bool:
    return not (first.end_time <= second.start_time or first.start_time >= second.end_time)


class IntegrityService:
    """Builds integrity reports. Never writes."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.pay_periods = PayPeriodService(session)

    async def build_report(self, week_start: date | datetime | str) -> IntegrityReport:
        period_range = get_pay_period_range(week_start)
        period = await self.pay_periods.get_pay_period(period_range.start)

        report = IntegrityReport(
            week_start=period_range.start,
            week_end=period_range.end,
            pay_period_status=period.status if period else PayPeriodStatus.OPEN.value,
            pay_period_id=period.id if period else None,
        )

        rows = await self.session.execute(
            select(TutoringSession, Assignment)
            .join(Assignment, Assignment.id == TutoringSession.assignment_id)
            .where(
                TutoringSession.date >= period_range.start,
                TutoringSession.date <= period_range.end,
            )
            .order_by(TutoringSession.date, TutoringSession.start_time, TutoringSession.id)
        )
        sessions_with_assignments = rows.all()
        sessions = [s for s, _ in sessions_with_assignments]

        report.overlaps = self._find_overlaps(sessions)
        report.duplicate_sessions = self._find_duplicates(sessions)

        for tutoring_session, assignment in sessions_with_assignments:
            if not is_within_assignment_window(
                tutoring_session.date,
                tutoring_session.start_time,
                tutoring_session.end_time,
                assignment.to_window(),
            ):
                report.outside_assignment_window.append(
                    OutsideWindowSession(
                        session_id=tutoring_session.id,
                        tutor_id=tutoring_session.tutor_id,
                        student_id=tutoring_session.student_id,
                        date=tutoring_session.date,
                        start_time=tutoring_session.start_time,
                        end_time=tutoring_session.end_time,
                    )
                )

        report.missing_invoice_lines = await self._find_missing_invoice_lines(
            period_range.start, period_range.end
        )
        report.invoice_total_mismatches = await self._find_total_mismatches(period_range.start)
        report.pending_submissions = await self._pending_by_tutor(
            period_range.start, period_range.end
        )

        if not report.is_clean:
            logger.warning("Integrity issues found for week %s", period_range.start)
        return report

    def _find_overlaps(self, sessions: list[TutoringSession]) -> list[SessionOverlap]:
        by_tutor_day: dict[tuple[UUID, date], list[TutoringSession]] = defaultdict(list)
        for tutoring_session in sessions:
            by_tutor_day[(tutoring_session.tutor_id, tutoring_session.date)].append(
                tutoring_session
            )

        overlaps: list[SessionOverlap] = []
        for (tutor_id, day), group in by_tutor_day.items():
            ordered = sorted(group, key=lambda s: str(s.id))
            for first, second in combinations(ordered, 2):
                if _overlaps(first, second):
                    overlaps.append(
                        SessionOverlap(
                            tutor_id=tutor_id,
                            date=day,
                            session_id=first.id,
                            overlap_id=second.id,
                        )
                    )
        return overlaps

    def _find_duplicates(self, sessions: list[TutoringSession]) -> list[DuplicateSessions]:
        groups: dict[tuple, list[UUID]] = defaultdict(list)
        for s in sessions:
            groups[(s.tutor_id, s.student_id, s.date, s.start_time, s.end_time)].append(s.id)

        return [
            DuplicateSessions(
                tutor_id=tutor_id,
                student_id=student_id,
                date=day,
                start_time=start,
                end_time=end,
                session_ids=tuple(ids),
            )
            for (tutor_id, student_id, day, start, end), ids in groups.items()
            if len(ids) > 1
        ]

    async def _find_missing_invoice_lines(
        self, start: date, end: date
    ) -> list[MissingInvoiceLine]:
        result = await self.session.execute(
            select(TutoringSession.id, TutoringSession.tutor_id, TutoringSession.date)
            .outerjoin(
                InvoiceLine,
                and_(
                    InvoiceLine.session_id == TutoringSession.id,
                    InvoiceLine.line_type == "SESSION",
                ),
            )
            .where(
                TutoringSession.status == SessionStatus.APPROVED.value,
                TutoringSession.date >= start,
                TutoringSession.date <= end,
                InvoiceLine.id.is_(None),
            )
            .order_by(TutoringSession.date, TutoringSession.id)
        )
        return [
            MissingInvoiceLine(session_id=session_id, tutor_id=tutor_id, date=day)
            for session_id, tutor_id, day in result.all()
        ]

    async def _find_total_mismatches(self, start: date) -> list[InvoiceTotalMismatch]:
        line_total = func.coalesce(func.sum(InvoiceLine.amount), 0)
        result = await self.session.execute(
            select(Invoice.id, Invoice.invoice_number, Invoice.total_amount, line_total)
            .outerjoin(InvoiceLine, InvoiceLine.invoice_id == Invoice.id)
            .where(Invoice.period_start == start)
            .group_by(Invoice.id, Invoice.invoice_number, Invoice.total_amount)
            .order_by(Invoice.invoice_number)
        )

        mismatches: list[InvoiceTotalMismatch] = []
        for invoice_id, number, total, lines_sum in result.all():
            # compare in Decimal: SQLite sums Numeric columns as floats
            total_amount = Decimal(str(total)).quantize(Decimal("0.01"))
            summed = Decimal(str(lines_sum)).quantize(Decimal("0.01"))
            if total_amount != summed:
                mismatches.append(
                    InvoiceTotalMismatch(
                        invoice_id=invoice_id,
                        invoice_number=number,
                        total_amount=total_amount,
                        line_total=summed,
                    )
                )
        return mismatches

    async def _pending_by_tutor(self, start: date, end: date) -> list[PendingSubmissions]:
        result = await self.session.execute(
            select(TutoringSession.tutor_id, TutorProfile.full_name, func.count())
            .join(TutorProfile, TutorProfile.id == TutoringSession.tutor_id)
            .where(
                TutoringSession.status == SessionStatus.SUBMITTED.value,
                TutoringSession.date >= start,
                TutoringSession.date <= end,
            )
            .group_by(TutoringSession.tutor_id, TutorProfile.full_name)
            .order_by(TutorProfile.full_name)
        )
        return [
            PendingSubmissions(tutor_id=tutor_id, tutor_name=name, pending=int(count))
            for tutor_id, name, count in result.all()
        ]
