"""Session approval service - admin review of submitted sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tutor_payroll.calculators.pay_periods import get_pay_period_start
from tutor_payroll.calculators.session_diff import FieldDiff, compute_diffs, normalize_json
from tutor_payroll.database import transaction
from tutor_payroll.models import (
    Assignment,
    SessionHistory,
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
from tutor_payroll.services.results import (
    BulkOutcome,
    BulkReason,
    BulkResult,
    BusinessRuleViolation,
    ErrorCode,
    ServiceResult,
)
from tutor_payroll.services.snapshots import SessionSnapshot
from tutor_payroll.services.state_machine import SessionStateMachine, SessionStatus

logger = logging.getLogger(__name__)

SORT_FIELDS = ("date", "tutor", "student", "createdAt")
MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 25


@dataclass
class SessionListQuery:
    """Filters, sorting and paging for the admin session list."""

    status: SessionStatus | str | None = None
    date_from: date | None = None
    date_to: date | None = None
    tutor_id: UUID | None = None
    student_id: UUID | None = None
    q: str | None = None
    sort: str = "date"
    order: str = "desc"
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.sort not in SORT_FIELDS:
            self.sort = "date"
        self.order = "asc" if str(self.order).lower() == "asc" else "desc"
        self.page = max(1, int(self.page or 1))
        self.page_size = min(MAX_PAGE_SIZE, max(1, int(self.page_size or DEFAULT_PAGE_SIZE)))
        if self.q is not None:
            self.q = self.q.strip() or None


@dataclass
class SessionListItem:
    """A session row enriched with names, subject and effective rate."""

    id: UUID
    assignment_id: UUID
    tutor_id: UUID
    student_id: UUID
    tutor_name: str
    student_name: str
    subject: str
    rate: Decimal
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: str
    mode: str | None
    location: str | None
    notes: str | None
    submitted_at: datetime | None
    approved_at: datetime | None
    approved_by: UUID | None
    created_at: datetime


@dataclass
class SessionAggregates:
    """Counts and minutes over the filtered set, ignoring the status filter."""

    counts: dict[str, int] = field(default_factory=dict)
    total_minutes: int = 0
    submitted_minutes: int = 0
    approved_minutes: int = 0
    rejected_minutes: int = 0


@dataclass
class SessionListPage:
    items: list[SessionListItem]
    total: int
    page: int
    page_size: int
    aggregates: SessionAggregates


@dataclass
class HistoryActor:
    id: UUID
    email: str
    role: str
    name: str | None


@dataclass
class HistoryEntryView:
    """History entry as shown to admins, with a diff computed at read time."""

    id: UUID
    session_id: UUID
    change_type: str
    created_at: datetime
    actor: HistoryActor | None
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    diffs: list[FieldDiff]


class ApprovalService:
    """Service for approving and rejecting submitted tutoring sessions.

    Operations:
    - approve / reject: single session, one unit of work each
    - bulk_approve / bulk_reject: one unit of work, per-item outcomes
    - list_sessions: filtered, sorted, paged admin listing with aggregates
    - get_history: transition history with computed diffs
    """

    def __init__(self, session: AsyncSession, audit_writer: AuditLogWriter | None = None):
        self.session = session
        self.audit_writer = audit_writer or DatabaseAuditLogWriter()
        self.pay_periods = PayPeriodService(session)

    # ===== Single-item transitions =====

    async def approve(
        self,
        session_id: UUID,
        admin_id: UUID,
        context: AuditContext | None = None,
    ) -> ServiceResult[TutoringSession]:
        """Approve a SUBMITTED session.

        Fails, in order: session_not_found, tutor_not_found, tutor_not_active,
        pay_period_locked, only_submitted_approvable.
        """
        try:
            async with transaction(self.session):
                tutoring_session = await self._lock_session(session_id)
                if tutoring_session is None:
                    raise BusinessRuleViolation(ErrorCode.SESSION_NOT_FOUND)

                tutor = await self.session.get(
                    TutorProfile, tutoring_session.tutor_id, populate_existing=True
                )
                if tutor is None:
                    raise BusinessRuleViolation(ErrorCode.TUTOR_NOT_FOUND)
                if not tutor.is_payable:
                    raise BusinessRuleViolation(ErrorCode.TUTOR_NOT_ACTIVE)

                if await self.pay_periods.is_date_locked(tutoring_session.date):
                    raise BusinessRuleViolation(ErrorCode.PAY_PERIOD_LOCKED)

                if not SessionStateMachine.can_transition(
                    tutoring_session.status, SessionStatus.APPROVED
                ):
                    raise BusinessRuleViolation(ErrorCode.ONLY_SUBMITTED_APPROVABLE)

                await self._apply_approval(tutoring_session, admin_id, context)
        except BusinessRuleViolation as exc:
            logger.warning("Approve of session %s refused: %s", session_id, exc.code.value)
            return ServiceResult.failure(exc.code)

        logger.info("Session %s approved by %s", session_id, admin_id)
        return ServiceResult.success(tutoring_session)

    async def reject(
        self,
        session_id: UUID,
        reason: str | None,
        admin_id: UUID,
        context: AuditContext | None = None,
    ) -> ServiceResult[TutoringSession]:
        """Reject a SUBMITTED session.

        Fails, in order: session_not_found, pay_period_locked,
        only_submitted_rejectable.
        """
        try:
            async with transaction(self.session):
                tutoring_session = await self._lock_session(session_id)
                if tutoring_session is None:
                    raise BusinessRuleViolation(ErrorCode.SESSION_NOT_FOUND)

                if await self.pay_periods.is_date_locked(tutoring_session.date):
                    raise BusinessRuleViolation(ErrorCode.PAY_PERIOD_LOCKED)

                if not SessionStateMachine.can_transition(
                    tutoring_session.status, SessionStatus.REJECTED
                ):
                    raise BusinessRuleViolation(ErrorCode.ONLY_SUBMITTED_REJECTABLE)

                await self._apply_rejection(tutoring_session, reason, admin_id, context)
        except BusinessRuleViolation as exc:
            logger.warning("Reject of session %s refused: %s", session_id, exc.code.value)
            return ServiceResult.failure(exc.code)

        logger.info("Session %s rejected by %s", session_id, admin_id)
        return ServiceResult.success(tutoring_session)

    # ===== Bulk transitions =====

    async def bulk_approve(
        self,
        session_ids: Sequence[UUID],
        admin_id: UUID,
        context: AuditContext | None = None,
    ) -> BulkResult:
        """Approve many sessions in one unit of work.

        Every input id gets exactly one outcome. Business failures are
        recorded per item; infrastructure failures roll the batch back.
        """
        result = BulkResult()
        async with transaction(self.session):
            sessions = await self._lock_sessions(session_ids)
            tutors = await self._load_tutors({s.tutor_id for s in sessions.values()})
            locked_weeks: dict[date, bool] = {}

            for session_id in session_ids:
                tutoring_session = sessions.get(session_id)
                if tutoring_session is None:
                    result.add(session_id, BulkOutcome.ERROR, BulkReason.NOT_FOUND)
                    continue
                tutor = tutors.get(tutoring_session.tutor_id)
                if tutor is None or not tutor.is_payable:
                    result.add(session_id, BulkOutcome.ERROR, BulkReason.TUTOR_NOT_ACTIVE)
                    continue
                if await self._week_locked(tutoring_session.date, locked_weeks):
                    result.add(session_id, BulkOutcome.ERROR, BulkReason.PAY_PERIOD_LOCKED)
                    continue
                if tutoring_session.status != SessionStatus.SUBMITTED.value:
                    result.add(session_id, BulkOutcome.SKIPPED, BulkReason.STATUS_NOT_SUBMITTED)
                    continue

                await self._apply_approval(tutoring_session, admin_id, context, bulk=True)
                result.add(session_id, BulkOutcome.APPROVED)

        logger.info("Bulk approve by %s: %s", admin_id, result.summary)
        return result

    async def bulk_reject(
        self,
        session_ids: Sequence[UUID],
        reason: str | None,
        admin_id: UUID,
        context: AuditContext | None = None,
    ) -> BulkResult:
        """Reject many sessions in one unit of work."""
        result = BulkResult()
        async with transaction(self.session):
            sessions = await self._lock_sessions(session_ids)
            locked_weeks: dict[date, bool] = {}

            for session_id in session_ids:
                tutoring_session = sessions.get(session_id)
                if tutoring_session is None:
                    result.add(session_id, BulkOutcome.ERROR, BulkReason.NOT_FOUND)
                    continue
                if await self._week_locked(tutoring_session.date, locked_weeks):
                    result.add(session_id, BulkOutcome.ERROR, BulkReason.PAY_PERIOD_LOCKED)
                    continue
                if tutoring_session.status != SessionStatus.SUBMITTED.value:
                    result.add(session_id, BulkOutcome.SKIPPED, BulkReason.STATUS_NOT_SUBMITTED)
                    continue

                await self._apply_rejection(tutoring_session, reason, admin_id, context, bulk=True)
                result.add(session_id, BulkOutcome.REJECTED)

        logger.info("Bulk reject by %s: %s", admin_id, result.summary)
        return result

    # ===== Reads =====

    async def list_sessions(self, query: SessionListQuery) -> SessionListPage:
        """List sessions for review with aggregates over the unfiltered-status set."""
        filters = self._list_filters(query)
        status_filters = []
        if query.status:
            status_filters.append(TutoringSession.status == SessionStatus(query.status).value)

        joined = (
            select(TutoringSession)
            .join(TutorProfile, TutorProfile.id == TutoringSession.tutor_id)
            .join(Student, Student.id == TutoringSession.student_id)
            .join(Assignment, Assignment.id == TutoringSession.assignment_id)
        )

        total = await self.session.scalar(
            select(func.count())
            .select_from(joined.where(*filters, *status_filters).subquery())
        )

        items_stmt = (
            select(
                TutoringSession,
                TutorProfile.full_name,
                Student.full_name,
                Assignment.subject,
                Assignment.rate_override,
                TutorProfile.default_hourly_rate,
            )
            .join(TutorProfile, TutorProfile.id == TutoringSession.tutor_id)
            .join(Student, Student.id == TutoringSession.student_id)
            .join(Assignment, Assignment.id == TutoringSession.assignment_id)
            .where(*filters, *status_filters)
            .order_by(*self._list_ordering(query))
            .offset((query.page - 1) * query.page_size)
            .limit(query.page_size)
        )
        rows = (await self.session.execute(items_stmt)).all()

        items = [
            SessionListItem(
                id=s.id,
                assignment_id=s.assignment_id,
                tutor_id=s.tutor_id,
                student_id=s.student_id,
                tutor_name=tutor_name,
                student_name=student_name,
                subject=subject,
                rate=rate_override if rate_override is not None else default_rate,
                date=s.date,
                start_time=s.start_time,
                end_time=s.end_time,
                duration_minutes=s.duration_minutes,
                status=s.status,
                mode=s.mode,
                location=s.location,
                notes=s.notes,
                submitted_at=s.submitted_at,
                approved_at=s.approved_at,
                approved_by=s.approved_by,
                created_at=s.created_at,
            )
            for s, tutor_name, student_name, subject, rate_override, default_rate in rows
        ]

        return SessionListPage(
            items=items,
            total=int(total or 0),
            page=query.page,
            page_size=query.page_size,
            aggregates=await self._aggregates(filters),
        )

    async def get_history(self, session_id: UUID) -> ServiceResult[list[HistoryEntryView]]:
        """History entries newest first, each with actor identity and diff."""
        exists = await self.session.scalar(
            select(TutoringSession.id).where(TutoringSession.id == session_id)
        )
        if exists is None:
            return ServiceResult.failure(ErrorCode.SESSION_NOT_FOUND)

        result = await self.session.execute(
            select(SessionHistory)
            .where(SessionHistory.session_id == session_id)
            .options(selectinload(SessionHistory.changed_by))
            .order_by(SessionHistory.created_at.desc(), SessionHistory.id.desc())
        )

        entries: list[HistoryEntryView] = []
        for entry in result.scalars().all():
            actor = None
            if entry.changed_by is not None:
                actor = HistoryActor(
                    id=entry.changed_by.id,
                    email=entry.changed_by.email,
                    role=entry.changed_by.role,
                    name=entry.changed_by.full_name,
                )
            before = normalize_json(entry.before_json)
            after = normalize_json(entry.after_json)
            entries.append(
                HistoryEntryView(
                    id=entry.id,
                    session_id=entry.session_id,
                    change_type=entry.change_type,
                    created_at=entry.created_at,
                    actor=actor,
                    before=before if isinstance(before, dict) else None,
                    after=after if isinstance(after, dict) else None,
                    diffs=compute_diffs(before, after),
                )
            )
        return ServiceResult.success(entries)

    # ===== Internals =====

    async def _lock_session(self, session_id: UUID) -> TutoringSession | None:
        result = await self.session.execute(
            select(TutoringSession)
            .where(TutoringSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_sessions(self, session_ids: Sequence[UUID]) -> dict[UUID, TutoringSession]:
        if not session_ids:
            return {}
        # Stable lock order so concurrent batches cannot deadlock
        result = await self.session.execute(
            select(TutoringSession)
            .where(TutoringSession.id.in_(set(session_ids)))
            .order_by(TutoringSession.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {s.id: s for s in result.scalars().all()}

    async def _load_tutors(self, tutor_ids: set[UUID]) -> dict[UUID, TutorProfile]:
        if not tutor_ids:
            return {}
        result = await self.session.execute(
            select(TutorProfile)
            .where(TutorProfile.id.in_(tutor_ids))
            .execution_options(populate_existing=True)
        )
        return {t.id: t for t in result.scalars().all()}

    async def _week_locked(self, session_date: date, cache: dict[date, bool]) -> bool:
        week_start = get_pay_period_start(session_date)
        if week_start not in cache:
            cache[week_start] = await self.pay_periods.is_date_locked(week_start)
        return cache[week_start]

    async def _apply_approval(
        self,
        tutoring_session: TutoringSession,
        admin_id: UUID,
        context: AuditContext | None,
        bulk: bool = False,
    ) -> None:
        SessionStateMachine.validate_transition(tutoring_session.status, SessionStatus.APPROVED)
        before = SessionSnapshot.from_session(tutoring_session)

        tutoring_session.status = SessionStatus.APPROVED.value
        tutoring_session.approved_at = utcnow()
        tutoring_session.approved_by = admin_id

        after = SessionSnapshot.from_session(tutoring_session)
        meta: dict[str, Any] = {"status": SessionStatus.APPROVED.value}
        if bulk:
            meta["bulk"] = True
        await self._record_transition(tutoring_session, "approve", before, after, admin_id)
        await self._record_audit("session.approve", tutoring_session, admin_id, context, meta)

    async def _apply_rejection(
        self,
        tutoring_session: TutoringSession,
        reason: str | None,
        admin_id: UUID,
        context: AuditContext | None,
        bulk: bool = False,
    ) -> None:
        SessionStateMachine.validate_transition(tutoring_session.status, SessionStatus.REJECTED)
        before = SessionSnapshot.from_session(tutoring_session)

        tutoring_session.status = SessionStatus.REJECTED.value

        after = SessionSnapshot.from_session(tutoring_session, reject_reason=reason)
        meta: dict[str, Any] = {"status": SessionStatus.REJECTED.value, "reason": reason}
        if bulk:
            meta["bulk"] = True
        await self._record_transition(tutoring_session, "reject", before, after, admin_id)
        await self._record_audit("session.reject", tutoring_session, admin_id, context, meta)

    async def _record_transition(
        self,
        tutoring_session: TutoringSession,
        change_type: str,
        before: SessionSnapshot,
        after: SessionSnapshot,
        admin_id: UUID,
    ) -> None:
        self.session.add(
            SessionHistory(
                session_id=tutoring_session.id,
                change_type=change_type,
                before_json=before.to_json(),
                after_json=after.to_json(),
                changed_by_user_id=admin_id,
            )
        )
        await self.session.flush()

    async def _record_audit(
        self,
        action: str,
        tutoring_session: TutoringSession,
        admin_id: UUID,
        context: AuditContext | None,
        meta: dict[str, Any],
    ) -> None:
        """Record an audit entry for a session action."""
        entry = AuditEntry.build(
            action=action,
            entity_type="session",
            entity_id=tutoring_session.id,
            actor_user_id=admin_id,
            context=context,
            meta=meta,
        )
        await self.audit_writer.write(self.session, entry)

    def _list_filters(self, query: SessionListQuery) -> list[Any]:
        filters: list[Any] = []
        if query.date_from is not None:
            filters.append(TutoringSession.date >= query.date_from)
        if query.date_to is not None:
            filters.append(TutoringSession.date <= query.date_to)
        if query.tutor_id is not None:
            filters.append(TutoringSession.tutor_id == query.tutor_id)
        if query.student_id is not None:
            filters.append(TutoringSession.student_id == query.student_id)
        if query.q:
            pattern = f"%{query.q}%"
            filters.append(
                or_(
                    TutorProfile.full_name.ilike(pattern),
                    Student.full_name.ilike(pattern),
                    TutoringSession.notes.ilike(pattern),
                )
            )
        return filters

    def _list_ordering(self, query: SessionListQuery) -> list[Any]:
        column = {
            "date": TutoringSession.date,
            "tutor": TutorProfile.full_name,
            "student": Student.full_name,
            "createdAt": TutoringSession.created_at,
        }[query.sort]
        primary = column.asc() if query.order == "asc" else column.desc()
        return [
            primary,
            TutoringSession.date.desc(),
            TutoringSession.start_time.desc(),
            TutoringSession.id,
        ]

    async def _aggregates(self, filters: list[Any]) -> SessionAggregates:
        def count_of(status: SessionStatus) -> Any:
            return func.coalesce(
                func.sum(case((TutoringSession.status == status.value, 1), else_=0)), 0
            )

        def minutes_of(status: SessionStatus) -> Any:
            return func.coalesce(
                func.sum(
                    case(
                        (TutoringSession.status == status.value, TutoringSession.duration_minutes),
                        else_=0,
                    )
                ),
                0,
            )

        stmt = (
            select(
                *(count_of(status) for status in SessionStatus),
                func.coalesce(func.sum(TutoringSession.duration_minutes), 0),
                minutes_of(SessionStatus.SUBMITTED),
                minutes_of(SessionStatus.APPROVED),
                minutes_of(SessionStatus.REJECTED),
            )
            .select_from(TutoringSession)
            .join(TutorProfile, TutorProfile.id == TutoringSession.tutor_id)
            .join(Student, Student.id == TutoringSession.student_id)
            .where(*filters)
        )
        row = (await self.session.execute(stmt)).one()
        statuses = list(SessionStatus)
        counts = {status.value: int(row[i]) for i, status in enumerate(statuses)}
        offset = len(statuses)
        return SessionAggregates(
            counts=counts,
            total_minutes=int(row[offset]),
            submitted_minutes=int(row[offset + 1]),
            approved_minutes=int(row[offset + 2]),
            rejected_minutes=int(row[offset + 3]),
        )
