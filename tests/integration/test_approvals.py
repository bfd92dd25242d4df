"""Session approval, rejection, bulk review, listing and history."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from tutor_payroll.models import AuditLog, PayPeriod, SessionHistory, TutoringSession
from tutor_payroll.services import (
    ApprovalService,
    AuditContext,
    BulkOutcome,
    BulkReason,
    ErrorCode,
    SessionListQuery,
)

WEEK_START = date(2024, 6, 3)


async def lock_week(session, week_start: date = WEEK_START) -> PayPeriod:
    """Insert an already LOCKED pay period."""
    period = PayPeriod(
        period_start_date=week_start,
        period_end_date=week_start + timedelta(days=6),
        status="LOCKED",
    )
    session.add(period)
    await session.commit()
    return period


async def history_count(session, session_id) -> int:
    return await session.scalar(
        select(func.count()).select_from(SessionHistory).where(SessionHistory.session_id == session_id)
    )


class TestApprove:
    """Single-session approval."""

    async def test_approve_submitted_session(self, session, admin, assignment, make_session, audit_actions):
        """Approving writes status, one history entry and one audit entry."""
        tutoring_session = await make_session(assignment)
        context = AuditContext(ip="10.0.0.1", user_agent="pytest", correlation_id="corr-1")

        result = await ApprovalService(session).approve(tutoring_session.id, admin.id, context)

        assert result.ok
        assert result.value.status == "APPROVED"
        assert result.value.approved_by == admin.id
        assert result.value.approved_at is not None

        history = (
            await session.execute(
                select(SessionHistory).where(SessionHistory.session_id == tutoring_session.id)
            )
        ).scalars().all()
        assert len(history) == 1
        assert history[0].change_type == "approve"
        assert history[0].before_json["status"] == "SUBMITTED"
        assert history[0].after_json["status"] == "APPROVED"
        assert history[0].after_json["schema_version"] == 1
        assert history[0].changed_by_user_id == admin.id

        assert await audit_actions(tutoring_session.id) == ["session.approve"]
        audit = (await session.execute(select(AuditLog))).scalar_one()
        assert audit.actor_user_id == admin.id
        assert audit.actor_role == "ADMIN"
        assert audit.correlation_id == "corr-1"
        assert audit.ip == "10.0.0.1"
        assert audit.meta_json == {"status": "APPROVED"}

    async def test_session_not_found(self, session, admin):
        result = await ApprovalService(session).approve(uuid4(), admin.id)
        assert result.error == ErrorCode.SESSION_NOT_FOUND

    async def test_tutor_not_active(self, session, admin, make_tutor, student, make_assignment, make_session):
        inactive = await make_tutor(full_name="Ina Active", active=False)
        assignment = await make_assignment(inactive, student)
        tutoring_session = await make_session(assignment)
        session_id = tutoring_session.id

        result = await ApprovalService(session).approve(session_id, admin.id)

        assert result.error == ErrorCode.TUTOR_NOT_ACTIVE
        assert await history_count(session, session_id) == 0

    async def test_suspended_tutor_not_active(self, session, admin, make_tutor, student, make_assignment, make_session):
        suspended = await make_tutor(full_name="Sus Pended", status="SUSPENDED")
        assignment = await make_assignment(suspended, student)
        tutoring_session = await make_session(assignment)

        result = await ApprovalService(session).approve(tutoring_session.id, admin.id)
        assert result.error == ErrorCode.TUTOR_NOT_ACTIVE

    async def test_pay_period_locked(self, session, admin, assignment, make_session):
        tutoring_session = await make_session(assignment)
        session_id = tutoring_session.id
        await lock_week(session)

        result = await ApprovalService(session).approve(session_id, admin.id)

        assert result.error == ErrorCode.PAY_PERIOD_LOCKED
        refreshed = await session.get(TutoringSession, session_id, populate_existing=True)
        assert refreshed.status == "SUBMITTED"

    async def test_inactive_tutor_reported_before_lock(
        self, session, admin, make_tutor, student, make_assignment, make_session
    ):
        inactive = await make_tutor(full_name="Ina Active", active=False)
        assignment = await make_assignment(inactive, student)
        tutoring_session = await make_session(assignment)
        await lock_week(session)

        result = await ApprovalService(session).approve(tutoring_session.id, admin.id)
        assert result.error == ErrorCode.TUTOR_NOT_ACTIVE

    @pytest.mark.parametrize("status", ["DRAFT", "APPROVED", "REJECTED"])
    async def test_only_submitted_approvable(self, session, admin, assignment, make_session, status):
        tutoring_session = await make_session(assignment, status=status)
        session_id = tutoring_session.id

        result = await ApprovalService(session).approve(session_id, admin.id)

        assert result.error == ErrorCode.ONLY_SUBMITTED_APPROVABLE
        assert await history_count(session, session_id) == 0

    async def test_approving_twice_fails_second_time(self, session, admin, assignment, make_session):
        tutoring_session = await make_session(assignment)
        session_id, admin_id = tutoring_session.id, admin.id
        service = ApprovalService(session)

        assert (await service.approve(session_id, admin_id)).ok
        second = await service.approve(session_id, admin_id)

        assert second.error == ErrorCode.ONLY_SUBMITTED_APPROVABLE
        assert await history_count(session, session_id) == 1


class TestReject:
    """Single-session rejection."""

    async def test_reject_with_reason(self, session, admin, assignment, make_session, audit_actions):
        tutoring_session = await make_session(assignment)

        result = await ApprovalService(session).reject(tutoring_session.id, "Duplicate entry", admin.id)

        assert result.ok
        assert result.value.status == "REJECTED"
        assert result.value.approved_by is None

        entry = (
            await session.execute(
                select(SessionHistory).where(SessionHistory.session_id == tutoring_session.id)
            )
        ).scalar_one()
        assert entry.change_type == "reject"
        assert entry.after_json["reject_reason"] == "Duplicate entry"
        assert await audit_actions(tutoring_session.id) == ["session.reject"]

    async def test_reject_without_reason(self, session, admin, assignment, make_session):
        tutoring_session = await make_session(assignment)
        result = await ApprovalService(session).reject(tutoring_session.id, None, admin.id)
        assert result.ok

    async def test_reject_ignores_tutor_activity(self, session, admin, make_tutor, student, make_assignment, make_session):
        inactive = await make_tutor(full_name="Ina Active", active=False)
        assignment = await make_assignment(inactive, student)
        tutoring_session = await make_session(assignment)

        result = await ApprovalService(session).reject(tutoring_session.id, "no", admin.id)
        assert result.ok

    async def test_reject_failures(self, session, admin, assignment, make_session):
        approved = await make_session(assignment, status="APPROVED")
        approved_id, admin_id = approved.id, admin.id
        service = ApprovalService(session)
        assert (await service.reject(uuid4(), None, admin_id)).error == ErrorCode.SESSION_NOT_FOUND

        result = await service.reject(approved_id, None, admin_id)
        assert result.error == ErrorCode.ONLY_SUBMITTED_REJECTABLE

    async def test_reject_in_locked_week(self, session, admin, assignment, make_session):
        approved = await make_session(assignment, status="APPROVED")
        approved_id = approved.id
        await lock_week(session)

        # Lock is checked before status
        result = await ApprovalService(session).reject(approved_id, None, admin.id)
        assert result.error == ErrorCode.PAY_PERIOD_LOCKED
        refreshed = await session.get(TutoringSession, approved_id, populate_existing=True)
        assert refreshed.status == "APPROVED"


class TestBulk:
    """Bulk approve and reject produce one outcome per requested id."""

    async def test_bulk_approve_mixed_outcomes(
        self, session, admin, assignment, make_tutor, student, make_assignment, make_session, audit_actions
    ):
        submitted = await make_session(assignment)
        draft = await make_session(assignment, start_time="12:00", end_time="13:00", status="DRAFT")
        inactive_tutor = await make_tutor(full_name="Ina Active", active=False)
        inactive_assignment = await make_assignment(inactive_tutor, student)
        inactive = await make_session(inactive_assignment)
        next_week = WEEK_START + timedelta(days=7)
        locked = await make_session(assignment, session_date=next_week)
        await lock_week(session, next_week)
        missing = uuid4()

        ids = [submitted.id, draft.id, inactive.id, locked.id, missing, submitted.id]
        result = await ApprovalService(session).bulk_approve(ids, admin.id)

        assert [item.session_id for item in result.items] == ids
        outcomes = [(item.outcome, item.reason) for item in result.items]
        assert outcomes == [
            (BulkOutcome.APPROVED, None),
            (BulkOutcome.SKIPPED, BulkReason.STATUS_NOT_SUBMITTED),
            (BulkOutcome.ERROR, BulkReason.TUTOR_NOT_ACTIVE),
            (BulkOutcome.ERROR, BulkReason.PAY_PERIOD_LOCKED),
            (BulkOutcome.ERROR, BulkReason.NOT_FOUND),
            (BulkOutcome.SKIPPED, BulkReason.STATUS_NOT_SUBMITTED),
        ]
        assert result.summary == {"approved": 1, "rejected": 0, "skipped": 2, "error": 3, "total": 6}
        assert result.succeeded_ids() == [submitted.id]

        # Duplicate id is approved once
        assert await history_count(session, submitted.id) == 1
        assert await audit_actions(submitted.id) == ["session.approve"]
        audit = (
            await session.execute(select(AuditLog).where(AuditLog.entity_id == str(submitted.id)))
        ).scalar_one()
        assert audit.meta_json["bulk"] is True

        # Non-approved items were not touched
        for untouched in (draft, inactive, locked):
            assert await history_count(session, untouched.id) == 0

    async def test_bulk_reject(self, session, admin, assignment, make_session):
        first = await make_session(assignment)
        second = await make_session(assignment, start_time="12:00", end_time="13:00")
        approved = await make_session(assignment, start_time="14:00", end_time="15:00", status="APPROVED")

        result = await ApprovalService(session).bulk_reject(
            [first.id, second.id, approved.id], "Not held", admin.id
        )

        assert result.summary["rejected"] == 2
        assert result.summary["skipped"] == 1
        statuses = {
            s.id: s.status
            for s in (
                await session.execute(select(TutoringSession).execution_options(populate_existing=True))
            ).scalars()
        }
        assert statuses[first.id] == "REJECTED"
        assert statuses[second.id] == "REJECTED"
        assert statuses[approved.id] == "APPROVED"

    async def test_bulk_reject_ignores_tutor_activity(
        self, session, admin, make_tutor, student, make_assignment, make_session
    ):
        inactive = await make_tutor(full_name="Ina Active", active=False)
        assignment = await make_assignment(inactive, student)
        tutoring_session = await make_session(assignment)

        result = await ApprovalService(session).bulk_reject([tutoring_session.id], None, admin.id)
        assert result.items[0].outcome == BulkOutcome.REJECTED

    async def test_bulk_duplicate_ids_repeat_failure_reason(
        self, session, admin, assignment, make_tutor, student, make_assignment, make_session
    ):
        inactive_tutor = await make_tutor(full_name="Ina Active", active=False)
        inactive = await make_session(await make_assignment(inactive_tutor, student))
        next_week = WEEK_START + timedelta(days=7)
        locked = await make_session(assignment, session_date=next_week)
        await lock_week(session, next_week)

        ids = [inactive.id, locked.id, inactive.id, locked.id]
        result = await ApprovalService(session).bulk_approve(ids, admin.id)

        assert [(item.outcome, item.reason) for item in result.items] == [
            (BulkOutcome.ERROR, BulkReason.TUTOR_NOT_ACTIVE),
            (BulkOutcome.ERROR, BulkReason.PAY_PERIOD_LOCKED),
            (BulkOutcome.ERROR, BulkReason.TUTOR_NOT_ACTIVE),
            (BulkOutcome.ERROR, BulkReason.PAY_PERIOD_LOCKED),
        ]
        assert result.summary["skipped"] == 0

    async def test_bulk_reject_duplicate_ids(self, session, admin, assignment, make_session):
        submitted = await make_session(assignment)
        next_week = WEEK_START + timedelta(days=7)
        locked = await make_session(assignment, session_date=next_week)
        await lock_week(session, next_week)

        ids = [submitted.id, locked.id, submitted.id, locked.id]
        result = await ApprovalService(session).bulk_reject(ids, None, admin.id)

        assert [(item.outcome, item.reason) for item in result.items] == [
            (BulkOutcome.REJECTED, None),
            (BulkOutcome.ERROR, BulkReason.PAY_PERIOD_LOCKED),
            (BulkOutcome.SKIPPED, BulkReason.STATUS_NOT_SUBMITTED),
            (BulkOutcome.ERROR, BulkReason.PAY_PERIOD_LOCKED),
        ]
        assert await history_count(session, submitted.id) == 1

    async def test_bulk_empty(self, session, admin):
        result = await ApprovalService(session).bulk_approve([], admin.id)
        assert result.items == []
        assert result.summary["total"] == 0


class TestListSessions:
    """Admin session listing with aggregates."""

    async def test_filters_and_aggregates(self, session, admin, assignment, make_session):
        await make_session(assignment, start_time="09:00", end_time="10:00")
        await make_session(assignment, start_time="10:00", end_time="11:30", status="APPROVED")
        await make_session(assignment, start_time="12:00", end_time="12:45", status="REJECTED")
        await make_session(assignment, session_date=WEEK_START + timedelta(days=14))

        page = await ApprovalService(session).list_sessions(
            SessionListQuery(
                status="SUBMITTED",
                date_from=WEEK_START,
                date_to=WEEK_START + timedelta(days=6),
            )
        )

        assert page.total == 1
        assert len(page.items) == 1
        item = page.items[0]
        assert item.tutor_name == "Tom Tutor"
        assert item.student_name == "Sam Student"
        assert item.subject == "Math"
        assert item.rate == 300

        # Aggregates ignore the status filter
        assert page.aggregates.counts == {"DRAFT": 0, "SUBMITTED": 1, "APPROVED": 1, "REJECTED": 1}
        assert page.aggregates.total_minutes == 60 + 90 + 45
        assert page.aggregates.submitted_minutes == 60
        assert page.aggregates.approved_minutes == 90
        assert page.aggregates.rejected_minutes == 45

    async def test_rate_override_wins(self, session, tutor, student, make_assignment, make_session):
        assignment = await make_assignment(tutor, student, rate_override=Decimal("450"))
        await make_session(assignment)

        page = await ApprovalService(session).list_sessions(SessionListQuery())
        assert page.items[0].rate == Decimal("450")

    async def test_search_and_paging(self, session, tutor, make_student, make_assignment, make_session):
        alice = await make_student("Alice Wong")
        bob = await make_student("Bob Stone")
        alice_assignment = await make_assignment(tutor, alice)
        bob_assignment = await make_assignment(tutor, bob)
        for hour in (9, 10, 11):
            await make_session(alice_assignment, start_time=f"{hour:02d}:00", end_time=f"{hour:02d}:30")
        await make_session(bob_assignment, start_time="15:00", end_time="16:00")

        service = ApprovalService(session)
        page = await service.list_sessions(SessionListQuery(q="alice", page=1, page_size=2))
        assert page.total == 3
        assert len(page.items) == 2
        # Same date, so start time descending breaks the tie
        assert [i.start_time.hour for i in page.items] == [11, 10]

        second = await service.list_sessions(SessionListQuery(q="alice", page=2, page_size=2))
        assert [i.start_time.hour for i in second.items] == [9]

        by_student = await service.list_sessions(SessionListQuery(sort="student", order="asc"))
        assert by_student.items[0].student_name == "Alice Wong"
        assert by_student.items[-1].student_name == "Bob Stone"

    def test_query_clamping(self):
        query = SessionListQuery(sort="bogus", order="ASC", page=0, page_size=10_000, q="  ")
        assert query.sort == "date"
        assert query.order == "asc"
        assert query.page == 1
        assert query.page_size == 200
        assert query.q is None


class TestHistory:
    async def test_history_with_diffs(self, session, admin, assignment, make_session):
        tutoring_session = await make_session(assignment)
        service = ApprovalService(session)
        await service.approve(tutoring_session.id, admin.id)

        result = await service.get_history(tutoring_session.id)

        assert result.ok
        [entry] = result.value
        assert entry.change_type == "approve"
        assert entry.actor.id == admin.id
        assert entry.actor.role == "ADMIN"
        fields = [d.field for d in entry.diffs]
        assert fields[0] == "status"
        assert "approved_by" in fields
        assert "approved_at" in fields
        assert "date" not in fields
        status_diff = entry.diffs[0]
        assert (status_diff.before, status_diff.after) == ("SUBMITTED", "APPROVED")

    async def test_history_empty_for_untouched_session(self, session, assignment, make_session):
        tutoring_session = await make_session(assignment)
        result = await ApprovalService(session).get_history(tutoring_session.id)
        assert result.ok
        assert result.value == []

    async def test_history_unknown_session(self, session):
        result = await ApprovalService(session).get_history(uuid4())
        assert result.error == ErrorCode.SESSION_NOT_FOUND


class TestCommittedWrites:
    """Review operations commit even when the session already ran reads."""

    async def test_approve_after_read_is_committed(self, session, session_factory, admin, assignment, make_session):
        tutoring_session = await make_session(assignment)
        session_id, admin_id = tutoring_session.id, admin.id
        service = ApprovalService(session)

        assert (await service.get_history(session_id)).ok
        assert (await service.approve(session_id, admin_id)).ok
        await session.rollback()

        async with session_factory() as fresh:
            status = await fresh.scalar(select(TutoringSession.status).where(TutoringSession.id == session_id))
            history = await history_count(fresh, session_id)
        assert status == "APPROVED"
        assert history == 1

    async def test_bulk_reject_after_listing_is_committed(
        self, session, session_factory, admin, assignment, make_session
    ):
        tutoring_session = await make_session(assignment)
        session_id, admin_id = tutoring_session.id, admin.id
        service = ApprovalService(session)

        assert (await service.list_sessions(SessionListQuery())).total == 1
        result = await service.bulk_reject([session_id], "Not held", admin_id)
        assert result.succeeded_ids() == [session_id]
        await session.rollback()

        async with session_factory() as fresh:
            status = await fresh.scalar(select(TutoringSession.status).where(TutoringSession.id == session_id))
        assert status == "REJECTED"

    async def test_caller_transaction_owns_the_commit(
        self, session, session_factory, admin, assignment, make_session
    ):
        tutoring_session = await make_session(assignment)
        session_id, admin_id = tutoring_session.id, admin.id
        service = ApprovalService(session)

        async with session.begin():
            assert (await service.approve(session_id, admin_id)).ok
            # Failure only undoes its own savepoint
            second = await service.approve(session_id, admin_id)
            assert second.error == ErrorCode.ONLY_SUBMITTED_APPROVABLE
        await session.rollback()

        async with session_factory() as fresh:
            status = await fresh.scalar(select(TutoringSession.status).where(TutoringSession.id == session_id))
            history = await history_count(fresh, session_id)
        assert status == "APPROVED"
        assert history == 1
