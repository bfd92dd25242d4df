"""Pytest fixtures for tutor payroll tests."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tutor_payroll.calculators.scheduling import duration_minutes
from tutor_payroll.database import create_engine_for_url, create_schema, make_session_factory
from tutor_payroll.models import AppUser, Assignment, Student, TutoringSession, TutorProfile

# In-memory SQLite shares one connection per engine; each test gets a fresh engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Monday
WEEK_START = date(2024, 6, 3)


def _parse_time(value: time | str) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(value)


@pytest.fixture
async def engine():
    """Create test database engine with the full schema."""
    engine = create_engine_for_url(TEST_DATABASE_URL)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ===== Factories =====
# Every factory commits so services start from an idle session.


@pytest.fixture
def make_admin(session):
    async def _make(email: str | None = None, full_name: str = "Admin User") -> AppUser:
        admin = AppUser(
            email=email or f"admin-{uuid4().hex[:8]}@example.com",
            role="ADMIN",
            full_name=full_name,
        )
        session.add(admin)
        await session.commit()
        return admin

    return _make


@pytest.fixture
def make_tutor(session):
    async def _make(
        full_name: str = "Tom Tutor",
        rate: Decimal = Decimal("300"),
        active: bool = True,
        status: str = "ACTIVE",
    ) -> TutorProfile:
        tutor = TutorProfile(
            full_name=full_name,
            email=f"tutor-{uuid4().hex[:8]}@example.com",
            default_hourly_rate=rate,
            active=active,
            status=status,
        )
        session.add(tutor)
        await session.commit()
        return tutor

    return _make


@pytest.fixture
def make_student(session):
    async def _make(full_name: str = "Sam Student") -> Student:
        student = Student(full_name=full_name, grade="8")
        session.add(student)
        await session.commit()
        return student

    return _make


@pytest.fixture
def make_assignment(session):
    async def _make(
        tutor: TutorProfile,
        student: Student,
        subject: str = "Math",
        rate_override: Decimal | None = None,
        start_date: date = date(2024, 1, 1),
        end_date: date | None = None,
        allowed_days: list[int] | None = None,
        allowed_time_ranges: list[dict[str, str]] | None = None,
    ) -> Assignment:
        assignment = Assignment(
            tutor_id=tutor.id,
            student_id=student.id,
            subject=subject,
            rate_override=rate_override,
            start_date=start_date,
            end_date=end_date,
            allowed_days=allowed_days or [],
            allowed_time_ranges=allowed_time_ranges or [],
        )
        session.add(assignment)
        await session.commit()
        return assignment

    return _make


@pytest.fixture
def make_session(session):
    async def _make(
        assignment: Assignment,
        session_date: date = WEEK_START,
        start_time: time | str = "10:00",
        end_time: time | str = "11:00",
        status: str = "SUBMITTED",
    ) -> TutoringSession:
        start = _parse_time(start_time)
        end = _parse_time(end_time)
        tutoring_session = TutoringSession(
            assignment_id=assignment.id,
            tutor_id=assignment.tutor_id,
            student_id=assignment.student_id,
            date=session_date,
            start_time=start,
            end_time=end,
            duration_minutes=duration_minutes(start, end),
            status=status,
            mode="online",
        )
        session.add(tutoring_session)
        await session.commit()
        return tutoring_session

    return _make


@pytest.fixture
async def admin(make_admin) -> AppUser:
    return await make_admin()


@pytest.fixture
async def tutor(make_tutor) -> TutorProfile:
    return await make_tutor()


@pytest.fixture
async def student(make_student) -> Student:
    return await make_student()


@pytest.fixture
async def assignment(make_assignment, tutor, student) -> Assignment:
    return await make_assignment(tutor, student)
