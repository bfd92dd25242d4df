"""Tutor, student, assignment and user models.

These rows are owned by the directory collaborator. The payroll engine only
reads them: tutor activity, default rates, rate overrides and assignment
scheduling windows.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutor_payroll.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from tutor_payroll.calculators.scheduling import AssignmentWindow


class AppUser(Base, TimestampMixin):
    """Login identity (admin or tutor) used to attribute history entries."""

    __tablename__ = "app_user"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'TUTOR')", name="app_user_role_check"),
    )


class TutorProfile(Base, TimestampMixin):
    """Tutor with payroll-relevant attributes."""

    __tablename__ = "tutor_profile"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    default_hourly_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'INACTIVE', 'SUSPENDED')",
            name="tutor_profile_status_check",
        ),
    )

    @property
    def is_payable(self) -> bool:
        """Whether sessions of this tutor may be approved."""
        return bool(self.active) and self.status == "ACTIVE"


class Student(Base, TimestampMixin):
    """Student receiving tutoring."""

    __tablename__ = "student"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    grade: Mapped[str | None] = mapped_column(String, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Assignment(Base, TimestampMixin):
    """Tutor-to-student assignment with its allowed scheduling window."""

    __tablename__ = "assignment"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("tutor_profile.id"), nullable=False)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("student.id"), nullable=False)
    subject: Mapped[str] = mapped_column(String, nullable=False)
    grade: Mapped[str | None] = mapped_column(String, nullable=True)
    rate_override: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    allowed_days: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    allowed_time_ranges: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    tutor: Mapped[TutorProfile] = relationship()
    student: Mapped[Student] = relationship()

    def to_window(self) -> AssignmentWindow:
        """Scheduling window used by the validator."""
        from tutor_payroll.calculators.scheduling import AssignmentWindow

        return AssignmentWindow.from_raw(
            start_date=self.start_date,
            end_date=self.end_date,
            allowed_days=self.allowed_days,
            allowed_time_ranges=self.allowed_time_ranges,
        )
