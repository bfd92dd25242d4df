"""Tutoring session and session history models."""

from __future__ import annotations

import datetime as dt
from datetime import datetime, time
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutor_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from tutor_payroll.models.directory import AppUser, Assignment, Student, TutorProfile


class TutoringSession(Base, TimestampMixin):
    """One tutoring occurrence.

    Created DRAFT or SUBMITTED by the tutor-facing collaborator. Once
    SUBMITTED, only the approval service mutates it.
    """

    __tablename__ = "tutoring_session"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    assignment_id: Mapped[UUID] = mapped_column(ForeignKey("assignment.id"), nullable=False)
    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("tutor_profile.id"), nullable=False)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("student.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    mode: Mapped[str] = mapped_column(String, nullable=False, default="in_person")
    location: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(ForeignKey("app_user.id"), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED')",
            name="tutoring_session_status_check",
        ),
        CheckConstraint("duration_minutes > 0", name="tutoring_session_duration_check"),
        CheckConstraint("end_time > start_time", name="tutoring_session_times_check"),
        Index("ix_tutoring_session_date_status", "date", "status"),
        Index("ix_tutoring_session_tutor_date", "tutor_id", "date"),
    )

    # Relationships
    assignment: Mapped[Assignment] = relationship()
    tutor: Mapped[TutorProfile] = relationship()
    student: Mapped[Student] = relationship()
    history: Mapped[list[SessionHistory]] = relationship(
        back_populates="session",
        order_by="SessionHistory.created_at.desc()",
    )


class SessionHistory(Base, TimestampMixin):
    """Immutable record of one session state transition."""

    __tablename__ = "session_history"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("tutoring_session.id"),
        nullable=False,
        index=True,
    )
    change_type: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)
    changed_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "change_type IN ('approve', 'reject')",
            name="session_history_change_type_check",
        ),
    )

    # Relationships
    session: Mapped[TutoringSession] = relationship(back_populates="history")
    changed_by: Mapped[AppUser | None] = relationship()
