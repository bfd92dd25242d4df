"""Versioned session snapshots stored in history before/after JSON."""

from __future__ import annotations

import datetime as dt
from datetime import datetime, time
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_serializer

from tutor_payroll.models import TutoringSession

SNAPSHOT_SCHEMA_VERSION = 1


class SessionSnapshot(BaseModel):
    """Point-in-time view of a tutoring session.

    Field names match the diff engine's canonical field list.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = SNAPSHOT_SCHEMA_VERSION
    id: UUID
    status: str
    date: dt.date
    start_time: time
    end_time: time
    duration_minutes: int
    assignment_id: UUID
    student_id: UUID
    tutor_id: UUID
    mode: str | None = None
    location: str | None = None
    notes: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    submitted_at: datetime | None = None
    created_at: datetime | None = None
    reject_reason: str | None = None

    @field_serializer("start_time", "end_time")
    def _serialize_hhmm(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def from_session(cls, session: TutoringSession, **overrides: Any) -> SessionSnapshot:
        data = {
            "id": session.id,
            "status": session.status,
            "date": session.date,
            "start_time": session.start_time,
            "end_time": session.end_time,
            "duration_minutes": session.duration_minutes,
            "assignment_id": session.assignment_id,
            "student_id": session.student_id,
            "tutor_id": session.tutor_id,
            "mode": session.mode,
            "location": session.location,
            "notes": session.notes,
            "approved_by": session.approved_by,
            "approved_at": session.approved_at,
            "submitted_at": session.submitted_at,
            "created_at": session.created_at,
        }
        data.update(overrides)
        return cls(**data)

    def to_json(self) -> dict[str, Any]:
        """JSON-safe dict for storage."""
        return self.model_dump(mode="json")
