"""Typed business results for service operations.

Expected business failures (missing rows, locked periods, wrong status) are
returned as values rather than raised, so callers can map them to HTTP
responses or CLI exit codes. Infrastructure failures still raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Closed set of business error codes."""

    SESSION_NOT_FOUND = "session_not_found"
    TUTOR_NOT_FOUND = "tutor_not_found"
    TUTOR_NOT_ACTIVE = "tutor_not_active"
    PAY_PERIOD_LOCKED = "pay_period_locked"
    ONLY_SUBMITTED_APPROVABLE = "only_submitted_approvable"
    ONLY_SUBMITTED_REJECTABLE = "only_submitted_rejectable"
    INVOICES_ALREADY_GENERATED = "invoices_already_generated"
    PENDING_SESSIONS = "pending_sessions"
    ADJUSTMENT_NOT_FOUND = "adjustment_not_found"
    ADJUSTMENT_ALREADY_VOIDED = "adjustment_already_voided"
    RELATED_SESSION_INVALID = "related_session_invalid"
    INTERNAL_ERROR = "internal_error"

    @property
    def is_not_found(self) -> bool:
        return self.value.endswith("_not_found")


class BusinessRuleViolation(Exception):
    """Raised inside a unit of work to roll it back on a business failure."""

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        super().__init__(message or code.value)


@dataclass
class ServiceResult(Generic[T]):
    """Outcome of a single-item operation: a value or an error code."""

    value: T | None = None
    error: ErrorCode | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> ServiceResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorCode) -> ServiceResult[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, raising BusinessRuleViolation on failure."""
        if self.error is not None:
            raise BusinessRuleViolation(self.error)
        return self.value  # type: ignore[return-value]


class BulkOutcome(str, Enum):
    """Per-item outcome of a bulk operation."""

    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    ERROR = "error"


class BulkReason(str, Enum):
    """Reason attached to skipped and failed bulk items."""

    NOT_FOUND = "not_found"
    TUTOR_NOT_ACTIVE = "tutor_not_active"
    PAY_PERIOD_LOCKED = "pay_period_locked"
    STATUS_NOT_SUBMITTED = "status_not_submitted"


@dataclass(frozen=True)
class BulkItemResult:
    """Outcome for one requested session id."""

    session_id: UUID
    outcome: BulkOutcome
    reason: BulkReason | None = None


@dataclass
class BulkResult:
    """Tagged outcome list of a bulk operation, one entry per input id."""

    items: list[BulkItemResult] = field(default_factory=list)

    def add(
        self,
        session_id: UUID,
        outcome: BulkOutcome,
        reason: BulkReason | None = None,
    ) -> BulkItemResult:
        item = BulkItemResult(session_id=session_id, outcome=outcome, reason=reason)
        self.items.append(item)
        return item

    def count(self, outcome: BulkOutcome) -> int:
        return sum(1 for item in self.items if item.outcome == outcome)

    @property
    def summary(self) -> dict[str, int]:
        """Counts per outcome plus the total."""
        counts = {outcome.value: self.count(outcome) for outcome in BulkOutcome}
        counts["total"] = len(self.items)
        return counts

    def succeeded_ids(self) -> list[UUID]:
        return [
            item.session_id
            for item in self.items
            if item.outcome in (BulkOutcome.APPROVED, BulkOutcome.REJECTED)
        ]
