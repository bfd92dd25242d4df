"""Session and pay period state machines with transition validation."""

from __future__ import annotations

from enum import Enum


class SessionStatus(str, Enum):
    """Tutoring session status values."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PayPeriodStatus(str, Enum):
    """Pay period status values."""

    OPEN = "OPEN"
    LOCKED = "LOCKED"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def _value(status: str | Enum) -> str:
    return status.value if isinstance(status, Enum) else status


class SessionStateMachine:
    """State machine for tutoring session status transitions.

    Allowed transitions:
    - DRAFT → SUBMITTED (performed by the tutor-facing collaborator)
    - SUBMITTED → APPROVED
    - SUBMITTED → REJECTED

    APPROVED and REJECTED are terminal for this engine.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SessionStatus.DRAFT: [SessionStatus.SUBMITTED],
        SessionStatus.SUBMITTED: [SessionStatus.APPROVED, SessionStatus.REJECTED],
        SessionStatus.APPROVED: [],
        SessionStatus.REJECTED: [],
    }

    # Statuses that count towards payroll
    PAYABLE = {SessionStatus.APPROVED}

    # Statuses that block a pay period lock
    PENDING = {SessionStatus.SUBMITTED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        try:
            allowed = cls.VALID_TRANSITIONS.get(SessionStatus(_value(from_status)), [])
        except ValueError:
            return False
        return _value(to_status) in [_value(s) for s in allowed]

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status))

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [_value(s) for s in cls.VALID_TRANSITIONS.get(SessionStatus(_value(current_status)), [])]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.get_next_statuses(status)


class PayPeriodStateMachine:
    """State machine for pay periods: OPEN → LOCKED, exactly once."""

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayPeriodStatus.OPEN: [PayPeriodStatus.LOCKED],
        PayPeriodStatus.LOCKED: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        try:
            allowed = cls.VALID_TRANSITIONS.get(PayPeriodStatus(_value(from_status)), [])
        except ValueError:
            return False
        return _value(to_status) in [_value(s) for s in allowed]

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status))

    @classmethod
    def accepts_mutations(cls, status: str) -> bool:
        """Whether sessions and adjustments in the period may still change."""
        return _value(status) == PayPeriodStatus.OPEN.value
