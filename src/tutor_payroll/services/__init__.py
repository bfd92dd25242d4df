"""Tutor payroll services."""

from tutor_payroll.services.state_machine import (
    InvalidTransitionError,
    PayPeriodStateMachine,
    PayPeriodStatus,
    SessionStateMachine,
    SessionStatus,
)
from tutor_payroll.services.results import (
    BulkItemResult,
    BulkOutcome,
    BulkReason,
    BulkResult,
    BusinessRuleViolation,
    ErrorCode,
    ServiceResult,
)
from tutor_payroll.services.audit_log import (
    AuditContext,
    AuditEntry,
    AuditLogWriter,
    DatabaseAuditLogWriter,
)
from tutor_payroll.services.pay_period_service import PayPeriodService
from tutor_payroll.services.approval_service import ApprovalService, SessionListQuery
from tutor_payroll.services.adjustment_service import AdjustmentInput, AdjustmentService
from tutor_payroll.services.payroll_service import PayrollService
from tutor_payroll.services.integrity_service import IntegrityReport, IntegrityService

__all__ = [
    "InvalidTransitionError",
    "PayPeriodStateMachine",
    "PayPeriodStatus",
    "SessionStateMachine",
    "SessionStatus",
    "BulkItemResult",
    "BulkOutcome",
    "BulkReason",
    "BulkResult",
    "BusinessRuleViolation",
    "ErrorCode",
    "ServiceResult",
    "AuditContext",
    "AuditEntry",
    "AuditLogWriter",
    "DatabaseAuditLogWriter",
    "PayPeriodService",
    "ApprovalService",
    "SessionListQuery",
    "AdjustmentInput",
    "AdjustmentService",
    "PayrollService",
    "IntegrityReport",
    "IntegrityService",
]
