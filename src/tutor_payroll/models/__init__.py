"""ORM models for the tutor payroll engine."""

from tutor_payroll.models.base import Base, TimestampMixin, utcnow
from tutor_payroll.models.audit import AuditLog
from tutor_payroll.models.directory import AppUser, Assignment, Student, TutorProfile
from tutor_payroll.models.payroll import Adjustment, Invoice, InvoiceLine, PayPeriod
from tutor_payroll.models.session import SessionHistory, TutoringSession
from tutor_payroll.models.immutability import ImmutableRecordError

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "AuditLog",
    "AppUser",
    "Assignment",
    "Student",
    "TutorProfile",
    "Adjustment",
    "Invoice",
    "InvoiceLine",
    "PayPeriod",
    "SessionHistory",
    "TutoringSession",
    "ImmutableRecordError",
]
