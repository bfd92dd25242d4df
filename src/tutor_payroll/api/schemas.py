"""Pydantic schemas for API request/response models."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tutor_payroll.calculators.types import AdjustmentType
from tutor_payroll.models import Adjustment, Invoice
from tutor_payroll.services.results import BulkOutcome, BulkReason, BulkResult


# ============================================================================
# Session schemas
# ============================================================================


class SessionResponse(BaseModel):
    """Schema for a tutoring session after a transition."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    assignment_id: UUID
    tutor_id: UUID
    student_id: UUID
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: str
    mode: str | None = None
    location: str | None = None
    notes: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    created_at: datetime


class SessionListItemResponse(SessionResponse):
    """Schema for one row of the admin session list."""

    tutor_name: str
    student_name: str
    subject: str
    rate: Decimal


class SessionAggregatesResponse(BaseModel):
    """Counts and minutes over the filtered set, ignoring the status filter."""

    model_config = ConfigDict(from_attributes=True)

    counts: dict[str, int]
    total_minutes: int
    submitted_minutes: int
    approved_minutes: int
    rejected_minutes: int


class SessionListResponse(BaseModel):
    """Schema for listing sessions."""

    model_config = ConfigDict(from_attributes=True)

    items: list[SessionListItemResponse]
    total: int
    page: int
    page_size: int
    aggregates: SessionAggregatesResponse


class RejectRequest(BaseModel):
    """Schema for rejecting a session."""

    reason: str | None = Field(default=None, max_length=1000)


class BulkApproveRequest(BaseModel):
    """Schema for bulk approval."""

    session_ids: list[UUID] = Field(min_length=1, max_length=500)


class BulkRejectRequest(BaseModel):
    """Schema for bulk rejection."""

    session_ids: list[UUID] = Field(min_length=1, max_length=500)
    reason: str | None = Field(default=None, max_length=1000)


class BulkItemResponse(BaseModel):
    """Outcome for one requested session."""

    model_config = ConfigDict(from_attributes=True)

    session_id: UUID
    outcome: BulkOutcome
    reason: BulkReason | None = None


class BulkResponse(BaseModel):
    """Per-item outcomes plus counts."""

    results: list[BulkItemResponse]
    summary: dict[str, int]

    @classmethod
    def from_result(cls, result: BulkResult) -> "BulkResponse":
        return cls(
            results=[BulkItemResponse.model_validate(item) for item in result.items],
            summary=result.summary,
        )


class FieldDiffResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    field: str
    label: str
    before: str
    after: str
    important: bool


class HistoryActorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    role: str
    name: str | None = None


class HistoryEntryResponse(BaseModel):
    """Schema for one session history entry with its computed diff."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    change_type: str
    created_at: datetime
    actor: HistoryActorResponse | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    diffs: list[FieldDiffResponse] = []


class HistoryResponse(BaseModel):
    history: list[HistoryEntryResponse]


# ============================================================================
# Pay period and invoice schemas
# ============================================================================


class GenerateWeekRequest(BaseModel):
    """Schema for generating a week's invoices. Any date in the week is accepted."""

    week_start: date


class PayPeriodResponse(BaseModel):
    """Schema for pay period response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period_start_date: date
    period_end_date: date
    status: str
    locked_at: datetime | None = None
    locked_by_user_id: UUID | None = None
    created_at: datetime


class PayPeriodEnvelope(BaseModel):
    pay_period: PayPeriodResponse


class InvoiceLineResponse(BaseModel):
    """Schema for invoice line response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    line_no: int
    line_type: str
    session_id: UUID | None = None
    adjustment_id: UUID | None = None
    description: str
    minutes: int
    rate: Decimal
    amount: Decimal


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tutor_id: UUID
    tutor_name: str | None = None
    pay_period_id: UUID
    period_start: date
    period_end: date
    invoice_number: str
    total_amount: Decimal
    status: str
    created_at: datetime
    lines: list[InvoiceLineResponse] = []

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceResponse":
        response = cls.model_validate(invoice)
        response.tutor_name = invoice.tutor.full_name if invoice.tutor else None
        return response


class InvoiceListResponse(BaseModel):
    invoices: list[InvoiceResponse]


# ============================================================================
# Adjustment schemas
# ============================================================================


class AdjustmentCreateRequest(BaseModel):
    """Schema for creating an adjustment."""

    tutor_id: UUID
    type: AdjustmentType
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    reason: str = Field(min_length=1, max_length=500)
    related_session_id: UUID | None = None


class VoidAdjustmentRequest(BaseModel):
    """Schema for voiding an adjustment."""

    reason: str | None = Field(default=None, max_length=500)


class AdjustmentResponse(BaseModel):
    """Schema for adjustment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tutor_id: UUID
    tutor_name: str | None = None
    pay_period_id: UUID
    type: str
    amount: Decimal
    signed_amount: Decimal
    reason: str
    status: str
    related_session_id: UUID | None = None
    created_by_user_id: UUID | None = None
    approved_by_user_id: UUID | None = None
    approved_at: datetime | None = None
    voided_at: datetime | None = None
    voided_by_user_id: UUID | None = None
    void_reason: str | None = None
    created_at: datetime

    @classmethod
    def from_adjustment(cls, adjustment: Adjustment, tutor_name: str | None = None) -> "AdjustmentResponse":
        response = cls.model_validate(adjustment)
        response.tutor_name = tutor_name
        return response


class AdjustmentEnvelope(BaseModel):
    adjustment: AdjustmentResponse


class AdjustmentListResponse(BaseModel):
    adjustments: list[AdjustmentResponse]


# ============================================================================
# Integrity report schemas
# ============================================================================


class SessionOverlapResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tutor_id: UUID
    date: date
    session_id: UUID
    overlap_id: UUID


class OutsideWindowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: UUID
    tutor_id: UUID
    student_id: UUID
    date: date
    start_time: time
    end_time: time


class MissingInvoiceLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: UUID
    tutor_id: UUID
    date: date


class InvoiceTotalMismatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invoice_id: UUID
    invoice_number: str
    total_amount: Decimal
    line_total: Decimal


class PendingSubmissionsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tutor_id: UUID
    tutor_name: str
    pending: int


class DuplicateSessionsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tutor_id: UUID
    student_id: UUID
    date: date
    start_time: time
    end_time: time
    session_ids: list[UUID]
    count: int


class IntegrityReportResponse(BaseModel):
    """Schema for the pay period integrity report."""

    model_config = ConfigDict(from_attributes=True)

    week_start: date
    week_end: date
    pay_period_status: str
    pay_period_id: UUID | None = None
    is_clean: bool
    overlaps: list[SessionOverlapResponse]
    outside_assignment_window: list[OutsideWindowResponse]
    missing_invoice_lines: list[MissingInvoiceLineResponse]
    invoice_total_mismatches: list[InvoiceTotalMismatchResponse]
    pending_submissions: list[PendingSubmissionsResponse]
    duplicate_sessions: list[DuplicateSessionsResponse]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
