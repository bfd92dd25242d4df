"""Pay period, invoice, adjustment and integrity endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from tutor_payroll.api.dependencies import (
    AdminId,
    Adjustments,
    Integrity,
    Payroll,
    RequestAuditContext,
)
from tutor_payroll.api.schemas import (
    AdjustmentCreateRequest,
    AdjustmentEnvelope,
    AdjustmentListResponse,
    AdjustmentResponse,
    ErrorResponse,
    GenerateWeekRequest,
    IntegrityReportResponse,
    InvoiceListResponse,
    InvoiceResponse,
    PayPeriodEnvelope,
    PayPeriodResponse,
    VoidAdjustmentRequest,
)
from tutor_payroll.services import AdjustmentInput

router = APIRouter(prefix="/admin", tags=["payroll"])

WeekStart = Annotated[date, Path(description="Any date inside the week; normalized to Monday")]


# ============================================================================
# Generation and locking
# ============================================================================


@router.post(
    "/payroll/generate-week",
    response_model=InvoiceListResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def generate_week(
    payroll: Payroll,
    admin_id: AdminId,
    context: RequestAuditContext,
    payload: GenerateWeekRequest,
) -> InvoiceListResponse:
    """Generate invoices for a week from approved sessions and adjustments."""
    invoices = (
        await payroll.generate_payroll_week(payload.week_start, admin_id, context)
    ).unwrap()
    return InvoiceListResponse(invoices=[InvoiceResponse.from_invoice(i) for i in invoices])


@router.post(
    "/pay-periods/{week_start}/lock",
    response_model=PayPeriodEnvelope,
    responses={409: {"model": ErrorResponse}},
)
async def lock_pay_period(
    payroll: Payroll,
    admin_id: AdminId,
    context: RequestAuditContext,
    week_start: WeekStart,
) -> PayPeriodEnvelope:
    """Lock a week, generating invoices first if none exist."""
    period = (await payroll.lock_pay_period(week_start, admin_id, context)).unwrap()
    return PayPeriodEnvelope(pay_period=PayPeriodResponse.model_validate(period))


@router.get(
    "/pay-periods/{week_start}",
    response_model=PayPeriodEnvelope,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_period(payroll: Payroll, week_start: WeekStart) -> PayPeriodEnvelope:
    """Get the stored pay period for a week."""
    period = await payroll.get_pay_period(week_start)
    if period is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="pay_period_not_found",
        )
    return PayPeriodEnvelope(pay_period=PayPeriodResponse.model_validate(period))


@router.get(
    "/pay-periods/{week_start}/invoices",
    response_model=InvoiceListResponse,
)
async def list_invoices(payroll: Payroll, week_start: WeekStart) -> InvoiceListResponse:
    """Invoices of a week with their lines."""
    invoices = await payroll.list_invoices(week_start)
    return InvoiceListResponse(invoices=[InvoiceResponse.from_invoice(i) for i in invoices])


# ============================================================================
# Adjustments
# ============================================================================


@router.post(
    "/pay-periods/{week_start}/adjustments",
    response_model=AdjustmentEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_adjustment(
    adjustments: Adjustments,
    admin_id: AdminId,
    context: RequestAuditContext,
    week_start: WeekStart,
    payload: AdjustmentCreateRequest,
) -> AdjustmentEnvelope:
    """Record a bonus, correction or penalty for a tutor in a week."""
    data = AdjustmentInput(
        tutor_id=payload.tutor_id,
        type=payload.type,
        amount=payload.amount,
        reason=payload.reason,
        related_session_id=payload.related_session_id,
    )
    adjustment = (await adjustments.create(week_start, data, admin_id, context)).unwrap()
    return AdjustmentEnvelope(adjustment=AdjustmentResponse.from_adjustment(adjustment))


@router.get(
    "/pay-periods/{week_start}/adjustments",
    response_model=AdjustmentListResponse,
)
async def list_adjustments(adjustments: Adjustments, week_start: WeekStart) -> AdjustmentListResponse:
    """All adjustments of a week, voided included."""
    rows = await adjustments.list(week_start)
    return AdjustmentListResponse(
        adjustments=[
            AdjustmentResponse.from_adjustment(a, tutor_name=a.tutor.full_name) for a in rows
        ]
    )


@router.delete(
    "/adjustments/{adjustment_id}",
    response_model=AdjustmentEnvelope,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def void_adjustment(
    adjustments: Adjustments,
    admin_id: AdminId,
    context: RequestAuditContext,
    adjustment_id: Annotated[UUID, Path()],
    payload: VoidAdjustmentRequest | None = None,
) -> AdjustmentEnvelope:
    """Void an adjustment. The row is kept and flagged."""
    reason = payload.reason if payload else None
    adjustment = (await adjustments.void(adjustment_id, reason, admin_id, context)).unwrap()
    return AdjustmentEnvelope(adjustment=AdjustmentResponse.from_adjustment(adjustment))


# ============================================================================
# Integrity
# ============================================================================


@router.get(
    "/integrity/pay-period/{week_start}",
    response_model=IntegrityReportResponse,
)
async def pay_period_integrity(integrity: Integrity, week_start: WeekStart) -> IntegrityReportResponse:
    """Consistency report for a week."""
    report = await integrity.build_report(week_start)
    return IntegrityReportResponse.model_validate(report)
