"""Adjustment ledger - manual bonuses, corrections and penalties per pay period."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tutor_payroll.calculators.pay_periods import get_pay_period_range, get_pay_period_start
from tutor_payroll.calculators.types import AdjustmentType
from tutor_payroll.database import transaction
from tutor_payroll.models import Adjustment, TutoringSession, TutorProfile, utcnow
from tutor_payroll.services.audit_log import (
    AuditContext,
    AuditEntry,
    AuditLogWriter,
    DatabaseAuditLogWriter,
)
from tutor_payroll.services.pay_period_service import PayPeriodService
from tutor_payroll.services.results import BusinessRuleViolation, ErrorCode, ServiceResult

logger = logging.getLogger(__name__)

DEFAULT_VOID_REASON = "deleted_by_admin"


@dataclass(frozen=True)
class AdjustmentInput:
    """Validated request to create an adjustment."""

    tutor_id: UUID
    type: AdjustmentType
    amount: Decimal
    reason: str
    related_session_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", AdjustmentType(self.type))
        object.__setattr__(self, "amount", Decimal(self.amount))
        if self.amount <= 0:
            raise ValueError(f"Adjustment amount must be positive, got {self.amount}")
        if not self.reason or not self.reason.strip():
            raise ValueError("Adjustment reason is required")


class AdjustmentService:
    """Service for the adjustment ledger.

    Adjustments are created APPROVED and are voided, never deleted. Both
    create and void are refused once the pay period is LOCKED.
    """

    def __init__(self, session: AsyncSession, audit_writer: AuditLogWriter | None = None):
        self.session = session
        self.audit_writer = audit_writer or DatabaseAuditLogWriter()
        self.pay_periods = PayPeriodService(session)

    async def create(
        self,
        week_start: date | datetime | str,
        data: AdjustmentInput,
        admin_id: UUID,
        context: AuditContext | None = None,
    ) -> ServiceResult[Adjustment]:
        """Create an APPROVED adjustment in the pay period containing ``week_start``."""
        period_range = get_pay_period_range(week_start)
        try:
            async with transaction(self.session):
                tutor = await self.session.get(TutorProfile, data.tutor_id)
                if tutor is None:
                    raise BusinessRuleViolation(ErrorCode.TUTOR_NOT_FOUND)

                if data.related_session_id is not None:
                    related = await self.session.get(TutoringSession, data.related_session_id)
                    if (
                        related is None
                        or related.tutor_id != data.tutor_id
                        or not period_range.contains(related.date)
                    ):
                        raise BusinessRuleViolation(ErrorCode.RELATED_SESSION_INVALID)

                period = await self.pay_periods.get_or_create_pay_period(
                    period_range.start, for_share=True
                )
                if period.is_locked:
                    raise BusinessRuleViolation(ErrorCode.PAY_PERIOD_LOCKED)

                now = utcnow()
                adjustment = Adjustment(
                    tutor_id=data.tutor_id,
                    pay_period_id=period.id,
                    type=data.type.value,
                    amount=data.amount,
                    reason=data.reason,
                    status="APPROVED",
                    related_session_id=data.related_session_id,
                    created_by_user_id=admin_id,
                    approved_by_user_id=admin_id,
                    approved_at=now,
                )
                self.session.add(adjustment)
                await self.session.flush()

                await self.audit_writer.write(
                    self.session,
                    AuditEntry.build(
                        action="payroll.adjustment.create",
                        entity_type="adjustment",
                        entity_id=adjustment.id,
                        actor_user_id=admin_id,
                        context=context,
                        meta={
                            "tutorId": str(data.tutor_id),
                            "amount": str(data.amount),
                            "type": data.type.value,
                            "relatedSessionId": (
                                str(data.related_session_id) if data.related_session_id else None
                            ),
                        },
                    ),
                )
        except BusinessRuleViolation as exc:
            logger.warning(
                "Adjustment for tutor %s in week %s refused: %s",
                data.tutor_id,
                period_range.start,
                exc.code.value,
            )
            return ServiceResult.failure(exc.code)

        logger.info(
            "Adjustment %s (%s %s) created for tutor %s",
            adjustment.id,
            data.type.value,
            data.amount,
            data.tutor_id,
        )
        return ServiceResult.success(adjustment)

    async def list(self, week_start: date | datetime | str) -> list[Adjustment]:
        """All adjustments of the week, voided included, oldest first."""
        period = await self.pay_periods.get_pay_period(get_pay_period_start(week_start))
        if period is None:
            return []

        result = await self.session.execute(
            select(Adjustment)
            .where(Adjustment.pay_period_id == period.id)
            .options(selectinload(Adjustment.tutor))
            .order_by(Adjustment.created_at, Adjustment.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def void(
        self,
        adjustment_id: UUID,
        reason: str | None,
        admin_id: UUID,
        context: AuditContext | None = None,
    ) -> ServiceResult[Adjustment]:
        """Void an adjustment so future generation ignores it.

        Fails, in order: adjustment_not_found, pay_period_locked,
        adjustment_already_voided.
        """
        void_reason = reason or DEFAULT_VOID_REASON
        try:
            async with transaction(self.session):
                result = await self.session.execute(
                    select(Adjustment)
                    .where(Adjustment.id == adjustment_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                adjustment = result.scalar_one_or_none()
                if adjustment is None:
                    raise BusinessRuleViolation(ErrorCode.ADJUSTMENT_NOT_FOUND)

                period = await self.pay_periods.get_pay_period_by_id(
                    adjustment.pay_period_id, for_share=True
                )
                if period is not None and period.is_locked:
                    raise BusinessRuleViolation(ErrorCode.PAY_PERIOD_LOCKED)

                if adjustment.voided_at is not None:
                    raise BusinessRuleViolation(ErrorCode.ADJUSTMENT_ALREADY_VOIDED)

                adjustment.voided_at = utcnow()
                adjustment.voided_by_user_id = admin_id
                adjustment.void_reason = void_reason
                await self.session.flush()

                await self.audit_writer.write(
                    self.session,
                    AuditEntry.build(
                        action="payroll.adjustment.delete",
                        entity_type="adjustment",
                        entity_id=adjustment.id,
                        actor_user_id=admin_id,
                        context=context,
                        meta={"reason": void_reason},
                    ),
                )
        except BusinessRuleViolation as exc:
            logger.warning("Void of adjustment %s refused: %s", adjustment_id, exc.code.value)
            return ServiceResult.failure(exc.code)

        logger.info("Adjustment %s voided by %s", adjustment_id, admin_id)
        return ServiceResult.success(adjustment)
