"""Pay period materialization and lock checks."""

from __future__ import annotations

import logging
from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutor_payroll.calculators.pay_periods import get_pay_period_range, get_pay_period_start
from tutor_payroll.database import insert_ignoring_conflicts
from tutor_payroll.models import PayPeriod
from tutor_payroll.services.state_machine import PayPeriodStatus

logger = logging.getLogger(__name__)


class PayPeriodService:
    """Service for pay period rows.

    At most one row exists per Monday start date; concurrent creators all
    receive the same row.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_or_create_pay_period(
        self,
        start: date | datetime | str,
        *,
        for_update: bool = False,
        for_share: bool = False,
    ) -> PayPeriod:
        """Return the canonical period containing ``start``, creating it if needed.

        Args:
            start: Any date inside the week (normalized to its Monday)
            for_update: Take an exclusive row lock on the returned period
            for_share: Take a shared row lock instead
        """
        period_range = get_pay_period_range(start)

        result = await self.session.execute(
            insert_ignoring_conflicts(
                self.session,
                PayPeriod.__table__,
                index_elements=["period_start_date"],
                values={
                    "id": uuid4(),
                    "period_start_date": period_range.start,
                    "period_end_date": period_range.end,
                    "status": PayPeriodStatus.OPEN.value,
                },
            )
        )
        if result.rowcount:
            logger.info("Materialized pay period %s", period_range.start)

        period = await self._select(
            period_range.start, for_update=for_update, for_share=for_share
        )
        if period is None:
            raise RuntimeError(f"Pay period {period_range.start} vanished after upsert")
        return period

    async def get_pay_period(
        self,
        start: date | datetime | str,
        *,
        for_update: bool = False,
        for_share: bool = False,
    ) -> PayPeriod | None:
        """Return the stored period containing ``start``, or None."""
        return await self._select(
            get_pay_period_start(start),
            for_update=for_update,
            for_share=for_share,
        )

    async def get_pay_period_by_id(
        self,
        pay_period_id: UUID,
        *,
        for_share: bool = False,
    ) -> PayPeriod | None:
        stmt = (
            select(PayPeriod)
            .where(PayPeriod.id == pay_period_id)
            .execution_options(populate_existing=True)
        )
        if for_share:
            stmt = stmt.with_for_update(read=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def is_date_locked(self, value: date | datetime | str) -> bool:
        """Whether the period containing the date is LOCKED.

        Takes a shared lock on the period row so a concurrent lock cannot
        interleave with the caller's write.
        """
        period = await self.get_pay_period(value, for_share=True)
        return period is not None and period.status == PayPeriodStatus.LOCKED.value

    async def _select(
        self,
        period_start: date,
        *,
        for_update: bool = False,
        for_share: bool = False,
    ) -> PayPeriod | None:
        stmt = (
            select(PayPeriod)
            .where(PayPeriod.period_start_date == period_start)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        elif for_share:
            stmt = stmt.with_for_update(read=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
