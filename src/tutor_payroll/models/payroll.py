"""Pay period, adjustment, invoice and invoice line models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutor_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from tutor_payroll.models.directory import TutorProfile


# ===== Pay Periods =====


class PayPeriod(Base, TimestampMixin):
    """Canonical Monday-to-Sunday payroll window, keyed by its start date."""

    __tablename__ = "pay_period"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_start_date: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    period_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="OPEN")
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    locked_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("status IN ('OPEN', 'LOCKED')", name="pay_period_status_check"),
        CheckConstraint(
            "period_end_date >= period_start_date",
            name="pay_period_dates_check",
        ),
    )

    @property
    def is_locked(self) -> bool:
        return self.status == "LOCKED"


# ===== Adjustments =====


class Adjustment(Base, TimestampMixin):
    """Signed manual ledger entry for a tutor within a pay period.

    The amount is always stored positive; the sign comes from the type.
    Adjustments are voided, never deleted.
    """

    __tablename__ = "adjustment"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("tutor_profile.id"), nullable=False)
    pay_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_period.id"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="APPROVED")
    related_session_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tutoring_session.id"),
        nullable=True,
    )
    created_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id"),
        nullable=True,
    )
    approved_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id"),
        nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Void (soft delete)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.id"),
        nullable=True,
    )
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "type IN ('BONUS', 'CORRECTION', 'PENALTY')",
            name="adjustment_type_check",
        ),
        CheckConstraint("amount > 0", name="adjustment_amount_positive"),
        CheckConstraint("status IN ('APPROVED')", name="adjustment_status_check"),
    )

    # Relationships
    tutor: Mapped[TutorProfile] = relationship()
    pay_period: Mapped[PayPeriod] = relationship()

    @property
    def signed_amount(self) -> Decimal:
        """Monetary effect of the adjustment (negative for penalties)."""
        from tutor_payroll.calculators.line_builder import signed_amount

        return signed_amount(self.type, self.amount)

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None


# ===== Invoices =====


class Invoice(Base, TimestampMixin):
    """Settled weekly invoice for one tutor. Created only by generation."""

    __tablename__ = "invoice"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tutor_id: Mapped[UUID] = mapped_column(ForeignKey("tutor_profile.id"), nullable=False)
    pay_period_id: Mapped[UUID] = mapped_column(ForeignKey("pay_period.id"), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    # Short and readable; (tutor_id, period_start) is the identity
    invoice_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ISSUED")

    __table_args__ = (
        UniqueConstraint("tutor_id", "period_start", name="invoice_tutor_period_unique"),
        CheckConstraint("status IN ('ISSUED')", name="invoice_status_check"),
    )

    # Relationships
    tutor: Mapped[TutorProfile] = relationship()
    lines: Mapped[list[InvoiceLine]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLine.line_no",
    )


class InvoiceLine(Base):
    """SESSION or ADJUSTMENT line of an invoice. Never mutated after insert."""

    __tablename__ = "invoice_line"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    line_type: Mapped[str] = mapped_column(String, nullable=False)
    session_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tutoring_session.id"),
        nullable=True,
        index=True,
    )
    adjustment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("adjustment.id"),
        nullable=True,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_no", name="invoice_line_position_unique"),
        CheckConstraint(
            "line_type IN ('SESSION', 'ADJUSTMENT')",
            name="invoice_line_type_check",
        ),
        CheckConstraint(
            "(line_type = 'SESSION' AND session_id IS NOT NULL AND adjustment_id IS NULL) OR "
            "(line_type = 'ADJUSTMENT' AND adjustment_id IS NOT NULL AND session_id IS NULL)",
            name="invoice_line_source_check",
        ),
    )

    # Relationships
    invoice: Mapped[Invoice] = relationship(back_populates="lines")
