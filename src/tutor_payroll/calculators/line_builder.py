"""Invoice line builder with deterministic pricing and numbering."""

from __future__ import annotations

from datetime import date, time
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from tutor_payroll.calculators.types import AdjustmentType, LineCandidate, LineType


def signed_amount(adjustment_type: AdjustmentType | str, amount: Decimal) -> Decimal:
    """Monetary effect of an adjustment: negative for PENALTY, positive otherwise."""
    amount = Decimal(amount)
    if AdjustmentType(adjustment_type) is AdjustmentType.PENALTY:
        return -amount
    return amount


def invoice_number(week_start: date, tutor_id: UUID) -> str:
    """Deterministic invoice number: INV-YYYYMMDD-<first 8 hex of tutor id>."""
    return f"INV-{week_start.strftime('%Y%m%d')}-{tutor_id.hex[:8]}"


def _hhmm(value: time | str) -> str:
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value[:5]


class LineItemBuilder:
    """Builds invoice lines.

    Sign conventions:
    - SESSION: positive (minutes / 60 x rate)
    - ADJUSTMENT: signed by type (PENALTY negative)

    Rounding:
    - each line is rounded to cents at creation
    - invoice total is the sum of the rounded lines
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def session_amount(minutes: int, rate: Decimal) -> Decimal:
        """Pay for a session of the given length at an hourly rate."""
        return LineItemBuilder.round_to_cents(Decimal(minutes) / Decimal(60) * Decimal(rate))

    @staticmethod
    def create_session_line(
        session_id: UUID,
        minutes: int,
        rate: Decimal,
        subject: str,
        student_name: str,
        session_date: date,
        start_time: time | str,
        end_time: time | str,
    ) -> LineCandidate:
        """Create a SESSION line (positive amount)."""
        description = (
            f"{subject} - {student_name} "
            f"({session_date.isoformat()} {_hhmm(start_time)}-{_hhmm(end_time)})"
        )
        return LineCandidate(
            line_type=LineType.SESSION,
            amount=LineItemBuilder.session_amount(minutes, rate),
            description=description,
            session_id=session_id,
            minutes=minutes,
            rate=Decimal(rate),
        )

    @staticmethod
    def create_adjustment_line(
        adjustment_id: UUID,
        adjustment_type: AdjustmentType | str,
        amount: Decimal,
        reason: str,
    ) -> LineCandidate:
        """Create an ADJUSTMENT line carrying the adjustment's signed amount."""
        kind = AdjustmentType(adjustment_type)
        return LineCandidate(
            line_type=LineType.ADJUSTMENT,
            amount=LineItemBuilder.round_to_cents(signed_amount(kind, amount)),
            description=f"Adjustment ({kind.value}): {reason}",
            adjustment_id=adjustment_id,
        )

    @staticmethod
    def calculate_total(lines: list[LineCandidate]) -> Decimal:
        """Invoice total from its lines."""
        total = Decimal("0")
        for line in lines:
            total += line.amount
        return LineItemBuilder.round_to_cents(total)

    @staticmethod
    def validate_line_signs(lines: list[LineCandidate]) -> list[str]:
        """Validate that SESSION lines are non-negative.

        Returns list of error messages (empty if all valid).
        """
        errors: list[str] = []
        for i, line in enumerate(lines):
            if line.line_type == LineType.SESSION and line.amount < 0:
                errors.append(
                    f"Line {i} ({line.line_type.value}) has negative amount {line.amount}, expected positive"
                )
        return errors
