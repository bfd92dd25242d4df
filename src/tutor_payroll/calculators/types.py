"""Type definitions for the settlement pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class AdjustmentType(str, Enum):
    """Manual ledger adjustment types."""

    BONUS = "BONUS"
    CORRECTION = "CORRECTION"
    PENALTY = "PENALTY"


class LineType(str, Enum):
    """Invoice line types."""

    SESSION = "SESSION"
    ADJUSTMENT = "ADJUSTMENT"


@dataclass
class LineCandidate:
    """An invoice line before persistence."""

    line_type: LineType
    amount: Decimal  # signed, rounded to cents
    description: str

    session_id: UUID | None = None
    adjustment_id: UUID | None = None

    # Only meaningful for SESSION lines
    minutes: int = 0
    rate: Decimal = Decimal("0")


@dataclass
class InvoiceCandidate:
    """A tutor's invoice for one pay period before persistence."""

    tutor_id: UUID
    period_start: date
    period_end: date
    invoice_number: str
    lines: list[LineCandidate] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0.00"))

    @property
    def is_empty(self) -> bool:
        return not self.lines
