"""Pure settlement calculators."""

from tutor_payroll.calculators.line_builder import LineItemBuilder, invoice_number, signed_amount
from tutor_payroll.calculators.pay_periods import (
    PayPeriodRange,
    get_pay_period_range,
    get_pay_period_start,
)
from tutor_payroll.calculators.scheduling import AssignmentWindow, is_within_assignment_window
from tutor_payroll.calculators.session_diff import FieldDiff, compute_diffs

__all__ = [
    "LineItemBuilder",
    "invoice_number",
    "signed_amount",
    "PayPeriodRange",
    "get_pay_period_range",
    "get_pay_period_start",
    "AssignmentWindow",
    "is_within_assignment_window",
    "FieldDiff",
    "compute_diffs",
]
