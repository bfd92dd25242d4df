"""Session approval and weekly payroll settlement engine."""

__version__ = "0.1.0"
