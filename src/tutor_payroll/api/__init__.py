"""HTTP API for the tutor payroll engine."""
