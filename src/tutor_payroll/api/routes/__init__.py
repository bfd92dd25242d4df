"""API routes."""

from tutor_payroll.api.routes.health import router as health_router
from tutor_payroll.api.routes.payroll import router as payroll_router
from tutor_payroll.api.routes.sessions import router as sessions_router

__all__ = ["health_router", "payroll_router", "sessions_router"]
