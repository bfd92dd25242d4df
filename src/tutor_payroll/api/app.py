"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tutor_payroll.api.errors import error_response
from tutor_payroll.api.routes import health_router, payroll_router, sessions_router
from tutor_payroll.config import configure_logging, get_settings
from tutor_payroll.database import dispose_db, init_db
from tutor_payroll.models import ImmutableRecordError
from tutor_payroll.services import BusinessRuleViolation, ErrorCode, InvalidTransitionError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Tutor Payroll API",
        description="Session approval and weekly payroll settlement",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(BusinessRuleViolation)
    async def business_rule_handler(
        request: Request, exc: BusinessRuleViolation
    ) -> JSONResponse:
        """Map business failures to their HTTP status."""
        return error_response(exc.code)

    @app.exception_handler(ImmutableRecordError)
    @app.exception_handler(InvalidTransitionError)
    async def invariant_handler(request: Request, exc: Exception) -> JSONResponse:
        """Invariant breaches are programming errors, never client errors."""
        logger.error("Invariant violated on %s %s: %s", request.method, request.url.path, exc)
        return error_response(ErrorCode.INTERNAL_ERROR)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": ErrorCode.INTERNAL_ERROR.value,
                "code": ErrorCode.INTERNAL_ERROR.value,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(sessions_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
