"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID, uuid4

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from tutor_payroll.database import init_db
from tutor_payroll.services import (
    AdjustmentService,
    ApprovalService,
    AuditContext,
    IntegrityService,
    PayrollService,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    The session is handed out idle; each service call opens its own unit of work.
    """
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_admin_id(
    x_admin_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the acting administrator from the X-Admin-ID header."""
    if not x_admin_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Admin-ID header is required",
        )
    try:
        return UUID(x_admin_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Admin-ID format",
        )


async def get_audit_context(
    request: Request,
    x_request_id: Annotated[str | None, Header()] = None,
) -> AuditContext:
    """Request metadata recorded on audit entries."""
    return AuditContext(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        correlation_id=x_request_id or str(uuid4()),
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AdminId = Annotated[UUID, Depends(get_admin_id)]
RequestAuditContext = Annotated[AuditContext, Depends(get_audit_context)]


def get_approval_service(db: DbSession) -> ApprovalService:
    return ApprovalService(db)


def get_adjustment_service(db: DbSession) -> AdjustmentService:
    return AdjustmentService(db)


def get_payroll_service(db: DbSession) -> PayrollService:
    return PayrollService(db)


def get_integrity_service(db: DbSession) -> IntegrityService:
    return IntegrityService(db)


Approvals = Annotated[ApprovalService, Depends(get_approval_service)]
Adjustments = Annotated[AdjustmentService, Depends(get_adjustment_service)]
Payroll = Annotated[PayrollService, Depends(get_payroll_service)]
Integrity = Annotated[IntegrityService, Depends(get_integrity_service)]
