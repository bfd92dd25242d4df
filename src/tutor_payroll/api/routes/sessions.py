"""Admin session review endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from tutor_payroll.api.dependencies import AdminId, Approvals, RequestAuditContext
from tutor_payroll.api.schemas import (
    BulkApproveRequest,
    BulkRejectRequest,
    BulkResponse,
    ErrorResponse,
    HistoryEntryResponse,
    HistoryResponse,
    RejectRequest,
    SessionListResponse,
    SessionResponse,
)
from tutor_payroll.services import SessionListQuery, SessionStatus

router = APIRouter(prefix="/admin/sessions", tags=["sessions"])


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    approvals: Approvals,
    status_filter: Annotated[SessionStatus | None, Query(alias="status")] = None,
    date_from: Annotated[date | None, Query(alias="from")] = None,
    date_to: Annotated[date | None, Query(alias="to")] = None,
    tutor_id: UUID | None = None,
    student_id: UUID | None = None,
    q: Annotated[str | None, Query(max_length=200)] = None,
    sort: Annotated[str, Query(pattern="^(date|tutor|student|createdAt)$")] = "date",
    order: Annotated[str, Query(pattern="^(asc|desc)$")] = "desc",
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=200)] = 25,
) -> SessionListResponse:
    """List sessions for review, with status counts and minutes."""
    result = await approvals.list_sessions(
        SessionListQuery(
            status=status_filter,
            date_from=date_from,
            date_to=date_to,
            tutor_id=tutor_id,
            student_id=student_id,
            q=q,
            sort=sort,
            order=order,
            page=page,
            page_size=page_size,
        )
    )
    return SessionListResponse.model_validate(result)


@router.get(
    "/{session_id}/history",
    response_model=HistoryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_session_history(
    approvals: Approvals,
    session_id: Annotated[UUID, Path()],
) -> HistoryResponse:
    """Transition history, newest first, with field diffs."""
    entries = (await approvals.get_history(session_id)).unwrap()
    return HistoryResponse(
        history=[HistoryEntryResponse.model_validate(entry) for entry in entries]
    )


@router.post(
    "/bulk-approve",
    response_model=BulkResponse,
)
async def bulk_approve_sessions(
    approvals: Approvals,
    admin_id: AdminId,
    context: RequestAuditContext,
    payload: BulkApproveRequest,
) -> BulkResponse:
    """Approve many sessions; each id gets its own outcome."""
    result = await approvals.bulk_approve(payload.session_ids, admin_id, context)
    return BulkResponse.from_result(result)


@router.post(
    "/bulk-reject",
    response_model=BulkResponse,
)
async def bulk_reject_sessions(
    approvals: Approvals,
    admin_id: AdminId,
    context: RequestAuditContext,
    payload: BulkRejectRequest,
) -> BulkResponse:
    """Reject many sessions; each id gets its own outcome."""
    result = await approvals.bulk_reject(payload.session_ids, payload.reason, admin_id, context)
    return BulkResponse.from_result(result)


@router.post(
    "/{session_id}/approve",
    response_model=SessionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_session(
    approvals: Approvals,
    admin_id: AdminId,
    context: RequestAuditContext,
    session_id: Annotated[UUID, Path()],
) -> SessionResponse:
    """Approve a submitted session."""
    tutoring_session = (await approvals.approve(session_id, admin_id, context)).unwrap()
    return SessionResponse.model_validate(tutoring_session)


@router.post(
    "/{session_id}/reject",
    response_model=SessionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject_session(
    approvals: Approvals,
    admin_id: AdminId,
    context: RequestAuditContext,
    session_id: Annotated[UUID, Path()],
    payload: RejectRequest | None = None,
) -> SessionResponse:
    """Reject a submitted session with an optional reason."""
    reason = payload.reason if payload else None
    tutoring_session = (await approvals.reject(session_id, reason, admin_id, context)).unwrap()
    return SessionResponse.model_validate(tutoring_session)
