"""Mapping of business error codes to HTTP responses."""

from fastapi import status
from fastapi.responses import JSONResponse

from tutor_payroll.services.results import ErrorCode


def status_for(code: ErrorCode) -> int:
    """HTTP status for a business error code."""
    if code is ErrorCode.INTERNAL_ERROR:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if code.is_not_found:
        return status.HTTP_404_NOT_FOUND
    if code is ErrorCode.RELATED_SESSION_INVALID:
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_409_CONFLICT


def error_response(code: ErrorCode) -> JSONResponse:
    return JSONResponse(
        status_code=status_for(code),
        content={"detail": code.value, "code": code.value},
    )

