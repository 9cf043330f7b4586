"""
Error taxonomy shared by services and routes.

Every failure leaving the API carries a stable code from ErrorCode.
Callers branch on the code, never on the message text.
"""

from enum import Enum as PyEnum
from typing import Any

from fastapi import status


class ErrorCode(str, PyEnum):
    """Closed set of error codes returned in the failure envelope."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    FORBIDDEN_DOMAIN = "FORBIDDEN_DOMAIN"
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"
    # Learner access gate causes
    NEEDS_ONBOARDING = "NEEDS_ONBOARDING"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    COHORT_INACTIVE = "COHORT_INACTIVE"
    ACCESS_NOT_STARTED = "ACCESS_NOT_STARTED"
    ACCESS_EXPIRED = "ACCESS_EXPIRED"
    # Generation collaborator returned unusable output
    MALFORMED_OUTPUT = "MALFORMED_OUTPUT"


_DEFAULT_STATUS: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.FORBIDDEN_DOMAIN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.NEEDS_ONBOARDING: status.HTTP_403_FORBIDDEN,
    ErrorCode.PENDING_APPROVAL: status.HTTP_403_FORBIDDEN,
    ErrorCode.COHORT_INACTIVE: status.HTTP_403_FORBIDDEN,
    ErrorCode.ACCESS_NOT_STARTED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ACCESS_EXPIRED: status.HTTP_403_FORBIDDEN,
    ErrorCode.MALFORMED_OUTPUT: status.HTTP_502_BAD_GATEWAY,
}


class ApiError(Exception):
    """
    Domain error rendered as a failure envelope by the app's exception handler.

    Raise it from services or dependencies:

        raise ApiError(ErrorCode.NOT_FOUND, "Chat no encontrado.")
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code or _DEFAULT_STATUS[code]
        self.details = details

    def __repr__(self) -> str:
        return f"ApiError({self.code.value}, {self.message!r})"
