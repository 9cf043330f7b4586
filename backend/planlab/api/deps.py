"""
FastAPI Dependencies for Authentication and Authorization.

Key patterns:
1. get_current_user: Verifies the provider's access token, derives the role
2. Role dependencies: TeacherUser / StudentUser / LearnerUser narrow the caller
3. No global "current user" state - always pass user explicitly

Security model:
- Access token arrives as 'Authorization: Bearer <token>' only
- Role is recomputed from the access policy on every request
- Chat ownership is checked in the services, not here
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from planlab.config import AccessPolicy, Settings, get_access_policy, get_settings
from planlab.db.models import Profile, UserRole
from planlab.db.session import get_db
from planlab.errors import ApiError, ErrorCode
from planlab.services.access_window import check_learner_access
from planlab.services.generation import GenerationClient, get_generation_client
from planlab.services.identity import (
    AuthedUser,
    JWTIdentityProvider,
    authenticate,
    get_identity_provider,
)


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Extract the access token from 'Authorization: Bearer <token>'."""
    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    raise ApiError(ErrorCode.UNAUTHENTICATED, "Sesión inválida o ausente.")


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    provider: Annotated[JWTIdentityProvider, Depends(get_identity_provider)],
    policy: Annotated[AccessPolicy, Depends(get_access_policy)],
) -> AuthedUser:
    """
    Verify the token and return the caller with their role.

    Raises:
    - UNAUTHENTICATED if the token is missing, invalid or expired
    - FORBIDDEN_DOMAIN if the email is outside the allowed domain
    """
    return authenticate(token, provider, policy)


def get_now() -> datetime:
    """Request clock. Overridden in tests to pin time-dependent behavior."""
    return datetime.now(timezone.utc)


# Type aliases for dependency injection
CurrentUser = Annotated[AuthedUser, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Now = Annotated[datetime, Depends(get_now)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Generation = Annotated[GenerationClient, Depends(get_generation_client)]


# =============================================================================
# AUTHORIZATION DEPENDENCIES
# =============================================================================


async def require_teacher(current_user: CurrentUser) -> AuthedUser:
    if current_user.role != UserRole.TEACHER:
        raise ApiError(ErrorCode.FORBIDDEN, "Solo docentes pueden realizar esta acción.")
    return current_user


async def require_student(current_user: CurrentUser) -> AuthedUser:
    if current_user.role != UserRole.STUDENT:
        raise ApiError(ErrorCode.FORBIDDEN, "Solo estudiantes pueden realizar esta acción.")
    return current_user


async def require_learner_access(
    current_user: Annotated[AuthedUser, Depends(require_student)],
    db: DbSession,
    now: Now,
) -> Profile:
    """
    Student who passed every learner gate (onboarding, approval, cohort, window).

    Returns the profile, with its cohort loaded.
    """
    return await check_learner_access(db, current_user.user_id, now)


async def require_chat_access(current_user: CurrentUser, db: DbSession, now: Now) -> AuthedUser:
    """
    Gate for chat-mutating actions: teachers pass, students must pass the learner gate.
    """
    if current_user.role == UserRole.STUDENT:
        await check_learner_access(db, current_user.user_id, now)
    return current_user


TeacherUser = Annotated[AuthedUser, Depends(require_teacher)]
StudentUser = Annotated[AuthedUser, Depends(require_student)]
LearnerProfile = Annotated[Profile, Depends(require_learner_access)]
ChatUser = Annotated[AuthedUser, Depends(require_chat_access)]
