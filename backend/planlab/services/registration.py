"""
Learner onboarding and teacher review of registrations.

A profile is created (or overwritten) by the student's onboarding submit and
always lands in "pending"; only a teacher moves it to approved or rejected.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from planlab.db.models import Cohort, Profile, RegistrationStatus, UserRole
from planlab.errors import ApiError, ErrorCode
from planlab.schemas.user import OnboardingSubmit
from planlab.services.access_window import registration_open
from planlab.services.identity import AuthedUser

logger = logging.getLogger(__name__)


async def submit_onboarding(
    db: AsyncSession, user: AuthedUser, data: OnboardingSubmit, now: datetime
) -> Profile:
    """
    Upsert the caller's profile from onboarding data.

    The cohort must exist, be active and have its registration open.
    """
    cohort = await db.get(Cohort, data.cohort_id)
    if cohort is None:
        raise ApiError(ErrorCode.NOT_FOUND, "Cohorte no encontrada.")
    if not cohort.is_active:
        raise ApiError(ErrorCode.FORBIDDEN, "La cohorte está cerrada.")
    if not registration_open(cohort, now):
        raise ApiError(
            ErrorCode.FORBIDDEN,
            "El registro aún no está habilitado para esta cohorte.",
            details={"registration_opens_at": cohort.registration_opens_at.isoformat()},
        )

    profile = await db.get(Profile, user.user_id)
    if profile is None:
        profile = Profile(user_id=user.user_id)
        db.add(profile)

    profile.email = user.email.lower()
    profile.role = UserRole.STUDENT.value
    profile.ru = data.ru
    profile.first_name = data.first_name
    profile.last_name = data.last_name
    profile.semester = data.semester
    profile.company_name = data.company_name
    profile.cohort_id = cohort.id
    profile.registration_status = RegistrationStatus.PENDING.value

    await db.commit()
    await db.refresh(profile)
    logger.info("Onboarding submitted user=%s cohort=%s", user.user_id, cohort.id)
    return profile


async def set_registration_status(
    db: AsyncSession, user_id: UUID, status: RegistrationStatus
) -> Profile:
    """Teacher approves or rejects a student's registration."""
    profile = await db.get(Profile, user_id)
    if profile is None:
        raise ApiError(ErrorCode.NOT_FOUND, "Estudiante no encontrado.")

    profile.registration_status = status.value
    await db.commit()
    await db.refresh(profile)
    logger.info("Registration user=%s set to %s", user_id, status.value)
    return profile


async def list_students(
    db: AsyncSession,
    *,
    cohort_id: UUID | None = None,
    status: RegistrationStatus | None = None,
    q: str | None = None,
    limit: int = 200,
) -> list[Profile]:
    """Student profiles for the teacher dashboard, newest first."""
    query = select(Profile).where(Profile.role == UserRole.STUDENT.value)

    if cohort_id:
        query = query.where(Profile.cohort_id == cohort_id)
    if status:
        query = query.where(Profile.registration_status == status.value)
    if q:
        like = f"%{q.lower()}%"
        query = query.where(
            or_(
                Profile.ru.ilike(like),
                Profile.first_name.ilike(like),
                Profile.last_name.ilike(like),
                Profile.email.ilike(like),
            )
        )

    query = query.order_by(Profile.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars())
