"""Teacher-side student management routes."""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Query

from planlab.api.deps import DbSession, TeacherUser
from planlab.db.models import RegistrationStatus
from planlab.schemas.base import Envelope
from planlab.schemas.user import ProfileRead, RegistrationDecision
from planlab.services.registration import list_students, set_registration_status

router = APIRouter(prefix="/teacher/students", tags=["students"])


@router.get("", response_model=Envelope[list[ProfileRead]])
async def list_student_profiles(
    teacher: TeacherUser,
    db: DbSession,
    cohort_id: UUID | None = None,
    status: Literal["pending", "approved", "rejected"] | None = None,
    q: str | None = Query(None, min_length=1, max_length=80),
) -> Envelope[list[ProfileRead]]:
    """
    List student profiles.

    Filters:
    - cohort_id: only students of that cohort
    - status: registration status
    - q: substring of RU, name or email
    """
    profiles = await list_students(
        db,
        cohort_id=cohort_id,
        status=RegistrationStatus(status) if status else None,
        q=q,
    )
    return Envelope[list[ProfileRead]](data=[ProfileRead.model_validate(p) for p in profiles])


@router.post("/{user_id}/registration", response_model=Envelope[ProfileRead])
async def decide_registration(
    user_id: UUID,
    data: RegistrationDecision,
    teacher: TeacherUser,
    db: DbSession,
) -> Envelope[ProfileRead]:
    """Approve or reject a student's registration."""
    profile = await set_registration_status(db, user_id, RegistrationStatus(data.status))
    return Envelope[ProfileRead](data=ProfileRead.model_validate(profile))
