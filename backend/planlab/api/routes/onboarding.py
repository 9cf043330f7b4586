"""Student onboarding routes."""

from fastapi import APIRouter

from planlab.api.deps import DbSession, Now, StudentUser
from planlab.schemas.base import Envelope
from planlab.schemas.user import OnboardingSubmit, ProfileRead
from planlab.services.registration import submit_onboarding

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


@router.post("", response_model=Envelope[ProfileRead])
async def submit(
    data: OnboardingSubmit,
    current_user: StudentUser,
    db: DbSession,
    now: Now,
) -> Envelope[ProfileRead]:
    """Register the caller in a cohort. The registration waits for teacher approval."""
    profile = await submit_onboarding(db, current_user, data, now)
    return Envelope[ProfileRead](data=ProfileRead.model_validate(profile))
