"""Current user and access gate routes."""

from fastapi import APIRouter

from planlab.api.deps import CurrentUser, DbSession, Now
from planlab.db.models import RegistrationStatus
from planlab.errors import ErrorCode
from planlab.schemas.base import Envelope
from planlab.schemas.user import AccessGateRead, AuthedUserRead, MeRead, ProfileRead
from planlab.services.access_window import evaluate_learner_gate, load_profile

router = APIRouter(tags=["me"])


@router.get("/me", response_model=Envelope[MeRead])
async def read_me(current_user: CurrentUser, db: DbSession, now: Now) -> Envelope[MeRead]:
    """
    Identity, role, profile and the computed learner gate.

    Teachers are never gated; the frontend uses `reason` to pick which
    screen (onboarding, waiting for approval, closed) to show a student.
    """
    profile = await load_profile(db, current_user.user_id)
    cohort = profile.cohort if profile else None

    if current_user.is_teacher:
        gates = AccessGateRead(
            reason="OK", needs_onboarding=False, pending_approval=False, can_use_chat=True
        )
    else:
        gate = evaluate_learner_gate(profile, cohort, now)
        gates = AccessGateRead(
            reason=gate.reason.value if gate.reason else "OK",
            needs_onboarding=gate.reason == ErrorCode.NEEDS_ONBOARDING,
            pending_approval=(
                profile is not None
                and gate.reason != ErrorCode.NEEDS_ONBOARDING
                and profile.registration_status != RegistrationStatus.APPROVED.value
            ),
            can_use_chat=gate.allowed,
            access_starts_at=cohort.access_starts_at if cohort else None,
            access_ends_at=cohort.access_ends_at if cohort else None,
        )

    return Envelope[MeRead](
        data=MeRead(
            user=AuthedUserRead(
                user_id=current_user.user_id,
                email=current_user.email,
                role=current_user.role.value,
            ),
            profile=ProfileRead.model_validate(profile) if profile else None,
            gates=gates,
        )
    )
