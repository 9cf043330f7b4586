"""Weekly activity (hours) routes."""

from fastapi import APIRouter, Query, status

from planlab.api.deps import DbSession, LearnerProfile, Now, StudentUser
from planlab.schemas.activity import (
    ActivityList,
    ActivityPeriodRead,
    ActivitySaved,
    ActivitySubmit,
    PeriodBounds,
)
from planlab.schemas.base import Envelope
from planlab.services.activity_periods import PERIOD_DAYS, list_activity, register_activity

router = APIRouter(prefix="/hours", tags=["hours"])


@router.post("", response_model=Envelope[ActivitySaved], status_code=status.HTTP_201_CREATED)
async def submit_hours(
    data: ActivitySubmit,
    profile: LearnerProfile,
    db: DbSession,
    now: Now,
) -> Envelope[ActivitySaved]:
    """
    Record hours for the current weekly period.

    One submission per period; a repeat returns 409 CONFLICT with the
    period bounds in details.
    """
    entry, period = await register_activity(
        db,
        user_id=profile.user_id,
        cohort=profile.cohort,
        hours=data.hours,
        activity=data.activity,
        now=now,
    )
    return Envelope[ActivitySaved](
        data=ActivitySaved(
            saved=ActivityPeriodRead.model_validate(entry),
            period=PeriodBounds(period_start=period.start, period_end=period.end),
            cadence_days=PERIOD_DAYS,
        )
    )


@router.get("", response_model=Envelope[ActivityList])
async def list_hours(
    current_user: StudentUser,
    db: DbSession,
    limit: int = Query(20, ge=1, le=100),
) -> Envelope[ActivityList]:
    """List the caller's submissions, newest first."""
    items = await list_activity(db, current_user.user_id, limit=limit)
    return Envelope[ActivityList](
        data=ActivityList(items=[ActivityPeriodRead.model_validate(i) for i in items])
    )
