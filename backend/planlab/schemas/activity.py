"""Weekly activity period schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import Field

from planlab.schemas.base import BaseSchema


class ActivitySubmit(BaseSchema):
    """Hours and description for the current period."""

    hours: float = Field(..., ge=0, le=200)
    activity: str = Field(..., min_length=1, max_length=500)


class ActivityPeriodRead(BaseSchema):
    id: UUID
    user_id: UUID
    cohort_id: UUID | None
    period_start: date
    period_end: date
    hours: float
    activity: str
    created_at: datetime


class PeriodBounds(BaseSchema):
    period_start: date
    period_end: date


class ActivitySaved(BaseSchema):
    saved: ActivityPeriodRead
    period: PeriodBounds
    cadence_days: int = 7


class ActivityList(BaseSchema):
    items: list[ActivityPeriodRead]
