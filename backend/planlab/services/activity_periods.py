"""
Weekly activity periods.

Periods are 7-day windows anchored at a cohort's Saturday (hours_start_at):
period_start is a Saturday, period_end the following Friday (inclusive).
Submissions are insert-only, one per (user, period).
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planlab.db.models import ActivityPeriod, Cohort
from planlab.errors import ApiError, ErrorCode
from planlab.services.access_window import as_utc

logger = logging.getLogger(__name__)

ANCHOR_WEEKDAY = 5  # Saturday (date.weekday())
PERIOD_DAYS = 7


@dataclass(frozen=True)
class Period:
    start: date
    end: date  # inclusive

    def as_dict(self) -> dict[str, str]:
        return {"period_start": self.start.isoformat(), "period_end": self.end.isoformat()}


def is_valid_anchor(anchor: date) -> bool:
    return anchor.weekday() == ANCHOR_WEEKDAY


def compute_weekly_period(now: datetime, anchor: date) -> Period:
    """
    Period containing `now` (UTC date), counted in whole weeks from anchor.

    Dates before the anchor fall into the first period.
    """
    today = as_utc(now).date()
    days_from_anchor = max(0, (today - anchor).days)
    weeks = days_from_anchor // PERIOD_DAYS
    start = anchor + timedelta(days=weeks * PERIOD_DAYS)
    return Period(start=start, end=start + timedelta(days=PERIOD_DAYS - 1))


def _conflict(period: Period) -> ApiError:
    return ApiError(
        ErrorCode.CONFLICT,
        "Ya registraste tus horas para este periodo. No se permite editar.",
        details=period.as_dict(),
    )


async def register_activity(
    db: AsyncSession,
    *,
    user_id: UUID,
    cohort: Cohort,
    hours: float,
    activity: str,
    now: datetime,
) -> tuple[ActivityPeriod, Period]:
    """
    Record hours for the current period of the cohort.

    Raises CONFLICT (with the period bounds) if the user already submitted
    for this period, including when a concurrent insert wins the race.
    """
    if cohort.hours_start_at is None:
        raise ApiError(
            ErrorCode.INTERNAL,
            "La cohorte no tiene configurado el primer sábado (hours_start_at).",
            details={"cohort_id": str(cohort.id)},
        )
    if not is_valid_anchor(cohort.hours_start_at):
        raise ApiError(
            ErrorCode.BAD_REQUEST,
            "hours_start_at debe ser sábado.",
            details={"hours_start_at": cohort.hours_start_at.isoformat()},
        )

    period = compute_weekly_period(now, cohort.hours_start_at)

    result = await db.execute(
        select(ActivityPeriod.id).where(
            ActivityPeriod.user_id == user_id,
            ActivityPeriod.period_start == period.start,
        )
    )
    if result.scalar_one_or_none() is not None:
        raise _conflict(period)

    entry = ActivityPeriod(
        user_id=user_id,
        cohort_id=cohort.id,
        period_start=period.start,
        period_end=period.end,
        hours=hours,
        activity=activity,
    )
    db.add(entry)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info("Concurrent activity submission user=%s period=%s", user_id, period.start)
        raise _conflict(period) from e

    await db.refresh(entry)
    return entry, period


async def list_activity(db: AsyncSession, user_id: UUID, *, limit: int = 20) -> list[ActivityPeriod]:
    """Most recent submissions first."""
    result = await db.execute(
        select(ActivityPeriod)
        .where(ActivityPeriod.user_id == user_id)
        .order_by(ActivityPeriod.created_at.desc(), ActivityPeriod.period_start.desc())
        .limit(limit)
    )
    return list(result.scalars())
