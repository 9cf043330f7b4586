"""Cohort management. At most one cohort is active at a time."""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from planlab.db.models import Cohort
from planlab.errors import ApiError, ErrorCode
from planlab.schemas.cohorts import CohortCreate, CohortUpdate
from planlab.services.access_window import as_utc

logger = logging.getLogger(__name__)

_URL_FIELDS = ("form_initial_url", "form_monthly_url", "form_final_url")
_REQUIRED_FIELDS = ("name", "is_active", "reminder_hour", "reminder_minute")


def _to_columns(values: dict[str, Any]) -> dict[str, Any]:
    # AnyHttpUrl -> plain text column
    for field in _URL_FIELDS:
        if values.get(field) is not None:
            values[field] = str(values[field])
    return values


async def _deactivate_others(db: AsyncSession, keep_id: UUID) -> None:
    await db.execute(
        update(Cohort).where(Cohort.id != keep_id, Cohort.is_active.is_(True)).values(is_active=False)
    )


async def list_cohorts(db: AsyncSession) -> list[Cohort]:
    result = await db.execute(select(Cohort).order_by(Cohort.created_at.desc()))
    return list(result.scalars())


async def list_active_cohorts(db: AsyncSession) -> list[Cohort]:
    result = await db.execute(
        select(Cohort).where(Cohort.is_active.is_(True)).order_by(Cohort.created_at.desc())
    )
    return list(result.scalars())


async def create_cohort(db: AsyncSession, data: CohortCreate) -> Cohort:
    cohort = Cohort(**_to_columns(data.model_dump()))
    db.add(cohort)
    await db.flush()

    if cohort.is_active:
        await _deactivate_others(db, cohort.id)

    await db.commit()
    await db.refresh(cohort)
    logger.info("Created cohort %s active=%s", cohort.id, cohort.is_active)
    return cohort


async def update_cohort(db: AsyncSession, cohort_id: UUID, data: CohortUpdate) -> Cohort:
    """
    Apply a partial update.

    The access window is re-checked against the stored bounds, since a
    patch may move only one side of it.
    """
    cohort = await db.get(Cohort, cohort_id)
    if cohort is None:
        raise ApiError(ErrorCode.NOT_FOUND, "Cohorte no encontrada.")

    changes = _to_columns(data.model_dump(exclude_unset=True))
    for field in _REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise ApiError(ErrorCode.BAD_REQUEST, f"{field} no puede ser nulo.")

    starts_at: datetime | None = changes.get("access_starts_at", cohort.access_starts_at)
    ends_at: datetime | None = changes.get("access_ends_at", cohort.access_ends_at)
    if starts_at and ends_at and as_utc(ends_at) <= as_utc(starts_at):
        raise ApiError(
            ErrorCode.BAD_REQUEST,
            "access_ends_at debe ser posterior a access_starts_at.",
        )

    for field, value in changes.items():
        setattr(cohort, field, value)

    if changes.get("is_active"):
        await _deactivate_others(db, cohort.id)

    await db.commit()
    await db.refresh(cohort)
    logger.info("Updated cohort %s fields=%s", cohort.id, sorted(changes))
    return cohort
