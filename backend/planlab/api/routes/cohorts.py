"""Cohort routes (public listing and teacher management)."""

from uuid import UUID

from fastapi import APIRouter, status

from planlab.api.deps import CurrentUser, DbSession, Now, TeacherUser
from planlab.schemas.base import Envelope
from planlab.schemas.cohorts import ActiveCohortRead, CohortCreate, CohortRead, CohortUpdate
from planlab.services import cohorts as cohort_service
from planlab.services.access_window import registration_open

router = APIRouter(tags=["cohorts"])


@router.get("/cohorts/active", response_model=Envelope[list[ActiveCohortRead]])
async def list_active_cohorts(
    current_user: CurrentUser,
    db: DbSession,
    now: Now,
) -> Envelope[list[ActiveCohortRead]]:
    """Active cohorts a student can pick during onboarding."""
    cohorts = await cohort_service.list_active_cohorts(db)
    return Envelope[list[ActiveCohortRead]](
        data=[
            ActiveCohortRead(
                **CohortRead.model_validate(c).model_dump(),
                registration_open=registration_open(c, now),
            )
            for c in cohorts
        ]
    )


@router.get("/teacher/cohorts", response_model=Envelope[list[CohortRead]])
async def list_cohorts(teacher: TeacherUser, db: DbSession) -> Envelope[list[CohortRead]]:
    cohorts = await cohort_service.list_cohorts(db)
    return Envelope[list[CohortRead]](data=[CohortRead.model_validate(c) for c in cohorts])


@router.post(
    "/teacher/cohorts",
    response_model=Envelope[CohortRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_cohort(
    data: CohortCreate,
    teacher: TeacherUser,
    db: DbSession,
) -> Envelope[CohortRead]:
    """Create a cohort. An active cohort deactivates every other one."""
    cohort = await cohort_service.create_cohort(db, data)
    return Envelope[CohortRead](data=CohortRead.model_validate(cohort))


@router.patch("/teacher/cohorts/{cohort_id}", response_model=Envelope[CohortRead])
async def update_cohort(
    cohort_id: UUID,
    data: CohortUpdate,
    teacher: TeacherUser,
    db: DbSession,
) -> Envelope[CohortRead]:
    """Update a cohort. Only provided fields are changed."""
    cohort = await cohort_service.update_cohort(db, cohort_id, data)
    return Envelope[CohortRead](data=CohortRead.model_validate(cohort))
