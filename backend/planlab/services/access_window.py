"""
Temporal access windows and the learner access gate.

evaluate_access_window is pure; check_learner_access reads the profile and
cohort and raises the targeted ApiError for the first failing gate.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from planlab.db.models import Cohort, Profile, RegistrationStatus
from planlab.errors import ApiError, ErrorCode


class WindowStatus(str, PyEnum):
    """Position of 'now' relative to an access window."""

    OPEN = "open"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def evaluate_access_window(
    starts_at: datetime | None,
    ends_at: datetime | None,
    now: datetime,
) -> WindowStatus:
    """
    Place `now` relative to [starts_at, ends_at).

    An elapsed end wins over everything else. A missing bound imposes
    no restriction on that side.
    """
    now = as_utc(now)
    starts_at = as_utc(starts_at)
    ends_at = as_utc(ends_at)

    if ends_at is not None and now >= ends_at:
        return WindowStatus.EXPIRED
    if starts_at is not None and now < starts_at:
        return WindowStatus.NOT_STARTED
    return WindowStatus.OPEN


def within_window(starts_at: datetime | None, ends_at: datetime | None, now: datetime) -> bool:
    return evaluate_access_window(starts_at, ends_at, now) == WindowStatus.OPEN


def registration_open(cohort: Cohort, now: datetime) -> bool:
    """Registration is open once registration_opens_at has passed (or if unset)."""
    opens_at = as_utc(cohort.registration_opens_at)
    return opens_at is None or opens_at <= as_utc(now)


# =============================================================================
# LEARNER GATE
# =============================================================================


@dataclass(frozen=True)
class GateResult:
    """Outcome of the learner gate; reason is None when access is allowed."""

    reason: ErrorCode | None
    message: str = ""

    @property
    def allowed(self) -> bool:
        return self.reason is None


_ONBOARDING_FIELDS = ("ru", "first_name", "last_name", "semester", "cohort_id")


def _needs_onboarding(profile: Profile | None) -> bool:
    if profile is None:
        return True
    for field in _ONBOARDING_FIELDS:
        value = getattr(profile, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            return True
    return False


def evaluate_learner_gate(profile: Profile | None, cohort: Cohort | None, now: datetime) -> GateResult:
    """Run the learner gates in order; the first failure wins."""
    if _needs_onboarding(profile):
        return GateResult(
            ErrorCode.NEEDS_ONBOARDING,
            "Debes completar tu registro antes de usar el asistente.",
        )

    if profile.registration_status != RegistrationStatus.APPROVED.value:
        return GateResult(ErrorCode.PENDING_APPROVAL, "Tu registro está pendiente de aprobación.")

    if cohort is not None and not cohort.is_active:
        return GateResult(
            ErrorCode.COHORT_INACTIVE,
            "Tu cohorte está inactiva. Puedes ver tu historial, pero no enviar mensajes.",
        )

    window = WindowStatus.OPEN
    if cohort is not None:
        window = evaluate_access_window(cohort.access_starts_at, cohort.access_ends_at, now)

    if window == WindowStatus.EXPIRED:
        return GateResult(ErrorCode.ACCESS_EXPIRED, "Tu acceso al asistente ha finalizado.")
    if window == WindowStatus.NOT_STARTED:
        return GateResult(ErrorCode.ACCESS_NOT_STARTED, "Tu acceso al asistente aún no ha iniciado.")

    return GateResult(None)


async def load_profile(db: AsyncSession, user_id: UUID) -> Profile | None:
    """Fetch a profile with its cohort eagerly loaded."""
    result = await db.execute(
        select(Profile).options(selectinload(Profile.cohort)).where(Profile.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def check_learner_access(db: AsyncSession, user_id: UUID, now: datetime) -> Profile:
    """
    Enforce the learner gate for a student.

    Returns the profile when access is allowed, raises ApiError otherwise.
    Teachers must not be routed through here.
    """
    profile = await load_profile(db, user_id)
    gate = evaluate_learner_gate(profile, profile.cohort if profile else None, now)
    if not gate.allowed:
        raise ApiError(gate.reason, gate.message)
    return profile
