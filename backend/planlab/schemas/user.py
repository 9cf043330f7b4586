"""User, profile and onboarding schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field, field_validator

from planlab.schemas.base import BaseSchema


class AuthedUserRead(BaseSchema):
    """Identity of the caller as resolved on this request."""

    user_id: UUID
    email: str
    role: Literal["student", "teacher"]


class ProfileRead(BaseSchema):
    """Schema for reading a learner profile."""

    user_id: UUID
    email: str | None
    role: str
    ru: str | None
    first_name: str | None
    last_name: str | None
    semester: str | None
    company_name: str | None
    cohort_id: UUID | None
    registration_status: str
    created_at: datetime
    updated_at: datetime


class AccessGateRead(BaseSchema):
    """Computed learner gate, mirrored for the frontend.

    reason is "OK" or the code of the first failing gate.
    """

    reason: str
    needs_onboarding: bool
    pending_approval: bool
    can_use_chat: bool
    access_starts_at: datetime | None = None
    access_ends_at: datetime | None = None


class MeRead(BaseSchema):
    user: AuthedUserRead
    profile: ProfileRead | None
    gates: AccessGateRead


class OnboardingSubmit(BaseSchema):
    """Registration data a student submits before using the assistant."""

    ru: str = Field(..., pattern=r"^\d{5,10}$")
    first_name: str = Field(..., min_length=2, max_length=60)
    last_name: str = Field(..., min_length=2, max_length=60)
    semester: Literal["1", "2"]
    company_name: str | None = Field(None, max_length=120)
    cohort_id: UUID

    @field_validator("company_name")
    @classmethod
    def blank_company_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        if len(value.strip()) < 2:
            raise ValueError("company_name must have at least 2 characters")
        return value.strip()


class RegistrationDecision(BaseSchema):
    """Teacher decision on a pending registration."""

    status: Literal["approved", "rejected"] = "approved"
