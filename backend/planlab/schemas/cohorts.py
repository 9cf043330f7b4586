"""Cohort schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import AnyHttpUrl, Field, model_validator

from planlab.schemas.base import BaseSchema
from planlab.services.access_window import as_utc
from planlab.services.activity_periods import is_valid_anchor


def _check_windows(starts_at, ends_at, hours_start_at) -> None:
    # Naive bounds are read as UTC, as they are when stored
    if starts_at and ends_at and as_utc(ends_at) <= as_utc(starts_at):
        raise ValueError("access_ends_at must be after access_starts_at")
    if hours_start_at and not is_valid_anchor(hours_start_at):
        raise ValueError("hours_start_at must fall on a Saturday")


class CohortCreate(BaseSchema):
    """Schema for creating a cohort."""

    name: str = Field(..., min_length=3, max_length=120)
    is_active: bool = True
    registration_opens_at: datetime | None = None
    access_starts_at: datetime | None = None
    access_ends_at: datetime | None = None
    hours_start_at: date | None = None
    form_initial_url: AnyHttpUrl | None = None
    form_monthly_url: AnyHttpUrl | None = None
    form_final_url: AnyHttpUrl | None = None
    reminder_hour: int = Field(11, ge=0, le=23)
    reminder_minute: int = Field(0, ge=0, le=59)

    @model_validator(mode="after")
    def validate_schedule(self) -> "CohortCreate":
        """Ensure the access window is ordered and the anchor is a Saturday."""
        _check_windows(self.access_starts_at, self.access_ends_at, self.hours_start_at)
        return self


class CohortUpdate(BaseSchema):
    """Schema for updating a cohort. All fields optional."""

    name: str | None = Field(None, min_length=3, max_length=120)
    is_active: bool | None = None
    registration_opens_at: datetime | None = None
    access_starts_at: datetime | None = None
    access_ends_at: datetime | None = None
    hours_start_at: date | None = None
    form_initial_url: AnyHttpUrl | None = None
    form_monthly_url: AnyHttpUrl | None = None
    form_final_url: AnyHttpUrl | None = None
    reminder_hour: int | None = Field(None, ge=0, le=23)
    reminder_minute: int | None = Field(None, ge=0, le=59)

    @model_validator(mode="after")
    def validate_schedule(self) -> "CohortUpdate":
        _check_windows(self.access_starts_at, self.access_ends_at, self.hours_start_at)
        return self


class CohortRead(BaseSchema):
    """Schema for reading cohort data."""

    id: UUID
    name: str
    is_active: bool
    registration_opens_at: datetime | None
    access_starts_at: datetime | None
    access_ends_at: datetime | None
    hours_start_at: date | None
    form_initial_url: str | None
    form_monthly_url: str | None
    form_final_url: str | None
    reminder_hour: int
    reminder_minute: int
    created_at: datetime
    updated_at: datetime


class ActiveCohortRead(CohortRead):
    registration_open: bool
