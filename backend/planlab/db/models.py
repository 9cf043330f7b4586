"""
SQLAlchemy 2.0 Models for PlanLab.

Uses modern declarative syntax with Mapped[] type annotations.
Column types are the portable ones (Uuid, JSON, timezone-aware DateTime);
PostgreSQL gets JSONB through a type variant.
"""

from datetime import date, datetime
from enum import Enum as PyEnum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planlab.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# ENUMS
# =============================================================================


class UserRole(str, PyEnum):
    """Role derived from the access policy on every request."""

    STUDENT = "student"
    TEACHER = "teacher"


class RegistrationStatus(str, PyEnum):
    """Teacher review state of a learner's registration."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# MODELS
# =============================================================================


class Cohort(Base):
    """
    Group of learners sharing an access window and tracking schedule.

    hours_start_at is the Saturday that anchors weekly activity periods.
    Only one cohort is expected to be active at a time.
    """

    __tablename__ = "cohorts"
    __table_args__ = (
        CheckConstraint(
            "access_ends_at IS NULL OR access_starts_at IS NULL OR access_ends_at > access_starts_at",
            name="valid_access_window",
        ),
        CheckConstraint("reminder_hour >= 0 AND reminder_hour <= 23", name="valid_reminder_hour"),
        CheckConstraint("reminder_minute >= 0 AND reminder_minute <= 59", name="valid_reminder_minute"),
        Index("idx_cohorts_active", "is_active"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    registration_opens_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    access_starts_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    access_ends_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Tracking configuration (read by the reminder job, which lives elsewhere)
    hours_start_at: Mapped[Optional[date]] = mapped_column(nullable=True)
    reminder_hour: Mapped[int] = mapped_column(default=11, nullable=False)
    reminder_minute: Mapped[int] = mapped_column(default=0, nullable=False)
    form_initial_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    form_monthly_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    form_final_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    profiles: Mapped[list["Profile"]] = relationship("Profile", back_populates="cohort")


class Profile(Base):
    """
    Learner registration record, keyed by the identity provider's user id.

    Identity itself lives in the auth provider; this row only holds what
    the access gate needs (cohort, onboarding fields, approval state).
    """

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint(
            "registration_status IN ('pending', 'approved', 'rejected')",
            name="valid_registration_status",
        ),
        Index("idx_profiles_cohort", "cohort_id"),
    )

    user_id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.STUDENT.value)
    ru: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # Registro universitario
    first_name: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    semester: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    cohort_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(), ForeignKey("cohorts.id", ondelete="SET NULL"), nullable=True
    )
    registration_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RegistrationStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    cohort: Mapped[Optional["Cohort"]] = relationship("Cohort", back_populates="profiles")


class Chat(Base):
    """
    A learner's run through the case exercise.

    Exclusively owned by user_id; all stage state is scoped under it.
    """

    __tablename__ = "chats"
    __table_args__ = (Index("idx_chats_user_id", "user_id"),)

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid(), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="Nuevo caso")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    stage_states: Mapped[list["PlanStageState"]] = relationship(
        "PlanStageState", back_populates="chat", cascade="all, delete-orphan"
    )


class PlanStageState(Base):
    """
    Structured state of one stage of one chat (one row per user/chat/stage).

    Writes go through an ON CONFLICT upsert on the unique triple, so
    repeating a write replaces state_json instead of adding a row.
    """

    __tablename__ = "plan_stage_states"
    __table_args__ = (
        UniqueConstraint("user_id", "chat_id", "stage", name="unique_user_chat_stage"),
        CheckConstraint("stage >= 0", name="valid_stage_index"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid(), nullable=False)
    chat_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage: Mapped[int] = mapped_column(nullable=False)
    state_json: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    chat: Mapped["Chat"] = relationship("Chat", back_populates="stage_states")


class PlanStageEvaluation(Base):
    """
    Rubric grade of a validated stage artifact.

    artifact_digest is the SHA-256 of the canonical artifact JSON; an
    artifact is graded at most once, re-validating the same content reuses
    the stored row.
    """

    __tablename__ = "plan_stage_evaluations"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "chat_id", "stage", "artifact_digest", name="unique_stage_artifact_evaluation"
        ),
        CheckConstraint("total_score >= 0 AND total_score <= 100", name="valid_total_score"),
        Index("idx_plan_stage_evaluations_chat_stage", "chat_id", "stage"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid(), nullable=False)
    chat_id: Mapped[UUID] = mapped_column(
        Uuid(), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False
    )
    stage: Mapped[int] = mapped_column(nullable=False)
    artifact_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    artifact_json: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    rubric_json: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    result_json: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    total_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    total_label: Mapped[str] = mapped_column(String(40), nullable=False)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ActivityPeriod(Base):
    """
    Hours logged by a learner for one weekly period.

    Insert-only: a second submission for the same period is a conflict.
    """

    __tablename__ = "activity_periods"
    __table_args__ = (
        UniqueConstraint("user_id", "period_start", name="unique_user_period"),
        CheckConstraint("hours >= 0 AND hours <= 200", name="valid_hours"),
        CheckConstraint("period_end > period_start", name="valid_period_range"),
        Index("idx_activity_periods_user_created", "user_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid(), nullable=False)
    cohort_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(), ForeignKey("cohorts.id", ondelete="SET NULL"), nullable=True
    )
    period_start: Mapped[date] = mapped_column(nullable=False)  # Saturday
    period_end: Mapped[date] = mapped_column(nullable=False)  # Friday, inclusive
    hours: Mapped[float] = mapped_column(Numeric(6, 2, asdecimal=False), nullable=False)
    activity: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
