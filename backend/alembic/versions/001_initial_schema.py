"""Initial schema with all tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

This migration creates the complete PlanLab database schema:
- Tables: cohorts, profiles, chats, plan_stage_states, activity_periods
- Constraints: one stage state per (user, chat, stage), one activity entry per (user, period)
- Triggers: updated_at auto-update function and triggers
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_UPDATED_AT_TABLES = ["cohorts", "profiles", "chats", "plan_stage_states"]


def upgrade() -> None:
    # ==========================================================================
    # COHORTS TABLE
    # ==========================================================================
    op.create_table(
        "cohorts",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("registration_opens_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("access_starts_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("access_ends_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("hours_start_at", sa.Date(), nullable=True),
        sa.Column("reminder_hour", sa.Integer(), server_default=sa.text("11"), nullable=False),
        sa.Column("reminder_minute", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("form_initial_url", sa.Text(), nullable=True),
        sa.Column("form_monthly_url", sa.Text(), nullable=True),
        sa.Column("form_final_url", sa.Text(), nullable=True),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "access_ends_at IS NULL OR access_starts_at IS NULL OR access_ends_at > access_starts_at",
            name="valid_access_window",
        ),
        sa.CheckConstraint("reminder_hour >= 0 AND reminder_hour <= 23", name="valid_reminder_hour"),
        sa.CheckConstraint("reminder_minute >= 0 AND reminder_minute <= 59", name="valid_reminder_minute"),
    )
    op.create_index("idx_cohorts_active", "cohorts", ["is_active"])

    # ==========================================================================
    # PROFILES TABLE
    # ==========================================================================
    op.create_table(
        "profiles",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), server_default=sa.text("'student'"), nullable=False),
        sa.Column("ru", sa.String(20), nullable=True),
        sa.Column("first_name", sa.String(60), nullable=True),
        sa.Column("last_name", sa.String(60), nullable=True),
        sa.Column("semester", sa.String(2), nullable=True),
        sa.Column("company_name", sa.String(120), nullable=True),
        sa.Column("cohort_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("registration_status", sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(["cohort_id"], ["cohorts.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "registration_status IN ('pending', 'approved', 'rejected')",
            name="valid_registration_status",
        ),
    )
    op.create_index("idx_profiles_cohort", "profiles", ["cohort_id"])

    # ==========================================================================
    # CHATS TABLE
    # ==========================================================================
    op.create_table(
        "chats",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), server_default=sa.text("'Nuevo caso'"), nullable=False),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_chats_user_id", "chats", ["user_id"])

    # ==========================================================================
    # PLAN_STAGE_STATES TABLE
    # ==========================================================================
    op.create_table(
        "plan_stage_states",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chat_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("stage", sa.Integer(), nullable=False),
        sa.Column("state_json", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "chat_id", "stage", name="unique_user_chat_stage"),
        sa.CheckConstraint("stage >= 0", name="valid_stage_index"),
    )
    op.create_index("ix_plan_stage_states_chat_id", "plan_stage_states", ["chat_id"])

    # ==========================================================================
    # ACTIVITY_PERIODS TABLE
    # ==========================================================================
    op.create_table(
        "activity_periods",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cohort_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("hours", sa.Numeric(6, 2), nullable=False),
        sa.Column("activity", sa.Text(), nullable=False),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["cohort_id"], ["cohorts.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", "period_start", name="unique_user_period"),
        sa.CheckConstraint("hours >= 0 AND hours <= 200", name="valid_hours"),
        sa.CheckConstraint("period_end > period_start", name="valid_period_range"),
    )
    op.create_index("idx_activity_periods_user_created", "activity_periods", ["user_id", "created_at"])

    # ==========================================================================
    # UPDATED_AT TRIGGER FUNCTION
    # ==========================================================================
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    # plan_stage_states is included: ON CONFLICT DO UPDATE fires BEFORE UPDATE triggers
    for table in _UPDATED_AT_TABLES:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    # Drop triggers
    for table in _UPDATED_AT_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS update_{table}_updated_at ON {table}")

    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    # Drop tables in reverse dependency order
    op.drop_table("activity_periods")
    op.drop_table("plan_stage_states")
    op.drop_table("chats")
    op.drop_table("profiles")
    op.drop_table("cohorts")
