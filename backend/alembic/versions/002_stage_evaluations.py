"""Add plan_stage_evaluations.

Revision ID: 002_stage_evaluations
Revises: 001_initial
Create Date: 2026-10-18

Stores the rubric grade of a validated stage artifact, at most one row
per (user, chat, stage, artifact digest).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002_stage_evaluations"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "plan_stage_evaluations",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chat_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("stage", sa.Integer(), nullable=False),
        sa.Column("artifact_digest", sa.String(64), nullable=False),
        sa.Column("artifact_json", postgresql.JSONB(), nullable=False),
        sa.Column("rubric_json", postgresql.JSONB(), nullable=False),
        sa.Column("result_json", postgresql.JSONB(), nullable=False),
        sa.Column("total_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("total_label", sa.String(40), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "user_id", "chat_id", "stage", "artifact_digest", name="unique_stage_artifact_evaluation"
        ),
        sa.CheckConstraint("total_score >= 0 AND total_score <= 100", name="valid_total_score"),
    )
    op.create_index(
        "idx_plan_stage_evaluations_chat_stage", "plan_stage_evaluations", ["chat_id", "stage"]
    )


def downgrade() -> None:
    op.drop_index("idx_plan_stage_evaluations_chat_stage", table_name="plan_stage_evaluations")
    op.drop_table("plan_stage_evaluations")
