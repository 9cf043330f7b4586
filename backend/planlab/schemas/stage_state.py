"""Stage state schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from planlab.schemas.base import BaseSchema


class StageStateRead(BaseSchema):
    """Schema for reading one stored stage state row."""

    id: UUID
    user_id: UUID
    chat_id: UUID
    stage: int
    state_json: dict[str, Any]
    updated_at: datetime


class StageStateLookup(BaseSchema):
    """Read result: absence of a row is a normal outcome."""

    exists: bool
    row: StageStateRead | None = None


class StageStateUpsert(BaseSchema):
    """Schema for creating or replacing a stage state.

    Uses upsert semantics keyed on (user, chat_id, stage).
    """

    chat_id: UUID
    stage: int = Field(..., ge=0, strict=True)
    state_json: dict[str, Any]


class StageStateSaved(BaseSchema):
    row: StageStateRead
