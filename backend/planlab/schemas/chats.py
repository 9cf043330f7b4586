"""Chat (case session) schemas."""

from uuid import UUID

from pydantic import Field

from planlab.schemas.base import BaseSchema, IDMixin, TimestampMixin


class ChatCreate(BaseSchema):
    title: str | None = Field(None, max_length=255)


class ChatRead(BaseSchema, IDMixin, TimestampMixin):
    user_id: UUID
    title: str
