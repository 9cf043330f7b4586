"""Base schema configuration and response envelopes."""

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        str_strip_whitespace=True,
        validate_assignment=True,
    )


class TimestampMixin(BaseModel):
    """Mixin for created_at/updated_at timestamps."""

    created_at: datetime
    updated_at: datetime


class IDMixin(BaseModel):
    """Mixin for UUID primary key."""

    id: UUID


class Envelope(BaseModel, Generic[T]):
    """Success envelope: {"ok": true, "data": ...}."""

    ok: Literal[True] = True
    data: T


class ErrorEnvelope(BaseModel):
    """Failure envelope. Clients branch on `code`, never on `message`."""

    ok: Literal[False] = False
    code: str
    message: str
    details: Any = None
