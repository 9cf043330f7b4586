"""
Stage state store.

All reads and writes are scoped by (user, chat, stage) and go through
assert_chat_owner first. Writes are single-statement upserts on the
unique triple; concurrent writers resolve as last-write-wins.

Stages listed in STAGE_SCHEMAS are validated before every write, and
ENGINE_OWNED_STAGES can only be written by their transition engine.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from planlab.db.models import Chat, PlanStageState
from planlab.errors import ApiError, ErrorCode
from planlab.schemas.brainstorm import BRAINSTORM_STAGE, BrainstormState

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Stages whose state_json has a fixed shape. Unlisted stages take any object.
STAGE_SCHEMAS: dict[int, type[BaseModel]] = {
    BRAINSTORM_STAGE: BrainstormState,
}

# Stages written only by their transition engine, never by a client PUT.
ENGINE_OWNED_STAGES = frozenset({BRAINSTORM_STAGE})


async def assert_chat_owner(db: AsyncSession, user_id: UUID, chat_id: UUID) -> Chat:
    """
    Single ownership predicate for every chat-scoped operation.

    Raises NOT_FOUND if the chat does not exist, FORBIDDEN if it belongs
    to someone else. Nothing about a foreign chat is returned.
    """
    result = await db.execute(select(Chat).where(Chat.id == chat_id))
    chat = result.scalar_one_or_none()

    if chat is None:
        raise ApiError(ErrorCode.NOT_FOUND, "Chat no encontrado.")
    if chat.user_id != user_id:
        raise ApiError(ErrorCode.FORBIDDEN, "No tienes acceso a este chat.")

    return chat


def _validate_stage(stage: int) -> None:
    if isinstance(stage, bool) or not isinstance(stage, int) or stage < 0:
        raise ApiError(ErrorCode.BAD_REQUEST, "stage debe ser un entero mayor o igual a 0.")


def validate_state_json(stage: int, state_json: Any) -> dict[str, Any]:
    """
    Check state_json against the schema registered for the stage.

    Returns the value to store: the normalized dump for registered stages,
    the input unchanged otherwise. Raises BAD_REQUEST on a bad shape.
    """
    if not isinstance(state_json, dict) or not all(isinstance(k, str) for k in state_json):
        raise ApiError(ErrorCode.BAD_REQUEST, "state_json debe ser un objeto con claves de texto.")

    schema = STAGE_SCHEMAS.get(stage)
    if schema is None:
        return state_json

    try:
        model = schema.model_validate(state_json)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "state_json"
        raise ApiError(
            ErrorCode.BAD_REQUEST,
            f"state_json inválido para la etapa {stage}: {location}: {first['msg']}",
            details=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        ) from e
    return model.model_dump(by_alias=True, mode="json")


async def _select_state(
    db: AsyncSession, user_id: UUID, chat_id: UUID, stage: int
) -> PlanStageState | None:
    result = await db.execute(
        select(PlanStageState)
        .where(
            PlanStageState.user_id == user_id,
            PlanStageState.chat_id == chat_id,
            PlanStageState.stage == stage,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_stage_state(
    db: AsyncSession, user_id: UUID, chat_id: UUID, stage: int
) -> PlanStageState | None:
    """
    Read the state for one stage of a chat.

    Returns None when the stage has never been written; that is not an error.
    """
    _validate_stage(stage)
    await assert_chat_owner(db, user_id, chat_id)
    return await _select_state(db, user_id, chat_id, stage)


async def get_stage_states(
    db: AsyncSession, user_id: UUID, chat_id: UUID, stages: range
) -> dict[int, dict[str, Any]]:
    """Read several stages at once, keyed by stage index. Missing stages are omitted."""
    await assert_chat_owner(db, user_id, chat_id)
    result = await db.execute(
        select(PlanStageState).where(
            PlanStageState.user_id == user_id,
            PlanStageState.chat_id == chat_id,
            PlanStageState.stage.in_(list(stages)),
        )
    )
    return {row.stage: row.state_json for row in result.scalars()}


async def upsert_stage_state(
    db: AsyncSession,
    user_id: UUID,
    chat_id: UUID,
    stage: int,
    state_json: dict[str, Any],
) -> PlanStageState:
    """
    Create or replace the state for (user, chat, stage).

    Uses INSERT ... ON CONFLICT DO UPDATE so a repeated write replaces
    state_json and updated_at in place; the row count for the key stays 1.
    """
    _validate_stage(stage)
    state_json = validate_state_json(stage, state_json)

    await assert_chat_owner(db, user_id, chat_id)

    dialect = db.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Upsert not supported for dialect {dialect!r}")

    now = datetime.now(timezone.utc)
    stmt = insert(PlanStageState).values(
        id=uuid4(),
        user_id=user_id,
        chat_id=chat_id,
        stage=stage,
        state_json=state_json,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "chat_id", "stage"],
        set_={
            "state_json": stmt.excluded.state_json,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)
    await db.flush()

    row = await _select_state(db, user_id, chat_id, stage)
    logger.debug("Upserted stage state chat=%s stage=%d", chat_id, stage)
    return row


async def save_client_stage_state(
    db: AsyncSession,
    user_id: UUID,
    chat_id: UUID,
    stage: int,
    state_json: dict[str, Any],
) -> PlanStageState:
    """Upsert on behalf of the client. Engine-owned stages are refused."""
    _validate_stage(stage)
    if stage in ENGINE_OWNED_STAGES:
        raise ApiError(
            ErrorCode.FORBIDDEN,
            f"La etapa {stage} solo se actualiza a través de su asistente.",
            details={"stage": stage},
        )
    return await upsert_stage_state(db, user_id, chat_id, stage, state_json)
