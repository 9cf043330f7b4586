"""Stage state routes (read and upsert the structured state of a stage)."""

from uuid import UUID

from fastapi import APIRouter, Query

from planlab.api.deps import ChatUser, CurrentUser, DbSession
from planlab.schemas.base import Envelope
from planlab.schemas.stage_state import (
    StageStateLookup,
    StageStateRead,
    StageStateSaved,
    StageStateUpsert,
)
from planlab.services.stage_state import get_stage_state, save_client_stage_state

router = APIRouter(prefix="/plans/stage-state", tags=["stage-state"])


@router.get("", response_model=Envelope[StageStateLookup])
async def read_stage_state(
    current_user: CurrentUser,
    db: DbSession,
    chat_id: UUID,
    stage: int = Query(..., ge=0),
) -> Envelope[StageStateLookup]:
    """
    Read the stored state of one stage.

    Not gated by the learner access window: history stays readable.
    """
    row = await get_stage_state(db, current_user.user_id, chat_id, stage)
    lookup = StageStateLookup(
        exists=row is not None,
        row=StageStateRead.model_validate(row) if row else None,
    )
    return Envelope[StageStateLookup](data=lookup)


@router.put("", response_model=Envelope[StageStateSaved])
async def save_stage_state(
    data: StageStateUpsert,
    current_user: ChatUser,
    db: DbSession,
) -> Envelope[StageStateSaved]:
    """
    Create or replace the state of (chat_id, stage). Last write wins.

    Stages driven by an assistant engine (brainstorm) are read-only here.
    """
    row = await save_client_stage_state(
        db, current_user.user_id, data.chat_id, data.stage, data.state_json
    )
    await db.commit()
    return Envelope[StageStateSaved](data=StageStateSaved(row=StageStateRead.model_validate(row)))
