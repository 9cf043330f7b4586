"""Brainstorm stage routes (stage 3: causes)."""

from fastapi import APIRouter

from planlab.api.deps import AppSettings, ChatUser, DbSession, Generation
from planlab.schemas.base import Envelope
from planlab.schemas.brainstorm import (
    BrainstormTurnRequest,
    BrainstormTurnResponse,
    BrainstormValidateRequest,
    BrainstormValidateResponse,
    StageEvaluationRead,
)
from planlab.services.brainstorm import run_turn, validate_stage

router = APIRouter(prefix="/plans/brainstorm", tags=["brainstorm"])


@router.post("/turn", response_model=Envelope[BrainstormTurnResponse])
async def brainstorm_turn(
    data: BrainstormTurnRequest,
    current_user: ChatUser,
    db: DbSession,
    generation: Generation,
    settings: AppSettings,
) -> Envelope[BrainstormTurnResponse]:
    """
    Process one learner message for the brainstorm stage.

    Returns 502 MALFORMED_OUTPUT (nothing stored) when the assistant's
    reply cannot be parsed or validated.
    """
    outcome = await run_turn(
        db,
        user_id=current_user.user_id,
        chat_id=data.chat_id,
        message=data.message,
        recent_history=data.recent_history,
        generation=generation,
        settings=settings,
    )
    await db.commit()

    return Envelope[BrainstormTurnResponse](
        data=BrainstormTurnResponse(
            assistant_message=outcome.assistant_message,
            action=outcome.action,
            state=outcome.state.to_state_json(),
            threshold_reached=outcome.threshold_reached,
            state_changed=outcome.state_changed,
        )
    )


@router.post("/validate", response_model=Envelope[BrainstormValidateResponse])
async def brainstorm_validate(
    data: BrainstormValidateRequest,
    current_user: ChatUser,
    db: DbSession,
    generation: Generation,
) -> Envelope[BrainstormValidateResponse]:
    """
    Finalize the stage once the problem and minimum ideas are in place.

    The first validation of an artifact grades it; repeats return the
    stored evaluation. A grade that cannot be parsed is 502 MALFORMED_OUTPUT.
    """
    result = await validate_stage(
        db, user_id=current_user.user_id, chat_id=data.chat_id, generation=generation
    )
    return Envelope[BrainstormValidateResponse](
        data=BrainstormValidateResponse(
            state=result.state.to_state_json(),
            evaluation=StageEvaluationRead.model_validate(result.evaluation),
        )
    )
