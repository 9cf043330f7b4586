"""Pydantic schemas for API request/response validation."""

from planlab.schemas.base import Envelope, ErrorEnvelope
from planlab.schemas.user import (
    AccessGateRead,
    AuthedUserRead,
    MeRead,
    OnboardingSubmit,
    ProfileRead,
    RegistrationDecision,
)
from planlab.schemas.cohorts import ActiveCohortRead, CohortCreate, CohortRead, CohortUpdate
from planlab.schemas.chats import ChatCreate, ChatRead
from planlab.schemas.stage_state import (
    StageStateLookup,
    StageStateRead,
    StageStateSaved,
    StageStateUpsert,
)
from planlab.schemas.brainstorm import (
    BrainstormAction,
    BrainstormState,
    BrainstormTurnRequest,
    BrainstormTurnResponse,
    BrainstormValidateRequest,
    BrainstormValidateResponse,
    GradingResult,
    StageEvaluationRead,
)
from planlab.schemas.activity import (
    ActivityList,
    ActivityPeriodRead,
    ActivitySaved,
    ActivitySubmit,
    PeriodBounds,
)

__all__ = [
    # Envelopes
    "Envelope",
    "ErrorEnvelope",
    # User
    "AccessGateRead",
    "AuthedUserRead",
    "MeRead",
    "OnboardingSubmit",
    "ProfileRead",
    "RegistrationDecision",
    # Cohorts
    "ActiveCohortRead",
    "CohortCreate",
    "CohortRead",
    "CohortUpdate",
    # Chats
    "ChatCreate",
    "ChatRead",
    # Stage state
    "StageStateLookup",
    "StageStateRead",
    "StageStateSaved",
    "StageStateUpsert",
    # Brainstorm
    "BrainstormAction",
    "BrainstormState",
    "BrainstormTurnRequest",
    "BrainstormTurnResponse",
    "BrainstormValidateRequest",
    "BrainstormValidateResponse",
    "GradingResult",
    "StageEvaluationRead",
    # Activity
    "ActivityList",
    "ActivityPeriodRead",
    "ActivitySaved",
    "ActivitySubmit",
    "PeriodBounds",
]
