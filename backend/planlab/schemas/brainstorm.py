"""Brainstorm stage (causes) schemas.

State is persisted as camelCase JSON (minIdeas, assistantMessage, nextState)
because that is the shape the generation prompt and the frontend share.
"""

import re
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from planlab.schemas.base import BaseSchema

BRAINSTORM_STAGE = 3

_WS_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def normalize_idea(text: str) -> str:
    """Case-insensitive, whitespace-collapsed key used for duplicate checks."""
    return collapse_whitespace(text).casefold()


class BrainstormAction(str, PyEnum):
    """Actions the generation service may propose for a turn."""

    SET_PROBLEM = "set_problem"
    ADD_IDEA = "add_idea"
    ASK_CLARIFY = "ask_clarify"
    REDIRECT = "redirect"
    REJECT_AMBIGUOUS = "reject_ambiguous"

    @classmethod
    def coerce(cls, value: str | None) -> "BrainstormAction":
        """Map unknown or missing actions to ASK_CLARIFY."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.ASK_CLARIFY


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TextItem(_CamelModel):
    """A problem statement or an idea; both are {text}."""

    text: str


class BrainstormState(_CamelModel):
    """Stored state_json of the brainstorm stage."""

    problem: TextItem | None = None
    ideas: list[TextItem] = Field(default_factory=list)
    min_ideas: int = Field(10, ge=0, alias="minIdeas")
    status: Literal["draft", "validated"] = "draft"

    @model_validator(mode="after")
    def check_consistency(self) -> "BrainstormState":
        """Ideas need a problem, and no two ideas may normalize to the same key."""
        if self.problem is not None and not self.problem.text.strip():
            raise ValueError("problem.text must not be empty")
        if self.ideas and self.problem is None:
            raise ValueError("ideas require a problem")

        seen: set[str] = set()
        for idea in self.ideas:
            key = normalize_idea(idea.text)
            if not key:
                raise ValueError("ideas must not be blank")
            if key in seen:
                raise ValueError(f"duplicate idea: {idea.text!r}")
            seen.add(key)
        return self

    def to_state_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    def artifact(self) -> dict:
        """The graded deliverable: problem and ideas, without workflow fields."""
        return {
            "problem": self.problem.model_dump() if self.problem else None,
            "ideas": [idea.model_dump() for idea in self.ideas],
        }


class ProposedState(_CamelModel):
    """nextState as proposed by the model; minIdeas/status are ignored."""

    problem: TextItem | None = None
    ideas: list[TextItem] = Field(default_factory=list)


class ProposedUpdates(_CamelModel):
    next_state: ProposedState = Field(alias="nextState")
    action: str | None = None


class ProposedUpdate(_CamelModel):
    """Full structured reply expected from the generation service."""

    assistant_message: str = Field(alias="assistantMessage")
    updates: ProposedUpdates

    @field_validator("assistant_message")
    @classmethod
    def require_message(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("assistantMessage must not be empty")
        return value.strip()


# =============================================================================
# API SCHEMAS
# =============================================================================


class BrainstormTurnRequest(BaseSchema):
    """One learner message for the brainstorm stage."""

    chat_id: UUID
    message: str = Field(..., min_length=1, max_length=4000)
    recent_history: str = Field("", max_length=50000)


class BrainstormTurnResponse(BaseSchema):
    """Result of a processed turn."""

    assistant_message: str
    action: BrainstormAction
    state: dict
    threshold_reached: bool
    state_changed: bool


class BrainstormValidateRequest(BaseSchema):
    chat_id: UUID


# =============================================================================
# EVALUATION
# =============================================================================


class RubricScores(_CamelModel):
    alineacion: float | None = Field(None, ge=0, le=100)
    claridad: float | None = Field(None, ge=0, le=100)
    profundidad: float | None = Field(None, ge=0, le=100)


class GradingResult(_CamelModel):
    """Grade returned by the generation service for a finished stage."""

    total_score: float = Field(..., ge=0, le=100)
    total_label: str = Field(..., min_length=1, max_length=40)
    detail: RubricScores = Field(default_factory=RubricScores)
    feedback: str = ""

    @field_validator("total_score", mode="before")
    @classmethod
    def require_number(cls, value: Any) -> Any:
        # "85" or true are not scores
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("total_score must be a number")
        return value


class StageEvaluationRead(BaseSchema):
    """Stored evaluation of a validated stage artifact."""

    id: UUID
    stage: int
    artifact_digest: str
    rubric_json: dict[str, Any]
    total_score: float
    total_label: str
    feedback: str | None
    result_json: dict[str, Any]
    created_at: datetime


class BrainstormValidateResponse(BaseSchema):
    state: dict
    evaluation: StageEvaluationRead
