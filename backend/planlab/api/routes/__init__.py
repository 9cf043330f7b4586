"""API routes package."""

from planlab.api.routes import (
    brainstorm,
    chats,
    cohorts,
    hours,
    me,
    onboarding,
    stage_state,
    students,
)

__all__ = [
    "brainstorm",
    "chats",
    "cohorts",
    "hours",
    "me",
    "onboarding",
    "stage_state",
    "students",
]
