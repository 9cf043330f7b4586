"""
Brainstorm stage transition engine (stage 3: causes brainstorming).

One call per learner turn:
    prior state -> prompt -> generation -> parse -> validate -> policy -> upsert

The generation service only proposes. apply_proposal enforces the stage
rules, and nothing is written unless the reply parsed and validated.

validate_stage closes the stage and stores one rubric grade per artifact.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planlab.config import Settings
from planlab.db.models import PlanStageEvaluation
from planlab.errors import ApiError, ErrorCode
from planlab.schemas.brainstorm import (
    BRAINSTORM_STAGE,
    BrainstormAction,
    BrainstormState,
    GradingResult,
    ProposedUpdate,
    TextItem,
    collapse_whitespace,
    normalize_idea,
)
from planlab.services.generation import GenerationClient
from planlab.services.stage_state import get_stage_state, get_stage_states, upsert_stage_state
from planlab.services.structured_output import extract_structured

logger = logging.getLogger(__name__)

UPSTREAM_STAGES = range(0, BRAINSTORM_STAGE)

# Weights of the stage rubric, in percent.
RUBRIC = {"alineacion": 40, "claridad": 30, "profundidad": 30}


@dataclass
class TurnOutcome:
    """What the engine decided for one turn."""

    assistant_message: str
    action: BrainstormAction
    state: BrainstormState
    threshold_reached: bool = False
    state_changed: bool = False


# =============================================================================
# PROMPT
# =============================================================================


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def build_prompt(
    state: BrainstormState,
    upstream: dict[int, dict[str, Any]],
    recent_history: str,
    message: str,
) -> str:
    """Assemble the stage prompt from prior state, upstream summaries and the turn."""
    return f"""
Eres un DOCENTE asesor de Ingeniería de Métodos (Ingeniería Industrial) guiando la
**Etapa 3: Lluvia de ideas de causas** de un caso de mejora de productividad.

OBJETIVO:
1) Confirmar una problemática principal alcanzable (una sola).
2) Reunir ideas de causas alineadas a esa problemática (mínimo {state.min_ideas}).
3) Si el mensaje no aporta a la etapa (saludos, preguntas ajenas), responde breve y redirige.
4) No aceptes ideas ambiguas: pide precisión hasta que sean entendibles y accionables.

CONTEXTO DEL CASO (Etapa 0):
{_dump(upstream.get(0))}

RESUMEN ETAPA 1 (Productividad):
{_dump(upstream.get(1))}

RESUMEN ETAPA 2 (FODA):
{_dump(upstream.get(2))}

ESTADO ACTUAL (Etapa 3):
{_dump(state.to_state_json())}

HISTORIAL RECIENTE:
{recent_history}

MENSAJE DEL ESTUDIANTE:
"{message}"

DEVUELVE SOLO JSON:
{{
  "assistantMessage": "string",
  "updates": {{
    "nextState": {{"problem": {{"text": "string"}} | null, "ideas": [{{"text": "string"}}]}},
    "action": "set_problem" | "add_idea" | "ask_clarify" | "redirect" | "reject_ambiguous"
  }}
}}

REGLAS:
- Si problem es null, intenta extraer la problemática del mensaje; si no hay, haz 1-2 preguntas para aterrizarla.
- Si ya hay problem, interpreta el mensaje como UNA idea de causa y agrégala al final de ideas.
- Si la idea es ambigua o no se relaciona con el problema, NO la agregues y pide reformulación.
- No repitas ideas que ya están en la lista.
""".strip()


def trim_history(history: str, max_chars: int) -> str:
    """Keep the most recent max_chars characters of the history."""
    history = history or ""
    if len(history) <= max_chars:
        return history
    return history[-max_chars:]


# =============================================================================
# VALIDATION
# =============================================================================


def parse_proposal(raw: str) -> ProposedUpdate:
    """
    Turn raw model text into a ProposedUpdate.

    Raises ApiError(MALFORMED_OUTPUT) with details.reason set to
    "no_payload" (nothing parseable) or "invalid_shape" (parsed, wrong shape).
    """
    extracted = extract_structured(raw)
    if not extracted.parsed:
        logger.warning("Generation returned no JSON payload: %.200r", raw)
        raise ApiError(
            ErrorCode.MALFORMED_OUTPUT,
            "El asistente no devolvió una respuesta estructurada. Intenta de nuevo.",
            details={"reason": "no_payload"},
        )

    try:
        return ProposedUpdate.model_validate(extracted.payload)
    except ValidationError as e:
        logger.warning("Generation payload failed validation: %s", e.errors()[:3])
        raise ApiError(
            ErrorCode.MALFORMED_OUTPUT,
            "El asistente devolvió una respuesta incompleta. Intenta de nuevo.",
            details={"reason": "invalid_shape"},
        ) from e


# =============================================================================
# POLICY
# =============================================================================


def _threshold_note(min_ideas: int) -> str:
    return (
        f"\n\nYa tienes {min_ideas} ideas, el mínimo de esta etapa. "
        "¿Quieres agregar más causas o prefieres validar la etapa?"
    )


def _clarify_problem_reply() -> str:
    return (
        "Antes de listar causas necesitamos una problemática clara. "
        "¿Cuál es el problema principal que observas en la empresa?"
    )


def _first_new_idea(ideas, known: set[str]) -> TextItem | None:
    for idea in ideas:
        key = normalize_idea(idea.text)
        if key and key not in known:
            return idea
    return None


def apply_proposal(prior: BrainstormState, proposal: ProposedUpdate) -> TurnOutcome:
    """
    Enforce the stage rules on a validated proposal.

    - problem moves from null to non-empty exactly once and is never reset
    - add_idea appends one idea that is not already present, looked for
      first among the entries past the prior list
    - every other action leaves the state unchanged
    - minIdeas always comes from the prior state
    """
    action = BrainstormAction.coerce(proposal.updates.action)
    proposed = proposal.updates.next_state
    reply = proposal.assistant_message

    unchanged = TurnOutcome(assistant_message=reply, action=action, state=prior)

    if prior.problem is None:
        if action == BrainstormAction.SET_PROBLEM:
            text = (proposed.problem.text if proposed.problem else "").strip()
            if not text:
                return TurnOutcome(_clarify_problem_reply(), BrainstormAction.ASK_CLARIFY, prior)
            next_state = prior.model_copy(
                update={"problem": TextItem(text=text), "status": "draft"}
            )
            return TurnOutcome(reply, action, next_state, state_changed=True)

        if action == BrainstormAction.ADD_IDEA:
            return TurnOutcome(_clarify_problem_reply(), BrainstormAction.ASK_CLARIFY, prior)

        return unchanged

    if action == BrainstormAction.SET_PROBLEM:
        return TurnOutcome(
            f"La problemática ya está definida: «{prior.problem.text}». "
            "Cuéntame una causa que creas que la provoca.",
            BrainstormAction.ASK_CLARIFY,
            prior,
        )

    if action != BrainstormAction.ADD_IDEA:
        return unchanged

    known = {normalize_idea(idea.text) for idea in prior.ideas}
    tail = proposed.ideas[len(prior.ideas):]
    candidate = _first_new_idea(tail, known)
    if candidate is None and not tail:
        # List was rewritten, not appended to; newest entries come last
        candidate = _first_new_idea(reversed(proposed.ideas), known)

    if candidate is None:
        quoted = f"«{tail[0].text.strip()}» " if tail and tail[0].text.strip() else ""
        return TurnOutcome(
            f"La idea {quoted}ya está en tu lista. ¿Puedes proponer una causa distinta?",
            BrainstormAction.ASK_CLARIFY,
            prior,
        )

    ideas = [*prior.ideas, TextItem(text=collapse_whitespace(candidate.text))]
    next_state = prior.model_copy(update={"ideas": ideas, "status": "draft"})

    threshold_reached = len(prior.ideas) < prior.min_ideas <= len(ideas)
    if threshold_reached:
        reply += _threshold_note(prior.min_ideas)

    return TurnOutcome(reply, action, next_state, threshold_reached=threshold_reached, state_changed=True)


# =============================================================================
# GRADING
# =============================================================================


def build_grading_prompt(artifact: dict[str, Any]) -> str:
    """Rubric prompt for a finished brainstorm artifact."""
    return f"""
Evalúa académicamente la Etapa 3 (Lluvia de ideas de causas).

CRITERIOS (mínimos):
1) Alineación con la problemática ({RUBRIC["alineacion"]}%)
2) Claridad / no ambigüedad ({RUBRIC["claridad"]}%)
3) Variedad y profundidad ({RUBRIC["profundidad"]}%)

Escala:
- Deficiente
- Regular
- Adecuado
- Bien

DEVUELVE SOLO JSON:
{{
  "total_score": number (0-100),
  "total_label": string,
  "detail": {{"alineacion": number, "claridad": number, "profundidad": number}},
  "feedback": string
}}

ENTREGA DEL ESTUDIANTE:
{_dump(artifact)}
""".strip()


def parse_grading(raw: str) -> GradingResult:
    """Same failure modes as parse_proposal: MALFORMED_OUTPUT, no_payload or invalid_shape."""
    extracted = extract_structured(raw)
    if not extracted.parsed:
        logger.warning("Grading returned no JSON payload: %.200r", raw)
        raise ApiError(
            ErrorCode.MALFORMED_OUTPUT,
            "La evaluación de la Etapa 3 no devolvió un JSON válido. Intenta de nuevo.",
            details={"reason": "no_payload"},
        )

    try:
        return GradingResult.model_validate(extracted.payload)
    except ValidationError as e:
        logger.warning("Grading payload failed validation: %s", e.errors()[:3])
        raise ApiError(
            ErrorCode.MALFORMED_OUTPUT,
            "La evaluación de la Etapa 3 llegó incompleta. Intenta de nuevo.",
            details={"reason": "invalid_shape"},
        ) from e


def artifact_digest(artifact: dict[str, Any]) -> str:
    canonical = json.dumps(artifact, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


async def _find_evaluation(
    db: AsyncSession, user_id: UUID, chat_id: UUID, digest: str
) -> PlanStageEvaluation | None:
    result = await db.execute(
        select(PlanStageEvaluation).where(
            PlanStageEvaluation.user_id == user_id,
            PlanStageEvaluation.chat_id == chat_id,
            PlanStageEvaluation.stage == BRAINSTORM_STAGE,
            PlanStageEvaluation.artifact_digest == digest,
        )
    )
    return result.scalar_one_or_none()


# =============================================================================
# ORCHESTRATION
# =============================================================================


@dataclass
class StageValidation:
    state: BrainstormState
    evaluation: PlanStageEvaluation
    graded: bool


def _load_state(state_json: dict[str, Any] | None, default_min_ideas: int) -> BrainstormState:
    if state_json is None:
        return BrainstormState(min_ideas=default_min_ideas)
    try:
        return BrainstormState.model_validate(state_json)
    except ValidationError as e:
        logger.error("Stored brainstorm state is invalid: %s", e.errors()[:3])
        raise ApiError(ErrorCode.INTERNAL, "El estado guardado de la Etapa 3 es inválido.") from e


async def run_turn(
    db: AsyncSession,
    *,
    user_id: UUID,
    chat_id: UUID,
    message: str,
    recent_history: str,
    generation: GenerationClient,
    settings: Settings,
) -> TurnOutcome:
    """
    Process one learner turn end to end.

    Ownership is checked by the store reads. The state is written only
    after the proposal validated, so a failed or cancelled generation
    call leaves storage untouched.
    """
    row = await get_stage_state(db, user_id, chat_id, BRAINSTORM_STAGE)
    prior = _load_state(row.state_json if row else None, settings.brainstorm_min_ideas)
    upstream = await get_stage_states(db, user_id, chat_id, UPSTREAM_STAGES)
    started = row is not None

    # No transaction stays open across the generation call
    await db.commit()

    prompt = build_prompt(
        prior,
        upstream,
        trim_history(recent_history, settings.recent_history_max_chars),
        message,
    )
    raw = await generation.complete(prompt)
    proposal = parse_proposal(raw)
    outcome = apply_proposal(prior, proposal)

    if outcome.state_changed or not started:
        await upsert_stage_state(
            db, user_id, chat_id, BRAINSTORM_STAGE, outcome.state.to_state_json()
        )

    logger.info(
        "Brainstorm turn chat=%s action=%s ideas=%d changed=%s",
        chat_id, outcome.action.value, len(outcome.state.ideas), outcome.state_changed,
    )
    return outcome


async def validate_stage(
    db: AsyncSession,
    *,
    user_id: UUID,
    chat_id: UUID,
    generation: GenerationClient,
) -> StageValidation:
    """
    Finalize the stage: a problem and at least minIdeas ideas are required.

    The artifact (problem and ideas) is graded against the rubric once;
    validating the same artifact again returns the stored evaluation
    without calling the generation service. Nothing is written if the
    grade cannot be parsed.
    """
    row = await get_stage_state(db, user_id, chat_id, BRAINSTORM_STAGE)
    if row is None:
        raise ApiError(ErrorCode.BAD_REQUEST, "La Etapa 3 no ha sido iniciada.")

    state = _load_state(row.state_json, 0)
    if state.problem is None:
        raise ApiError(ErrorCode.BAD_REQUEST, "Falta definir la problemática principal.")
    if len(state.ideas) < state.min_ideas:
        raise ApiError(
            ErrorCode.BAD_REQUEST,
            f"Faltan ideas: tienes {len(state.ideas)} y el mínimo es {state.min_ideas}.",
            details={"ideas": len(state.ideas), "min_ideas": state.min_ideas},
        )

    artifact = state.artifact()
    digest = artifact_digest(artifact)
    evaluation = await _find_evaluation(db, user_id, chat_id, digest)
    await db.commit()

    grade = None
    if evaluation is None:
        grade = parse_grading(await generation.complete(build_grading_prompt(artifact)))

    validated = state.model_copy(update={"status": "validated"})
    await upsert_stage_state(db, user_id, chat_id, BRAINSTORM_STAGE, validated.to_state_json())
    if grade is None:
        await db.commit()
        return StageValidation(validated, evaluation, graded=False)

    # State and evaluation commit together
    evaluation = PlanStageEvaluation(
        user_id=user_id,
        chat_id=chat_id,
        stage=BRAINSTORM_STAGE,
        artifact_digest=digest,
        artifact_json=artifact,
        rubric_json=dict(RUBRIC),
        result_json=grade.model_dump(mode="json"),
        total_score=grade.total_score,
        total_label=grade.total_label,
        feedback=grade.feedback or None,
    )
    db.add(evaluation)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Concurrent evaluation chat=%s digest=%s", chat_id, digest[:12])
        await upsert_stage_state(db, user_id, chat_id, BRAINSTORM_STAGE, validated.to_state_json())
        await db.commit()
        existing = await _find_evaluation(db, user_id, chat_id, digest)
        return StageValidation(validated, existing, graded=False)

    await db.refresh(evaluation)
    logger.info(
        "Brainstorm stage validated chat=%s score=%s label=%s",
        chat_id, evaluation.total_score, evaluation.total_label,
    )
    return StageValidation(validated, evaluation, graded=True)
