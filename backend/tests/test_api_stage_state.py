"""API tests for the stage state store: ownership, upsert semantics, gating."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from planlab.db.models import PlanStageState
from planlab.errors import ApiError, ErrorCode
from planlab.services.stage_state import upsert_stage_state, validate_state_json

from conftest import NOW, create_chat, create_cohort, create_profile, make_caller


async def count_states(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(PlanStageState))
        return result.scalar_one()


class TestReadStageState:
    async def test_requires_authentication(self, client, chat):
        response = await client.get("/plans/stage-state", params={"chat_id": str(chat.id), "stage": 0})
        assert response.status_code == 401
        body = response.json()
        assert body["ok"] is False
        assert body["code"] == "UNAUTHENTICATED"

    async def test_non_bearer_header_rejected(self, client, chat):
        response = await client.get(
            "/plans/stage-state",
            params={"chat_id": str(chat.id), "stage": 0},
            headers={"Authorization": "Token abc"},
        )
        assert response.status_code == 401

    async def test_unwritten_stage_is_not_an_error(self, client, student, chat):
        response = await client.get(
            "/plans/stage-state",
            params={"chat_id": str(chat.id), "stage": 2},
            headers=student.headers,
        )
        assert response.status_code == 200
        assert response.json() == {"ok": True, "data": {"exists": False, "row": None}}

    async def test_negative_stage_is_bad_request(self, client, student, chat):
        response = await client.get(
            "/plans/stage-state",
            params={"chat_id": str(chat.id), "stage": -1},
            headers=student.headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "BAD_REQUEST"
        assert response.json()["message"].startswith("stage")

    async def test_unknown_chat_is_not_found(self, client, student):
        response = await client.get(
            "/plans/stage-state",
            params={"chat_id": str(uuid4()), "stage": 0},
            headers=student.headers,
        )
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_foreign_chat_is_forbidden(self, client, db, cohort, chat):
        intruder = make_caller("intruso@umsa.bo")
        await create_profile(db, intruder, cohort)

        response = await client.get(
            "/plans/stage-state",
            params={"chat_id": str(chat.id), "stage": 0},
            headers=intruder.headers,
        )
        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "FORBIDDEN"
        assert "data" not in body

    async def test_reading_is_allowed_after_access_expired(self, client, db, session_factory):
        cohort = await create_cohort(db, name="Cohorte cerrada", access_ends_at=NOW - timedelta(days=1))
        caller = make_caller("exalumna@umsa.bo")
        await create_profile(db, caller, cohort)
        chat = await create_chat(db, caller)

        response = await client.get(
            "/plans/stage-state",
            params={"chat_id": str(chat.id), "stage": 0},
            headers=caller.headers,
        )
        assert response.status_code == 200


class TestUpsertStageState:
    async def test_write_then_read(self, client, student, chat):
        payload = {"chat_id": str(chat.id), "stage": 0, "state_json": {"company": "Textiles Andinos"}}
        response = await client.put("/plans/stage-state", json=payload, headers=student.headers)
        assert response.status_code == 200
        row = response.json()["data"]["row"]
        assert row["stage"] == 0
        assert row["state_json"] == {"company": "Textiles Andinos"}

        response = await client.get(
            "/plans/stage-state",
            params={"chat_id": str(chat.id), "stage": 0},
            headers=student.headers,
        )
        data = response.json()["data"]
        assert data["exists"] is True
        assert data["row"]["state_json"] == {"company": "Textiles Andinos"}

    async def test_repeated_write_replaces_in_place(self, client, session_factory, student, chat):
        url = "/plans/stage-state"
        first = {"chat_id": str(chat.id), "stage": 1, "state_json": {"v": 1}}
        second = {"chat_id": str(chat.id), "stage": 1, "state_json": {"v": 2, "extra": [1, 2]}}

        r1 = await client.put(url, json=first, headers=student.headers)
        r2 = await client.put(url, json=second, headers=student.headers)
        r3 = await client.put(url, json=second, headers=student.headers)

        assert r1.status_code == r2.status_code == r3.status_code == 200
        assert r1.json()["data"]["row"]["id"] == r3.json()["data"]["row"]["id"]
        assert r3.json()["data"]["row"]["state_json"] == {"v": 2, "extra": [1, 2]}
        assert await count_states(session_factory) == 1

    async def test_stages_are_independent(self, client, session_factory, student, chat):
        for stage in (0, 1, 2):
            payload = {"chat_id": str(chat.id), "stage": stage, "state_json": {"stage": stage}}
            await client.put("/plans/stage-state", json=payload, headers=student.headers)
        assert await count_states(session_factory) == 3

    async def test_state_must_be_an_object(self, client, student, chat):
        payload = {"chat_id": str(chat.id), "stage": 0, "state_json": [1, 2, 3]}
        response = await client.put("/plans/stage-state", json=payload, headers=student.headers)
        assert response.status_code == 400
        assert response.json()["code"] == "BAD_REQUEST"

    async def test_stage_must_be_an_integer(self, client, student, chat):
        payload = {"chat_id": str(chat.id), "stage": "1", "state_json": {}}
        response = await client.put("/plans/stage-state", json=payload, headers=student.headers)
        assert response.status_code == 400

    async def test_foreign_chat_write_is_forbidden(self, client, db, session_factory, cohort, chat):
        intruder = make_caller("intruso@umsa.bo")
        await create_profile(db, intruder, cohort)

        payload = {"chat_id": str(chat.id), "stage": 0, "state_json": {"hacked": True}}
        response = await client.put("/plans/stage-state", json=payload, headers=intruder.headers)
        assert response.status_code == 403
        assert await count_states(session_factory) == 0

    async def test_writing_is_gated_for_students(self, client, db, session_factory):
        cohort = await create_cohort(db, name="Cohorte futura", access_starts_at=NOW + timedelta(days=3))
        caller = make_caller("futura@umsa.bo")
        await create_profile(db, caller, cohort)
        chat = await create_chat(db, caller)

        payload = {"chat_id": str(chat.id), "stage": 0, "state_json": {}}
        response = await client.put("/plans/stage-state", json=payload, headers=caller.headers)
        assert response.status_code == 403
        assert response.json()["code"] == "ACCESS_NOT_STARTED"
        assert await count_states(session_factory) == 0


class TestEngineOwnedStages:
    async def test_brainstorm_stage_cannot_be_written_by_clients(self, client, session_factory, student, chat):
        payload = {
            "chat_id": str(chat.id),
            "stage": 3,
            "state_json": {"problem": {"text": "p"}, "ideas": [], "minIdeas": 0, "status": "validated"},
        }
        response = await client.put("/plans/stage-state", json=payload, headers=student.headers)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
        assert response.json()["details"] == {"stage": 3}
        assert await count_states(session_factory) == 0

    async def test_malformed_brainstorm_state_is_rejected(self, session_factory, chat):
        async with session_factory() as session:
            with pytest.raises(ApiError) as exc_info:
                await upsert_stage_state(
                    session, chat.user_id, chat.id, 3, {"problem": {"text": "p"}, "ideas": "not-a-list"}
                )
        assert exc_info.value.code == ErrorCode.BAD_REQUEST
        assert exc_info.value.message.startswith("state_json inválido para la etapa 3: ideas")
        assert await count_states(session_factory) == 0

    async def test_duplicate_ideas_are_rejected(self, session_factory, chat):
        state_json = {
            "problem": {"text": "p"},
            "ideas": [{"text": "Falta de capacitación"}, {"text": "falta de  CAPACITACIÓN"}],
            "minIdeas": 2,
        }
        async with session_factory() as session:
            with pytest.raises(ApiError) as exc_info:
                await upsert_stage_state(session, chat.user_id, chat.id, 3, state_json)
        assert exc_info.value.code == ErrorCode.BAD_REQUEST
        assert await count_states(session_factory) == 0

    async def test_valid_brainstorm_state_is_stored_normalized(self, session_factory, chat):
        async with session_factory() as session:
            row = await upsert_stage_state(
                session, chat.user_id, chat.id, 3, {"problem": {"text": "p"}, "ideas": [], "minIdeas": 4}
            )
            await session.commit()
        assert row.state_json == {"problem": {"text": "p"}, "ideas": [], "minIdeas": 4, "status": "draft"}

    def test_free_form_stages_pass_through(self):
        assert validate_state_json(0, {"anything": [1, {"x": None}]}) == {"anything": [1, {"x": None}]}
