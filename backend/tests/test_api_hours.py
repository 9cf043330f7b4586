"""API tests for weekly activity submissions."""

from datetime import timedelta

from sqlalchemy import func, select

from planlab.db.models import ActivityPeriod

from conftest import create_cohort, create_profile, make_caller


async def count_entries(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(ActivityPeriod))
        return result.scalar_one()


class TestSubmitHours:
    async def test_records_current_period(self, client, student):
        response = await client.post(
            "/hours", json={"hours": 6.5, "activity": "Toma de tiempos"}, headers=student.headers
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["period"] == {"period_start": "2026-03-07", "period_end": "2026-03-13"}
        assert data["saved"]["hours"] == 6.5
        assert data["saved"]["activity"] == "Toma de tiempos"
        assert data["cadence_days"] == 7

    async def test_second_submission_in_same_period_conflicts(self, client, session_factory, clock, student):
        first = await client.post("/hours", json={"hours": 4, "activity": "Visita"}, headers=student.headers)
        assert first.status_code == 201

        clock.now = clock.now + timedelta(days=2)  # Thursday, same period
        second = await client.post("/hours", json={"hours": 2, "activity": "Otra"}, headers=student.headers)

        assert second.status_code == 409
        body = second.json()
        assert body["code"] == "CONFLICT"
        assert body["details"] == {"period_start": "2026-03-07", "period_end": "2026-03-13"}
        assert await count_entries(session_factory) == 1

    async def test_next_period_is_accepted(self, client, clock, student):
        await client.post("/hours", json={"hours": 4, "activity": "Semana 1"}, headers=student.headers)
        clock.now = clock.now + timedelta(days=7)
        response = await client.post("/hours", json={"hours": 5, "activity": "Semana 2"}, headers=student.headers)

        assert response.status_code == 201
        assert response.json()["data"]["period"]["period_start"] == "2026-03-14"

        listing = await client.get("/hours", headers=student.headers)
        items = listing.json()["data"]["items"]
        assert [i["activity"] for i in items] == ["Semana 2", "Semana 1"]

    async def test_hours_out_of_range(self, client, student):
        response = await client.post("/hours", json={"hours": 250, "activity": "Mucho"}, headers=student.headers)
        assert response.status_code == 400
        assert response.json()["message"].startswith("hours")

    async def test_activity_required(self, client, student):
        response = await client.post("/hours", json={"hours": 3, "activity": "   "}, headers=student.headers)
        assert response.status_code == 400

    async def test_teacher_cannot_submit(self, client, teacher):
        response = await client.post("/hours", json={"hours": 3, "activity": "x"}, headers=teacher.headers)
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    async def test_cohort_without_anchor_is_misconfigured(self, client, db, session_factory):
        cohort = await create_cohort(db, hours_start_at=None)
        caller = make_caller("sinancla@umsa.bo")
        await create_profile(db, caller, cohort)

        response = await client.post("/hours", json={"hours": 3, "activity": "x"}, headers=caller.headers)

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL"
        assert await count_entries(session_factory) == 0

    async def test_expired_access_is_gated(self, client, db, clock, student):
        clock.now = clock.now + timedelta(days=120)
        response = await client.post("/hours", json={"hours": 3, "activity": "x"}, headers=student.headers)
        assert response.status_code == 403
        assert response.json()["code"] == "ACCESS_EXPIRED"


class TestListHours:
    async def test_empty(self, client, student):
        response = await client.get("/hours", headers=student.headers)
        assert response.json() == {"ok": True, "data": {"items": []}}

    async def test_limit_is_capped(self, client, student):
        response = await client.get("/hours", params={"limit": 101}, headers=student.headers)
        assert response.status_code == 400

    async def test_only_own_entries(self, client, db, cohort, student):
        other = make_caller("otra@umsa.bo")
        await create_profile(db, other, cohort)
        await client.post("/hours", json={"hours": 1, "activity": "Mía"}, headers=other.headers)

        response = await client.get("/hours", headers=student.headers)
        assert response.json()["data"]["items"] == []
