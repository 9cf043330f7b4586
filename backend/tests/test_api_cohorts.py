"""API tests for cohort management."""

from datetime import timedelta

from sqlalchemy import select

from planlab.db.models import Cohort

from conftest import NOW, create_cohort


def cohort_payload(**overrides) -> dict:
    payload = {
        "name": "Cohorte 2026-II",
        "access_starts_at": (NOW + timedelta(days=10)).isoformat(),
        "access_ends_at": (NOW + timedelta(days=130)).isoformat(),
        "hours_start_at": "2026-03-21",
    }
    payload.update(overrides)
    return payload


async def active_names(session_factory) -> list[str]:
    async with session_factory() as session:
        result = await session.execute(select(Cohort.name).where(Cohort.is_active.is_(True)))
        return sorted(result.scalars())


class TestCreateCohort:
    async def test_creates_with_defaults(self, client, teacher):
        response = await client.post("/teacher/cohorts", json=cohort_payload(), headers=teacher.headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["name"] == "Cohorte 2026-II"
        assert data["is_active"] is True
        assert data["reminder_hour"] == 11
        assert data["reminder_minute"] == 0
        assert data["hours_start_at"] == "2026-03-21"

    async def test_activating_deactivates_others(self, client, session_factory, cohort, teacher):
        await client.post("/teacher/cohorts", json=cohort_payload(), headers=teacher.headers)
        assert await active_names(session_factory) == ["Cohorte 2026-II"]

    async def test_inactive_cohort_leaves_others_alone(self, client, session_factory, cohort, teacher):
        await client.post("/teacher/cohorts", json=cohort_payload(is_active=False), headers=teacher.headers)
        assert await active_names(session_factory) == [cohort.name]

    async def test_anchor_must_be_saturday(self, client, teacher):
        response = await client.post(
            "/teacher/cohorts", json=cohort_payload(hours_start_at="2026-03-20"), headers=teacher.headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "BAD_REQUEST"

    async def test_window_must_be_ordered(self, client, teacher):
        payload = cohort_payload(
            access_starts_at=NOW.isoformat(),
            access_ends_at=(NOW - timedelta(days=1)).isoformat(),
        )
        response = await client.post("/teacher/cohorts", json=payload, headers=teacher.headers)
        assert response.status_code == 400

    async def test_mixed_timezone_bounds_are_compared(self, client, teacher):
        payload = cohort_payload(
            access_starts_at="2026-02-01T00:00:00Z",
            access_ends_at="2026-01-01T00:00:00",
        )
        response = await client.post("/teacher/cohorts", json=payload, headers=teacher.headers)
        assert response.status_code == 400
        assert response.json()["code"] == "BAD_REQUEST"

    async def test_naive_end_after_aware_start_is_accepted(self, client, teacher):
        payload = cohort_payload(
            access_starts_at="2026-01-01T00:00:00Z",
            access_ends_at="2026-02-01T00:00:00",
        )
        response = await client.post("/teacher/cohorts", json=payload, headers=teacher.headers)
        assert response.status_code == 201

    async def test_name_length(self, client, teacher):
        response = await client.post("/teacher/cohorts", json=cohort_payload(name="ab"), headers=teacher.headers)
        assert response.status_code == 400
        assert response.json()["message"].startswith("name")

    async def test_reminder_bounds(self, client, teacher):
        response = await client.post(
            "/teacher/cohorts", json=cohort_payload(reminder_hour=24), headers=teacher.headers
        )
        assert response.status_code == 400

    async def test_form_url_must_be_http(self, client, teacher):
        response = await client.post(
            "/teacher/cohorts", json=cohort_payload(form_initial_url="not a url"), headers=teacher.headers
        )
        assert response.status_code == 400

    async def test_students_cannot_manage_cohorts(self, client, student):
        response = await client.post("/teacher/cohorts", json=cohort_payload(), headers=student.headers)
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"


class TestUpdateCohort:
    async def test_partial_update(self, client, cohort, teacher):
        response = await client.patch(
            f"/teacher/cohorts/{cohort.id}", json={"reminder_hour": 8}, headers=teacher.headers
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["reminder_hour"] == 8
        assert data["name"] == cohort.name

    async def test_end_checked_against_stored_start(self, client, cohort, teacher):
        response = await client.patch(
            f"/teacher/cohorts/{cohort.id}",
            json={"access_ends_at": (NOW - timedelta(days=60)).isoformat()},
            headers=teacher.headers,
        )
        assert response.status_code == 400

    async def test_reactivation_deactivates_others(self, client, db, session_factory, cohort, teacher):
        old = await create_cohort(db, name="Cohorte 2025-II", is_active=False)
        response = await client.patch(
            f"/teacher/cohorts/{old.id}", json={"is_active": True}, headers=teacher.headers
        )
        assert response.status_code == 200
        assert await active_names(session_factory) == ["Cohorte 2025-II"]

    async def test_null_name_rejected(self, client, cohort, teacher):
        response = await client.patch(f"/teacher/cohorts/{cohort.id}", json={"name": None}, headers=teacher.headers)
        assert response.status_code == 400

    async def test_unknown_cohort(self, client, teacher):
        response = await client.patch(
            "/teacher/cohorts/00000000-0000-0000-0000-000000000000", json={"name": "Nueva"}, headers=teacher.headers
        )
        assert response.status_code == 404


class TestListCohorts:
    async def test_active_cohorts_report_registration_window(self, client, db, teacher, student):
        await create_cohort(db, name="Abre luego", registration_opens_at=NOW + timedelta(days=2))
        # creating through the ORM does not deactivate, so both are active here
        response = await client.get("/cohorts/active", headers=student.headers)

        flags = {c["name"]: c["registration_open"] for c in response.json()["data"]}
        assert flags == {"Cohorte 2026-I": True, "Abre luego": False}

    async def test_teacher_listing_includes_inactive(self, client, db, cohort, teacher):
        await create_cohort(db, name="Vieja", is_active=False)
        response = await client.get("/teacher/cohorts", headers=teacher.headers)
        assert {c["name"] for c in response.json()["data"]} == {"Cohorte 2026-I", "Vieja"}
