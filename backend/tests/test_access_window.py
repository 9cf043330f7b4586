"""Tests for the temporal access window and the learner gate order."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from planlab.db.models import Cohort, Profile, RegistrationStatus
from planlab.errors import ErrorCode
from planlab.services.access_window import (
    WindowStatus,
    evaluate_access_window,
    evaluate_learner_gate,
    registration_open,
    within_window,
)

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


class TestEvaluateAccessWindow:
    def test_inside_window(self):
        assert evaluate_access_window(NOW - HOUR, NOW + HOUR, NOW) == WindowStatus.OPEN

    def test_before_start(self):
        assert evaluate_access_window(NOW + HOUR, NOW + 2 * HOUR, NOW) == WindowStatus.NOT_STARTED

    def test_after_end(self):
        assert evaluate_access_window(NOW - 2 * HOUR, NOW - HOUR, NOW) == WindowStatus.EXPIRED

    def test_end_bound_is_exclusive(self):
        assert evaluate_access_window(NOW - HOUR, NOW, NOW) == WindowStatus.EXPIRED

    def test_start_bound_is_inclusive(self):
        assert evaluate_access_window(NOW, NOW + HOUR, NOW) == WindowStatus.OPEN

    def test_missing_bounds_are_open(self):
        assert evaluate_access_window(None, None, NOW) == WindowStatus.OPEN
        assert evaluate_access_window(None, NOW + HOUR, NOW) == WindowStatus.OPEN
        assert evaluate_access_window(NOW - HOUR, None, NOW) == WindowStatus.OPEN

    def test_expired_wins_over_not_started(self):
        """An inverted window reports the elapsed end first."""
        assert evaluate_access_window(NOW + HOUR, NOW - HOUR, NOW) == WindowStatus.EXPIRED

    def test_naive_datetimes_are_treated_as_utc(self):
        naive_end = (NOW - HOUR).replace(tzinfo=None)
        assert evaluate_access_window(None, naive_end, NOW) == WindowStatus.EXPIRED

    def test_within_window(self):
        assert within_window(NOW - HOUR, NOW + HOUR, NOW)
        assert not within_window(NOW + HOUR, None, NOW)


class TestRegistrationOpen:
    def test_unset_is_open(self):
        assert registration_open(Cohort(name="c"), NOW)

    def test_future_is_closed(self):
        assert not registration_open(Cohort(name="c", registration_opens_at=NOW + HOUR), NOW)


def _profile(**overrides) -> Profile:
    values = {
        "user_id": uuid4(),
        "ru": "1234567",
        "first_name": "Ana",
        "last_name": "Quispe",
        "semester": "1",
        "cohort_id": uuid4(),
        "registration_status": RegistrationStatus.APPROVED.value,
    }
    values.update(overrides)
    return Profile(**values)


def _cohort(**overrides) -> Cohort:
    values = {
        "name": "Cohorte",
        "is_active": True,
        "access_starts_at": NOW - HOUR,
        "access_ends_at": NOW + HOUR,
    }
    values.update(overrides)
    return Cohort(**values)


class TestLearnerGate:
    def test_allowed(self):
        gate = evaluate_learner_gate(_profile(), _cohort(), NOW)
        assert gate.allowed

    def test_missing_profile_needs_onboarding(self):
        assert evaluate_learner_gate(None, None, NOW).reason == ErrorCode.NEEDS_ONBOARDING

    def test_blank_field_needs_onboarding(self):
        gate = evaluate_learner_gate(_profile(ru="  "), _cohort(), NOW)
        assert gate.reason == ErrorCode.NEEDS_ONBOARDING

    def test_pending_approval(self):
        profile = _profile(registration_status=RegistrationStatus.PENDING.value)
        assert evaluate_learner_gate(profile, _cohort(), NOW).reason == ErrorCode.PENDING_APPROVAL

    def test_onboarding_checked_before_approval(self):
        profile = _profile(semester=None, registration_status=RegistrationStatus.PENDING.value)
        assert evaluate_learner_gate(profile, _cohort(), NOW).reason == ErrorCode.NEEDS_ONBOARDING

    def test_inactive_cohort_checked_before_window(self):
        cohort = _cohort(is_active=False, access_ends_at=NOW - HOUR)
        assert evaluate_learner_gate(_profile(), cohort, NOW).reason == ErrorCode.COHORT_INACTIVE

    def test_window_not_started(self):
        cohort = _cohort(access_starts_at=NOW + HOUR, access_ends_at=NOW + 2 * HOUR)
        assert evaluate_learner_gate(_profile(), cohort, NOW).reason == ErrorCode.ACCESS_NOT_STARTED

    def test_window_expired(self):
        cohort = _cohort(access_starts_at=NOW - 2 * HOUR, access_ends_at=NOW - HOUR)
        assert evaluate_learner_gate(_profile(), cohort, NOW).reason == ErrorCode.ACCESS_EXPIRED
