"""Tests for the check-state tracker."""
from dataclasses import replace
from datetime import datetime, timedelta

from fleetmaint.models import CheckTier
from fleetmaint.scheduling.check_state import CheckState, TierState, complete_check

NOW = datetime(2025, 7, 7, 12, 0)


def _state(**tiers) -> CheckState:
    state = CheckState.default(total_flight_hours=12450.0, a_last_completed_flight_hours=12300.0)
    entries = dict(state.tiers)
    for name, entry in tiers.items():
        entries[CheckTier(name)] = entry
    return replace(state, tiers=entries)


class TestExpiry:
    def test_never_completed_is_expired_now(self):
        state = CheckState.default()
        for tier in CheckTier:
            assert state.is_expired(tier, NOW)
            assert state.expiry(tier, NOW) == NOW

    def test_daily_valid_through_end_of_next_day(self):
        state = _state(DAILY=TierState(datetime(2025, 7, 6, 22, 0), 1))
        assert state.expiry(CheckTier.DAILY, NOW) == datetime(2025, 7, 8, 0, 0)
        assert not state.is_expired(CheckTier.DAILY, NOW)
        assert state.is_expired(CheckTier.DAILY, datetime(2025, 7, 8, 0, 0))

    def test_weekly_expires_to_the_minute(self):
        state = _state(WEEKLY=TierState(datetime(2025, 7, 1, 12, 0), 7))
        assert state.expiry(CheckTier.WEEKLY, NOW) == datetime(2025, 7, 8, 12, 0)
        assert not state.is_expired(CheckTier.WEEKLY, datetime(2025, 7, 8, 11, 59))
        assert state.is_expired(CheckTier.WEEKLY, datetime(2025, 7, 8, 12, 0))

    def test_a_check_forecast_from_flight_hours(self):
        state = _state(A=TierState(datetime(2025, 6, 1), 500))
        assert state.hours_remaining() == 350.0
        assert state.expiry(CheckTier.A, NOW) == NOW + timedelta(days=50)
        assert not state.is_expired(CheckTier.A, NOW)

    def test_a_check_expired_once_hours_flown(self):
        state = replace(_state(A=TierState(datetime(2025, 6, 1), 500)), total_flight_hours=12800.0)
        assert state.hours_remaining() == 0.0
        assert state.is_expired(CheckTier.A, NOW)

    def test_validity_after_daily_is_calendar_based(self):
        state = CheckState.default()
        assert state.validity_after(CheckTier.DAILY, datetime(2025, 7, 7, 5, 0)) == datetime(2025, 7, 9)

    def test_validity_after_c_adds_interval(self):
        state = CheckState.default()
        done = datetime(2025, 7, 28, 21, 0)
        assert state.validity_after(CheckTier.C, done) == done + timedelta(days=660)


class TestCompletion:
    def test_heavy_check_resets_lighter_tiers(self):
        at = datetime(2025, 7, 7, 6, 0)
        state = complete_check(CheckState.default(total_flight_hours=900.0), CheckTier.C, at)

        for tier in (CheckTier.DAILY, CheckTier.WEEKLY, CheckTier.A, CheckTier.C):
            assert state.tier(tier).last_completed_at == at
        assert state.tier(CheckTier.D).last_completed_at is None
        assert state.a_last_completed_flight_hours == 900.0

    def test_weekly_leaves_a_hours_alone(self):
        state = complete_check(_state(), CheckTier.WEEKLY, NOW)
        assert state.a_last_completed_flight_hours == 12300.0
        assert state.tier(CheckTier.DAILY).last_completed_at == NOW
        assert state.tier(CheckTier.A).last_completed_at is None

    def test_completion_keeps_interval_and_flag(self):
        state = _state(WEEKLY=TierState(None, 6, auto_schedule=True))
        state = complete_check(state, CheckTier.WEEKLY, NOW)
        assert state.tier(CheckTier.WEEKLY).interval_value == 6
        assert state.tier(CheckTier.WEEKLY).auto_schedule

    def test_original_state_untouched(self):
        before = CheckState.default()
        complete_check(before, CheckTier.D, NOW)
        assert before.tier(CheckTier.D).last_completed_at is None


def test_enabled_tiers_and_toggle():
    state = CheckState.default().with_auto_schedule(CheckTier.WEEKLY, True)
    assert state.enabled_tiers() == [CheckTier.WEEKLY]
    assert state.with_auto_schedule(CheckTier.WEEKLY, False).enabled_tiers() == []
