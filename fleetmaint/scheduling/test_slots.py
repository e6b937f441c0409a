"""Tests for the slot finder."""
from datetime import date, datetime, timedelta

from fleetmaint.models import CheckTier
from fleetmaint.scheduling.availability import build_window
from fleetmaint.scheduling.slots import (
    candidate_minutes, find_slot, find_slot_near, nearby_dates, slot_fits,
)
from fleetmaint.scheduling.state import AircraftSchedule, PlannedCheck
from fleetmaint.scheduling.tiers import spec_for

DAY = date(2025, 7, 8)


def _at(day, hour, minute=0):
    return datetime(day.year, day.month, day.day, hour, minute)


def _flight(dep, arr, origin="EGLL", destination="EGLL"):
    return build_window(None, origin, destination, dep, arr,
                        passenger_capacity=180, is_cargo=False, distance_nm=0.0)


def _schedule(*flights, checks=None):
    return AircraftSchedule("AC01", "EGLL", flights=list(flights), checks=list(checks or []))


def _duration(tier):
    return spec_for(tier).duration_minutes


# ── Candidates ────────────────────────────────────────────────────────────────

def test_daily_candidates_never_cross_midnight():
    bands = candidate_minutes(CheckTier.DAILY, 60)
    assert bands[0][0] == 180
    assert all(m + 60 <= 1440 for band in bands for m in band)
    assert 1380 in bands[1]


def test_heavy_candidates_start_overnight():
    bands = candidate_minutes(CheckTier.WEEKLY, 135)
    assert bands[0][0] == 1260
    assert 0 in bands[0] and 270 in bands[0]
    assert bands[2][0] == 495


# ── find_slot ─────────────────────────────────────────────────────────────────

def test_daily_prefers_early_morning():
    assert find_slot(_schedule(), DAY, 60, CheckTier.DAILY) == 180


def test_daily_falls_back_to_evening_when_morning_busy():
    schedule = _schedule(_flight(_at(DAY, 2), _at(DAY, 7)))
    assert find_slot(schedule, DAY, 60, CheckTier.DAILY) == 1200


def test_not_before_skips_past_minutes():
    assert find_slot(_schedule(), DAY, 60, CheckTier.DAILY, not_before=_at(DAY, 12)) == 1200


def test_deadline_bounds_the_end():
    minute = find_slot(_schedule(), DAY, 135, CheckTier.WEEKLY, deadline=_at(DAY, 12))
    assert minute == 0


def test_weekly_takes_night_slot_around_daytime_flight():
    schedule = _schedule(_flight(_at(DAY, 8, 30), _at(DAY, 13, 30)))
    minute = find_slot(schedule, DAY, _duration(CheckTier.WEEKLY), CheckTier.WEEKLY)
    assert minute == 1260


def test_heavy_check_needs_home_base_daily_does_not():
    # out the evening before, back the morning after
    out = _flight(_at(DAY - timedelta(days=1), 18), _at(DAY - timedelta(days=1), 20), destination="KJFK")
    back = _flight(_at(DAY + timedelta(days=1), 9), _at(DAY + timedelta(days=1), 16), origin="KJFK")
    schedule = _schedule(out, back)

    assert find_slot(schedule, DAY, 60, CheckTier.DAILY) == 180
    assert find_slot(schedule, DAY, _duration(CheckTier.WEEKLY), CheckTier.WEEKLY) is None


def test_occupied_minutes_go_last():
    schedule = _schedule()
    schedule.occupancy.add(DAY, CheckTier.WEEKLY, 1260)
    assert find_slot(schedule, DAY, 135, CheckTier.WEEKLY) == 1275
    # another tier's usage does not count
    assert find_slot(schedule, DAY, 540, CheckTier.A) == 1260


def test_fleet_position_rotates_start_within_band():
    schedule = _schedule()
    schedule.fleet_position = 2
    assert find_slot(schedule, DAY, 60, CheckTier.DAILY) == 210
    schedule.occupancy.add(DAY, CheckTier.DAILY, 210)
    assert find_slot(schedule, DAY, 60, CheckTier.DAILY) == 225


def test_occupancy_never_pushes_into_worse_band():
    schedule = _schedule()
    for minute in candidate_minutes(CheckTier.DAILY, 60)[0]:
        schedule.occupancy.add(DAY, CheckTier.DAILY, minute)
    assert find_slot(schedule, DAY, 60, CheckTier.DAILY) == 180


def test_existing_check_blocks_slot():
    weekly = PlannedCheck(CheckTier.WEEKLY, DAY, 1260, 135)
    schedule = _schedule(checks=[weekly])
    assert find_slot(schedule, DAY, 135, CheckTier.WEEKLY) == 1395
    assert find_slot(schedule, DAY, 135, CheckTier.WEEKLY, ignore=weekly) == 1260


def test_multi_day_check_blocked_by_check_inside_span():
    weekly = PlannedCheck(CheckTier.WEEKLY, DAY + timedelta(days=5), 1260, 135)
    schedule = _schedule(checks=[weekly])
    assert find_slot(schedule, DAY, _duration(CheckTier.C), CheckTier.C) is None


def test_multi_day_check_only_tests_flights_on_start_day():
    later = _flight(_at(DAY + timedelta(days=3), 9), _at(DAY + timedelta(days=3), 11))
    schedule = _schedule(later)
    assert slot_fits(schedule, DAY, 1260, _duration(CheckTier.C), CheckTier.C)


# ── Nearby search ─────────────────────────────────────────────────────────────

def test_nearby_dates_order():
    t = DAY
    d = timedelta(days=1)
    assert nearby_dates(t, 2) == [t, t - d, t + d, t - 2 * d, t + 2 * d]
    assert nearby_dates(t, 4, skip_radius=2) == [t - 3 * d, t + 3 * d, t - 4 * d, t + 4 * d]


def test_find_slot_near_moves_off_a_blocked_target():
    blocked = _flight(_at(DAY, 0, 30), _at(DAY + timedelta(days=1), 0, 30))
    schedule = _schedule(blocked)
    found = find_slot_near(schedule, DAY, 135, CheckTier.WEEKLY,
                           earliest=DAY - timedelta(days=7), latest=DAY + timedelta(days=7))
    assert found == (DAY - timedelta(days=1), 1260)


def test_find_slot_near_respects_window():
    blocked = _flight(_at(DAY, 0, 30), _at(DAY + timedelta(days=1), 0, 30))
    schedule = _schedule(blocked)
    found = find_slot_near(schedule, DAY, 135, CheckTier.WEEKLY, earliest=DAY, latest=DAY)
    assert found is None
