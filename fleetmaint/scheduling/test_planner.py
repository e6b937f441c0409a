"""
Tests for the horizon and Daily planners, run against in-memory schedules.
No DB needed.
"""
from dataclasses import replace
from datetime import date, datetime, timedelta

from fleetmaint.config import SchedulerSettings
from fleetmaint.models import CheckTier
from fleetmaint.scheduling.availability import build_window
from fleetmaint.scheduling.check_state import CheckState, TierState
from fleetmaint.scheduling.planner import PlanStatus, plan_aircraft
from fleetmaint.scheduling.state import AircraftSchedule

NOW = datetime(2025, 7, 7, 12, 0)
TODAY = NOW.date()
SETTINGS = SchedulerSettings()


def _state(**tiers) -> CheckState:
    """Tiers given as NAME=TierState; everything else never completed, disabled."""
    state = CheckState.default()
    entries = dict(state.tiers)
    for name, entry in tiers.items():
        entries[CheckTier(name)] = entry
    return replace(state, tiers=entries)


def _flight(dep, arr, origin="EGLL", destination="EGLL"):
    return build_window(None, origin, destination, dep, arr,
                        passenger_capacity=180, is_cargo=False, distance_nm=0.0)


def _schedule(*flights):
    return AircraftSchedule("AC01", "EGLL", flights=list(flights))


def _of(results, tier):
    return [r for r in results if r.tier == tier]


# ── Daily ─────────────────────────────────────────────────────────────────────

def test_expired_daily_forced_two_hours_from_now():
    schedule = _schedule()
    state = _state(DAILY=TierState(None, 1, True))
    results = plan_aircraft(schedule, state, [CheckTier.DAILY], NOW, SETTINGS)

    first = results[0]
    assert first.status == PlanStatus.FORCED
    assert first.check.start_at == NOW + timedelta(hours=2)
    assert len(schedule.checks_of(CheckTier.DAILY)) == SETTINGS.daily_days_ahead


def test_daily_one_check_per_day_early_morning():
    schedule = _schedule()
    state = _state(DAILY=TierState(datetime(2025, 7, 7, 4, 0), 1, True))
    plan_aircraft(schedule, state, [CheckTier.DAILY], NOW, SETTINGS)

    checks = schedule.checks_of(CheckTier.DAILY)
    days = [c.scheduled_date for c in checks]
    assert days == [TODAY + timedelta(days=i) for i in range(SETTINGS.daily_days_ahead)]
    # today's morning is gone, so today's check goes in the evening
    assert checks[0].start_minute == 1200
    assert all(c.start_minute == 180 for c in checks[1:])


def test_daily_day_skipped_when_fully_busy():
    busy_day = TODAY + timedelta(days=2)
    long_leg = _flight(datetime.combine(busy_day, datetime.min.time()) + timedelta(minutes=40),
                       datetime.combine(busy_day, datetime.min.time()) + timedelta(hours=23, minutes=30))
    schedule = _schedule(long_leg)
    state = _state(DAILY=TierState(datetime(2025, 7, 7, 4, 0), 1, True))
    results = plan_aircraft(schedule, state, [CheckTier.DAILY], NOW, SETTINGS)

    skipped = [r for r in results if r.status == PlanStatus.SKIPPED]
    assert [r.scheduled_date for r in skipped] == [busy_day]


# ── Recurring tiers ───────────────────────────────────────────────────────────

def test_weekly_placed_at_night_around_daytime_flight():
    # expires in 3 days; target is expiry minus (1 day duration + 1 day buffer)
    target = TODAY + timedelta(days=1)
    flight = _flight(datetime(2025, 7, 8, 8, 30), datetime(2025, 7, 8, 13, 30))
    schedule = _schedule(flight)
    state = _state(WEEKLY=TierState(datetime(2025, 7, 3, 12, 0), 7, True))

    results = plan_aircraft(schedule, state, [CheckTier.WEEKLY], NOW, SETTINGS)

    first = results[0]
    assert first.status == PlanStatus.SCHEDULED
    assert first.scheduled_date == target
    assert not 8 * 60 <= first.start_minute < 14 * 60
    assert first.start_minute == 21 * 60
    assert not schedule.conflicting_flights(first.check)


def test_weekly_recurs_on_interval():
    schedule = _schedule()
    state = _state(WEEKLY=TierState(datetime(2025, 7, 3, 12, 0), 7, True))
    plan_aircraft(schedule, state, [CheckTier.WEEKLY], NOW, SETTINGS)

    dates = [c.scheduled_date for c in schedule.checks_of(CheckTier.WEEKLY)]
    assert dates[:3] == [date(2025, 7, 8), date(2025, 7, 15), date(2025, 7, 22)]
    assert all(d <= TODAY + timedelta(days=SETTINGS.horizon_days) for d in dates)


def test_weekly_offset_spreads_fleet():
    state = _state(WEEKLY=TierState(datetime(2025, 7, 5, 12, 0), 7, True))
    first_dates = []
    for position in range(4):
        schedule = _schedule()
        plan_aircraft(schedule, state, [CheckTier.WEEKLY], NOW, SETTINGS, fleet_position=position)
        first_dates.append(schedule.checks_of(CheckTier.WEEKLY)[0].scheduled_date)

    assert first_dates == [date(2025, 7, 10), date(2025, 7, 9), date(2025, 7, 8), date(2025, 7, 7)]


def test_a_check_follows_flight_hour_forecast():
    schedule = _schedule()
    state = replace(
        _state(A=TierState(datetime(2025, 6, 1), 500, True)),
        total_flight_hours=10300.0,
        a_last_completed_flight_hours=10000.0,
    )
    plan_aircraft(schedule, state, [CheckTier.A], NOW, SETTINGS)

    # 200 FH left at 7 FH/day, planned 3 days (1 day + 2 buffer) ahead of expiry
    expiry = NOW + timedelta(days=200 / 7)
    first = schedule.checks_of(CheckTier.A)[0]
    assert first.scheduled_date == (expiry - timedelta(days=3)).date()
    assert first.end_at <= expiry


def test_unplaceable_occurrence_is_skipped_not_raised():
    out = _flight(NOW + timedelta(hours=1), NOW + timedelta(hours=9), destination="KJFK")
    back = _flight(NOW + timedelta(days=20), NOW + timedelta(days=20, hours=8), origin="KJFK")
    schedule = _schedule(out, back)
    state = _state(WEEKLY=TierState(datetime(2025, 7, 3, 12, 0), 7, True))

    results = plan_aircraft(schedule, state, [CheckTier.WEEKLY], NOW, SETTINGS)

    assert results[0].status == PlanStatus.SKIPPED
    placed = schedule.checks_of(CheckTier.WEEKLY)
    assert placed and all(c.start_at >= back.busy_end for c in placed)


def test_expired_heavy_check_away_from_base_fails_with_message():
    out = _flight(NOW + timedelta(minutes=60), NOW + timedelta(hours=8), destination="KJFK")
    schedule = _schedule(out)
    state = _state(WEEKLY=TierState(None, 7, True))

    results = plan_aircraft(schedule, state, [CheckTier.WEEKLY], NOW, SETTINGS)

    assert results[0].status == PlanStatus.FAILED
    assert "Weekly" in results[0].message and "AC01" in results[0].message


# ── Hierarchy ─────────────────────────────────────────────────────────────────

def test_forced_heavy_check_covers_lighter_days():
    schedule = _schedule()
    state = _state(
        DAILY=TierState(None, 1, True),
        C=TierState(None, 660, True),
    )
    results = plan_aircraft(schedule, state, [CheckTier.DAILY, CheckTier.C], NOW, SETTINGS)

    assert _of(results, CheckTier.C)[0].status == PlanStatus.FORCED
    assert all(r.status == PlanStatus.COVERED for r in _of(results, CheckTier.DAILY))
    assert schedule.checks_of(CheckTier.DAILY) == []


def test_expired_heavy_suppresses_lighter_immediate_check():
    # C cannot be forced (aircraft leaves base), Daily must not be forced either
    out = _flight(NOW + timedelta(minutes=60), NOW + timedelta(hours=8), destination="KJFK")
    schedule = _schedule(out)
    state = _state(
        DAILY=TierState(None, 1, True),
        C=TierState(None, 660, True),
    )
    results = plan_aircraft(schedule, state, [CheckTier.DAILY, CheckTier.C], NOW, SETTINGS)

    assert _of(results, CheckTier.C)[0].status == PlanStatus.FAILED
    daily = _of(results, CheckTier.DAILY)
    assert daily[0].status == PlanStatus.SUPPRESSED
    assert all(c.scheduled_date > TODAY for c in schedule.checks_of(CheckTier.DAILY))


def test_no_lighter_check_starts_inside_scheduled_d_check():
    lead_days = 75 + 14
    state = replace(
        _state(
            DAILY=TierState(datetime(2025, 7, 6, 20, 0), 1, True),
            WEEKLY=TierState(datetime(2025, 7, 4, 12, 0), 7, True),
            A=TierState(datetime(2025, 6, 1), 500, True),
            C=TierState(NOW - timedelta(days=600), 660, True),
            D=TierState(NOW - timedelta(days=2920 - lead_days), 2920, True),
        ),
        total_flight_hours=5200.0,
        a_last_completed_flight_hours=5000.0,
    )
    schedule = _schedule()
    plan_aircraft(schedule, state, list(CheckTier), NOW, SETTINGS)

    d_checks = schedule.checks_of(CheckTier.D)
    assert len(d_checks) == 1
    d = d_checks[0]
    assert d.scheduled_date == TODAY

    others = [c for c in schedule.checks if c.tier != CheckTier.D]
    assert others
    for c in others:
        assert not d.overlaps(c.start_at, c.end_at)
        assert not d.start_at <= c.start_at < d.end_at


def test_replanning_same_schedule_adds_nothing():
    schedule = _schedule()
    state = _state(
        DAILY=TierState(datetime(2025, 7, 7, 4, 0), 1, True),
        WEEKLY=TierState(datetime(2025, 7, 3, 12, 0), 7, True),
        A=TierState(datetime(2025, 6, 1), 500, True),
    )
    tiers = [CheckTier.DAILY, CheckTier.WEEKLY, CheckTier.A]
    plan_aircraft(schedule, state, tiers, NOW, SETTINGS)
    before = [(c.tier, c.scheduled_date, c.start_minute) for c in schedule.checks]

    results = plan_aircraft(schedule, state, tiers, NOW, SETTINGS)

    after = [(c.tier, c.scheduled_date, c.start_minute) for c in schedule.checks]
    assert after == before
    assert all(r.status == PlanStatus.COVERED for r in results)
