"""
Horizon planner — projects each tier's due dates forward and books a check
for every occurrence.

Strategy, per recurring tier (Weekly / A / C / D), heaviest first:
  For each cycle until the horizon (or the iteration cap):
    1. target = expiry - (duration days + buffer), not before today
    2. Weekly only: shift earlier by a per-aircraft offset (fleet spread)
    3. Heavier check already spanning the target → covered, jump past it
    4. Same-tier record near the target → covered (re-runs are idempotent)
    5. Currently expired → force at now + 2h (unless a heavier tier covers it)
    6. Otherwise slot search around the target; nothing found → skip, log
    7. Advance expiry by the interval

Daily checks are planned day by day for the next N days instead.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from fleetmaint.config import SchedulerSettings
from fleetmaint.exceptions import UnplaceableCheckError
from fleetmaint.models import CheckTier
from fleetmaint.scheduling.check_state import CheckState
from fleetmaint.scheduling.hierarchy import heaviest_first, suppressed_tiers
from fleetmaint.scheduling.slots import find_slot, find_slot_near
from fleetmaint.scheduling.state import AircraftSchedule, PlannedCheck
from fleetmaint.scheduling.tiers import spec_for

logger = logging.getLogger(__name__)


class PlanStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    FORCED = "FORCED"
    COVERED = "COVERED"
    SKIPPED = "SKIPPED"
    SUPPRESSED = "SUPPRESSED"
    FAILED = "FAILED"


@dataclass
class PlanResult:
    tier: CheckTier
    status: PlanStatus
    scheduled_date: Optional[date] = None
    start_minute: Optional[int] = None
    message: str = ""
    check: Optional[PlannedCheck] = None

    def as_dict(self) -> dict:
        return {
            "tier": self.tier.value,
            "status": self.status.value,
            "date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "start_time": _hhmm(self.start_minute) if self.start_minute is not None else None,
            "message": self.message,
        }


def plan_aircraft(
    schedule: AircraftSchedule,
    state: CheckState,
    tiers,
    now: datetime,
    settings: SchedulerSettings = None,
    fleet_position: int = 0,
    in_maintenance: bool = False,
) -> list[PlanResult]:
    """Plan every requested tier for one aircraft. New checks are booked on `schedule`."""
    settings = settings or SchedulerSettings()
    ordered = heaviest_first(tiers)
    suppressed = suppressed_tiers(state, ordered, now, in_maintenance)

    results = []
    for tier in ordered:
        if tier == CheckTier.DAILY:
            results.extend(_plan_daily(schedule, state, now, settings, suppressed))
        else:
            results.extend(_plan_recurring(schedule, state, tier, now, settings,
                                           suppressed, fleet_position))
    return results


# ── Recurring tiers ───────────────────────────────────────────────────────────

def _plan_recurring(schedule, state, tier, now, settings, suppressed, fleet_position):
    spec = spec_for(tier)
    interval = timedelta(days=state.interval_days(tier))
    dedup_days = max(1, int(state.interval_days(tier) // 3))
    lead = timedelta(days=spec.duration_days + spec.buffer_days)
    today = now.date()
    horizon_end = now + timedelta(days=settings.horizon_days)

    expiry = state.expiry(tier, now)
    valid_until = expiry                     # real validity of the last check, None once lapsed
    expired_now = state.is_expired(tier, now)
    prev_target = None
    results = []

    for i in range(settings.max_iterations):
        if expiry > horizon_end:
            break

        deadline = min(expiry, valid_until) if valid_until else expiry
        target = max((expiry - lead).date(), today)
        if tier == CheckTier.WEEKLY:
            offset = fleet_position % (settings.weekly_max_offset_days + 1)
            floor = today if prev_target is None else max(today, prev_target + timedelta(days=1))
            target = max(target - timedelta(days=offset), floor)
        prev_target = target

        heavy = schedule.heavier_covering(tier, target)
        if heavy:
            # the heavy check resets this tier when it completes
            expiry = valid_until = state.validity_after(tier, heavy.end_at)
            results.append(PlanResult(tier, PlanStatus.COVERED, target,
                                      message=f"covered by {heavy.tier.value} check"))
            continue

        existing = _existing_near(schedule, tier, target, dedup_days)
        if existing:
            valid_until = state.validity_after(tier, existing.end_at)
            results.append(PlanResult(tier, PlanStatus.COVERED, existing.scheduled_date,
                                      existing.start_minute, "already scheduled"))
            expiry += interval
            continue

        if i == 0 and expired_now:
            if tier in suppressed:
                results.append(PlanResult(tier, PlanStatus.SUPPRESSED, today,
                                          message="heavier check pending"))
                expiry = max(expiry, now) + interval
                valid_until = None
                continue
            try:
                check = _force(schedule, tier, now, settings)
            except UnplaceableCheckError as e:
                logger.warning(str(e))
                results.append(PlanResult(tier, PlanStatus.FAILED, today, message=str(e)))
                expiry = max(expiry, now) + interval
                valid_until = None
                continue
            valid_until = state.validity_after(tier, check.end_at)
            results.append(PlanResult(tier, PlanStatus.FORCED, check.scheduled_date,
                                      check.start_minute, "expired, forced", check))
            expiry = max(expiry, now) + interval
            continue

        latest = (deadline - timedelta(minutes=spec.duration_minutes)).date()
        found = find_slot_near(
            schedule, min(target, latest), spec.duration_minutes, tier,
            earliest=today, latest=latest, not_before=now, deadline=deadline,
            radius=settings.search_radius_days, widened_radius=settings.widened_radius_days,
            step=settings.candidate_step_minutes,
        )
        if found is None:
            logger.info(f"[planner] {schedule.aircraft_id}: no slot for {tier.value} "
                        f"check due {expiry:%Y-%m-%d}, skipping occurrence")
            results.append(PlanResult(tier, PlanStatus.SKIPPED, target,
                                      message=f"no free slot before {deadline:%Y-%m-%d %H:%M}"))
            valid_until = None
        else:
            day, minute = found
            check = _book(schedule, tier, day, minute)
            valid_until = state.validity_after(tier, check.end_at)
            results.append(PlanResult(tier, PlanStatus.SCHEDULED, day, minute, check=check))

        expiry += interval

    return results


def _existing_near(schedule: AircraftSchedule, tier: CheckTier,
                   target: date, window_days: int) -> Optional[PlannedCheck]:
    for c in schedule.checks_of(tier):
        if abs((c.scheduled_date - target).days) <= window_days:
            return c
    return None


# ── Daily ─────────────────────────────────────────────────────────────────────

def _plan_daily(schedule, state, now, settings, suppressed):
    """
    One Daily check per day for the next N days. A missed day is tolerated:
    a Daily check is valid for its own day and the next.
    """
    tier = CheckTier.DAILY
    duration = spec_for(tier).duration_minutes
    today = now.date()
    results = []

    for offset in range(settings.daily_days_ahead):
        day = today + timedelta(days=offset)

        if any(c.scheduled_date == day for c in schedule.checks_of(tier)):
            results.append(PlanResult(tier, PlanStatus.COVERED, day, message="already scheduled"))
            continue

        heavy = schedule.heavier_covering(tier, day)
        if heavy:
            results.append(PlanResult(tier, PlanStatus.COVERED, day,
                                      message=f"covered by {heavy.tier.value} check"))
            continue

        if offset == 0 and state.is_expired(tier, now):
            if tier in suppressed:
                results.append(PlanResult(tier, PlanStatus.SUPPRESSED, day,
                                          message="heavier check pending"))
                continue
            check = _force(schedule, tier, now, settings)
            results.append(PlanResult(tier, PlanStatus.FORCED, check.scheduled_date,
                                      check.start_minute, "expired, forced", check))
            continue

        minute = find_slot(schedule, day, duration, tier, not_before=now,
                           step=settings.candidate_step_minutes)
        if minute is None:
            logger.info(f"[planner] {schedule.aircraft_id}: no Daily slot on {day}, skipping")
            results.append(PlanResult(tier, PlanStatus.SKIPPED, day, message="no free slot"))
            continue

        check = _book(schedule, tier, day, minute)
        results.append(PlanResult(tier, PlanStatus.SCHEDULED, day, minute, check=check))

    return results


# ── Helpers ───────────────────────────────────────────────────────────────────

def _force(schedule: AircraftSchedule, tier: CheckTier, now: datetime,
           settings: SchedulerSettings) -> PlannedCheck:
    """
    Put an expired check in at now + lead time. Flight conflicts are ignored
    here; the home-base rule is not.
    """
    start = now + timedelta(minutes=settings.forced_lead_minutes)
    day = start.date()
    minute = int((start - datetime.combine(day, time.min)).total_seconds() // 60)
    duration = spec_for(tier).duration_minutes
    check = PlannedCheck(tier, day, minute, duration)

    if tier != CheckTier.DAILY:
        home_end = min(check.end_at, datetime.combine(day + timedelta(days=1), time.min))
        if not schedule.at_home(check.start_at, home_end):
            raise UnplaceableCheckError(schedule.aircraft_id, tier,
                                        f"aircraft is away from {schedule.home_base} at {start:%Y-%m-%d %H:%M}")

    clashes = schedule.conflicting_flights(check)
    if clashes:
        logger.warning(f"[planner] {schedule.aircraft_id}: forced {tier.value} check "
                       f"overlaps {len(clashes)} flight(s)")

    schedule.book(check)
    return check


def _book(schedule: AircraftSchedule, tier: CheckTier, day: date, minute: int) -> PlannedCheck:
    check = PlannedCheck(tier, day, minute, spec_for(tier).duration_minutes)
    schedule.book(check)
    return check


def _hhmm(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"
