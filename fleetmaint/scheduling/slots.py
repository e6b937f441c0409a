"""
Slot finder: picks a conflict-free start minute for one check on one day.

Order of preference (per tier, see tiers.py):
  Daily         → early morning, then late evening / small hours, then daytime
  Weekly/A/C/D  → overnight, then early morning / late evening, then daytime

Inside a band, each aircraft starts from its own offset (its position in the
fleet) and minutes already used by other aircraft in the fleet for the same
tier go last (staggering). The offset keeps aircraft that are planned at the
same time apart before any of them has saved a record. Staggering never
moves a check into a worse band.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional

from fleetmaint.models import CheckTier
from fleetmaint.scheduling.state import AircraftSchedule
from fleetmaint.scheduling.tiers import MINUTES_PER_DAY, spec_for


def candidate_minutes(tier: CheckTier, duration: int, step: int = 15) -> list[list[int]]:
    """Start minutes grouped by priority band, best band first."""
    spec = spec_for(tier)
    bands = []
    for band in spec.candidate_bands:
        minutes = []
        for lo, hi in band:
            for m in range(lo, hi + 1, step):
                # Daily checks never run past midnight
                if tier == CheckTier.DAILY and m + duration > MINUTES_PER_DAY:
                    continue
                minutes.append(m)
        bands.append(minutes)
    return bands


def _staggered(schedule: AircraftSchedule, day: date, tier: CheckTier,
               minutes: list[int]) -> list[int]:
    if minutes and schedule.fleet_position:
        shift = schedule.fleet_position % len(minutes)
        minutes = minutes[shift:] + minutes[:shift]
    if not schedule.occupancy:
        return minutes
    # sorted() is stable, so equal usage keeps band order
    return sorted(minutes, key=lambda m: schedule.occupancy.usage(day, tier, m))


def slot_fits(schedule: AircraftSchedule, day: date, minute: int, duration: int,
              tier: CheckTier, ignore=None) -> bool:
    """Conflict + home-base test for one candidate."""
    start = datetime.combine(day, time.min) + timedelta(minutes=minute)
    if duration > MINUTES_PER_DAY:
        # multi-day: only the start day is tested, later days are blocked by the check
        end = datetime.combine(day + timedelta(days=1), time.min)
    else:
        end = start + timedelta(minutes=duration)

    if not schedule.is_free(start, end, ignore=ignore):
        return False
    if duration > MINUTES_PER_DAY:
        full_end = start + timedelta(minutes=duration)
        if any(c.overlaps(start, full_end) for c in schedule.checks
               if c is not ignore and c.active):
            return False
    if tier != CheckTier.DAILY and not schedule.at_home(start, end):
        return False
    return True


def find_slot(
    schedule: AircraftSchedule,
    day: date,
    duration: int,
    tier: CheckTier,
    not_before: Optional[datetime] = None,
    deadline: Optional[datetime] = None,
    step: int = 15,
    ignore=None,
) -> Optional[int]:
    """
    First conflict-free start minute on `day`, or None.
    not_before / deadline bound the check's start and end in absolute time.
    """
    tier = CheckTier(tier)
    day_start = datetime.combine(day, time.min)

    for band in candidate_minutes(tier, duration, step):
        for minute in _staggered(schedule, day, tier, band):
            start = day_start + timedelta(minutes=minute)
            if not_before and start < not_before:
                continue
            if deadline and start + timedelta(minutes=duration) > deadline:
                continue
            if slot_fits(schedule, day, minute, duration, tier, ignore=ignore):
                return minute
    return None


def nearby_dates(target: date, radius: int, skip_radius: int = -1) -> list[date]:
    """target, target-1, target+1, target-2, ... out to `radius` days."""
    days = [target] if skip_radius < 0 else []
    for offset in range(max(1, skip_radius + 1), radius + 1):
        days.append(target - timedelta(days=offset))
        days.append(target + timedelta(days=offset))
    return days


def find_slot_near(
    schedule: AircraftSchedule,
    target: date,
    duration: int,
    tier: CheckTier,
    earliest: date,
    latest: date,
    not_before: Optional[datetime] = None,
    deadline: Optional[datetime] = None,
    radius: int = 2,
    widened_radius: int = 7,
    step: int = 15,
) -> Optional[tuple[date, int]]:
    """
    Try the target date and its neighbours, then widen the window once.
    Returns (date, start_minute) or None.
    """
    passes = [nearby_dates(target, radius)]
    if widened_radius > radius:
        passes.append(nearby_dates(target, widened_radius, skip_radius=radius))

    for days in passes:
        for day in days:
            if day < earliest or day > latest:
                continue
            minute = find_slot(schedule, day, duration, tier,
                               not_before=not_before, deadline=deadline, step=step)
            if minute is not None:
                return day, minute
    return None
