"""
Conflict resolver — repairs the maintenance plan when a new or retimed
flight lands on top of an already placed check.

Strategies, tried in order (see workflow.py for the wiring):
  1. reposition_before_flight → finish exactly when the flight's ground handling starts
  2. largest_gap              → end of the biggest free gap that day (single-day checks)
  3. daily_coverage           → Daily only: drop it if the neighbouring days keep the aircraft legal
  4. later_days               → any later day before the check would lapse

A moved check must clear the flight over its whole span, multi-day checks
included. If nothing works the flight change fails with RescheduleError; a
check is never silently allowed to expire.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from fleetmaint.config import SchedulerSettings, load_settings
from fleetmaint.exceptions import FlightCancelledError, FlightNotFoundError
from fleetmaint.models import CheckTier, Flight, FlightStatus
from fleetmaint.scheduling.availability import FlightWindow, free_gaps
from fleetmaint.scheduling.check_state import CheckState
from fleetmaint.scheduling.slots import find_slot, slot_fits
from fleetmaint.scheduling.state import AircraftSchedule, PlannedCheck
from fleetmaint.scheduling.tiers import MINUTES_PER_DAY, spec_for

logger = logging.getLogger(__name__)


@dataclass
class FlightInsertion:
    aircraft_id: str
    origin: str
    destination: str
    departure_at: datetime
    arrival_at: datetime
    distance_nm: float = 0.0
    correlation_id: str = None

    def __post_init__(self):
        if self.correlation_id is None:
            self.correlation_id = str(uuid.uuid4())


@dataclass
class FlightChange:
    """New times (and optionally route) for an existing flight."""
    flight_id: str
    departure_at: datetime
    arrival_at: datetime
    origin: Optional[str] = None
    destination: Optional[str] = None
    distance_nm: Optional[float] = None
    correlation_id: str = None

    def __post_init__(self):
        if self.correlation_id is None:
            self.correlation_id = str(uuid.uuid4())


@dataclass
class Resolution:
    check: PlannedCheck
    action: str                              # "moved" | "deleted"
    strategy: str
    previous: tuple = ()                     # (date, start_minute) before the change
    added: Optional[PlannedCheck] = None     # replacement Daily booked on the next day

    def as_dict(self) -> dict:
        return {
            "tier": self.check.tier.value,
            "record_id": self.check.record_id,
            "action": self.action,
            "strategy": self.strategy,
            "from": {"date": self.previous[0].isoformat(), "start_minute": self.previous[1]},
            "to": ({"date": self.check.scheduled_date.isoformat(),
                    "start_minute": self.check.start_minute}
                   if self.action == "moved" else None),
            "added": ({"date": self.added.scheduled_date.isoformat(),
                       "start_minute": self.added.start_minute} if self.added else None),
        }


def identify_affected_checks(schedule: AircraftSchedule, window: FlightWindow,
                             now: datetime = None) -> list[PlannedCheck]:
    """Active checks whose time span overlaps the flight's busy span.
    Checks that already finished before `now` are history and left alone."""
    return [c for c in schedule.checks
            if c.active and window.overlaps(c.start_at, c.end_at)
            and (now is None or c.end_at > now)]


# ── Validity ──────────────────────────────────────────────────────────────────

def prior_validity(schedule: AircraftSchedule, state: CheckState,
                   check: PlannedCheck, now: datetime) -> Optional[datetime]:
    """
    How long the aircraft stays legal for `check.tier` without this check:
    the last performed check, or an earlier planned one of the same or a
    heavier tier, whichever lasts longer.
    """
    tier = check.tier
    rank = spec_for(tier).rank
    candidates = []
    if state.tier(tier).last_completed_at is not None:
        candidates.append(state.expiry(tier, now))
    for other in schedule.checks:
        if other is check or not other.active:
            continue
        if spec_for(other.tier).rank >= rank and other.end_at <= check.start_at:
            candidates.append(state.validity_after(tier, other.end_at))
    return max(candidates) if candidates else None


def occurrence_deadline(schedule, state, check, now) -> datetime:
    """Latest time a moved check may finish."""
    prior = prior_validity(schedule, state, check, now)
    return max(prior or check.end_at, check.end_at)


def _move(check: PlannedCheck, day: date, minute: int, strategy: str) -> Resolution:
    previous = (check.scheduled_date, check.start_minute)
    check.scheduled_date = day
    check.start_minute = minute
    return Resolution(check, "moved", strategy, previous)


def _split(moment: datetime) -> tuple[date, int]:
    day = moment.date()
    return day, int((moment - datetime.combine(day, time.min)).total_seconds() // 60)


def _span(day: date, minute: int, duration: int) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min) + timedelta(minutes=minute)
    return start, start + timedelta(minutes=duration)


def _placeable(schedule, check, window, day, minute, now, deadline) -> bool:
    start, end = _span(day, minute, check.duration_minutes)
    if start < now or end > deadline:
        return False
    # slot_fits only looks at the first day of a multi-day check
    if window.overlaps(start, end):
        return False
    if check.tier == CheckTier.DAILY and minute + check.duration_minutes > MINUTES_PER_DAY:
        return False
    return slot_fits(schedule, day, minute, check.duration_minutes, check.tier, ignore=check)


# ── Strategies ────────────────────────────────────────────────────────────────

def reposition_before_flight(schedule, state, check, window, now) -> Optional[Resolution]:
    deadline = occurrence_deadline(schedule, state, check, now)
    start = window.busy_start - timedelta(minutes=check.duration_minutes)
    day, minute = _split(start)
    if not _placeable(schedule, check, window, day, minute, now, deadline):
        return None
    return _move(check, day, minute, "reposition_before_flight")


def largest_gap(schedule, state, check, window, now) -> Optional[Resolution]:
    if spec_for(check.tier).multi_day:
        return None
    deadline = occurrence_deadline(schedule, state, check, now)
    day = check.scheduled_date
    lo = 0
    if day == now.date():
        lo = _split(now)[1] + 1
    elif day < now.date():
        return None

    gaps = free_gaps(schedule.busy_intervals(day, ignore=check), lo, MINUTES_PER_DAY)
    gaps.sort(key=lambda g: g[1] - g[0], reverse=True)
    for gap_start, gap_end in gaps:
        if gap_end - gap_start < check.duration_minutes:
            break
        minute = gap_end - check.duration_minutes
        if _placeable(schedule, check, window, day, minute, now, deadline):
            return _move(check, day, minute, "largest_gap")
    return None


def daily_coverage(schedule, state, check, window, now,
                   settings: SchedulerSettings = None) -> Optional[Resolution]:
    """
    Daily checks only. The check can go if the previous check already keeps
    the aircraft legal through the end of the day, and tomorrow has (or can
    get) its own Daily check.
    """
    if check.tier != CheckTier.DAILY:
        return None
    settings = settings or SchedulerSettings()
    day = check.scheduled_date
    next_day = day + timedelta(days=1)

    prior = prior_validity(schedule, state, check, now)
    if prior is None or prior < datetime.combine(next_day, time.min):
        return None

    added = None
    tomorrow_covered = (
        any(c is not check and c.scheduled_date == next_day for c in schedule.checks_of(CheckTier.DAILY))
        or schedule.heavier_covering(CheckTier.DAILY, next_day) is not None
    )
    if not tomorrow_covered:
        minute = find_slot(schedule, next_day, check.duration_minutes, CheckTier.DAILY,
                           not_before=now, step=settings.candidate_step_minutes, ignore=check)
        if minute is None:
            return None
        added = PlannedCheck(CheckTier.DAILY, next_day, minute, check.duration_minutes)

    previous = (check.scheduled_date, check.start_minute)
    schedule.release(check)
    if added:
        schedule.book(added)
    return Resolution(check, "deleted", "daily_coverage", previous, added)


def later_days(schedule, state, check, window, now,
               settings: SchedulerSettings = None) -> Optional[Resolution]:
    settings = settings or SchedulerSettings()
    deadline = occurrence_deadline(schedule, state, check, now)
    day = max(check.scheduled_date + timedelta(days=1), now.date())
    while day <= deadline.date():
        minute = find_slot(schedule, day, check.duration_minutes, check.tier,
                           not_before=now, deadline=deadline,
                           step=settings.candidate_step_minutes, ignore=check)
        if minute is not None and not window.overlaps(*_span(day, minute, check.duration_minutes)):
            return _move(check, day, minute, "later_days")
        day += timedelta(days=1)
    return None


# ── Flight insertion / change / cancellation ─────────────────────────────────

def _repair(db: Session, schedule: AircraftSchedule, state: CheckState,
            window: FlightWindow, now: datetime, settings: SchedulerSettings) -> list[Resolution]:
    """Run the resolver for every check `window` lands on and stage the changes."""
    from fleetmaint.reallocation.workflow import run_conflict_resolution
    from fleetmaint.repository import save_check, save_new_checks

    resolutions = []
    for check in identify_affected_checks(schedule, window, now):
        resolution = run_conflict_resolution(schedule, state, check, window, now, settings)
        save_check(db, check)
        resolutions.append(resolution)
    save_new_checks(db, schedule)
    return resolutions


def insert_flight(db: Session, event: FlightInsertion, now: datetime,
                  settings: SchedulerSettings = None) -> dict:
    """
    Add a flight and repair every check it lands on. Either every conflict is
    resolved and the flight is committed, or nothing is written and
    RescheduleError propagates.
    """
    from fleetmaint.repository import (
        build_schedule, ensure_checks, flight_window, get_aircraft, load_check_state,
    )
    from fleetmaint.scheduling.orchestrator import aircraft_lock

    settings = settings or load_settings()

    with aircraft_lock(event.aircraft_id):
        try:
            aircraft = get_aircraft(db, event.aircraft_id)
            ensure_checks(db, aircraft)
            state = load_check_state(aircraft, settings)
            schedule = build_schedule(db, aircraft, now, with_occupancy=False)

            flight = Flight(
                aircraft_id=aircraft.id,
                origin=event.origin,
                destination=event.destination,
                departure_at=event.departure_at,
                arrival_at=event.arrival_at,
                distance_nm=event.distance_nm,
                status=FlightStatus.SCHEDULED,
            )
            db.add(flight)
            db.flush()

            window = flight_window(flight, aircraft)
            schedule.add_flight(window)
            resolutions = _repair(db, schedule, state, window, now, settings)
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(f"[reallocation] flight {flight.id} on {aircraft.id}: "
                f"{len(resolutions)} check(s) repaired")
    return {
        "flight_id": flight.id,
        "correlation_id": event.correlation_id,
        "resolutions": [r.as_dict() for r in resolutions],
    }


def _get_flight(db: Session, flight_id: str) -> Flight:
    flight = db.get(Flight, flight_id)
    if flight is None:
        raise FlightNotFoundError(flight_id)
    return flight


def update_flight(db: Session, change: FlightChange, now: datetime,
                  settings: SchedulerSettings = None) -> dict:
    """
    Retime (or re-route) an existing flight and repair every check the new
    times land on. A failed repair rolls the flight back to its old times.
    """
    from fleetmaint.repository import (
        build_schedule, ensure_checks, flight_window, get_aircraft, load_check_state,
    )
    from fleetmaint.scheduling.orchestrator import aircraft_lock

    settings = settings or load_settings()
    aircraft_id = _get_flight(db, change.flight_id).aircraft_id

    with aircraft_lock(aircraft_id):
        try:
            flight = _get_flight(db, change.flight_id)
            if flight.status == FlightStatus.CANCELLED:
                raise FlightCancelledError(flight.id)
            aircraft = get_aircraft(db, aircraft_id)
            ensure_checks(db, aircraft)
            state = load_check_state(aircraft, settings)
            schedule = build_schedule(db, aircraft, now, with_occupancy=False)
            schedule.flights = [w for w in schedule.flights if w.flight_id != flight.id]

            previous = {"departure_at": flight.departure_at.isoformat(),
                        "arrival_at": flight.arrival_at.isoformat()}
            flight.departure_at = change.departure_at
            flight.arrival_at = change.arrival_at
            for name in ("origin", "destination", "distance_nm"):
                value = getattr(change, name)
                if value is not None:
                    setattr(flight, name, value)
            db.flush()

            window = flight_window(flight, aircraft)
            schedule.add_flight(window)
            resolutions = _repair(db, schedule, state, window, now, settings)
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(f"[reallocation] flight {flight.id} on {aircraft_id} changed: "
                f"{len(resolutions)} check(s) repaired")
    return {
        "flight_id": flight.id,
        "correlation_id": change.correlation_id,
        "previous": previous,
        "resolutions": [r.as_dict() for r in resolutions],
    }


def cancel_flight(db: Session, flight_id: str) -> dict:
    """Mark a flight cancelled. Freeing time never creates a conflict, so no checks move."""
    from fleetmaint.scheduling.orchestrator import aircraft_lock

    aircraft_id = _get_flight(db, flight_id).aircraft_id
    with aircraft_lock(aircraft_id):
        try:
            flight = _get_flight(db, flight_id)
            flight.status = FlightStatus.CANCELLED
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(f"[reallocation] flight {flight_id} on {aircraft_id} cancelled")
    return {"flight_id": flight_id, "aircraft_id": aircraft_id, "status": FlightStatus.CANCELLED.value}
