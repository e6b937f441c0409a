"""
Tracks what an aircraft is already committed to while a plan is built.
Acts as an in-memory constraint checker before we commit to DB.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from fleetmaint.models import CheckTier, RecordStatus
from fleetmaint.scheduling.availability import (
    FlightWindow, away_periods, busy_intervals, is_at_home, merge_intervals, to_minutes,
)
from fleetmaint.scheduling.tiers import spec_for


@dataclass
class PlannedCheck:
    """A maintenance record as the scheduler sees it (persisted or not yet)."""
    tier: CheckTier
    scheduled_date: date
    start_minute: int
    duration_minutes: int
    aircraft_id: Optional[str] = None
    record_id: Optional[str] = None        # None until persisted
    status: RecordStatus = RecordStatus.ACTIVE

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.scheduled_date, time.min) + timedelta(minutes=self.start_minute)

    @property
    def end_at(self) -> datetime:
        return self.start_at + timedelta(minutes=self.duration_minutes)

    @property
    def active(self) -> bool:
        return self.status == RecordStatus.ACTIVE

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end_at and self.start_at < end

    def spans_day(self, day: date) -> bool:
        """True if the check touches any part of `day`."""
        day_start = datetime.combine(day, time.min)
        return self.overlaps(day_start, day_start + timedelta(days=1))

    def in_progress(self, now: datetime) -> bool:
        return spec_for(self.tier).multi_day and self.start_at <= now < self.end_at


@dataclass
class FleetOccupancy:
    """
    How many other aircraft in the fleet hold a check at a given
    (date, tier, minute). Soft tie-breaker only.
    """
    counts: dict = field(default_factory=lambda: defaultdict(int))

    def usage(self, day: date, tier: CheckTier, minute: int) -> int:
        return self.counts.get((day, CheckTier(tier), minute), 0)

    def add(self, day: date, tier: CheckTier, minute: int):
        self.counts[(day, CheckTier(tier), minute)] += 1

    def __bool__(self) -> bool:
        return bool(self.counts)


@dataclass
class AircraftSchedule:
    aircraft_id: str
    home_base: str
    flights: list = field(default_factory=list)        # FlightWindow
    checks: list = field(default_factory=list)         # PlannedCheck, active only
    occupancy: FleetOccupancy = field(default_factory=FleetOccupancy)
    fleet_position: int = 0                            # rotates candidate minutes
    _away: Optional[list] = None

    # ── Lookups ───────────────────────────────────────────────────────────────

    @property
    def away(self) -> list[tuple[datetime, datetime]]:
        if self._away is None:
            self._away = away_periods(self.flights, self.home_base)
        return self._away

    def checks_of(self, tier: CheckTier) -> list[PlannedCheck]:
        return [c for c in self.checks if c.tier == tier and c.active]

    def heavier_covering(self, tier: CheckTier, day: date) -> Optional[PlannedCheck]:
        """Active check heavier than `tier` that touches `day`."""
        rank = spec_for(tier).rank
        for c in self.checks:
            if c.active and spec_for(c.tier).rank > rank and c.spans_day(day):
                return c
        return None

    def busy_intervals(self, day: date, ignore: PlannedCheck = None) -> list[tuple[int, int]]:
        """Flights plus maintenance on `day`, as minute ranges."""
        intervals = list(busy_intervals(self.flights, day))
        for c in self.checks:
            if c is ignore or not c.active:
                continue
            span = to_minutes(day, c.start_at, c.end_at)
            if span:
                intervals.append(span)
        return merge_intervals(intervals)

    # ── Constraint checks ─────────────────────────────────────────────────────

    def is_free(self, start: datetime, end: datetime, ignore: PlannedCheck = None) -> bool:
        for w in self.flights:
            if w.overlaps(start, end):
                return False
        for c in self.checks:
            if c is ignore or not c.active:
                continue
            if c.overlaps(start, end):
                return False
        return True

    def at_home(self, start: datetime, end: datetime) -> bool:
        return is_at_home(self.away, start, end)

    def conflicting_flights(self, check: PlannedCheck) -> list[FlightWindow]:
        return [w for w in self.flights if w.overlaps(check.start_at, check.end_at)]

    # ── Mutation ──────────────────────────────────────────────────────────────

    def book(self, check: PlannedCheck):
        check.aircraft_id = check.aircraft_id or self.aircraft_id
        self.checks.append(check)

    def release(self, check: PlannedCheck):
        check.status = RecordStatus.INACTIVE
        self.checks = [c for c in self.checks if c is not check]

    def add_flight(self, window: FlightWindow):
        self.flights.append(window)
        self._away = None
