"""
Busy-interval calculator.

Turns an aircraft's flights into the spans it cannot take maintenance:
  - in the air
  - on the ground being turned around (pre-flight / post-flight handling)
  - parked at an outstation (away from home base)

Ground handling is a step function of passenger capacity, with cargo
variants, and fuelling grows with the leg distance.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

MINUTES_PER_DAY = 1440


# ── Ground handling ──────────────────────────────────────────────────────────
# (max passengers, minutes); first band whose cap is >= capacity wins

CATERING_STEPS = [(50, 5), (100, 10), (200, 15), (None, 20)]
BOARDING_STEPS = [(50, 10), (100, 15), (200, 20), (300, 30), (None, 35)]
DEBOARDING_STEPS = [(50, 5), (100, 8), (200, 12), (300, 15), (None, 20)]
CLEANING_STEPS = [(50, 5), (100, 10), (200, 15), (None, 20)]
FUELLING_STEPS = [(100, 10), (200, 15), (None, 20)]

# (max distance nm, multiplier) for fuelling
FUELLING_DISTANCE_FACTORS = [(500, 1.0), (1500, 1.5), (3000, 2.0), (None, 2.5)]

CARGO_LOADING_MINUTES = 40
CARGO_UNLOADING_MINUTES = 30
CARGO_CLEANING_MINUTES = 5


def _step(steps: list, value: float) -> float:
    for cap, minutes in steps:
        if cap is None or value <= cap:
            return minutes
    return steps[-1][1]


def ground_times(passenger_capacity: int, is_cargo: bool = False,
                 distance_nm: float = 0.0) -> tuple[int, int]:
    """
    Returns (pre_flight, post_flight) minutes.
    pre  = max(catering + boarding, fuelling)
    post = deboarding + cleaning
    """
    capacity = passenger_capacity or 0
    fuelling = _step(FUELLING_STEPS, capacity) * _step(FUELLING_DISTANCE_FACTORS, distance_nm or 0)

    if is_cargo:
        pre = max(CARGO_LOADING_MINUTES, fuelling)
        post = CARGO_UNLOADING_MINUTES + CARGO_CLEANING_MINUTES
    else:
        pre = max(_step(CATERING_STEPS, capacity) + _step(BOARDING_STEPS, capacity), fuelling)
        post = _step(DEBOARDING_STEPS, capacity) + _step(CLEANING_STEPS, capacity)

    return int(round(pre)), int(round(post))


# ── Flight windows ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FlightWindow:
    flight_id: Optional[str]
    origin: str
    destination: str
    departure_at: datetime
    arrival_at: datetime
    pre_minutes: int
    post_minutes: int

    @property
    def busy_start(self) -> datetime:
        return self.departure_at - timedelta(minutes=self.pre_minutes)

    @property
    def busy_end(self) -> datetime:
        return self.arrival_at + timedelta(minutes=self.post_minutes)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.busy_end and self.busy_start < end


def build_window(flight_id, origin: str, destination: str,
                 departure_at: datetime, arrival_at: datetime,
                 passenger_capacity: int, is_cargo: bool,
                 distance_nm: float) -> FlightWindow:
    pre, post = ground_times(passenger_capacity, is_cargo, distance_nm)
    return FlightWindow(flight_id, origin, destination, departure_at, arrival_at, pre, post)


# ── Per-day busy intervals ────────────────────────────────────────────────────

def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def to_minutes(day: date, start: datetime, end: datetime) -> Optional[tuple[int, int]]:
    """Clip an absolute span to `day`, as [start_minute, end_minute) on 0-1440."""
    day_start, day_end = day_bounds(day)
    lo, hi = max(start, day_start), min(end, day_end)
    if lo >= hi:
        return None
    return (int((lo - day_start).total_seconds() // 60),
            int(-(-(hi - day_start).total_seconds() // 60)))


def busy_intervals(windows: list[FlightWindow], day: date) -> list[tuple[int, int]]:
    """
    Minute ranges on `day` taken by flights.
    Departure day runs to 1440 if the flight lands on a later date, the
    arrival day starts at 0, and a day fully inside the flight is [0, 1440).
    """
    intervals = []
    for w in windows:
        span = to_minutes(day, w.busy_start, w.busy_end)
        if span:
            intervals.append(span)
    return merge_intervals(intervals)


def merge_intervals(intervals: list[tuple[int, int]]) -> list[tuple[int, int]]:
    merged = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def free_gaps(busy: list[tuple[int, int]], lo: int = 0,
              hi: int = MINUTES_PER_DAY) -> list[tuple[int, int]]:
    """Complement of `busy` inside [lo, hi)."""
    gaps = []
    cursor = lo
    for start, end in merge_intervals(busy):
        if end <= cursor:
            continue
        if start > cursor:
            gaps.append((cursor, min(start, hi)))
        cursor = max(cursor, end)
        if cursor >= hi:
            break
    if cursor < hi:
        gaps.append((cursor, hi))
    return [(s, e) for s, e in gaps if e > s]


# ── Home base ─────────────────────────────────────────────────────────────────

def away_periods(windows: list[FlightWindow], home_base: str) -> list[tuple[datetime, datetime]]:
    """
    Spans during which the aircraft is not at home base.
    Away starts at the pre-flight window of a leg leaving home and ends after
    post-flight handling of the leg that lands back home.
    """
    periods = []
    legs = sorted(windows, key=lambda w: w.departure_at)
    away_since = None

    for i, leg in enumerate(legs):
        if away_since is None:
            if leg.origin != home_base:
                # first known leg leaves an outstation: already away
                away_since = datetime.min if i == 0 else leg.busy_start
            elif leg.destination != home_base:
                away_since = leg.busy_start
        if away_since is not None and leg.destination == home_base:
            periods.append((away_since, leg.busy_end))
            away_since = None

    if away_since is not None:
        periods.append((away_since, datetime.max))

    return periods


def is_at_home(periods: list[tuple[datetime, datetime]],
               start: datetime, end: datetime) -> bool:
    return not any(start < p_end and p_start < end for p_start, p_end in periods)
