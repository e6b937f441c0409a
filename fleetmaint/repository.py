"""
DB access for the scheduler.

Converts ORM rows into the plain scheduling values (CheckState,
FlightWindow, PlannedCheck) and writes planned checks back as
MaintenanceRecord rows. Nothing in scheduling/ touches the session.
"""
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from fleetmaint.config import SchedulerSettings
from fleetmaint.exceptions import AircraftNotFoundError
from fleetmaint.models import (
    Aircraft, AircraftCategory, AircraftCheck, CheckTier, Flight, FlightStatus,
    MaintenanceRecord, RecordStatus,
)
from fleetmaint.scheduling.availability import FlightWindow, build_window
from fleetmaint.scheduling.check_state import CheckState, TierState
from fleetmaint.scheduling.state import AircraftSchedule, FleetOccupancy, PlannedCheck
from fleetmaint.scheduling.tiers import TIER_SPECS

FLIGHT_LOOKBACK_DAYS = 7


# ── Aircraft + check state ────────────────────────────────────────────────────

def get_aircraft(db: Session, aircraft_id: str) -> Aircraft:
    aircraft = db.get(Aircraft, aircraft_id)
    if aircraft is None:
        raise AircraftNotFoundError(aircraft_id)
    return aircraft


def ensure_checks(db: Session, aircraft: Aircraft, intervals: dict = None) -> dict:
    """Make sure every tier has a row. Returns {tier: AircraftCheck}."""
    rows = {c.tier: c for c in aircraft.checks}
    for tier, spec in TIER_SPECS.items():
        if tier not in rows:
            interval = (intervals or {}).get(tier, spec.default_interval)
            row = AircraftCheck(tier=tier, interval_value=interval, auto_schedule=False)
            aircraft.checks.append(row)
            rows[tier] = row
    return rows


def load_check_state(aircraft: Aircraft, settings: SchedulerSettings = None) -> CheckState:
    settings = settings or SchedulerSettings()
    tiers = {}
    a_hours = None
    for row in aircraft.checks:
        tiers[row.tier] = TierState(row.last_completed_at, row.interval_value, bool(row.auto_schedule))
        if row.tier == CheckTier.A:
            a_hours = row.last_completed_flight_hours
    for tier, spec in TIER_SPECS.items():
        tiers.setdefault(tier, TierState(None, spec.default_interval))

    return CheckState(
        tiers=tiers,
        total_flight_hours=aircraft.total_flight_hours or 0.0,
        a_last_completed_flight_hours=a_hours,
        avg_daily_flight_hours=settings.avg_daily_flight_hours,
    )


def save_check_state(db: Session, aircraft: Aircraft, state: CheckState):
    rows = ensure_checks(db, aircraft)
    for tier, entry in state.tiers.items():
        row = rows[tier]
        row.last_completed_at = entry.last_completed_at
        row.interval_value = entry.interval_value
        row.auto_schedule = entry.auto_schedule
        if tier == CheckTier.A:
            row.last_completed_flight_hours = state.a_last_completed_flight_hours


# ── Flights ───────────────────────────────────────────────────────────────────

def flight_window(flight: Flight, aircraft: Aircraft) -> FlightWindow:
    return build_window(
        flight.id, flight.origin, flight.destination,
        flight.departure_at, flight.arrival_at,
        passenger_capacity=aircraft.passenger_capacity or 0,
        is_cargo=aircraft.category == AircraftCategory.CARGO,
        distance_nm=flight.distance_nm or 0.0,
    )


def load_flight_windows(db: Session, aircraft: Aircraft, since: datetime) -> list[FlightWindow]:
    flights = (
        db.query(Flight)
        .filter(Flight.aircraft_id == aircraft.id)
        .filter(Flight.status == FlightStatus.SCHEDULED)
        .filter(Flight.arrival_at >= since - timedelta(days=FLIGHT_LOOKBACK_DAYS))
        .order_by(Flight.departure_at)
        .all()
    )
    return [flight_window(f, aircraft) for f in flights]


# ── Maintenance records ───────────────────────────────────────────────────────

def to_planned(record: MaintenanceRecord) -> PlannedCheck:
    return PlannedCheck(
        tier=record.tier,
        scheduled_date=record.scheduled_date,
        start_minute=record.start_minute,
        duration_minutes=record.duration_minutes,
        aircraft_id=record.aircraft_id,
        record_id=record.id,
        status=record.status,
    )


def active_records(db: Session, aircraft_id: str) -> list[MaintenanceRecord]:
    return (
        db.query(MaintenanceRecord)
        .filter(MaintenanceRecord.aircraft_id == aircraft_id)
        .filter(MaintenanceRecord.status == RecordStatus.ACTIVE)
        .order_by(MaintenanceRecord.scheduled_date, MaintenanceRecord.start_minute)
        .all()
    )


def fleet_occupancy(db: Session, fleet_id: str, exclude_aircraft_id: str,
                    since: datetime) -> FleetOccupancy:
    """Same-tier check counts per (date, minute) over the rest of the fleet."""
    rows = (
        db.query(MaintenanceRecord.scheduled_date, MaintenanceRecord.tier,
                 MaintenanceRecord.start_minute)
        .join(Aircraft, Aircraft.id == MaintenanceRecord.aircraft_id)
        .filter(Aircraft.fleet_id == fleet_id)
        .filter(MaintenanceRecord.aircraft_id != exclude_aircraft_id)
        .filter(MaintenanceRecord.status == RecordStatus.ACTIVE)
        .filter(MaintenanceRecord.scheduled_date >= since.date())
        .all()
    )
    occupancy = FleetOccupancy()
    for day, tier, minute in rows:
        occupancy.add(day, tier, minute)
    return occupancy


def build_schedule(db: Session, aircraft: Aircraft, now: datetime,
                   with_occupancy: bool = True) -> AircraftSchedule:
    occupancy = (fleet_occupancy(db, aircraft.fleet_id, aircraft.id, now)
                 if with_occupancy else FleetOccupancy())
    return AircraftSchedule(
        aircraft_id=aircraft.id,
        home_base=aircraft.home_base,
        flights=load_flight_windows(db, aircraft, now),
        checks=[to_planned(r) for r in active_records(db, aircraft.id)],
        occupancy=occupancy,
    )


def save_new_checks(db: Session, schedule: AircraftSchedule) -> list[MaintenanceRecord]:
    """Insert every booked check that has no record yet."""
    created = []
    for check in schedule.checks:
        if check.record_id is not None or not check.active:
            continue
        record = MaintenanceRecord(
            aircraft_id=schedule.aircraft_id,
            tier=check.tier,
            scheduled_date=check.scheduled_date,
            start_minute=check.start_minute,
            duration_minutes=check.duration_minutes,
            status=RecordStatus.ACTIVE,
        )
        db.add(record)
        db.flush()
        check.record_id = record.id
        created.append(record)
    return created


def save_check(db: Session, check: PlannedCheck) -> MaintenanceRecord:
    """Write back a moved or deactivated check."""
    record = db.get(MaintenanceRecord, check.record_id)
    record.scheduled_date = check.scheduled_date
    record.start_minute = check.start_minute
    record.status = check.status
    return record
