"""
Scheduler entry points.

  refresh(aircraft)      → clear the tier plan, re-plan, persist
  refresh_fleet(fleet)   → refresh every aircraft, a small batch at a time
  enable_tier(...)       → toggle auto-scheduling for one tier
  complete_check(...)    → record a performed check (cascades to lighter tiers)
  book_check(...)        → manual one-off booking, same slot rules as the planner
  cancel_check(...)      → soft-delete one maintenance record

Current simulated time is always passed in; nothing here reads a clock.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.orm import Session

from fleetmaint.config import SchedulerSettings, load_settings
from fleetmaint.exceptions import RecordNotFoundError, SlotUnavailableError, TierExpiredError
from fleetmaint.models import (
    Aircraft, AircraftStatus, CheckTier, MaintenanceRecord, RecordStatus,
)
from fleetmaint.repository import (
    build_schedule, ensure_checks, get_aircraft, load_check_state,
    save_check_state, save_new_checks, to_planned,
)
from fleetmaint.scheduling import check_state as checks
from fleetmaint.scheduling.planner import PlanResult, PlanStatus, plan_aircraft
from fleetmaint.scheduling.slots import slot_fits
from fleetmaint.scheduling.state import PlannedCheck
from fleetmaint.scheduling.tiers import MINUTES_PER_DAY, TIER_SPECS, spec_for

logger = logging.getLogger(__name__)


# ── Per-aircraft write lock ───────────────────────────────────────────────────

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def aircraft_lock(aircraft_id: str) -> threading.Lock:
    with _locks_guard:
        return _locks.setdefault(aircraft_id, threading.Lock())


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass
class RefreshResult:
    aircraft_id: str
    results: list = field(default_factory=list)     # PlanResult
    removed: int = 0
    protected: int = 0

    @property
    def failures(self) -> list[PlanResult]:
        return [r for r in self.results if r.status == PlanStatus.FAILED]

    @property
    def scheduled(self) -> list[PlanResult]:
        return [r for r in self.results if r.status in (PlanStatus.SCHEDULED, PlanStatus.FORCED)]

    def as_dict(self) -> dict:
        return {
            "aircraft_id": self.aircraft_id,
            "removed": self.removed,
            "protected": self.protected,
            "scheduled": len(self.scheduled),
            "failures": [r.message for r in self.failures],
            "results": [r.as_dict() for r in self.results],
        }


@dataclass
class FleetRefreshResult:
    fleet_id: str
    refreshed: dict = field(default_factory=dict)   # aircraft_id → RefreshResult
    failed: dict = field(default_factory=dict)      # aircraft_id → error message

    def as_dict(self) -> dict:
        return {
            "fleet_id": self.fleet_id,
            "refreshed": len(self.refreshed),
            "failed": self.failed,
            "aircraft": {aid: r.as_dict() for aid, r in self.refreshed.items()},
        }


# ── refresh ───────────────────────────────────────────────────────────────────

def refresh(db: Session, aircraft_id: str, now: datetime,
            settings: SchedulerSettings = None, fleet_position: int = None) -> RefreshResult:
    """
    Rebuild the plan for every auto-scheduled tier of one aircraft.
    In-progress multi-day checks are left untouched. Runs as one transaction.
    """
    settings = settings or load_settings()

    with aircraft_lock(aircraft_id):
        try:
            aircraft = get_aircraft(db, aircraft_id)
            ensure_checks(db, aircraft)
            state = load_check_state(aircraft, settings)
            tiers = state.enabled_tiers()

            removed, protected = _clear_plan(db, aircraft_id, tiers, now)
            db.flush()

            if fleet_position is None:
                fleet_position = _fleet_position(db, aircraft)

            schedule = build_schedule(db, aircraft, now)
            schedule.fleet_position = fleet_position
            in_maintenance = (aircraft.status == AircraftStatus.MAINTENANCE
                              or any(c.in_progress(now) for c in schedule.checks))
            results = plan_aircraft(schedule, state, tiers, now, settings,
                                    fleet_position=fleet_position,
                                    in_maintenance=in_maintenance)
            save_new_checks(db, schedule)
            db.commit()
        except Exception:
            db.rollback()
            raise

    result = RefreshResult(aircraft_id, results, removed, protected)
    logger.info(f"[refresh] {aircraft_id}: {len(result.scheduled)} scheduled, "
                f"{removed} removed, {protected} protected, {len(result.failures)} failed")
    return result


def _clear_plan(db: Session, aircraft_id: str, tiers, now: datetime) -> tuple[int, int]:
    """Delete active records for `tiers`, except multi-day checks already under way."""
    if not tiers:
        return 0, 0
    records = (
        db.query(MaintenanceRecord)
        .filter(MaintenanceRecord.aircraft_id == aircraft_id)
        .filter(MaintenanceRecord.status == RecordStatus.ACTIVE)
        .filter(MaintenanceRecord.tier.in_(list(tiers)))
        .all()
    )
    removed = protected = 0
    for record in records:
        if to_planned(record).in_progress(now):
            protected += 1
            continue
        db.delete(record)
        removed += 1
    return removed, protected


def _fleet_position(db: Session, aircraft: Aircraft) -> int:
    ids = [
        row[0] for row in
        db.query(Aircraft.id).filter(Aircraft.fleet_id == aircraft.fleet_id).order_by(Aircraft.id).all()
    ]
    return ids.index(aircraft.id) if aircraft.id in ids else 0


# ── refresh_fleet ─────────────────────────────────────────────────────────────

def refresh_fleet(session_factory, fleet_id: str, now: datetime,
                  settings: SchedulerSettings = None, batch_size: int = None) -> FleetRefreshResult:
    """
    Refresh every aircraft in a fleet. Aircraft are independent, so each batch
    runs concurrently with its own session; batch_size=1 runs one by one.
    Aircraft in the same batch cannot see each other's new records, so each
    one plans from its fleet position to keep start times apart.
    """
    settings = settings or load_settings()
    batch_size = max(1, batch_size or settings.fleet_batch_size)

    db = session_factory()
    try:
        aircraft_ids = [
            row[0] for row in
            db.query(Aircraft.id).filter(Aircraft.fleet_id == fleet_id).order_by(Aircraft.id).all()
        ]
    finally:
        db.close()

    outcome = FleetRefreshResult(fleet_id)
    positions = {aid: i for i, aid in enumerate(aircraft_ids)}

    for start in range(0, len(aircraft_ids), batch_size):
        batch = aircraft_ids[start:start + batch_size]
        if len(batch) == 1:
            _collect(outcome, batch[0],
                     lambda aid=batch[0]: _refresh_one(session_factory, aid, now, settings, positions[aid]))
            continue

        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = {
                aid: pool.submit(_refresh_one, session_factory, aid, now, settings, positions[aid])
                for aid in batch
            }
            for aid, future in futures.items():
                _collect(outcome, aid, future.result)

    logger.info(f"[refresh] fleet {fleet_id}: {len(outcome.refreshed)} refreshed, "
                f"{len(outcome.failed)} failed")
    return outcome


def _refresh_one(session_factory, aircraft_id, now, settings, position) -> RefreshResult:
    db = session_factory()
    try:
        return refresh(db, aircraft_id, now, settings, fleet_position=position)
    finally:
        db.close()


def _collect(outcome: FleetRefreshResult, aircraft_id: str, run):
    try:
        outcome.refreshed[aircraft_id] = run()
    except Exception as e:
        logger.warning(f"[refresh] {aircraft_id} failed: {e}")
        outcome.failed[aircraft_id] = str(e)


# ── Tier toggles + performed checks ───────────────────────────────────────────

def enable_tier(db: Session, aircraft_id: str, tier: CheckTier, enabled: bool,
                now: datetime, settings: SchedulerSettings = None) -> dict:
    """
    Turn auto-scheduling on or off for one tier.
    Enabling a tier that has already lapsed is refused; the check has to be
    performed by hand first. Disabling drops the tier's future records.
    """
    settings = settings or load_settings()
    tier = CheckTier(tier)

    with aircraft_lock(aircraft_id):
        try:
            aircraft = get_aircraft(db, aircraft_id)
            ensure_checks(db, aircraft)
            state = load_check_state(aircraft, settings)

            removed = 0
            if enabled and state.is_expired(tier, now):
                raise TierExpiredError(aircraft_id, tier)
            if not enabled:
                removed = _deactivate_future(db, aircraft_id, tier, now)

            save_check_state(db, aircraft, state.with_auto_schedule(tier, enabled))
            db.commit()
        except Exception:
            db.rollback()
            raise

    return {"aircraft_id": aircraft_id, "tier": tier.value,
            "enabled": enabled, "removed": removed}


def _deactivate_future(db: Session, aircraft_id: str, tier: CheckTier, now: datetime) -> int:
    records = (
        db.query(MaintenanceRecord)
        .filter(MaintenanceRecord.aircraft_id == aircraft_id)
        .filter(MaintenanceRecord.tier == tier)
        .filter(MaintenanceRecord.status == RecordStatus.ACTIVE)
        .all()
    )
    count = 0
    for record in records:
        if to_planned(record).start_at >= now:
            record.status = RecordStatus.INACTIVE
            count += 1
    return count


def complete_check(db: Session, aircraft_id: str, tier: CheckTier, at: datetime,
                   settings: SchedulerSettings = None) -> dict:
    """Record a performed check; every lighter tier is reset with it."""
    settings = settings or load_settings()
    tier = CheckTier(tier)

    with aircraft_lock(aircraft_id):
        try:
            aircraft = get_aircraft(db, aircraft_id)
            ensure_checks(db, aircraft)
            state = checks.complete_check(load_check_state(aircraft, settings), tier, at)
            save_check_state(db, aircraft, state)
            if spec_for(tier).multi_day and aircraft.status == AircraftStatus.MAINTENANCE:
                aircraft.status = AircraftStatus.ACTIVE
            db.commit()
        except Exception:
            db.rollback()
            raise

    return describe_checks(state, at)


def describe_checks(state: checks.CheckState, now: datetime) -> dict:
    return {
        t.value: {
            "last_completed_at": (state.tier(t).last_completed_at.isoformat()
                                  if state.tier(t).last_completed_at else None),
            "expires_at": state.expiry(t, now).isoformat(),
            "expired": state.is_expired(t, now),
            "auto_schedule": state.tier(t).auto_schedule,
        }
        for t in TIER_SPECS
    }


# ── Manual bookings ───────────────────────────────────────────────────────────

def book_check(db: Session, aircraft_id: str, tier: CheckTier, scheduled_date: date,
               start_minute: int, now: datetime, settings: SchedulerSettings = None) -> dict:
    """
    Book one check by hand at a fixed date and start minute. The slot gets
    the same flight, overlap and home-base tests as an auto-scheduled one.
    """
    settings = settings or load_settings()
    tier = CheckTier(tier)
    spec = spec_for(tier)

    with aircraft_lock(aircraft_id):
        try:
            aircraft = get_aircraft(db, aircraft_id)
            schedule = build_schedule(db, aircraft, now, with_occupancy=False)
            check = PlannedCheck(tier, scheduled_date, start_minute, spec.duration_minutes)

            if not 0 <= start_minute < MINUTES_PER_DAY:
                raise SlotUnavailableError(aircraft_id, tier, f"start minute {start_minute} out of range")
            if check.start_at < now:
                raise SlotUnavailableError(aircraft_id, tier, "start time is in the past")
            if tier == CheckTier.DAILY and start_minute + spec.duration_minutes > MINUTES_PER_DAY:
                raise SlotUnavailableError(aircraft_id, tier, "Daily checks cannot run past midnight")
            if not slot_fits(schedule, scheduled_date, start_minute, spec.duration_minutes, tier):
                raise SlotUnavailableError(
                    aircraft_id, tier,
                    f"{scheduled_date} {start_minute // 60:02d}:{start_minute % 60:02d} clashes "
                    "with a flight or another check, or the aircraft is away from base")

            schedule.book(check)
            record = save_new_checks(db, schedule)[0]
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(f"[booking] {aircraft_id}: {tier.value} booked for {scheduled_date} minute {start_minute}")
    return _record_dict(record)


def cancel_check(db: Session, record_id: str) -> dict:
    """Soft-delete one maintenance record."""
    record = db.get(MaintenanceRecord, record_id)
    if record is None:
        raise RecordNotFoundError(record_id)

    with aircraft_lock(record.aircraft_id):
        try:
            record.status = RecordStatus.INACTIVE
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(f"[booking] {record.aircraft_id}: {record.tier.value} record {record_id} cancelled")
    return _record_dict(record)


def _record_dict(record: MaintenanceRecord) -> dict:
    return {
        "id": record.id,
        "aircraft_id": record.aircraft_id,
        "tier": record.tier.value,
        "scheduled_date": record.scheduled_date.isoformat(),
        "start_minute": record.start_minute,
        "duration_minutes": record.duration_minutes,
        "status": record.status.value,
    }
