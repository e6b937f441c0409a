"""
Plan health metrics.

Tracks:
- Overlaps (flight vs check, check vs check), should always be 0
- Expiry coverage per enabled tier (legal now, or a check lands before expiry)
- Active records per tier
"""
from datetime import datetime

from sqlalchemy.orm import Session

from fleetmaint.config import SchedulerSettings
from fleetmaint.models import Aircraft
from fleetmaint.repository import build_schedule, load_check_state
from fleetmaint.scheduling.check_state import CheckState
from fleetmaint.scheduling.state import AircraftSchedule
from fleetmaint.scheduling.tiers import spec_for


def overlap_violations(schedule: AircraftSchedule) -> list[dict]:
    """Every flight/check and check/check pair that overlaps."""
    violations = []
    checks = [c for c in schedule.checks if c.active]

    for check in checks:
        for w in schedule.conflicting_flights(check):
            violations.append({
                "type": "FLIGHT_OVERLAP",
                "tier": check.tier.value,
                "date": check.scheduled_date.isoformat(),
                "flight_id": w.flight_id,
            })

    for i, a in enumerate(checks):
        for b in checks[i + 1:]:
            if a.overlaps(b.start_at, b.end_at):
                violations.append({
                    "type": "CHECK_OVERLAP",
                    "tier": a.tier.value,
                    "date": a.scheduled_date.isoformat(),
                    "other_tier": b.tier.value,
                })
    return violations


def expiry_coverage(schedule: AircraftSchedule, state: CheckState, now: datetime) -> dict:
    """
    Per enabled tier: True when the tier is currently valid, or when a check
    of that tier (or a heavier one) is under way or still to come.
    """
    coverage = {}
    for tier in state.enabled_tiers():
        if not state.is_expired(tier, now):
            coverage[tier.value] = True
            continue
        rank = spec_for(tier).rank
        coverage[tier.value] = any(
            c.active and spec_for(c.tier).rank >= rank and c.end_at > now
            for c in schedule.checks
        )
    return coverage


def get_metrics(db: Session, now: datetime, fleet_id: str = None,
                settings: SchedulerSettings = None) -> dict:
    """
    Summarise plan health over the fleet (or every aircraft).
    """
    query = db.query(Aircraft)
    if fleet_id:
        query = query.filter(Aircraft.fleet_id == fleet_id)
    aircraft = query.order_by(Aircraft.id).all()

    records_per_tier = {}
    total_violations = 0
    lapsed = []

    for ac in aircraft:
        schedule = build_schedule(db, ac, now, with_occupancy=False)
        state = load_check_state(ac, settings)

        for c in schedule.checks:
            records_per_tier[c.tier.value] = records_per_tier.get(c.tier.value, 0) + 1

        total_violations += len(overlap_violations(schedule))
        for tier, ok in expiry_coverage(schedule, state, now).items():
            if not ok:
                lapsed.append({"aircraft_id": ac.id, "tier": tier})

    return {
        "aircraft": len(aircraft),
        "active_records": sum(records_per_tier.values()),
        "records_per_tier": records_per_tier,
        "overlap_violations": total_violations,
        "lapsed_tiers": lapsed,
    }
