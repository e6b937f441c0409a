"""
Ingestion pipeline — reads bucket files, validates, upserts to DB.
Idempotent: same input = same hash = skips re-insert.

Bucket layout:
  fleets.json     [{"id", "name"}]
  aircraft.json   [{"id", "registration", "fleet_id", "home_base", ..., "checks": {...}}]
  flights.json    [{"aircraft_id", "origin", "destination", "departure_at", "arrival_at", ...}]
"""
import json
import hashlib
import logging
import random
import uuid
from pathlib import Path

from sqlalchemy.orm import Session

from fleetmaint.models import Aircraft, AircraftCheck, Fleet, Flight, IngestionRun
from fleetmaint.ingestion.schemas import AircraftSchema, FleetSchema, FlightSchema
from fleetmaint.scheduling.tiers import TIER_SPECS, generate_check_intervals

BUCKET_DIR = Path("data/bucket")
BUCKET_FILES = ("fleets.json", "aircraft.json", "flights.json")

logger = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _hash_file(path: Path) -> str:
    return hashlib.md5(path.read_bytes()).hexdigest()

def _bucket_hash(bucket: Path) -> str:
    """Single hash of all bucket files combined."""
    combined = "".join(
        _hash_file(bucket / name) for name in BUCKET_FILES if (bucket / name).is_file()
    )
    return hashlib.md5(combined.encode()).hexdigest()

def _load_json(bucket: Path, filename: str) -> list:
    path = bucket / filename
    if not path.is_file():
        return []
    return json.loads(path.read_text())


# ── Per-entity upsert functions ───────────────────────────────────────────────

def _upsert_fleets(db: Session, bucket: Path) -> dict:
    records = [FleetSchema(**r) for r in _load_json(bucket, "fleets.json")]
    diff = {"upserted": [], "unchanged": []}

    for r in records:
        existing = db.get(Fleet, r.id)
        if existing and existing.name == r.name:
            diff["unchanged"].append(r.id)
            continue
        if existing:
            existing.name = r.name
        else:
            db.add(Fleet(**r.model_dump()))
        diff["upserted"].append(r.id)

    return diff


def _upsert_aircraft(db: Session, bucket: Path) -> dict:
    records = [AircraftSchema(**r) for r in _load_json(bucket, "aircraft.json")]
    diff = {"upserted": [], "unchanged": []}

    for r in records:
        data = r.model_dump(exclude={"checks"})
        existing = db.get(Aircraft, r.id)

        if existing:
            changed = {k: v for k, v in data.items() if getattr(existing, k) != v}
            for k, v in changed.items():
                setattr(existing, k, v)
            aircraft = existing
        else:
            aircraft = Aircraft(**data)
            db.add(aircraft)
            changed = data

        checks_changed = _apply_checks(aircraft, r)
        if changed or checks_changed:
            diff["upserted"].append(r.id)
        else:
            diff["unchanged"].append(r.id)

    return diff


def _apply_checks(aircraft: Aircraft, record: AircraftSchema) -> bool:
    rows = {c.tier: c for c in aircraft.checks}
    changed = False
    # seeded by id so a re-import draws the same intervals
    intervals = generate_check_intervals(random.Random(record.id))

    for tier in TIER_SPECS:
        given = record.checks.get(tier)
        row = rows.get(tier)
        if row is None:
            row = AircraftCheck(tier=tier, interval_value=intervals[tier], auto_schedule=False)
            aircraft.checks.append(row)
            changed = True
        if given is None:
            continue

        values = {
            "last_completed_at": given.last_completed_at,
            "last_completed_flight_hours": given.last_completed_flight_hours,
            "interval_value": given.interval_value or row.interval_value,
            "auto_schedule": given.auto_schedule,
        }
        for k, v in values.items():
            if getattr(row, k) != v:
                setattr(row, k, v)
                changed = True

    return changed


def _upsert_flights(db: Session, bucket: Path) -> dict:
    records = [FlightSchema(**r) for r in _load_json(bucket, "flights.json")]
    diff = {"upserted": [], "unchanged": []}

    for r in records:
        flight_id = r.id or str(uuid.uuid5(
            uuid.NAMESPACE_URL, f"{r.aircraft_id}/{r.departure_at.isoformat()}"))
        data = r.model_dump(exclude={"id"})
        existing = db.get(Flight, flight_id)

        if existing:
            changed = {k: v for k, v in data.items() if getattr(existing, k) != v}
            if changed:
                for k, v in changed.items():
                    setattr(existing, k, v)
                diff["upserted"].append(flight_id)
            else:
                diff["unchanged"].append(flight_id)
        else:
            db.add(Flight(id=flight_id, **data))
            diff["upserted"].append(flight_id)

    return diff


# ── Main entry point ──────────────────────────────────────────────────────────

def run_ingestion(db: Session, bucket: Path = None, force: bool = False) -> dict:
    """
    Run full ingestion. Skips if bucket hash unchanged (idempotent).
    Set force=True to re-ingest regardless.
    """
    bucket = Path(bucket or BUCKET_DIR)
    bucket_hash = _bucket_hash(bucket)

    # Idempotency check
    if not force:
        last_run = (
            db.query(IngestionRun)
            .filter(IngestionRun.status == "success")
            .order_by(IngestionRun.id.desc())
            .first()
        )
        if last_run and last_run.source_hash == bucket_hash:
            return {
                "status": "skipped",
                "reason": "bucket unchanged",
                "hash": bucket_hash
            }

    diff_summary = {}
    try:
        diff_summary["fleets"] = _upsert_fleets(db, bucket)
        db.flush()
        diff_summary["aircraft"] = _upsert_aircraft(db, bucket)
        db.flush()
        diff_summary["flights"] = _upsert_flights(db, bucket)

        db.add(IngestionRun(
            source_hash=bucket_hash,
            status="success",
            diff_summary=diff_summary
        ))
        db.commit()

    except Exception as e:
        db.rollback()
        logger.warning(f"[ingest] failed: {e}")
        db.add(IngestionRun(
            source_hash=bucket_hash,
            status="failed",
            diff_summary={"error": str(e)}
        ))
        db.commit()
        raise

    return {"status": "success", "hash": bucket_hash, "diff": diff_summary}
