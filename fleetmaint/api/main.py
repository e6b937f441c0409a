"""
FastAPI app — maintenance scheduling endpoints:
  POST /aircraft/{id}/maintenance/refresh
  POST /fleets/{id}/maintenance/refresh
  PUT  /aircraft/{id}/checks/{tier}/auto-schedule
  POST /aircraft/{id}/checks/{tier}/complete
  POST /flights
  PUT  /flights/{id}
  DELETE /flights/{id}
  POST /aircraft/{id}/maintenance
  DELETE /maintenance/{id}
  GET  /aircraft/{id}/maintenance
  GET  /metrics
  POST /ingest/run

Every scheduling call takes an optional `now` (ISO datetime) so the
simulated clock can be driven from outside; it defaults to the wall clock.
"""
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from fleetmaint.config import configure_logging, load_settings
from fleetmaint.database import SessionLocal, get_db, init_db
from fleetmaint.exceptions import NotFoundError, SchedulerError
from fleetmaint.ingestion.job import run_ingestion
from fleetmaint.models import CheckTier
from fleetmaint.observability.metrics import get_metrics
from fleetmaint.reallocation.engine import (
    FlightChange, FlightInsertion, cancel_flight, insert_flight, update_flight,
)
from fleetmaint.repository import active_records, get_aircraft, load_check_state
from fleetmaint.scheduling import orchestrator

logger = logging.getLogger(__name__)

app = FastAPI(title="Fleet Maintenance Scheduler API", version="0.1.0")


# Initialize DB tables on startup
@app.on_event("startup")
def startup():
    configure_logging()
    init_db()
    logger.info("[api] database initialized")


def get_session_factory():
    """Fleet refreshes open one session per aircraft."""
    return SessionLocal


class FlightIn(BaseModel):
    aircraft_id: str
    origin: str
    destination: str
    departure_at: datetime
    arrival_at: datetime
    distance_nm: float = 0.0


class FlightUpdateIn(BaseModel):
    departure_at: datetime
    arrival_at: datetime
    origin: Optional[str] = None
    destination: Optional[str] = None
    distance_nm: Optional[float] = None


class BookingIn(BaseModel):
    tier: CheckTier
    scheduled_date: date
    start_minute: int


# ── Scheduling ────────────────────────────────────────────────────────────────

@app.post("/aircraft/{aircraft_id}/maintenance/refresh")
def refresh_aircraft(aircraft_id: str, now: Optional[datetime] = None,
                     db: Session = Depends(get_db)):
    """Clear and rebuild the maintenance plan of one aircraft."""
    try:
        return orchestrator.refresh(db, aircraft_id, _now(now), load_settings()).as_dict()
    except Exception as e:
        raise _http_error(e)


@app.post("/fleets/{fleet_id}/maintenance/refresh")
def refresh_fleet(fleet_id: str, now: Optional[datetime] = None,
                  batch_size: Optional[int] = None,
                  session_factory=Depends(get_session_factory)):
    """
    Refresh every aircraft in the fleet.
    - batch_size: aircraft refreshed concurrently (1 = one at a time)
    """
    try:
        result = orchestrator.refresh_fleet(session_factory, fleet_id, _now(now),
                                            load_settings(), batch_size=batch_size)
        return result.as_dict()
    except Exception as e:
        raise _http_error(e)


@app.put("/aircraft/{aircraft_id}/checks/{tier}/auto-schedule")
def set_auto_schedule(aircraft_id: str, tier: CheckTier, enabled: bool = True,
                      now: Optional[datetime] = None, db: Session = Depends(get_db)):
    try:
        return orchestrator.enable_tier(db, aircraft_id, tier, enabled, _now(now), load_settings())
    except Exception as e:
        raise _http_error(e)


@app.post("/aircraft/{aircraft_id}/checks/{tier}/complete")
def complete_check(aircraft_id: str, tier: CheckTier, at: Optional[datetime] = None,
                   db: Session = Depends(get_db)):
    """Record a performed check. Lighter tiers are reset with it."""
    try:
        return {
            "aircraft_id": aircraft_id,
            "checks": orchestrator.complete_check(db, aircraft_id, tier, _now(at), load_settings()),
        }
    except Exception as e:
        raise _http_error(e)


@app.post("/flights")
def add_flight(flight: FlightIn, now: Optional[datetime] = None,
               db: Session = Depends(get_db)):
    """
    Add a flight and move every check it lands on.
    Returns 409 (and writes nothing) when a check cannot be moved in time.
    """
    if flight.arrival_at <= flight.departure_at:
        raise HTTPException(status_code=400, detail="arrival_at must be after departure_at")
    try:
        event = FlightInsertion(**flight.model_dump())
        return insert_flight(db, event, _now(now), load_settings())
    except Exception as e:
        raise _http_error(e)


@app.put("/flights/{flight_id}")
def change_flight(flight_id: str, change: FlightUpdateIn, now: Optional[datetime] = None,
                  db: Session = Depends(get_db)):
    """Retime a flight; checks the new times land on are moved as for a new flight."""
    if change.arrival_at <= change.departure_at:
        raise HTTPException(status_code=400, detail="arrival_at must be after departure_at")
    try:
        event = FlightChange(flight_id=flight_id, **change.model_dump())
        return update_flight(db, event, _now(now), load_settings())
    except Exception as e:
        raise _http_error(e)


@app.delete("/flights/{flight_id}")
def delete_flight(flight_id: str, db: Session = Depends(get_db)):
    try:
        return cancel_flight(db, flight_id)
    except Exception as e:
        raise _http_error(e)


@app.post("/aircraft/{aircraft_id}/maintenance")
def book_maintenance(aircraft_id: str, booking: BookingIn, now: Optional[datetime] = None,
                     db: Session = Depends(get_db)):
    """Book one check by hand. 409 when the slot clashes."""
    try:
        return orchestrator.book_check(db, aircraft_id, booking.tier, booking.scheduled_date,
                                       booking.start_minute, _now(now), load_settings())
    except Exception as e:
        raise _http_error(e)


@app.delete("/maintenance/{record_id}")
def cancel_maintenance(record_id: str, db: Session = Depends(get_db)):
    try:
        return orchestrator.cancel_check(db, record_id)
    except Exception as e:
        raise _http_error(e)


# ── Read side ─────────────────────────────────────────────────────────────────

@app.get("/aircraft/{aircraft_id}/maintenance")
def list_maintenance(aircraft_id: str, now: Optional[datetime] = None,
                     db: Session = Depends(get_db)):
    """Active maintenance records plus the per-tier check state."""
    try:
        aircraft = get_aircraft(db, aircraft_id)
        state = load_check_state(aircraft, load_settings())
        return {
            "aircraft_id": aircraft.id,
            "status": aircraft.status.value if aircraft.status else None,
            "checks": orchestrator.describe_checks(state, _now(now)),
            "records": [_to_dict(r) for r in active_records(db, aircraft.id)],
        }
    except Exception as e:
        raise _http_error(e)


@app.get("/metrics")
def metrics(now: Optional[datetime] = None, fleet_id: Optional[str] = None,
            db: Session = Depends(get_db)):
    return get_metrics(db, _now(now), fleet_id=fleet_id, settings=load_settings())


# ── Ingestion ─────────────────────────────────────────────────────────────────

@app.post("/ingest/run")
def ingest_run(force: bool = False, db: Session = Depends(get_db)):
    """
    Run ingestion pipeline.
    - Reads data/bucket/*.json
    - Validates, upserts to DB
    - Idempotent (skips if unchanged unless force=True)
    """
    try:
        return run_ingestion(db, force=force)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# ── Helpers ───────────────────────────────────────────────────────────────────

def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now()


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SchedulerError):
        return HTTPException(status_code=409, detail=str(e))
    logger.exception(f"[api] unexpected error: {e}")
    return HTTPException(status_code=500, detail=str(e))


def _to_dict(obj) -> dict:
    """Convert SQLAlchemy model to dict."""
    if obj is None:
        return {}
    return {c.name: getattr(obj, c.name) for c in obj.__table__.columns}


# ── Health check ──────────────────────────────────────────────────────────────

@app.get("/")
def root():
    return {
        "service": "Fleet Maintenance Scheduler API",
        "version": "0.1.0",
        "endpoints": [
            "/aircraft/{id}/maintenance/refresh",
            "/fleets/{id}/maintenance/refresh",
            "/aircraft/{id}/checks/{tier}/auto-schedule",
            "/aircraft/{id}/checks/{tier}/complete",
            "/flights",
            "/flights/{id}",
            "/maintenance/{id}",
            "/aircraft/{id}/maintenance",
            "/metrics",
            "/ingest/run",
        ],
    }
