"""Shared test fixtures: in-memory SQLite session and small row builders."""
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetmaint.models import (
    Aircraft, AircraftCheck, Base, Fleet, Flight, MaintenanceRecord, RecordStatus,
)
from fleetmaint.scheduling.tiers import TIER_SPECS, spec_for

# A Monday, midday
NOW = datetime(2025, 7, 7, 12, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_aircraft(db):
    """
    make_aircraft("AC01", checks={CheckTier.DAILY: {"last_completed_at": ..., "auto_schedule": True}})
    Tiers not listed get a row with the default interval, never completed, disabled.
    """
    def _make(aircraft_id="AC01", fleet_id="W1", home_base="EGLL", checks=None, **fields):
        if db.get(Fleet, fleet_id) is None:
            db.add(Fleet(id=fleet_id, name=f"Fleet {fleet_id}"))
        aircraft = Aircraft(
            id=aircraft_id,
            registration=f"G-{aircraft_id}",
            fleet_id=fleet_id,
            home_base=home_base,
            **fields,
        )
        for tier, spec in TIER_SPECS.items():
            entry = (checks or {}).get(tier, {})
            aircraft.checks.append(AircraftCheck(
                tier=tier,
                interval_value=entry.get("interval_value", spec.default_interval),
                last_completed_at=entry.get("last_completed_at"),
                last_completed_flight_hours=entry.get("last_completed_flight_hours"),
                auto_schedule=entry.get("auto_schedule", False),
            ))
        db.add(aircraft)
        db.commit()
        return aircraft
    return _make


@pytest.fixture
def make_flight(db):
    def _make(aircraft_id, departure_at, arrival_at, origin="EGLL", destination="EGLL",
              distance_nm=0.0, flight_id=None):
        extra = {"id": flight_id} if flight_id else {}
        flight = Flight(
            aircraft_id=aircraft_id,
            origin=origin,
            destination=destination,
            departure_at=departure_at,
            arrival_at=arrival_at,
            distance_nm=distance_nm,
            **extra,
        )
        db.add(flight)
        db.commit()
        return flight
    return _make


@pytest.fixture
def make_record(db):
    def _make(aircraft_id, tier, scheduled_date, start_minute, duration_minutes=None):
        record = MaintenanceRecord(
            aircraft_id=aircraft_id,
            tier=tier,
            scheduled_date=scheduled_date,
            start_minute=start_minute,
            duration_minutes=duration_minutes or spec_for(tier).duration_minutes,
            status=RecordStatus.ACTIVE,
        )
        db.add(record)
        db.commit()
        return record
    return _make
