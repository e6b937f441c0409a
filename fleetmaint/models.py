from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime,
    Date, JSON, ForeignKey, Enum as SAEnum, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
import enum
import uuid

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


# ── Enums ────────────────────────────────────────────────────────────────────

class CheckTier(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    A = "A"
    C = "C"
    D = "D"

class AircraftCategory(str, enum.Enum):
    NARROWBODY = "NARROWBODY"
    WIDEBODY = "WIDEBODY"
    REGIONAL = "REGIONAL"
    CARGO = "CARGO"

class AircraftStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    STORAGE = "STORAGE"

class FlightStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"

class RecordStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# ── Fleet ─────────────────────────────────────────────────────────────────────

class Fleet(Base):
    __tablename__ = "fleets"

    id = Column(String, primary_key=True)              # e.g. "W1-SKY"
    name = Column(String, nullable=False)

    aircraft = relationship("Aircraft", back_populates="fleet")


class Aircraft(Base):
    __tablename__ = "aircraft"

    id = Column(String, primary_key=True)              # e.g. "AC02"
    registration = Column(String, unique=True, nullable=False)
    fleet_id = Column(String, ForeignKey("fleets.id"), nullable=False)
    home_base = Column(String, nullable=False)         # ICAO, e.g. "EGLL"
    category = Column(SAEnum(AircraftCategory), default=AircraftCategory.NARROWBODY)
    passenger_capacity = Column(Integer, default=150)
    status = Column(SAEnum(AircraftStatus), default=AircraftStatus.ACTIVE)
    total_flight_hours = Column(Float, default=0.0)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    fleet = relationship("Fleet", back_populates="aircraft")
    checks = relationship("AircraftCheck", back_populates="aircraft",
                          cascade="all, delete-orphan")


class AircraftCheck(Base):
    """Per-tier check state. interval_value is days, or flight hours for A."""
    __tablename__ = "aircraft_checks"
    __table_args__ = (UniqueConstraint("aircraft_id", "tier"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    aircraft_id = Column(String, ForeignKey("aircraft.id"), nullable=False)
    tier = Column(SAEnum(CheckTier), nullable=False)
    last_completed_at = Column(DateTime, nullable=True)
    last_completed_flight_hours = Column(Float, nullable=True)   # A only
    interval_value = Column(Float, nullable=False)
    auto_schedule = Column(Boolean, default=False)

    aircraft = relationship("Aircraft", back_populates="checks")


# ── Flights + maintenance ─────────────────────────────────────────────────────

class Flight(Base):
    __tablename__ = "flights"

    id = Column(String, primary_key=True, default=_uuid)
    aircraft_id = Column(String, ForeignKey("aircraft.id"), nullable=False, index=True)
    origin = Column(String, nullable=False)
    destination = Column(String, nullable=False)
    departure_at = Column(DateTime, nullable=False, index=True)
    arrival_at = Column(DateTime, nullable=False)
    distance_nm = Column(Float, default=0.0)
    status = Column(SAEnum(FlightStatus), default=FlightStatus.SCHEDULED)
    created_at = Column(DateTime, server_default=func.now())


class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"

    id = Column(String, primary_key=True, default=_uuid)
    aircraft_id = Column(String, ForeignKey("aircraft.id"), nullable=False, index=True)
    tier = Column(SAEnum(CheckTier), nullable=False)
    scheduled_date = Column(Date, nullable=False, index=True)
    start_minute = Column(Integer, nullable=False)     # minute of day, 0-1439
    duration_minutes = Column(Integer, nullable=False)
    status = Column(SAEnum(RecordStatus), default=RecordStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


# ── Ingestion tracking ────────────────────────────────────────────────────────

class IngestionRun(Base):
    __tablename__ = "ingestion_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_at = Column(DateTime, server_default=func.now())
    source_hash = Column(String, nullable=False)       # hash of input files
    status = Column(String, default="success")
    diff_summary = Column(JSON, default=dict)          # what changed
