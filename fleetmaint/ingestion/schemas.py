from pydantic import BaseModel, field_validator, model_validator
from typing import Optional
from datetime import datetime

from fleetmaint.models import AircraftCategory, AircraftStatus, CheckTier


class FleetSchema(BaseModel):
    id: str
    name: str


class CheckStateSchema(BaseModel):
    last_completed_at: Optional[datetime] = None
    last_completed_flight_hours: Optional[float] = None   # A only
    interval_value: Optional[float] = None                # days, or flight hours for A
    auto_schedule: bool = False


class AircraftSchema(BaseModel):
    id: str
    registration: str
    fleet_id: str
    home_base: str
    category: AircraftCategory = AircraftCategory.NARROWBODY
    passenger_capacity: int = 150
    status: AircraftStatus = AircraftStatus.ACTIVE
    total_flight_hours: float = 0.0
    checks: dict[CheckTier, CheckStateSchema] = {}

    @field_validator("home_base")
    @classmethod
    def valid_icao(cls, v):
        assert len(v) == 4 and v.isalnum(), f"Bad ICAO code: {v}"
        return v.upper()


class FlightSchema(BaseModel):
    id: Optional[str] = None
    aircraft_id: str
    origin: str
    destination: str
    departure_at: datetime
    arrival_at: datetime
    distance_nm: float = 0.0

    @model_validator(mode="after")
    def arrives_after_departure(self):
        assert self.arrival_at > self.departure_at, \
            f"Flight arrives before it departs: {self.departure_at} → {self.arrival_at}"
        return self
