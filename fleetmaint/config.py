"""
Scheduler settings.

Everything tunable about a planning pass lives here and can be overridden
with FLEETMAINT_* environment variables, e.g.

  FLEETMAINT_HORIZON_DAYS=180 python run_api.py
"""
import logging
import os
from dataclasses import dataclass


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class SchedulerSettings:
    horizon_days: int = 90                 # how far ahead recurring tiers are planned
    max_iterations: int = 20               # occurrences per tier per pass
    daily_days_ahead: int = 7
    avg_daily_flight_hours: float = 7.0    # A-check forecast, see DESIGN.md
    forced_lead_minutes: int = 120         # expired check goes in at now + 2h
    fleet_batch_size: int = 5
    search_radius_days: int = 2
    widened_radius_days: int = 7
    weekly_max_offset_days: int = 3
    candidate_step_minutes: int = 15


def _env(name: str, default, cast):
    raw = os.getenv(f"FLEETMAINT_{name}")
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"FLEETMAINT_{name}={raw!r} is not a valid {cast.__name__}")


def load_settings() -> SchedulerSettings:
    """Build settings from the environment, falling back to defaults."""
    d = SchedulerSettings()
    return SchedulerSettings(
        horizon_days=_env("HORIZON_DAYS", d.horizon_days, int),
        max_iterations=_env("MAX_ITERATIONS", d.max_iterations, int),
        daily_days_ahead=_env("DAILY_DAYS_AHEAD", d.daily_days_ahead, int),
        avg_daily_flight_hours=_env("AVG_DAILY_FLIGHT_HOURS", d.avg_daily_flight_hours, float),
        forced_lead_minutes=_env("FORCED_LEAD_MINUTES", d.forced_lead_minutes, int),
        fleet_batch_size=_env("FLEET_BATCH_SIZE", d.fleet_batch_size, int),
        search_radius_days=_env("SEARCH_RADIUS_DAYS", d.search_radius_days, int),
        widened_radius_days=_env("WIDENED_RADIUS_DAYS", d.widened_radius_days, int),
        weekly_max_offset_days=_env("WEEKLY_MAX_OFFSET_DAYS", d.weekly_max_offset_days, int),
        candidate_step_minutes=_env("CANDIDATE_STEP_MINUTES", d.candidate_step_minutes, int),
    )


def configure_logging(level: str = None):
    logging.basicConfig(
        level=level or os.getenv("FLEETMAINT_LOG_LEVEL", "INFO"),
        format=LOG_FORMAT,
    )
