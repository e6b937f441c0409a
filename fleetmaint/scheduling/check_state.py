"""
Check-state tracker.

CheckState is an immutable snapshot of an aircraft's five tiers. Expiry is
always derived, never stored. Performing a check goes through
complete_check(), which resets the tier and everything it subsumes in one
step (a D check also counts as a C, A, Weekly and Daily).
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, time, timedelta
from typing import Optional

from fleetmaint.models import CheckTier
from fleetmaint.scheduling.tiers import TIER_SPECS, lighter_tiers, spec_for


@dataclass(frozen=True)
class TierState:
    last_completed_at: Optional[datetime]
    interval_value: float
    auto_schedule: bool = False


@dataclass(frozen=True)
class CheckState:
    tiers: dict = field(default_factory=dict)          # CheckTier → TierState
    total_flight_hours: float = 0.0
    a_last_completed_flight_hours: Optional[float] = None
    avg_daily_flight_hours: float = 7.0

    @classmethod
    def default(cls, **kwargs) -> "CheckState":
        tiers = {t: TierState(None, s.default_interval) for t, s in TIER_SPECS.items()}
        return cls(tiers=tiers, **kwargs)

    def tier(self, tier: CheckTier) -> TierState:
        tier = CheckTier(tier)
        if tier in self.tiers:
            return self.tiers[tier]
        return TierState(None, spec_for(tier).default_interval)

    def enabled_tiers(self) -> list[CheckTier]:
        return [t for t in TIER_SPECS if self.tier(t).auto_schedule]

    # ── Expiry ────────────────────────────────────────────────────────────────

    def hours_remaining(self) -> float:
        """A-check flight hours left before it is due."""
        entry = self.tier(CheckTier.A)
        if entry.last_completed_at is None:
            return 0.0
        flown = self.total_flight_hours - (self.a_last_completed_flight_hours or 0.0)
        return entry.interval_value - flown

    def interval_days(self, tier: CheckTier) -> float:
        entry = self.tier(tier)
        if spec_for(tier).interval_in_hours:
            return entry.interval_value / max(self.avg_daily_flight_hours, 0.1)
        return entry.interval_value

    def expiry(self, tier: CheckTier, now: datetime) -> datetime:
        tier = CheckTier(tier)
        entry = self.tier(tier)
        if entry.last_completed_at is None:
            return now

        if spec_for(tier).interval_in_hours:
            days = self.hours_remaining() / max(self.avg_daily_flight_hours, 0.1)
            return now + timedelta(days=days)

        if spec_for(tier).calendar_validity:
            # valid through the end of the day after the check (interval 1)
            last_day = entry.last_completed_at.date()
            return datetime.combine(last_day + timedelta(days=int(entry.interval_value) + 1), time.min)

        return entry.last_completed_at + timedelta(days=entry.interval_value)

    def is_expired(self, tier: CheckTier, now: datetime) -> bool:
        tier = CheckTier(tier)
        if self.tier(tier).last_completed_at is None:
            return True
        if spec_for(tier).interval_in_hours:
            return self.hours_remaining() <= 0
        return self.expiry(tier, now) <= now

    def validity_after(self, tier: CheckTier, completed_at: datetime) -> datetime:
        """Expiry a check of `tier` finishing at `completed_at` would give."""
        tier = CheckTier(tier)
        interval = self.interval_days(tier)
        if spec_for(tier).calendar_validity:
            return datetime.combine(completed_at.date() + timedelta(days=int(interval) + 1), time.min)
        return completed_at + timedelta(days=interval)

    # ── Mutation ──────────────────────────────────────────────────────────────

    def with_auto_schedule(self, tier: CheckTier, enabled: bool) -> "CheckState":
        tiers = dict(self.tiers)
        tiers[CheckTier(tier)] = replace(self.tier(tier), auto_schedule=enabled)
        return replace(self, tiers=tiers)


def complete_check(state: CheckState, tier: CheckTier, at: datetime) -> CheckState:
    """Record `tier` as performed at `at`, cascading to every lighter tier."""
    tiers = dict(state.tiers)
    for t in lighter_tiers(CheckTier(tier)):
        tiers[t] = replace(state.tier(t), last_completed_at=at)

    a_hours = state.a_last_completed_flight_hours
    if CheckTier.A in lighter_tiers(CheckTier(tier)):
        a_hours = state.total_flight_hours

    return replace(state, tiers=tiers, a_last_completed_flight_hours=a_hours)
