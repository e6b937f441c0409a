"""
Check tier table.

One row per tier, keyed by CheckTier. Anything that differs between tiers
(duration, interval unit, planning buffer, preferred start windows) is read
from here instead of being branched on at call sites.
"""
import math
import random
from dataclasses import dataclass

from fleetmaint.models import CheckTier


MINUTES_PER_DAY = 1440


@dataclass(frozen=True)
class TierSpec:
    tier: CheckTier
    rank: int                       # 0 = lightest
    duration_minutes: int
    default_interval: float         # days, or flight hours when interval_in_hours
    interval_in_hours: bool = False
    buffer_days: int = 0            # planned this far ahead of duration before expiry
    calendar_validity: bool = False # valid until midnight, not to the minute
    candidate_bands: tuple = ()     # priority bands of (start, end) minute ranges

    @property
    def multi_day(self) -> bool:
        return self.duration_minutes > MINUTES_PER_DAY

    @property
    def duration_days(self) -> int:
        return max(1, math.ceil(self.duration_minutes / MINUTES_PER_DAY))


# Bands are inclusive start minutes, listed in the order they are tried.
_DAILY_BANDS = (
    ((180, 360),),                          # early morning 03:00-06:00
    ((1200, 1380), (0, 165)),               # late evening 20:00-23:00, small hours
    ((375, 1185),),                         # daytime, last resort
)

_HEAVY_BANDS = (
    ((1260, 1425), (0, 270)),               # overnight 21:00-04:30
    ((285, 480), (1080, 1245)),             # early morning, late evening
    ((495, 1065),),                         # daytime
)


TIER_SPECS: dict[CheckTier, TierSpec] = {
    CheckTier.DAILY: TierSpec(
        CheckTier.DAILY, rank=0, duration_minutes=60, default_interval=1,
        calendar_validity=True, candidate_bands=_DAILY_BANDS,
    ),
    CheckTier.WEEKLY: TierSpec(
        CheckTier.WEEKLY, rank=1, duration_minutes=135, default_interval=7,
        buffer_days=1, candidate_bands=_HEAVY_BANDS,
    ),
    CheckTier.A: TierSpec(
        CheckTier.A, rank=2, duration_minutes=540, default_interval=500,
        interval_in_hours=True, buffer_days=2, candidate_bands=_HEAVY_BANDS,
    ),
    CheckTier.C: TierSpec(
        CheckTier.C, rank=3, duration_minutes=21 * MINUTES_PER_DAY, default_interval=660,
        buffer_days=7, candidate_bands=_HEAVY_BANDS,
    ),
    CheckTier.D: TierSpec(
        CheckTier.D, rank=4, duration_minutes=75 * MINUTES_PER_DAY, default_interval=2920,
        buffer_days=14, candidate_bands=_HEAVY_BANDS,
    ),
}


def spec_for(tier: CheckTier) -> TierSpec:
    return TIER_SPECS[CheckTier(tier)]


def is_heavier(tier: CheckTier, than: CheckTier) -> bool:
    return spec_for(tier).rank > spec_for(than).rank


def lighter_tiers(tier: CheckTier) -> list[CheckTier]:
    """Tiers a completed `tier` check also satisfies, including itself."""
    rank = spec_for(tier).rank
    return [t for t, s in TIER_SPECS.items() if s.rank <= rank]


def generate_check_intervals(rng: random.Random = None) -> dict[CheckTier, float]:
    """Randomised per-aircraft intervals for a newly acquired aircraft."""
    rng = rng or random.Random()
    return {
        CheckTier.DAILY: 1,
        CheckTier.WEEKLY: 7,
        CheckTier.A: rng.randint(400, 600),
        CheckTier.C: rng.randint(600, 720),
        CheckTier.D: rng.randint(2190, 3650),
    }
