"""
Check hierarchy: heavier checks subsume lighter ones.

  D ⊃ C ⊃ A ⊃ Weekly ⊃ Daily

If a heavier requested tier is expired, or the aircraft is already in a heavy
check, forcing an expired lighter tier "today" is pointless: the heavy check
will reset it. Only the immediate occurrence is suppressed; later
recurrences are still planned.
"""
from datetime import datetime
from typing import Optional

from fleetmaint.models import CheckTier
from fleetmaint.scheduling.check_state import CheckState
from fleetmaint.scheduling.tiers import spec_for

HIERARCHY = (CheckTier.D, CheckTier.C, CheckTier.A, CheckTier.WEEKLY, CheckTier.DAILY)


def heaviest_first(tiers) -> list[CheckTier]:
    wanted = {CheckTier(t) for t in tiers}
    return [t for t in HIERARCHY if t in wanted]


def heaviest_expired(state: CheckState, tiers, now: datetime) -> Optional[CheckTier]:
    """Walk heaviest → lightest and return the first expired tier."""
    for tier in heaviest_first(tiers):
        if state.is_expired(tier, now):
            return tier
    return None


def suppressed_tiers(state: CheckState, tiers, now: datetime,
                     in_maintenance: bool = False) -> set[CheckTier]:
    """Requested tiers whose immediate occurrence must not be forced."""
    ordered = heaviest_first(tiers)
    if in_maintenance:
        return set(ordered)

    heaviest = heaviest_expired(state, ordered, now)
    if heaviest is None:
        return set()
    rank = spec_for(heaviest).rank
    return {t for t in ordered if spec_for(t).rank < rank}
