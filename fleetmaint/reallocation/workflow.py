"""
LangGraph workflow for repairing one conflicting check.

Workflow:
  1. reposition_before_flight
  2. largest_gap
  3. daily_coverage      (Daily checks only)
  4. later_days
Each step either resolves the conflict (→ END) or hands over to the next.
"""
import logging
import operator
from datetime import datetime
from typing import Annotated, Optional, TypedDict

from langgraph.graph import StateGraph, END

from fleetmaint.config import SchedulerSettings
from fleetmaint.exceptions import RescheduleError
from fleetmaint.models import CheckTier
from fleetmaint.reallocation import engine
from fleetmaint.scheduling.availability import FlightWindow
from fleetmaint.scheduling.check_state import CheckState
from fleetmaint.scheduling.state import AircraftSchedule, PlannedCheck

logger = logging.getLogger(__name__)


# ── State definition ──────────────────────────────────────────────────────────

class ResolutionState(TypedDict):
    """State passed through the workflow."""
    # Input
    schedule: AircraftSchedule
    check_state: CheckState
    check: PlannedCheck
    flight: FlightWindow
    now: datetime
    settings: SchedulerSettings

    # Output
    resolution: Optional[engine.Resolution]
    attempts: Annotated[list[str], operator.add]


# ── Workflow nodes ────────────────────────────────────────────────────────────

def _attempt(name: str, state: ResolutionState, resolution) -> dict:
    logger.debug(f"[reallocation] {state['schedule'].aircraft_id} {state['check'].tier.value}: "
                 f"{name} → {'resolved' if resolution else 'no fit'}")
    return {"resolution": resolution, "attempts": [name]}


def reposition_node(state: ResolutionState) -> dict:
    resolution = engine.reposition_before_flight(
        state["schedule"], state["check_state"], state["check"], state["flight"], state["now"])
    return _attempt("reposition_before_flight", state, resolution)


def largest_gap_node(state: ResolutionState) -> dict:
    resolution = engine.largest_gap(
        state["schedule"], state["check_state"], state["check"], state["flight"], state["now"])
    return _attempt("largest_gap", state, resolution)


def daily_coverage_node(state: ResolutionState) -> dict:
    resolution = engine.daily_coverage(
        state["schedule"], state["check_state"], state["check"], state["flight"],
        state["now"], state["settings"])
    return _attempt("daily_coverage", state, resolution)


def later_days_node(state: ResolutionState) -> dict:
    resolution = engine.later_days(
        state["schedule"], state["check_state"], state["check"], state["flight"],
        state["now"], state["settings"])
    return _attempt("later_days", state, resolution)


# ── Routing ───────────────────────────────────────────────────────────────────

def _after_reposition(state: ResolutionState) -> str:
    return "done" if state["resolution"] else "next"


def _after_gap(state: ResolutionState) -> str:
    if state["resolution"]:
        return "done"
    return "daily" if state["check"].tier == CheckTier.DAILY else "later"


# ── Build graph ───────────────────────────────────────────────────────────────

def build_resolution_graph():
    """Build the LangGraph workflow."""
    workflow = StateGraph(ResolutionState)

    workflow.add_node("reposition_before_flight", reposition_node)
    workflow.add_node("largest_gap", largest_gap_node)
    workflow.add_node("daily_coverage", daily_coverage_node)
    workflow.add_node("later_days", later_days_node)

    workflow.set_entry_point("reposition_before_flight")
    workflow.add_conditional_edges(
        "reposition_before_flight", _after_reposition,
        {"done": END, "next": "largest_gap"},
    )
    workflow.add_conditional_edges(
        "largest_gap", _after_gap,
        {"done": END, "daily": "daily_coverage", "later": "later_days"},
    )
    workflow.add_conditional_edges(
        "daily_coverage", _after_reposition,
        {"done": END, "next": "later_days"},
    )
    workflow.add_edge("later_days", END)

    return workflow.compile()


_graph = None


def run_conflict_resolution(
    schedule: AircraftSchedule,
    check_state: CheckState,
    check: PlannedCheck,
    flight: FlightWindow,
    now: datetime,
    settings: SchedulerSettings = None,
) -> engine.Resolution:
    """
    Run the resolver workflow for one check.
    Raises RescheduleError when every strategy fails.
    """
    global _graph
    if _graph is None:
        _graph = build_resolution_graph()

    result = _graph.invoke({
        "schedule": schedule,
        "check_state": check_state,
        "check": check,
        "flight": flight,
        "now": now,
        "settings": settings or SchedulerSettings(),
        "resolution": None,
        "attempts": [],
    })

    if result["resolution"] is None:
        logger.warning(f"[reallocation] {schedule.aircraft_id}: {check.tier.value} check on "
                       f"{check.scheduled_date} could not be moved (tried {result['attempts']})")
        raise RescheduleError(schedule.aircraft_id, check.tier, check.record_id)
    return result["resolution"]
