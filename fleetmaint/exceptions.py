"""Scheduler exceptions. Messages name the aircraft and tier so they can be shown as-is."""


class SchedulerError(Exception):
    """Base exception for maintenance scheduling errors."""

    pass


class NotFoundError(SchedulerError):
    """Aircraft, flight or maintenance record does not exist."""

    pass


class AircraftNotFoundError(NotFoundError):
    def __init__(self, aircraft_id: str):
        self.aircraft_id = aircraft_id
        super().__init__(f"Aircraft '{aircraft_id}' not found")


class FlightNotFoundError(NotFoundError):
    def __init__(self, flight_id: str):
        self.flight_id = flight_id
        super().__init__(f"Flight '{flight_id}' not found")


class RecordNotFoundError(NotFoundError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Maintenance record '{record_id}' not found")


class FlightCancelledError(SchedulerError):
    def __init__(self, flight_id: str):
        self.flight_id = flight_id
        super().__init__(f"Flight '{flight_id}' is cancelled and cannot be changed")


class SlotUnavailableError(SchedulerError):
    """A manually requested check slot clashes with flights, checks or home base."""

    def __init__(self, aircraft_id: str, tier, reason: str):
        self.aircraft_id = aircraft_id
        self.tier = tier
        self.reason = reason
        super().__init__(
            f"Cannot book {_tier_name(tier)} check for aircraft '{aircraft_id}': {reason}"
        )


class TierExpiredError(SchedulerError):
    """Auto-scheduling cannot be enabled for a tier that has already lapsed."""

    def __init__(self, aircraft_id: str, tier):
        self.aircraft_id = aircraft_id
        self.tier = tier
        super().__init__(
            f"{_tier_name(tier)} check on aircraft '{aircraft_id}' has already expired. "
            "Perform the check before enabling auto-scheduling."
        )


class UnplaceableCheckError(SchedulerError):
    """An expired check could not be placed even at the forced slot."""

    def __init__(self, aircraft_id: str, tier, reason: str = ""):
        self.aircraft_id = aircraft_id
        self.tier = tier
        self.reason = reason
        message = f"Cannot schedule expired {_tier_name(tier)} check for aircraft '{aircraft_id}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class RescheduleError(SchedulerError):
    """A conflicting check could not be moved without letting it expire."""

    def __init__(self, aircraft_id: str, tier, record_id: str | None = None):
        self.aircraft_id = aircraft_id
        self.tier = tier
        self.record_id = record_id
        super().__init__(
            f"Cannot reschedule {_tier_name(tier)} check for aircraft '{aircraft_id}' "
            "without expiring it. Move or cancel the conflicting flight."
        )


def _tier_name(tier) -> str:
    value = getattr(tier, "value", tier)
    return value.capitalize() if len(value) > 1 else f"{value}"
