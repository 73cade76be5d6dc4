"""
Error taxonomy for the cycle engine.

Every error raised on the command path derives from CycleError and carries the
HTTP status and stable code the API layer translates it into. The engine itself
never raises HTTPException.
"""

from typing import Any


class CycleError(Exception):
    status_code = 400
    code = "cycle_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class CycleNotFound(CycleError):
    status_code = 404
    code = "cycle_not_found"

    def __init__(self, cycle_id: str):
        super().__init__(f"Cycle not found: {cycle_id}")
        self.cycle_id = cycle_id


class CycleValidationError(CycleError):
    """Caller-caused error. Raised before anything is written."""


class DuplicateCycleName(CycleValidationError):
    status_code = 409
    code = "duplicate_cycle_name"

    def __init__(self, name: str):
        super().__init__(f"A cycle named '{name}' already exists")
        self.name = name


class InvalidDateOrdering(CycleValidationError):
    code = "invalid_date_ordering"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class OverlappingCycleWindow(CycleValidationError):
    status_code = 409
    code = "overlapping_cycle_window"

    def __init__(self, candidate, active_window):
        super().__init__(
            f"Cycle window {candidate} overlaps the open cycle window {active_window}"
        )
        self.candidate = candidate
        self.active_window = active_window


class IllegalPhaseTransition(CycleValidationError):
    code = "illegal_phase_transition"

    def __init__(self, current, requested):
        super().__init__(
            f"Illegal phase transition: {_value(current)} -> {_value(requested)}"
        )
        self.current = current
        self.requested = requested


class IllegalStatusTransition(CycleValidationError):
    status_code = 409
    code = "illegal_status_transition"

    def __init__(self, current, requested):
        super().__init__(
            f"Illegal status transition: {_value(current)} -> {_value(requested)}"
        )
        self.current = current
        self.requested = requested


class OpenCycleConflict(CycleValidationError):
    status_code = 409
    code = "open_cycle_conflict"

    def __init__(self, cycle_id: str):
        super().__init__(f"Cycle {cycle_id} cannot be opened: another cycle was opened concurrently")
        self.cycle_id = cycle_id


class InvalidCycleState(CycleValidationError):
    status_code = 409
    code = "invalid_cycle_state"


class AlreadyActive(CycleValidationError):
    status_code = 409
    code = "already_active"

    def __init__(self, cycle_id: str):
        super().__init__(f"Cycle {cycle_id} is already OPEN")
        self.cycle_id = cycle_id


class NoActiveCycle(CycleValidationError):
    code = "no_active_cycle"

    def __init__(self):
        super().__init__("no active cycle")


class WrongCyclePhase(CycleValidationError):
    code = "wrong_cycle_phase"

    def __init__(self, current, required):
        super().__init__(f"wrong phase: current={_value(current)} required={_value(required)}")
        self.current = current
        self.required = required


def _value(v) -> str:
    return getattr(v, "value", v)
