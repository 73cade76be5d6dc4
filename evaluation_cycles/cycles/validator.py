"""
Pure validation rules for evaluation cycles.

Nothing here touches the store or the clock: every function is deterministic in
its arguments and either returns normally or raises a CycleValidationError.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from evaluation_cycles.core.errors import (
    IllegalPhaseTransition,
    IllegalStatusTransition,
    InvalidDateOrdering,
    OverlappingCycleWindow,
)
from evaluation_cycles.schemas.cycle import DATE_FIELDS, CyclePhase, CycleStatus, DateWindow

PHASE_TRANSITIONS: dict[CyclePhase, tuple[CyclePhase, ...]] = {
    CyclePhase.ASSESSMENTS: (CyclePhase.MANAGER_REVIEWS,),
    CyclePhase.MANAGER_REVIEWS: (CyclePhase.EQUALIZATION,),
    CyclePhase.EQUALIZATION: (),
}

STATUS_TRANSITIONS: dict[CycleStatus, tuple[CycleStatus, ...]] = {
    CycleStatus.UPCOMING: (CycleStatus.OPEN,),
    CycleStatus.OPEN: (CycleStatus.CLOSED,),
    CycleStatus.CLOSED: (),
}

PHASE_ORDER = (CyclePhase.ASSESSMENTS, CyclePhase.MANAGER_REVIEWS, CyclePhase.EQUALIZATION)


def _read(fields: Any, name: str) -> datetime | None:
    if isinstance(fields, Mapping):
        return fields.get(name)
    return getattr(fields, name, None)


def validate_date_consistency(fields: Any) -> None:
    """
    Check start_date < assessment_deadline < manager_deadline < equalization_deadline < end_date
    over the fields that are present. Comparing consecutive present members in chain
    order also keeps every deadline inside [start_date, end_date].
    """
    present = [(name, _read(fields, name)) for name in DATE_FIELDS]
    present = [(name, value) for name, value in present if value is not None]

    for (earlier_name, earlier), (later_name, later) in zip(present, present[1:]):
        if not earlier < later:
            raise InvalidDateOrdering(
                f"{later_name} ({later.isoformat()}) must be after "
                f"{earlier_name} ({earlier.isoformat()})"
            )


def validate_phase_transition(current: CyclePhase, requested: CyclePhase) -> None:
    current, requested = CyclePhase(current), CyclePhase(requested)
    if requested not in PHASE_TRANSITIONS[current]:
        raise IllegalPhaseTransition(current, requested)


def validate_status_transition(current: CycleStatus, requested: CycleStatus) -> None:
    current, requested = CycleStatus(current), CycleStatus(requested)
    if current == requested:
        return
    if requested not in STATUS_TRANSITIONS[current]:
        raise IllegalStatusTransition(current, requested)


def validate_no_overlap(candidate: DateWindow, active_window: DateWindow | None) -> None:
    # an undated window cannot conflict; a candidate with no end is open-ended
    if active_window is None or active_window.start is None or active_window.end is None:
        return
    if candidate.start is None:
        return

    starts_before_active_ends = candidate.start <= active_window.end
    ends_after_active_starts = candidate.end is None or candidate.end >= active_window.start
    if starts_before_active_ends and ends_after_active_starts:
        raise OverlappingCycleWindow(candidate, active_window)


def next_phase(phase: CyclePhase) -> CyclePhase | None:
    allowed = PHASE_TRANSITIONS[CyclePhase(phase)]
    return allowed[0] if allowed else None


def phase_rank(phase: CyclePhase) -> int:
    return PHASE_ORDER.index(CyclePhase(phase))
