import math
from datetime import datetime, timedelta

from loguru import logger

from evaluation_cycles.core.clock import Clock, utc_now
from evaluation_cycles.core.errors import (
    AlreadyActive,
    CycleNotFound,
    DuplicateCycleName,
    InvalidCycleState,
    InvalidDateOrdering,
    NoActiveCycle,
    WrongCyclePhase,
)
from evaluation_cycles.cycles.store import CycleStore
from evaluation_cycles.cycles.validator import (
    next_phase,
    validate_date_consistency,
    validate_no_overlap,
    validate_phase_transition,
    validate_status_transition,
)
from evaluation_cycles.schemas.cycle import (
    ActiveCycleRef,
    ActivePhaseInfo,
    Cycle,
    CycleActivate,
    CycleCreate,
    CycleHeader,
    CyclePhase,
    CycleStatus,
    DateWindow,
    DeadlineEntry,
    DeadlineReport,
    DeadlineStatus,
    DeadlineSummary,
    PhaseGate,
)

PHASE_DESCRIPTIONS = {
    CyclePhase.ASSESSMENTS: "Assessments (self, 360, mentoring, reference)",
    CyclePhase.MANAGER_REVIEWS: "Manager reviews",
    CyclePhase.EQUALIZATION: "Equalization",
}

ALLOWED_EVALUATIONS = {
    CyclePhase.ASSESSMENTS: {
        "self_assessment": True,
        "assessment_360": True,
        "mentoring_assessment": True,
        "reference_feedback": True,
        "manager_assessment": False,
    },
    CyclePhase.MANAGER_REVIEWS: {
        "self_assessment": False,
        "assessment_360": False,
        "mentoring_assessment": False,
        "reference_feedback": False,
        "manager_assessment": True,
    },
    CyclePhase.EQUALIZATION: {
        "self_assessment": False,
        "assessment_360": False,
        "mentoring_assessment": False,
        "reference_feedback": False,
        "manager_assessment": False,
    },
}

# (phase the deadline closes, Cycle field, label)
PHASE_DEADLINES = (
    (CyclePhase.ASSESSMENTS, "assessment_deadline", "Assessments deadline"),
    (CyclePhase.MANAGER_REVIEWS, "manager_deadline", "Manager reviews deadline"),
    (CyclePhase.EQUALIZATION, "equalization_deadline", "Equalization deadline"),
)


def swap_open_cycle(tx: CycleStore, cycle_id: str, **fields) -> Cycle:
    """
    Close every OPEN cycle, then open `cycle_id` with `fields` applied.
    Must be called inside `tx.atomic()` so no reader sees zero or two OPEN cycles.
    """
    demoted = tx.update_by_status(CycleStatus.OPEN, status=CycleStatus.CLOSED)
    cycle = tx.update(cycle_id, status=CycleStatus.OPEN, **fields)
    if demoted:
        logger.info("closed {} open cycle(s) before opening cycle id={}", demoted, cycle_id)
    return cycle


class CycleLifecycleService:
    """Command and query API over evaluation cycles. Validation always precedes writes."""

    def __init__(
        self,
        store: CycleStore,
        *,
        clock: Clock = utc_now,
        end_date_grace: timedelta = timedelta(days=7),
        urgent_threshold_days: int = 3,
    ):
        self.store = store
        self.clock = clock
        self.end_date_grace = end_date_grace
        self.urgent_threshold_days = urgent_threshold_days

    # queries

    def get_cycle(self, cycle_id: str) -> Cycle:
        cycle = self.store.get(cycle_id)
        if cycle is None:
            raise CycleNotFound(cycle_id)
        return cycle

    def list_cycles(
        self,
        *,
        status: CycleStatus | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Cycle]:
        return self.store.list(status=status, search=search, limit=limit, offset=offset)

    def count_cycles(self, *, status: CycleStatus | None = None, search: str | None = None) -> int:
        return self.store.count(status=status, search=search)

    def get_active_cycle(self) -> Cycle | None:
        # newest first, so stored data holding two OPEN rows still yields one answer
        open_cycles = self.store.list(status=CycleStatus.OPEN, limit=1)
        return open_cycles[0] if open_cycles else None

    def get_active_cycle_with_phase(self) -> ActivePhaseInfo | None:
        cycle = self.get_active_cycle()
        if cycle is None:
            return None
        return ActivePhaseInfo(
            cycle_id=cycle.id,
            cycle_name=cycle.name,
            current_phase=cycle.phase,
            phase_description=PHASE_DESCRIPTIONS[cycle.phase],
            allowed_evaluations=dict(ALLOWED_EVALUATIONS[cycle.phase]),
            next_phase=next_phase(cycle.phase),
        )

    def get_deadline_report(self, cycle_id: str, now: datetime | None = None) -> DeadlineReport:
        cycle = self.get_cycle(cycle_id)
        now = now or self.clock()

        deadlines: list[DeadlineEntry] = []
        for phase, field, label in PHASE_DEADLINES:
            deadline = getattr(cycle, field)
            if deadline is None:
                continue
            days_until = math.ceil((deadline - now) / timedelta(days=1))
            if days_until < 0:
                tag = DeadlineStatus.OVERDUE
            elif days_until <= self.urgent_threshold_days:
                tag = DeadlineStatus.URGENT
            else:
                tag = DeadlineStatus.OK
            deadlines.append(
                DeadlineEntry(phase=phase, name=label, deadline=deadline, days_until=days_until, status=tag)
            )

        inconsistencies: list[str] = []
        try:
            validate_date_consistency(cycle)
        except InvalidDateOrdering as exc:
            inconsistencies.append(exc.message)

        return DeadlineReport(
            cycle=CycleHeader(
                id=cycle.id,
                name=cycle.name,
                status=cycle.status,
                phase=cycle.phase,
                start_date=cycle.start_date,
                end_date=cycle.end_date,
            ),
            deadlines=deadlines,
            summary=DeadlineSummary(
                total_deadlines=len(deadlines),
                overdue_count=sum(1 for d in deadlines if d.status == DeadlineStatus.OVERDUE),
                urgent_count=sum(1 for d in deadlines if d.status == DeadlineStatus.URGENT),
                ok_count=sum(1 for d in deadlines if d.status == DeadlineStatus.OK),
            ),
            inconsistencies=inconsistencies,
            has_inconsistencies=bool(inconsistencies),
        )

    # phase gate used by assessment modules

    def validate_active_cycle_exists(self) -> ActiveCycleRef:
        cycle = self.get_active_cycle()
        if cycle is None:
            raise NoActiveCycle()
        return ActiveCycleRef(id=cycle.id, name=cycle.name)

    def validate_active_cycle_phase(self, required_phase: CyclePhase) -> PhaseGate:
        required_phase = CyclePhase(required_phase)
        cycle = self.get_active_cycle()
        if cycle is None:
            raise NoActiveCycle()
        if cycle.phase != required_phase:
            raise WrongCyclePhase(cycle.phase, required_phase)
        return PhaseGate(id=cycle.id, name=cycle.name, phase=cycle.phase)

    def is_cycle_active(self, name: str) -> bool:
        cycle = self.get_active_cycle()
        return cycle is not None and cycle.name == name

    # commands

    def create_cycle(self, dto: CycleCreate) -> Cycle:
        if self.store.get_by_name(dto.name) is not None:
            raise DuplicateCycleName(dto.name)

        fields = dto.model_dump()
        validate_date_consistency(fields)

        active = self.get_active_cycle()
        if active and active.start_date and active.end_date and dto.start_date:
            validate_no_overlap(
                DateWindow(start=dto.start_date, end=dto.end_date),
                DateWindow(start=active.start_date, end=active.end_date),
            )

        cycle = self.store.create(
            **fields,
            status=CycleStatus.UPCOMING,
            phase=CyclePhase.ASSESSMENTS,
        )
        logger.info("cycle created id={} name={}", cycle.id, cycle.name)
        return cycle

    def activate_cycle(self, cycle_id: str, dto: CycleActivate | None = None) -> Cycle:
        dto = dto or CycleActivate()

        with self.store.atomic() as tx:
            current = tx.get(cycle_id, for_update=True)
            if current is None:
                raise CycleNotFound(cycle_id)
            if current.status == CycleStatus.OPEN:
                raise AlreadyActive(cycle_id)
            validate_status_transition(current.status, CycleStatus.OPEN)

            changes = dto.model_dump(exclude_none=True, exclude={"auto_set_end_date"})
            merged = current.model_copy(update=changes)
            # TODO: confirm with product whether an explicit end_date should survive this derivation
            if dto.auto_set_end_date is not False and merged.equalization_deadline is not None:
                changes["end_date"] = merged.equalization_deadline + self.end_date_grace
                merged = merged.model_copy(update=changes)
            validate_date_consistency(merged)

            cycle = swap_open_cycle(tx, cycle_id, **changes)

        logger.info("cycle activated id={} name={} end_date={}", cycle.id, cycle.name, cycle.end_date)
        return cycle

    def update_status(self, cycle_id: str, status: CycleStatus) -> Cycle:
        status = CycleStatus(status)

        with self.store.atomic() as tx:
            current = tx.get(cycle_id, for_update=True)
            if current is None:
                raise CycleNotFound(cycle_id)
            if current.status == status:
                return current
            validate_status_transition(current.status, status)

            if status == CycleStatus.OPEN:
                cycle = swap_open_cycle(tx, cycle_id)
            else:
                cycle = tx.update(cycle_id, status=status)

        logger.info("cycle status changed id={} {} -> {}", cycle_id, current.status.value, status.value)
        return cycle

    def update_phase(self, cycle_id: str, phase: CyclePhase) -> Cycle:
        phase = CyclePhase(phase)

        with self.store.atomic() as tx:
            current = tx.get(cycle_id, for_update=True)
            if current is None:
                raise CycleNotFound(cycle_id)
            if current.status != CycleStatus.OPEN:
                raise InvalidCycleState(
                    f"Cycle {cycle_id} is {current.status.value}; phase can only change while OPEN"
                )
            validate_phase_transition(current.phase, phase)
            cycle = tx.update(cycle_id, phase=phase)

        logger.info("cycle phase changed id={} {} -> {}", cycle_id, current.phase.value, phase.value)
        return cycle
