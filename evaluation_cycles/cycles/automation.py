"""
Time-driven transitions for evaluation cycles.

`CycleAutomationPass.run_once(now)` is one sweep: open cycles whose start date
has arrived, advance phases whose deadlines have passed and close cycles whose
end date has arrived. Every action re-reads the cycle inside a store transaction
and re-checks its trigger before writing, so overlapping or repeated sweeps with
the same `now` converge without applying anything twice.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from loguru import logger

from evaluation_cycles.core.clock import as_utc
from evaluation_cycles.cycles.service import CycleLifecycleService, swap_open_cycle
from evaluation_cycles.cycles.validator import validate_phase_transition
from evaluation_cycles.schemas.cycle import Cycle, CyclePhase, CycleStatus


@dataclass
class PhaseChange:
    cycle_id: str
    from_phase: CyclePhase
    to_phase: CyclePhase


@dataclass
class AutomationResult:
    """What one sweep changed, plus the per-cycle failures it skipped past."""

    now: datetime
    activated: list[str] = field(default_factory=list)
    phase_changes: list[PhaseChange] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.activated or self.phase_changes or self.closed)

    def to_dict(self) -> dict:
        return {
            "now": self.now.isoformat(),
            "activated": list(self.activated),
            "phase_changes": [
                {"cycle_id": p.cycle_id, "from": p.from_phase.value, "to": p.to_phase.value}
                for p in self.phase_changes
            ],
            "closed": list(self.closed),
            "errors": dict(self.errors),
        }


def due_phase(cycle: Cycle, now: datetime) -> CyclePhase | None:
    """The phase `cycle` should move to at `now`, or None. Never more than one step."""
    if (
        cycle.phase == CyclePhase.ASSESSMENTS
        and cycle.assessment_deadline is not None
        and now > cycle.assessment_deadline
    ):
        return CyclePhase.MANAGER_REVIEWS
    if (
        cycle.phase == CyclePhase.MANAGER_REVIEWS
        and cycle.manager_deadline is not None
        and now > cycle.manager_deadline
    ):
        return CyclePhase.EQUALIZATION
    return None


class CycleAutomationPass:
    def __init__(self, service: CycleLifecycleService):
        self.service = service
        self.store = service.store

    def run_once(self, now: datetime) -> AutomationResult:
        now = as_utc(now)
        result = AutomationResult(now=now)
        logger.debug("cycle automation pass start now={}", now.isoformat())

        self._sweep("activate", lambda: self._due_to_open(now), self._open_if_due, now, result)
        self._sweep(
            "advance_phase",
            lambda: self.store.list(status=CycleStatus.OPEN),
            self._advance_while_due,
            now,
            result,
        )
        self._sweep(
            "close",
            lambda: [
                c for c in self.store.list(status=CycleStatus.OPEN)
                if c.end_date is not None and now >= c.end_date
            ],
            self._close_if_due,
            now,
            result,
        )

        if result.changed or result.errors:
            logger.info("cycle automation pass done {}", result.to_dict())
        return result

    def force_check(self, now: datetime | None = None) -> AutomationResult:
        logger.info("manual cycle automation check requested")
        return self.run_once(now or self.service.clock())

    def _sweep(
        self,
        step: str,
        candidates: Callable[[], list[Cycle]],
        action: Callable[[str, datetime, AutomationResult], None],
        now: datetime,
        result: AutomationResult,
    ) -> None:
        try:
            cycles = candidates()
        except Exception as exc:
            logger.exception("cycle automation step={} could not load cycles", step)
            result.errors[f"<{step}>"] = str(exc)
            return

        for cycle in cycles:
            try:
                action(cycle.id, now, result)
            except Exception as exc:
                # one bad cycle must not stop the sweep; the next tick retries it
                logger.exception("cycle automation step={} failed for cycle id={} name={}", step, cycle.id, cycle.name)
                result.errors[cycle.id] = f"{step}: {exc}"

    def _due_to_open(self, now: datetime) -> list[Cycle]:
        due = [
            c for c in self.store.list(status=CycleStatus.UPCOMING)
            if c.start_date is not None and c.start_date <= now
        ]
        # the latest start is opened last and ends up as the single OPEN cycle
        return sorted(due, key=lambda c: (c.start_date, c.created_at))

    def _open_if_due(self, cycle_id: str, now: datetime, result: AutomationResult) -> None:
        with self.store.atomic() as tx:
            current = tx.get(cycle_id, for_update=True)
            if (
                current is None
                or current.status != CycleStatus.UPCOMING
                or current.start_date is None
                or current.start_date > now
            ):
                return
            swap_open_cycle(tx, cycle_id, phase=CyclePhase.ASSESSMENTS)

        result.activated.append(cycle_id)
        logger.info(
            "cycle name={} opened automatically, start_date {} reached",
            current.name,
            current.start_date.isoformat(),
        )

    def _advance_while_due(self, cycle_id: str, now: datetime, result: AutomationResult) -> None:
        # one committed step at a time so the phase never skips
        while True:
            with self.store.atomic() as tx:
                current = tx.get(cycle_id, for_update=True)
                if current is None or current.status != CycleStatus.OPEN:
                    return
                target = due_phase(current, now)
                if target is None:
                    return
                validate_phase_transition(current.phase, target)
                tx.update(cycle_id, phase=target)

            result.phase_changes.append(PhaseChange(cycle_id, current.phase, target))
            logger.info(
                "cycle name={} moved automatically from {} to {}, deadline passed",
                current.name,
                current.phase.value,
                target.value,
            )

    def _close_if_due(self, cycle_id: str, now: datetime, result: AutomationResult) -> None:
        with self.store.atomic() as tx:
            current = tx.get(cycle_id, for_update=True)
            if (
                current is None
                or current.status != CycleStatus.OPEN
                or current.end_date is None
                or now < current.end_date
            ):
                return
            tx.update(cycle_id, status=CycleStatus.CLOSED)

        result.closed.append(cycle_id)
        logger.info(
            "cycle name={} closed automatically, end_date {} reached",
            current.name,
            current.end_date.isoformat(),
        )
