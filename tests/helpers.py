import copy
import itertools
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

from evaluation_cycles.core.errors import CycleNotFound, DuplicateCycleName
from evaluation_cycles.cycles.service import CycleLifecycleService
from evaluation_cycles.cycles.store import CycleStore
from evaluation_cycles.schemas.cycle import Cycle, CycleCreate, CyclePhase, CycleStatus


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class InMemoryCycleStore(CycleStore):
    """
    Dict-backed store. `atomic()` snapshots the rows and restores them if the
    block raises. `writes` counts committed mutations.
    """

    def __init__(self):
        self._rows: dict[str, Cycle] = {}
        self._seq: dict[str, int] = {}
        self._counter = itertools.count()
        self._depth = 0
        self.writes = 0

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _matching(self, status, search) -> list[Cycle]:
        rows = list(self._rows.values())
        if status is not None:
            rows = [c for c in rows if c.status == CycleStatus(status)]
        if search:
            rows = [c for c in rows if search.lower() in c.name.lower()]
        return rows

    def get(self, cycle_id, *, for_update=False):
        return self._rows.get(cycle_id)

    def get_by_name(self, name):
        return next((c for c in self._rows.values() if c.name == name), None)

    def list(self, *, status=None, search=None, limit=None, offset=0):
        rows = sorted(
            self._matching(status, search),
            key=lambda c: (c.created_at, self._seq[c.id]),
            reverse=True,
        )
        rows = rows[offset:]
        return rows[:limit] if limit is not None else rows

    def count(self, *, status=None, search=None):
        return len(self._matching(status, search))

    def create(self, **fields):
        if self.get_by_name(fields["name"]) is not None:
            raise DuplicateCycleName(fields["name"])
        now = self._now()
        cycle = Cycle(id=str(uuid.uuid4()), created_at=now, updated_at=now, **fields)
        self._rows[cycle.id] = cycle
        self._seq[cycle.id] = next(self._counter)
        self.writes += 1
        return cycle

    def update(self, cycle_id, **fields):
        current = self._rows.get(cycle_id)
        if current is None:
            raise CycleNotFound(cycle_id)
        updated = current.model_copy(update={**fields, "updated_at": self._now()})
        self._rows[cycle_id] = updated
        self.writes += 1
        return updated

    def update_by_status(self, status, /, **fields):
        ids = [c.id for c in self._rows.values() if c.status == CycleStatus(status)]
        for cycle_id in ids:
            self.update(cycle_id, **fields)
        return len(ids)

    @contextmanager
    def atomic(self):
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        snapshot = (copy.copy(self._rows), copy.copy(self._seq), self.writes)
        self._depth = 1
        try:
            yield self
        except Exception:
            self._rows, self._seq, self.writes = snapshot
            raise
        finally:
            self._depth = 0


def make_service(store: CycleStore | None = None, now: datetime | None = None) -> CycleLifecycleService:
    return CycleLifecycleService(
        store or InMemoryCycleStore(),
        clock=FixedClock(now or utc(2025, 1, 15)),
    )


def cycle_dto(name: str = "2025.1", **overrides) -> CycleCreate:
    fields = {
        "name": name,
        "start_date": utc(2025, 1, 1),
        "end_date": utc(2025, 3, 31),
        "assessment_deadline": utc(2025, 2, 15),
        "manager_deadline": utc(2025, 3, 1),
        "equalization_deadline": utc(2025, 3, 15),
    }
    fields.update(overrides)
    return CycleCreate(**fields)


def seed_cycle(
    store: CycleStore,
    name: str,
    *,
    status: CycleStatus = CycleStatus.UPCOMING,
    phase: CyclePhase = CyclePhase.ASSESSMENTS,
    **dates,
) -> Cycle:
    """Write a cycle straight to the store, bypassing validation."""
    return store.create(name=name, status=status, phase=phase, **dates)


def open_count(store: CycleStore) -> int:
    return store.count(status=CycleStatus.OPEN)
