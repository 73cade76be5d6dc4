from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from evaluation_cycles.core.errors import CycleNotFound, DuplicateCycleName, OpenCycleConflict
from evaluation_cycles.cycles.store import CycleStore
from evaluation_cycles.models.evaluation_cycle import EvaluationCycle
from evaluation_cycles.schemas.cycle import Cycle, CycleStatus


def to_domain(c: EvaluationCycle) -> Cycle:
    return Cycle(
        id=c.id,
        name=c.name,
        status=c.status,
        phase=c.phase,
        start_date=c.start_date,
        end_date=c.end_date,
        assessment_deadline=c.assessment_deadline,
        manager_deadline=c.manager_deadline,
        equalization_deadline=c.equalization_deadline,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def _column_value(value: Any) -> Any:
    # enums are stored as their string values
    return getattr(value, "value", value)


def _conflict(exc: IntegrityError, cycle_ref: str | None, fields: dict[str, Any]) -> Exception:
    # lost a race on one of the unique indexes
    if _column_value(fields.get("status")) == CycleStatus.OPEN.value:
        return OpenCycleConflict(cycle_ref)
    if "name" in fields:
        return DuplicateCycleName(fields["name"])
    return exc


class SqlCycleStore(CycleStore):
    def __init__(self, db: Session):
        self._db = db
        self._atomic_depth = 0

    def _filtered(self, query, status: CycleStatus | None, search: str | None):
        if status is not None:
            query = query.where(EvaluationCycle.status == _column_value(status))
        if search:
            query = query.where(EvaluationCycle.name.ilike(f"%{search.lower()}%"))
        return query

    def _commit(self) -> None:
        if self._atomic_depth:
            self._db.flush()
        else:
            self._db.commit()

    def get(self, cycle_id: str, *, for_update: bool = False) -> Cycle | None:
        query = select(EvaluationCycle).where(EvaluationCycle.id == cycle_id)
        if for_update:
            query = query.with_for_update()
        c = self._db.execute(query.execution_options(populate_existing=True)).scalar_one_or_none()
        return to_domain(c) if c else None

    def get_by_name(self, name: str) -> Cycle | None:
        c = self._db.execute(
            select(EvaluationCycle).where(EvaluationCycle.name == name)
        ).scalar_one_or_none()
        return to_domain(c) if c else None

    def list(
        self,
        *,
        status: CycleStatus | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Cycle]:
        query = self._filtered(select(EvaluationCycle), status, search)
        query = query.order_by(EvaluationCycle.created_at.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        rows = self._db.execute(query.execution_options(populate_existing=True)).scalars().all()
        return [to_domain(c) for c in rows]

    def count(self, *, status: CycleStatus | None = None, search: str | None = None) -> int:
        query = self._filtered(select(func.count()).select_from(EvaluationCycle), status, search)
        return self._db.execute(query).scalar_one()

    def create(self, **fields: Any) -> Cycle:
        c = EvaluationCycle(**{k: _column_value(v) for k, v in fields.items()})
        self._db.add(c)
        try:
            self._commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise _conflict(exc, fields.get("name"), fields) from exc
        self._db.refresh(c)
        return to_domain(c)

    def update(self, cycle_id: str, **fields: Any) -> Cycle:
        c = self._db.get(EvaluationCycle, cycle_id)
        if c is None:
            raise CycleNotFound(cycle_id)
        for key, value in fields.items():
            setattr(c, key, _column_value(value))
        c.updated_at = datetime.now(timezone.utc)
        try:
            self._commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise _conflict(exc, cycle_id, fields) from exc
        self._db.refresh(c)
        return to_domain(c)

    def update_by_status(self, status: CycleStatus, /, **fields: Any) -> int:
        values = {k: _column_value(v) for k, v in fields.items()}
        values["updated_at"] = datetime.now(timezone.utc)
        result = self._db.execute(
            update(EvaluationCycle)
            .where(EvaluationCycle.status == _column_value(status))
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        self._commit()
        return result.rowcount

    @contextmanager
    def atomic(self) -> Iterator["SqlCycleStore"]:
        if self._atomic_depth:
            self._atomic_depth += 1
            try:
                yield self
            finally:
                self._atomic_depth -= 1
            return

        self._atomic_depth = 1
        try:
            yield self
        except Exception:
            self._atomic_depth = 0
            self._db.rollback()
            raise
        self._atomic_depth = 0
        try:
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
