import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, CheckConstraint, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from evaluation_cycles.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvaluationCycle(Base):
    __tablename__ = "evaluation_cycles"
    __table_args__ = (
        UniqueConstraint("name", name="uq_evaluation_cycles_name"),
        CheckConstraint(
            "status IN ('UPCOMING','OPEN','CLOSED')",
            name="ck_evaluation_cycles_status",
        ),
        CheckConstraint(
            "phase IN ('ASSESSMENTS','MANAGER_REVIEWS','EQUALIZATION')",
            name="ck_evaluation_cycles_phase",
        ),
        Index("ix_evaluation_cycles_status", "status"),
        # at most one OPEN row
        Index(
            "uq_evaluation_cycles_single_open",
            "status",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="UPCOMING")
    phase: Mapped[str] = mapped_column(String(20), nullable=False, default="ASSESSMENTS")

    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    assessment_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    manager_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    equalization_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
