import enum
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from evaluation_cycles.core.clock import as_utc

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CycleStatus(str, enum.Enum):
    UPCOMING = "UPCOMING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CyclePhase(str, enum.Enum):
    ASSESSMENTS = "ASSESSMENTS"
    MANAGER_REVIEWS = "MANAGER_REVIEWS"
    EQUALIZATION = "EQUALIZATION"


class DeadlineStatus(str, enum.Enum):
    OK = "OK"
    URGENT = "URGENT"
    OVERDUE = "OVERDUE"


# Chain order of the date fields; each present member must precede the next present one.
DATE_FIELDS = (
    "start_date",
    "assessment_deadline",
    "manager_deadline",
    "equalization_deadline",
    "end_date",
)


class Cycle(BaseModel):
    """Snapshot of a persisted evaluation cycle."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    status: CycleStatus = CycleStatus.UPCOMING
    phase: CyclePhase = CyclePhase.ASSESSMENTS

    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    assessment_deadline: UtcDatetime | None = None
    manager_deadline: UtcDatetime | None = None
    equalization_deadline: UtcDatetime | None = None

    created_at: UtcDatetime
    updated_at: UtcDatetime


class CycleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    assessment_deadline: UtcDatetime | None = None
    manager_deadline: UtcDatetime | None = None
    equalization_deadline: UtcDatetime | None = None


class CycleActivate(BaseModel):
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    assessment_deadline: UtcDatetime | None = None
    manager_deadline: UtcDatetime | None = None
    equalization_deadline: UtcDatetime | None = None
    # None and True both derive end_date from equalization_deadline
    auto_set_end_date: bool | None = None


class CycleStatusUpdate(BaseModel):
    status: CycleStatus


class CyclePhaseUpdate(BaseModel):
    phase: CyclePhase


class DateWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: UtcDatetime | None = None
    end: UtcDatetime | None = None

    def __str__(self) -> str:
        start = self.start.isoformat() if self.start else "-"
        end = self.end.isoformat() if self.end else "-"
        return f"[{start}, {end}]"


class CycleHeader(BaseModel):
    id: str
    name: str
    status: CycleStatus
    phase: CyclePhase
    start_date: datetime | None
    end_date: datetime | None


class DeadlineEntry(BaseModel):
    phase: CyclePhase
    name: str
    deadline: datetime
    days_until: int
    status: DeadlineStatus


class DeadlineSummary(BaseModel):
    total_deadlines: int
    overdue_count: int
    urgent_count: int
    ok_count: int


class DeadlineReport(BaseModel):
    """Deadline countdown for one cycle. Inconsistencies are reported, never raised."""
    cycle: CycleHeader
    deadlines: list[DeadlineEntry]
    summary: DeadlineSummary
    inconsistencies: list[str]
    has_inconsistencies: bool


class PhaseGate(BaseModel):
    id: str
    name: str
    phase: CyclePhase


class ActiveCycleRef(BaseModel):
    id: str
    name: str


class ActivePhaseInfo(BaseModel):
    cycle_id: str
    cycle_name: str
    current_phase: CyclePhase
    phase_description: str
    allowed_evaluations: dict[str, bool]
    next_phase: CyclePhase | None


class ForceCheckRequest(BaseModel):
    now: UtcDatetime | None = None


class PhaseChangeOut(BaseModel):
    cycle_id: str
    from_phase: CyclePhase
    to_phase: CyclePhase


class ForceCheckResponse(BaseModel):
    message: str
    timestamp: datetime
    activated: list[str]
    phase_changes: list[PhaseChangeOut]
    closed: list[str]
    errors: dict[str, str]
