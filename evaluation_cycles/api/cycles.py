from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from loguru import logger
from sqlalchemy.orm import Session

from evaluation_cycles.core.clock import utc_now
from evaluation_cycles.core.security import MANAGE_CYCLES, Principal, get_current_principal, require_capability
from evaluation_cycles.cycles.automation import CycleAutomationPass
from evaluation_cycles.cycles.scheduler import build_service
from evaluation_cycles.cycles.service import CycleLifecycleService
from evaluation_cycles.db.session import get_db
from evaluation_cycles.schemas.cycle import (
    ActivePhaseInfo,
    Cycle,
    CycleActivate,
    CycleCreate,
    CyclePhaseUpdate,
    CycleStatus,
    CycleStatusUpdate,
    DeadlineReport,
    ForceCheckRequest,
    ForceCheckResponse,
    PhaseChangeOut,
)
from evaluation_cycles.schemas.pagination import PaginatedResponse

router = APIRouter(prefix="/cycles", tags=["evaluation-cycles"])


def get_cycle_service(db: Session = Depends(get_db)) -> CycleLifecycleService:
    return build_service(db)


@router.get("")
def list_cycles(
    search: str | None = Query(default=None, description="Search by name"),
    status: CycleStatus | None = Query(default=None, description="Filter by status (UPCOMING, OPEN, CLOSED)"),
    limit: int = Query(default=100, ge=1, le=500, description="Maximum number of results"),
    offset: int = Query(default=0, ge=0, description="Number of results to skip"),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(get_current_principal),
):
    """
    List evaluation cycles, newest first.

    Use ?include_pagination=true to get pagination metadata.
    """
    items = service.list_cycles(status=status, search=search, limit=limit, offset=offset)

    if include_pagination:
        total = service.count_cycles(status=status, search=search)
        return PaginatedResponse[Cycle].build(items, total=total, limit=limit, offset=offset)
    return items


@router.get("/active", response_model=Cycle)
def get_active_cycle(
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(get_current_principal),
):
    cycle = service.get_active_cycle()
    if cycle is None:
        raise HTTPException(status_code=404, detail="No active cycle")
    return cycle


@router.get("/active/phase", response_model=ActivePhaseInfo)
def get_active_phase(
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(get_current_principal),
):
    """
    Current phase of the active cycle and which evaluation kinds it allows.
    Useful for clients deciding which actions to offer.
    """
    info = service.get_active_cycle_with_phase()
    if info is None:
        raise HTTPException(status_code=404, detail="No active cycle")
    return info


@router.post("/automation/force-check", response_model=ForceCheckResponse)
def force_automation_check(
    payload: ForceCheckRequest | None = Body(default=None),
    service: CycleLifecycleService = Depends(get_cycle_service),
    principal: Principal = Depends(require_capability(MANAGE_CYCLES)),
):
    """
    Run one automation pass now: open due cycles, advance phases past their
    deadlines and close cycles past their end date.
    """
    now = payload.now if payload and payload.now else None
    logger.info("force-check requested by {}", principal.email)
    result = CycleAutomationPass(service).force_check(now)

    return ForceCheckResponse(
        message="Automation check completed",
        timestamp=utc_now(),
        activated=result.activated,
        phase_changes=[
            PhaseChangeOut(cycle_id=p.cycle_id, from_phase=p.from_phase, to_phase=p.to_phase)
            for p in result.phase_changes
        ],
        closed=result.closed,
        errors=result.errors,
    )


@router.get("/{cycle_id}", response_model=Cycle)
def get_cycle(
    cycle_id: str,
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(get_current_principal),
):
    return service.get_cycle(cycle_id)


@router.get("/{cycle_id}/deadlines", response_model=DeadlineReport)
def get_cycle_deadlines(
    cycle_id: str,
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(get_current_principal),
):
    """
    Deadline countdown per phase (OK, URGENT within 3 days, OVERDUE) plus any
    date inconsistencies found in the stored cycle.
    """
    return service.get_deadline_report(cycle_id)


@router.post("", response_model=Cycle, status_code=status.HTTP_201_CREATED)
def create_cycle(
    payload: CycleCreate,
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(require_capability(MANAGE_CYCLES)),
):
    return service.create_cycle(payload)


@router.post("/{cycle_id}/activate", response_model=Cycle)
def activate_cycle(
    cycle_id: str,
    payload: CycleActivate | None = Body(default=None),
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(require_capability(MANAGE_CYCLES)),
):
    """
    Open a cycle and close whichever cycle is currently open, atomically.
    Deadlines in the body override the stored ones. Unless auto_set_end_date is
    false, end_date is derived as equalization_deadline plus the grace period.
    """
    return service.activate_cycle(cycle_id, payload)


@router.patch("/{cycle_id}/status", response_model=Cycle)
def update_cycle_status(
    cycle_id: str,
    payload: CycleStatusUpdate,
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(require_capability(MANAGE_CYCLES)),
):
    return service.update_status(cycle_id, payload.status)


@router.patch("/{cycle_id}/phase", response_model=Cycle)
def update_cycle_phase(
    cycle_id: str,
    payload: CyclePhaseUpdate,
    service: CycleLifecycleService = Depends(get_cycle_service),
    _: Principal = Depends(require_capability(MANAGE_CYCLES)),
):
    """
    Advance the phase of the open cycle. Phases only move forward:
    ASSESSMENTS -> MANAGER_REVIEWS -> EQUALIZATION.
    """
    return service.update_phase(cycle_id, payload.phase)
