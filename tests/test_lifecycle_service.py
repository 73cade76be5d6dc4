import random

import pytest

from evaluation_cycles.core.errors import (
    AlreadyActive,
    CycleError,
    CycleNotFound,
    DuplicateCycleName,
    IllegalPhaseTransition,
    IllegalStatusTransition,
    InvalidCycleState,
    InvalidDateOrdering,
    NoActiveCycle,
    OverlappingCycleWindow,
    WrongCyclePhase,
)
from evaluation_cycles.cycles.automation import CycleAutomationPass
from evaluation_cycles.cycles.validator import phase_rank
from evaluation_cycles.schemas.cycle import (
    CycleActivate,
    CyclePhase,
    CycleStatus,
    DeadlineStatus,
)
from tests.helpers import InMemoryCycleStore, cycle_dto, make_service, open_count, seed_cycle, utc


def test_create_cycle_starts_upcoming_in_assessments():
    service = make_service()

    cycle = service.create_cycle(cycle_dto("2025.1"))

    assert cycle.status == CycleStatus.UPCOMING
    assert cycle.phase == CyclePhase.ASSESSMENTS
    assert cycle.start_date == utc(2025, 1, 1)
    assert cycle.equalization_deadline == utc(2025, 3, 15)
    assert service.get_cycle(cycle.id) == cycle


def test_create_cycle_without_dates():
    service = make_service()
    cycle = service.create_cycle(
        cycle_dto(
            "undated",
            start_date=None,
            end_date=None,
            assessment_deadline=None,
            manager_deadline=None,
            equalization_deadline=None,
        )
    )
    assert cycle.start_date is None
    assert cycle.status == CycleStatus.UPCOMING


def test_create_cycle_rejects_duplicate_name_including_closed():
    store = InMemoryCycleStore()
    seed_cycle(store, "2024.2", status=CycleStatus.CLOSED)
    service = make_service(store)

    with pytest.raises(DuplicateCycleName):
        service.create_cycle(cycle_dto("2024.2"))


def test_create_cycle_rejects_deadline_before_start():
    store = InMemoryCycleStore()
    service = make_service(store)

    with pytest.raises(InvalidDateOrdering):
        service.create_cycle(cycle_dto("2025.1", start_date=utc(2025, 3, 1)))

    assert store.count() == 0


def test_create_cycle_rejects_window_overlapping_open_cycle():
    store = InMemoryCycleStore()
    seed_cycle(
        store,
        "2024.2",
        status=CycleStatus.OPEN,
        start_date=utc(2024, 12, 1),
        end_date=utc(2025, 1, 31),
    )
    service = make_service(store)

    with pytest.raises(OverlappingCycleWindow):
        service.create_cycle(cycle_dto("2025.1"))

    assert store.count() == 1


def test_create_cycle_allows_window_after_open_cycle():
    store = InMemoryCycleStore()
    seed_cycle(
        store,
        "2024.2",
        status=CycleStatus.OPEN,
        start_date=utc(2024, 7, 1),
        end_date=utc(2024, 12, 31),
    )
    service = make_service(store)

    cycle = service.create_cycle(cycle_dto("2025.1"))
    assert cycle.status == CycleStatus.UPCOMING


def test_create_cycle_skips_overlap_check_when_open_cycle_is_undated():
    store = InMemoryCycleStore()
    seed_cycle(store, "legacy", status=CycleStatus.OPEN)
    service = make_service(store)

    service.create_cycle(cycle_dto("2025.1"))
    assert store.count() == 2


def test_activate_cycle_swaps_open_cycle():
    store = InMemoryCycleStore()
    previous = seed_cycle(store, "2024.2", status=CycleStatus.OPEN, phase=CyclePhase.EQUALIZATION)
    service = make_service(store)
    target = service.create_cycle(cycle_dto("2025.1"))

    activated = service.activate_cycle(target.id)

    assert activated.status == CycleStatus.OPEN
    assert activated.phase == CyclePhase.ASSESSMENTS
    assert service.get_cycle(previous.id).status == CycleStatus.CLOSED
    assert service.get_active_cycle().id == target.id
    assert open_count(store) == 1


def test_activate_cycle_derives_end_date_from_equalization_deadline():
    service = make_service()
    target = service.create_cycle(cycle_dto("2025.1"))

    activated = service.activate_cycle(target.id)

    # the stored end_date (2025-03-31) is replaced by equalization_deadline + 7 days
    assert activated.end_date == utc(2025, 3, 22)


def test_activate_cycle_keeps_end_date_when_derivation_disabled():
    service = make_service()
    target = service.create_cycle(cycle_dto("2025.1"))

    activated = service.activate_cycle(
        target.id,
        CycleActivate(end_date=utc(2025, 4, 30), auto_set_end_date=False),
    )

    assert activated.end_date == utc(2025, 4, 30)


def test_activate_cycle_merges_overrides():
    service = make_service()
    target = service.create_cycle(cycle_dto("2025.1"))

    activated = service.activate_cycle(
        target.id,
        CycleActivate(manager_deadline=utc(2025, 3, 5), equalization_deadline=utc(2025, 3, 20)),
    )

    assert activated.assessment_deadline == utc(2025, 2, 15)
    assert activated.manager_deadline == utc(2025, 3, 5)
    assert activated.end_date == utc(2025, 3, 27)


def test_activate_cycle_with_bad_overrides_writes_nothing():
    store = InMemoryCycleStore()
    previous = seed_cycle(store, "2024.2", status=CycleStatus.OPEN)
    service = make_service(store)
    target = service.create_cycle(cycle_dto("2025.1"))
    writes_before = store.writes

    with pytest.raises(InvalidDateOrdering):
        service.activate_cycle(target.id, CycleActivate(assessment_deadline=utc(2024, 12, 1)))

    assert store.writes == writes_before
    assert service.get_cycle(previous.id).status == CycleStatus.OPEN
    assert service.get_cycle(target.id).status == CycleStatus.UPCOMING


def test_activate_cycle_errors():
    store = InMemoryCycleStore()
    service = make_service(store)
    open_cycle = seed_cycle(store, "open", status=CycleStatus.OPEN)
    closed_cycle = seed_cycle(store, "closed", status=CycleStatus.CLOSED)

    with pytest.raises(CycleNotFound):
        service.activate_cycle("missing")
    with pytest.raises(AlreadyActive):
        service.activate_cycle(open_cycle.id)
    with pytest.raises(IllegalStatusTransition):
        service.activate_cycle(closed_cycle.id)


def test_update_status_to_open_swaps_without_touching_dates():
    store = InMemoryCycleStore()
    previous = seed_cycle(store, "2024.2", status=CycleStatus.OPEN)
    service = make_service(store)
    target = service.create_cycle(cycle_dto("2025.1"))

    updated = service.update_status(target.id, CycleStatus.OPEN)

    assert updated.status == CycleStatus.OPEN
    assert updated.end_date == utc(2025, 3, 31)
    assert service.get_cycle(previous.id).status == CycleStatus.CLOSED
    assert open_count(store) == 1


def test_update_status_same_status_is_a_noop():
    store = InMemoryCycleStore()
    cycle = seed_cycle(store, "2025.1", status=CycleStatus.OPEN)
    service = make_service(store)
    writes_before = store.writes

    assert service.update_status(cycle.id, CycleStatus.OPEN) == cycle
    assert store.writes == writes_before


def test_update_status_close_and_terminal_closed():
    store = InMemoryCycleStore()
    cycle = seed_cycle(store, "2025.1", status=CycleStatus.OPEN)
    service = make_service(store)

    assert service.update_status(cycle.id, CycleStatus.CLOSED).status == CycleStatus.CLOSED

    with pytest.raises(IllegalStatusTransition):
        service.update_status(cycle.id, CycleStatus.OPEN)
    with pytest.raises(IllegalStatusTransition):
        service.update_status(cycle.id, CycleStatus.UPCOMING)
    with pytest.raises(CycleNotFound):
        service.update_status("missing", CycleStatus.CLOSED)


def test_update_phase_advances_one_step():
    store = InMemoryCycleStore()
    cycle = seed_cycle(store, "2025.1", status=CycleStatus.OPEN)
    service = make_service(store)

    assert service.update_phase(cycle.id, CyclePhase.MANAGER_REVIEWS).phase == CyclePhase.MANAGER_REVIEWS
    assert service.update_phase(cycle.id, CyclePhase.EQUALIZATION).phase == CyclePhase.EQUALIZATION

    with pytest.raises(IllegalPhaseTransition):
        service.update_phase(cycle.id, CyclePhase.ASSESSMENTS)


def test_update_phase_rejects_skip():
    store = InMemoryCycleStore()
    cycle = seed_cycle(store, "2025.1", status=CycleStatus.OPEN)
    service = make_service(store)

    with pytest.raises(IllegalPhaseTransition):
        service.update_phase(cycle.id, "EQUALIZATION")

    assert service.get_cycle(cycle.id).phase == CyclePhase.ASSESSMENTS


def test_update_phase_requires_open_cycle():
    store = InMemoryCycleStore()
    upcoming = seed_cycle(store, "2025.1")
    service = make_service(store)

    with pytest.raises(InvalidCycleState):
        service.update_phase(upcoming.id, CyclePhase.MANAGER_REVIEWS)
    with pytest.raises(CycleNotFound):
        service.update_phase("missing", CyclePhase.MANAGER_REVIEWS)


def test_deadline_report_tags_each_deadline():
    service = make_service(now=utc(2025, 2, 13, 12))
    cycle = service.create_cycle(cycle_dto("2025.1"))

    report = service.get_deadline_report(cycle.id)

    by_phase = {d.phase: d for d in report.deadlines}
    assert by_phase[CyclePhase.ASSESSMENTS].days_until == 2
    assert by_phase[CyclePhase.ASSESSMENTS].status == DeadlineStatus.URGENT
    assert by_phase[CyclePhase.MANAGER_REVIEWS].days_until == 16
    assert by_phase[CyclePhase.MANAGER_REVIEWS].status == DeadlineStatus.OK
    assert report.summary.total_deadlines == 3
    assert report.summary.urgent_count == 1
    assert report.summary.ok_count == 2
    assert report.inconsistencies == []
    assert report.has_inconsistencies is False
    assert report.cycle.name == "2025.1"


def test_deadline_report_overdue_and_ceiling():
    service = make_service()
    cycle = service.create_cycle(cycle_dto("2025.1"))

    report = service.get_deadline_report(cycle.id, now=utc(2025, 3, 5))
    by_phase = {d.phase: d for d in report.deadlines}
    assert by_phase[CyclePhase.ASSESSMENTS].days_until == -18
    assert by_phase[CyclePhase.MANAGER_REVIEWS].status == DeadlineStatus.OVERDUE
    assert by_phase[CyclePhase.EQUALIZATION].days_until == 10
    assert report.summary.overdue_count == 2

    # twelve hours past a deadline rounds up to day 0, which is still URGENT
    report = service.get_deadline_report(cycle.id, now=utc(2025, 2, 15, 12))
    assessments = next(d for d in report.deadlines if d.phase == CyclePhase.ASSESSMENTS)
    assert assessments.days_until == 0
    assert assessments.status == DeadlineStatus.URGENT


def test_deadline_report_lists_only_present_deadlines():
    store = InMemoryCycleStore()
    cycle = seed_cycle(store, "partial", manager_deadline=utc(2025, 3, 1))
    service = make_service(store)

    report = service.get_deadline_report(cycle.id)

    assert [d.phase for d in report.deadlines] == [CyclePhase.MANAGER_REVIEWS]


def test_deadline_report_reports_bad_stored_dates_without_failing():
    store = InMemoryCycleStore()
    cycle = seed_cycle(
        store,
        "legacy",
        start_date=utc(2025, 3, 1),
        assessment_deadline=utc(2025, 2, 15),
    )
    service = make_service(store)

    report = service.get_deadline_report(cycle.id)

    assert report.has_inconsistencies is True
    assert len(report.inconsistencies) == 1
    assert "assessment_deadline" in report.inconsistencies[0]

    with pytest.raises(CycleNotFound):
        service.get_deadline_report("missing")


def test_phase_gate():
    store = InMemoryCycleStore()
    service = make_service(store)

    with pytest.raises(NoActiveCycle) as exc:
        service.validate_active_cycle_phase(CyclePhase.ASSESSMENTS)
    assert str(exc.value) == "no active cycle"

    cycle = seed_cycle(store, "2025.1", status=CycleStatus.OPEN, phase=CyclePhase.MANAGER_REVIEWS)

    with pytest.raises(WrongCyclePhase) as exc:
        service.validate_active_cycle_phase(CyclePhase.ASSESSMENTS)
    assert str(exc.value) == "wrong phase: current=MANAGER_REVIEWS required=ASSESSMENTS"

    gate = service.validate_active_cycle_phase("MANAGER_REVIEWS")
    assert (gate.id, gate.name, gate.phase) == (cycle.id, "2025.1", CyclePhase.MANAGER_REVIEWS)


def test_active_cycle_queries():
    store = InMemoryCycleStore()
    service = make_service(store)

    assert service.get_active_cycle() is None
    assert service.get_active_cycle_with_phase() is None
    assert service.is_cycle_active("2025.1") is False
    with pytest.raises(NoActiveCycle):
        service.validate_active_cycle_exists()

    seed_cycle(store, "2024.2", status=CycleStatus.CLOSED)
    cycle = seed_cycle(store, "2025.1", status=CycleStatus.OPEN)

    assert service.validate_active_cycle_exists().id == cycle.id
    assert service.is_cycle_active("2025.1") is True
    assert service.is_cycle_active("2024.2") is False

    info = service.get_active_cycle_with_phase()
    assert info.current_phase == CyclePhase.ASSESSMENTS
    assert info.next_phase == CyclePhase.MANAGER_REVIEWS
    assert info.allowed_evaluations["self_assessment"] is True
    assert info.allowed_evaluations["manager_assessment"] is False


def test_list_cycles_newest_first_with_filters():
    store = InMemoryCycleStore()
    service = make_service(store)
    service.create_cycle(cycle_dto("2024.1", start_date=None, end_date=None))
    service.create_cycle(cycle_dto("2024.2", start_date=None, end_date=None))
    seed_cycle(store, "archive", status=CycleStatus.CLOSED)

    assert [c.name for c in service.list_cycles()] == ["archive", "2024.2", "2024.1"]
    assert [c.name for c in service.list_cycles(status=CycleStatus.UPCOMING)] == ["2024.2", "2024.1"]
    assert [c.name for c in service.list_cycles(search="2024", limit=1)] == ["2024.2"]
    assert service.count_cycles(search="2024") == 2


def test_mixed_operation_sequence_keeps_single_open_cycle_and_forward_phases():
    rng = random.Random(20250101)
    store = InMemoryCycleStore()
    service = make_service(store)
    automation = CycleAutomationPass(service)

    ids = []
    for i in range(6):
        month = 1 + 2 * i
        ids.append(
            seed_cycle(
                store,
                f"cycle-{i}",
                start_date=utc(2025, month, 1),
                assessment_deadline=utc(2025, month, 10),
                manager_deadline=utc(2025, month, 20),
                end_date=utc(2025, month + 1, 25),
            ).id
        )

    seen_phase_rank = {cycle_id: 0 for cycle_id in ids}
    for step in range(300):
        cycle_id = rng.choice(ids)
        op = rng.choice(["activate", "status", "phase", "automation"])
        try:
            if op == "activate":
                service.activate_cycle(cycle_id, CycleActivate(auto_set_end_date=False))
            elif op == "status":
                service.update_status(cycle_id, rng.choice(list(CycleStatus)))
            elif op == "phase":
                service.update_phase(cycle_id, rng.choice(list(CyclePhase)))
            else:
                automation.run_once(utc(2025, rng.randint(1, 12), rng.randint(1, 28)))
        except CycleError:
            pass

        assert open_count(store) <= 1
        for c in store.list():
            rank = phase_rank(c.phase)
            assert rank >= seen_phase_rank[c.id]
            seen_phase_rank[c.id] = rank
