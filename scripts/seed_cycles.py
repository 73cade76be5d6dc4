from datetime import datetime, timezone

from evaluation_cycles.core.errors import DuplicateCycleName
from evaluation_cycles.cycles.scheduler import build_service
from evaluation_cycles.db.session import SessionLocal
from evaluation_cycles.schemas.cycle import CycleCreate


def utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


CYCLES = [
    CycleCreate(
        name="2025.1",
        start_date=utc(2025, 1, 1),
        assessment_deadline=utc(2025, 2, 15),
        manager_deadline=utc(2025, 3, 1),
        equalization_deadline=utc(2025, 3, 15),
        end_date=utc(2025, 3, 31),
    ),
    CycleCreate(
        name="2025.2",
        start_date=utc(2025, 7, 1),
        assessment_deadline=utc(2025, 8, 15),
        manager_deadline=utc(2025, 9, 1),
        equalization_deadline=utc(2025, 9, 15),
        end_date=utc(2025, 9, 30),
    ),
]


def main():
    db = SessionLocal()
    try:
        service = build_service(db)
        for dto in CYCLES:
            try:
                cycle = service.create_cycle(dto)
                print("Created cycle:", cycle.name, cycle.id)
            except DuplicateCycleName:
                print("Cycle already exists:", dto.name)
    finally:
        db.close()

if __name__ == "__main__":
    main()
