from evaluation_cycles.cycles.scheduler import build_service
from evaluation_cycles.db.session import SessionLocal


def _fmt(value) -> str:
    return value.isoformat() if value else "-"


def main():
    db = SessionLocal()
    try:
        service = build_service(db)
        cycles = sorted(service.list_cycles(), key=lambda c: c.name)
        for c in cycles:
            print(f"Cycle: {c.name} (id: {c.id})")
            print(f"  status: {c.status.value}  phase: {c.phase.value}")
            print(f"  start: {_fmt(c.start_date)}  end: {_fmt(c.end_date)}")
            print(f"  assessment deadline:   {_fmt(c.assessment_deadline)}")
            print(f"  manager deadline:      {_fmt(c.manager_deadline)}")
            print(f"  equalization deadline: {_fmt(c.equalization_deadline)}")

            report = service.get_deadline_report(c.id)
            for issue in report.inconsistencies:
                print(f"  ! {issue}")
            print()
        print("Total cycles:", len(cycles))
    finally:
        db.close()

if __name__ == "__main__":
    main()
