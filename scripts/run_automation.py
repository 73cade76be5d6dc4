from evaluation_cycles.core.logging_setup import setup_logging
from evaluation_cycles.cycles.scheduler import run_tick


def main():
    setup_logging()
    result = run_tick()
    print("Automation pass:", result.to_dict())

if __name__ == "__main__":
    main()
