import asyncio
from datetime import timedelta

from loguru import logger

from evaluation_cycles.core.clock import utc_now
from evaluation_cycles.core.config import settings
from evaluation_cycles.cycles.automation import AutomationResult, CycleAutomationPass
from evaluation_cycles.cycles.service import CycleLifecycleService
from evaluation_cycles.cycles.sql_store import SqlCycleStore
from evaluation_cycles.db.session import SessionLocal


def build_service(db) -> CycleLifecycleService:
    return CycleLifecycleService(
        SqlCycleStore(db),
        end_date_grace=timedelta(days=settings.END_DATE_GRACE_DAYS),
        urgent_threshold_days=settings.URGENT_THRESHOLD_DAYS,
    )


def run_tick(session_factory=SessionLocal) -> AutomationResult:
    with session_factory() as db:
        return CycleAutomationPass(build_service(db)).run_once(utc_now())


async def run_automation_loop(interval_seconds: int | None = None, session_factory=SessionLocal) -> None:
    interval = max(1, int(interval_seconds or settings.AUTOMATION_INTERVAL_SECONDS))
    logger.info("cycle automation scheduler started (interval={}s)", interval)

    while True:
        try:
            await asyncio.to_thread(run_tick, session_factory)
        except Exception:
            logger.exception("cycle automation tick failed")
        await asyncio.sleep(interval)
