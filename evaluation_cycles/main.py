import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from evaluation_cycles.api.health import router as health_router
from evaluation_cycles.api.root import router as root_router
from evaluation_cycles.api.cycles import router as cycles_router
from evaluation_cycles.core.config import settings
from evaluation_cycles.core.errors import CycleError
from evaluation_cycles.core.logging_setup import setup_logging
from evaluation_cycles.cycles.scheduler import run_automation_loop


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    scheduler_task: asyncio.Task | None = None
    if settings.AUTOMATION_ENABLED:
        scheduler_task = asyncio.create_task(run_automation_loop())
    else:
        logger.info("cycle automation scheduler disabled")
    try:
        yield
    finally:
        if scheduler_task and not scheduler_task.done():
            scheduler_task.cancel()
            await asyncio.gather(scheduler_task, return_exceptions=True)


app = FastAPI(title="Evaluation Cycle Engine", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CycleError)
async def cycle_error_handler(request: Request, exc: CycleError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_detail())


app.include_router(root_router)
app.include_router(health_router)
app.include_router(cycles_router)
