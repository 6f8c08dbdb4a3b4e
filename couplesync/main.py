"""couplesync - shared household task list for couples."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from couplesync.core.config import constants
from couplesync.core.db_client import close_connection, init_db
from couplesync.core.logging import configure_logfire, instrument_fastapi
from couplesync.core.scheduler import OVERDUE_REMINDERS_JOB_ID, start_scheduler, stop_scheduler
from couplesync.core.scheduler_tracker import job_tracker
from couplesync.interface.tasks_router import router as tasks_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    await close_connection()


app = FastAPI(
    title="couplesync",
    description="Shared household task list with recurring due dates",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(tasks_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=constants.HTTP_OK)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    job_status = await job_tracker.get_job_status(OVERDUE_REMINDERS_JOB_ID)
    dlq = job_tracker.get_dead_letter_queue()

    overall_status = "degraded" if job_status["consecutive_failures"] > 0 else "healthy"
    if dlq:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": {OVERDUE_REMINDERS_JOB_ID: job_status},
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=constants.HTTP_OK if overall_status == "healthy" else 503,
    )
