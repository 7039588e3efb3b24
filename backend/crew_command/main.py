"""Crew Command - construction crew scheduling API"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from crew_command import config as app_config
from crew_command.access import AccessDeniedError
from crew_command.routers import (
    auth,
    organizations,
    job_sites,
    workers,
    tasks,
    assignments,
    daily_hours,
    calendar,
    holidays,
    dashboard,
)
from crew_command.services.maintenance_job import run_scheduled_maintenance

logger = logging.getLogger(__name__)
_scheduler: AsyncIOScheduler | None = None


async def _daily_maintenance_job():
    try:
        await run_scheduled_maintenance()
    except Exception:
        logger.exception("daily maintenance job failed")


def _schedule_time(value: str) -> tuple:
    """HH:MM -> (hour, minute); 00:00 when the value cannot be parsed."""
    try:
        parts = value.strip().split(":")
        hour, minute = int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(value)
        return hour, minute
    except (ValueError, IndexError, AttributeError):
        logger.warning("invalid maintenance_schedule_time %r, using 00:00", value)
        return 0, 0


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=app_config.settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    global _scheduler
    _scheduler = AsyncIOScheduler()
    hour, minute = _schedule_time(app_config.settings.maintenance_schedule_time)
    _scheduler.add_job(
        _daily_maintenance_job,
        "cron",
        hour=hour,
        minute=minute,
        id="daily_maintenance",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("%s started; maintenance at %02d:%02d", app_config.settings.app_name, hour, minute)
    yield
    if _scheduler:
        _scheduler.shutdown(wait=False)


app = FastAPI(
    title=app_config.settings.app_name,
    description="Multi-tenant construction crew scheduling",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_config.settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(organizations.router)
app.include_router(job_sites.router)
app.include_router(workers.router)
app.include_router(tasks.router)
app.include_router(assignments.router)
app.include_router(daily_hours.router)
app.include_router(calendar.router)
app.include_router(holidays.router)
app.include_router(dashboard.router)


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    return JSONResponse(status_code=403, content={"detail": str(exc) or "Permission denied"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/")
def home():
    return {"message": f"{app_config.settings.app_name} is running"}


@app.get("/health")
def health():
    return {"status": "ok"}
