"""APScheduler wiring for the batch jobs."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from ..core.config import get_settings
from .annual_renewal import execute_annual_renewal
from .points_expiry import execute_points_expiry

logger = logging.getLogger(__name__)

_scheduler = AsyncIOScheduler(timezone="UTC")


def register_scheduler(app: FastAPI) -> None:
    """Attach APScheduler lifecycle hooks to the FastAPI app.

    The jobs are plain functions, so the scheduler's executor runs them in a
    worker thread and their database work stays off the event loop.
    """

    settings = get_settings()

    @app.on_event("startup")
    async def start_scheduler() -> None:
        if not settings.scheduler_enabled or _scheduler.running:
            return
        _scheduler.add_job(
            execute_annual_renewal,
            "cron",
            month=settings.renewal_cron_month,
            day=settings.renewal_cron_day,
            hour=settings.renewal_cron_hour,
            minute=settings.renewal_cron_minute,
            id="annual_renewal",
            replace_existing=True,
            misfire_grace_time=3600,
            coalesce=True,
        )
        _scheduler.add_job(
            execute_points_expiry,
            "cron",
            hour=settings.points_expiry_cron_hour,
            minute=settings.points_expiry_cron_minute,
            id="points_expiry",
            replace_existing=True,
            misfire_grace_time=3600,
            coalesce=True,
        )
        _scheduler.start()
        logger.info("batch scheduler started")

    @app.on_event("shutdown")
    async def shutdown_scheduler() -> None:
        if _scheduler.running:
            _scheduler.shutdown(wait=False)
            logger.info("batch scheduler stopped")
