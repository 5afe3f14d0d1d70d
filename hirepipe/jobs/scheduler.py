from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from hirepipe.core.config import settings
from hirepipe.jobs.tasks import run_sla_breach_sweep


def start_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_sla_breach_sweep,
        IntervalTrigger(minutes=settings.sla_sweep_interval_minutes),
        id="sla_breach_sweep",
        replace_existing=True,
    )
    scheduler.start()
    return scheduler
