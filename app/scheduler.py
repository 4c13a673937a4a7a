from __future__ import annotations
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import structlog

from .config import settings
from .errors import PriceFeedError, StorageError

_log = structlog.get_logger()
_scheduler: AsyncIOScheduler | None = None

def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler

def schedule_jobs(session, adapter, sched: AsyncIOScheduler | None = None):
    sched = sched or get_scheduler()
    sched.add_job(
        run_price_refresh,
        IntervalTrigger(seconds=settings.price_refresh_seconds),
        args=[session, adapter],
        id="prices_refresh",
        replace_existing=True,
    )
    sched.start()
    _log.info("price_scheduler_started", interval_seconds=settings.price_refresh_seconds)
    return sched

def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        _log.info("price_scheduler_stopped")
    _scheduler = None

def run_price_refresh(session, adapter):
    try:
        session.refresh_prices(adapter)
    except (PriceFeedError, StorageError) as e:
        # Keep the previous price cache; the next tick tries again.
        _log.warning("price_refresh_job_failed", err=str(e))
