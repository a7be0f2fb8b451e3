"""Background scheduler — recurring lifecycle jobs.

APScheduler AsyncIOScheduler running inside the FastAPI event loop:
  - Delay scan: every settings.delay_scan_interval_sec — overdue work items
    (task boards + breached onboarding milestones) → delay notifications

The dashboard also triggers the same scan on window refocus through
POST /api/delays/scan. Runs are not coordinated with each other; the
notification unique constraint keeps them idempotent.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

log = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


def _utc(dt):
    """Make a naive datetime UTC-aware (no-op if already aware)."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def configure_scheduler() -> None:
    """Register all jobs on the module scheduler. Call once before start()."""
    from . import config

    settings = config.settings

    if settings.delay_scan_enabled:
        scheduler.add_job(
            _job_delay_scan,
            IntervalTrigger(seconds=settings.delay_scan_interval_sec),
            id="delay_scan",
            name="Overdue work item scan",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc)
            + timedelta(seconds=settings.delay_scan_startup_delay_sec),
        )

    log.info(f"Scheduler configured with {len(scheduler.get_jobs())} job(s)")


# ── Jobs ────────────────────────────────────────────────────────────────


async def _job_delay_scan():
    """Scan every work item source and create missing delay notifications."""
    from .database import SessionLocal
    from .services.delay_scanner import run_delay_scan

    db = SessionLocal()
    try:
        # The scan is blocking DB work; keep the event loop free
        await asyncio.to_thread(run_delay_scan, db)
    except Exception as e:
        log.error(f"Delay scan job error: {e}")
        db.rollback()
    finally:
        db.close()
