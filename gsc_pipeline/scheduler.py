"""
Scheduler for indexing schedules

Uses APScheduler to poll the indexing_schedules table and run whatever is due.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from gsc_pipeline.config import get_settings
from gsc_pipeline.errors import PipelineError
from gsc_pipeline.models.base import SessionLocal
from gsc_pipeline.services.schedule_service import process_due_schedules
from gsc_pipeline.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


async def run_indexing_schedules():
    """Poll for due schedules (every schedule_poll_minutes)"""
    db = SessionLocal()
    try:
        result = await process_due_schedules(db)
        if result["processed"]:
            log.info(f"Indexing schedules processed: {result['processed']}")
    except PipelineError as e:
        log.error(f"Indexing schedule run error: {str(e)}")
    finally:
        db.close()


def setup_scheduler():
    """Configure all scheduled jobs"""
    scheduler.add_job(
        run_indexing_schedules,
        trigger=IntervalTrigger(minutes=settings.schedule_poll_minutes),
        id='indexing_schedules',
        name='Indexing Schedules Poll',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    log.info(f"Scheduled indexing schedule poll every {settings.schedule_poll_minutes} minutes")


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
    log.info("Scheduler stopped")
