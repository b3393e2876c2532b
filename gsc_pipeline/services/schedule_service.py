"""
Indexing Schedule Service

Runs due indexing schedules. Two kinds exist:

- cron: daily at ``cron_time`` (HH:MM, UTC), matched within
  ``schedule_window_minutes`` and at most once per UTC day
- manual: one-shot, run once ``scheduled_at`` has passed, then marked
  completed or failed

Each schedule lists actions: "indexing" submits never-submitted inventory
URLs, "inspection" runs a coverage scan.
"""
from datetime import datetime
from typing import Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from gsc_pipeline.config import get_settings
from gsc_pipeline.errors import PipelineError
from gsc_pipeline.models.search_console_data import IndexingSchedule
from gsc_pipeline.services.coverage_service import CoverageInspector
from gsc_pipeline.services.indexing_service import IndexingOrchestrator
from gsc_pipeline.utils.helpers import utcnow
from gsc_pipeline.utils.logger import log

settings = get_settings()

CRON = "cron"
MANUAL = "manual"

ACTION_INDEXING = "indexing"
ACTION_INSPECTION = "inspection"
ACTIONS = (ACTION_INDEXING, ACTION_INSPECTION)

MINUTES_PER_DAY = 24 * 60


def parse_cron_time(value: str) -> int:
    """'HH:MM' -> minutes after midnight"""
    try:
        hours, minutes = (int(part) for part in value.split(":"))
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid cron_time: {value!r}")
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid cron_time: {value!r}")
    return hours * 60 + minutes


def cron_is_due(schedule: IndexingSchedule, now: datetime, window_minutes: int) -> bool:
    if not schedule.cron_time:
        return False
    if schedule.last_run_at and schedule.last_run_at.date() == now.date():
        return False

    scheduled = parse_cron_time(schedule.cron_time)
    current = now.hour * 60 + now.minute
    diff = abs(scheduled - current)
    # 23:58 and 00:01 are three minutes apart
    diff = min(diff, MINUTES_PER_DAY - diff)
    return diff <= window_minutes


class ScheduleRunner:
    """Finds and runs due schedules"""

    def __init__(self, db: Session, client: Optional[httpx.AsyncClient] = None):
        self.db = db
        self.client = client

    def due_schedules(self, now: datetime) -> List[IndexingSchedule]:
        cron = (
            self.db.query(IndexingSchedule)
            .filter(
                IndexingSchedule.schedule_type == CRON,
                IndexingSchedule.enabled.is_(True),
                IndexingSchedule.status == "active",
            )
            .order_by(IndexingSchedule.id)
            .all()
        )
        manual = (
            self.db.query(IndexingSchedule)
            .filter(
                IndexingSchedule.schedule_type == MANUAL,
                IndexingSchedule.status == "pending",
                IndexingSchedule.scheduled_at <= now,
            )
            .order_by(IndexingSchedule.id)
            .all()
        )

        due = []
        for schedule in cron:
            try:
                if cron_is_due(schedule, now, settings.schedule_window_minutes):
                    due.append(schedule)
            except ValueError as e:
                log.warning(f"Skipping schedule {schedule.id}: {e}")
        return due + manual

    async def _run_action(self, schedule: IndexingSchedule, action: str, max_urls: int) -> Dict:
        if action == ACTION_INDEXING:
            orchestrator = IndexingOrchestrator(self.db, self.client)
            return await orchestrator.submit_unsubmitted_inventory(schedule.project_id, max_urls)
        if action == ACTION_INSPECTION:
            inspector = CoverageInspector(self.db, self.client)
            return await inspector.scan(schedule.project_id)
        raise ValueError(f"Unknown schedule action: {action}")

    async def run_schedule(self, schedule: IndexingSchedule, now: datetime) -> Dict:
        """Run every action of one schedule; action failures are recorded, not raised"""
        max_urls = schedule.max_urls or settings.schedule_default_max_urls
        run_result = {"actions": [], "errors": []}

        for action in schedule.actions or []:
            try:
                result = await self._run_action(schedule, action, max_urls)
                run_result["actions"].append({"type": action, "result": result})
            except (PipelineError, httpx.HTTPError, ValueError) as e:
                self.db.rollback()
                log.error(f"Schedule {schedule.id} action {action} failed for project {schedule.project_id}: {e}")
                run_result["errors"].append(f"{action}: {e}")

        schedule.last_run_at = now
        schedule.last_run_result = run_result
        if schedule.schedule_type == MANUAL:
            schedule.status = "failed" if run_result["errors"] else "completed"
        self.db.commit()

        return {
            "schedule_id": schedule.id,
            "status": "error" if run_result["errors"] else "ok",
            "result": run_result,
        }

    async def process_due(self, now: Optional[datetime] = None) -> Dict:
        now = now or utcnow()
        schedules = self.due_schedules(now)
        if schedules:
            log.info(f"Running {len(schedules)} due indexing schedule(s)")

        results = []
        for schedule in schedules:
            results.append(await self.run_schedule(schedule, now))

        return {"processed": len(results), "results": results, "timestamp": now.isoformat()}


async def process_due_schedules(
    db: Session,
    now: Optional[datetime] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict:
    return await ScheduleRunner(db, client).process_due(now)
