"""
Indexing schedules: cron window, once-per-day guard and manual one-shots.
"""
import asyncio
from datetime import datetime

import pytest

from gsc_pipeline.models.search_console_data import IndexingRequest, IndexingSchedule, SiteUrl
from gsc_pipeline.services.schedule_service import cron_is_due, parse_cron_time, process_due_schedules

NOW = datetime(2024, 3, 10, 9, 2)


def _run(coro):
    return asyncio.run(coro)


def _process(db, google, now=NOW):
    async def go():
        async with google.client() as client:
            return await process_due_schedules(db, now=now, client=client)
    return _run(go())


def _schedule(db, **kwargs):
    values = dict(project_id="proj-1", schedule_type="cron", cron_time="09:00", actions=["indexing"], max_urls=10)
    values.update(kwargs)
    schedule = IndexingSchedule(**values)
    db.add(schedule)
    db.commit()
    return schedule


def test_parse_cron_time():
    assert parse_cron_time("09:30") == 570
    assert parse_cron_time("00:00") == 0
    for bad in ("9", "25:00", "ab:cd", None):
        with pytest.raises(ValueError):
            parse_cron_time(bad)


@pytest.mark.parametrize("cron_time,due", [
    ("09:00", True),
    ("08:57", True),
    ("09:07", True),
    ("08:56", False),
    ("09:08", False),
])
def test_cron_window(cron_time, due):
    schedule = IndexingSchedule(cron_time=cron_time)
    assert cron_is_due(schedule, NOW, 5) is due


def test_cron_window_wraps_midnight():
    schedule = IndexingSchedule(cron_time="23:58")
    assert cron_is_due(schedule, datetime(2024, 3, 10, 0, 1), 5)


def test_cron_runs_once_per_day():
    schedule = IndexingSchedule(cron_time="09:00", last_run_at=datetime(2024, 3, 10, 9, 0))
    assert not cron_is_due(schedule, NOW, 5)
    schedule.last_run_at = datetime(2024, 3, 9, 9, 0)
    assert cron_is_due(schedule, NOW, 5)


def test_cron_indexing_submits_unsubmitted_inventory(db, connection, google):
    db.add_all([SiteUrl(project_id="proj-1", url=f"https://example.com/{i}") for i in range(3)])
    schedule = _schedule(db, max_urls=2)

    result = _process(db, google)

    assert result["processed"] == 1
    assert result["results"][0]["status"] == "ok"
    assert db.query(IndexingRequest).count() == 2
    db.refresh(schedule)
    assert schedule.last_run_at == NOW
    assert schedule.last_run_result["actions"][0]["type"] == "indexing"
    assert schedule.status == "active"

    # Second pass in the same window is a no-op
    assert _process(db, google)["processed"] == 0


def test_disabled_and_out_of_window_schedules_skipped(db, connection, google):
    _schedule(db, enabled=False)
    _schedule(db, cron_time="15:00")

    assert _process(db, google)["processed"] == 0


def test_manual_schedule_completes(db, connection, google):
    db.add(SiteUrl(project_id="proj-1", url="https://example.com/a"))
    schedule = _schedule(
        db,
        schedule_type="manual",
        cron_time=None,
        scheduled_at=datetime(2024, 3, 10, 8, 0),
        status="pending",
        actions=["inspection"],
    )
    _schedule(db, schedule_type="manual", cron_time=None, scheduled_at=datetime(2024, 3, 11), status="pending")

    result = _process(db, google)

    assert result["processed"] == 1
    db.refresh(schedule)
    assert schedule.status == "completed"
    assert schedule.last_run_result["actions"][0]["result"]["inspected"] == 1


def test_manual_schedule_failure_is_recorded(db, google):
    # No connection exists for the project
    schedule = _schedule(
        db,
        project_id="orphan",
        schedule_type="manual",
        cron_time=None,
        scheduled_at=datetime(2024, 3, 10, 8, 0),
        status="pending",
        actions=["indexing", "inspection"],
    )

    result = _process(db, google)

    assert result["results"][0]["status"] == "error"
    db.refresh(schedule)
    assert schedule.status == "failed"
    assert len(schedule.last_run_result["errors"]) == 2
    assert schedule.last_run_result["errors"][0].startswith("indexing:")
