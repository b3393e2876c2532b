"""
Delete-then-insert metrics snapshot writes.
"""
from datetime import date

from gsc_pipeline.models.metric_row import DateKey, Dimension, MetricRow, QueryKey
from gsc_pipeline.models.search_console_data import SEOMetric
from gsc_pipeline.services.metrics_writer import MetricsWriter


def _date_row(day, clicks=1):
    return MetricRow(key=DateKey(date(2024, 1, day)), clicks=clicks, impressions=10, ctr=10.0, position=2.0)


def _query_row(query):
    return MetricRow(key=QueryKey(query), clicks=1, impressions=10, ctr=10.0, position=2.0)


def test_replace_is_idempotent(db, connection):
    rows = [_date_row(1), _date_row(2), _query_row("shoes")]
    writer = MetricsWriter(db)

    first = writer.replace(connection, rows)
    second = writer.replace(connection, rows)

    assert first.inserted == 3
    assert second.deleted == 3
    assert second.inserted == 3
    assert db.query(SEOMetric).filter(SEOMetric.project_id == "proj-1").count() == 3
    assert connection.last_sync_at is not None


def test_replace_only_touches_own_project(db, connection):
    db.add(SEOMetric(project_id="other", owner_id="owner-9", dimension_type="query", query="x"))
    db.commit()

    MetricsWriter(db).replace(connection, [_query_row("shoes")])

    assert db.query(SEOMetric).filter(SEOMetric.project_id == "other").count() == 1


def test_replace_restricted_to_dimensions_keeps_others(db, connection):
    writer = MetricsWriter(db)
    writer.replace(connection, [_date_row(1), _query_row("old")])

    result = writer.replace(connection, [_date_row(5)], dimensions=[Dimension.DATE])

    assert result.deleted == 1
    stored = db.query(SEOMetric).order_by(SEOMetric.id).all()
    assert sorted(m.dimension_type for m in stored) == ["date", "query"]
    assert {m.query for m in stored if m.dimension_type == "query"} == {"old"}
    assert {m.metric_date for m in stored if m.dimension_type == "date"} == {date(2024, 1, 5)}


def test_failed_batch_does_not_abort_later_batches(db, connection):
    # A non-date value in a Date column fails its whole batch at bind time
    bad = MetricRow(key=DateKey("not-a-date"), clicks=1, impressions=1, ctr=0.0, position=0.0)
    rows = [_date_row(1), _date_row(2), bad, _date_row(3), _date_row(4)]

    result = MetricsWriter(db, batch_size=2).replace(connection, rows)

    assert result.inserted == 3
    assert result.failed == 2
    assert result.failed_batches == [1]
    assert db.query(SEOMetric).count() == 3
    assert connection.last_sync_at is not None
