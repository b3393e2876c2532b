"""
Search analytics pagination and per-dimension normalization.
"""
import asyncio
from datetime import date

import pytest

from gsc_pipeline.errors import ProviderError
from gsc_pipeline.models.metric_row import (
    DateKey,
    Dimension,
    MetricRow,
    PageKey,
    QueryKey,
    make_key,
)
from gsc_pipeline.services.analytics_fetcher import ALL_DIMENSIONS, AnalyticsFetcher

START = date(2023, 1, 1)
END = date(2024, 4, 25)


def _run(coro):
    return asyncio.run(coro)


class FakeConnector:
    """Serves pages from ``pages[dimension]``, indexed by page number"""

    def __init__(self, pages=None, failing=()):
        self.pages = pages or {}
        self.failing = set(failing)
        self.bodies = []

    async def query_search_analytics(self, body):
        self.bodies.append(body)
        dimension = body["dimensions"][0]
        if dimension in self.failing:
            raise ProviderError(500, '{"error": "backend"}', "GSC API")
        page_number = body["startRow"] // body["rowLimit"]
        pages = self.pages.get(dimension, [])
        rows = pages[page_number] if page_number < len(pages) else []
        return {"rows": rows}


def _query_rows(count, prefix="q"):
    return [
        {"keys": [f"{prefix}{i}"], "clicks": 1, "impressions": 10, "ctr": 0.1, "position": 3.0}
        for i in range(count)
    ]


class TestPagination:

    def test_stops_after_short_page(self):
        connector = FakeConnector({"query": [_query_rows(2), _query_rows(1, "r")]})
        fetcher = AnalyticsFetcher(connector, row_limit=2, max_start_row=6)

        result = _run(fetcher.fetch_dimension(Dimension.QUERY, START, END))

        assert result.pages_fetched == 2
        assert len(result.rows) == 3
        assert not result.cap_reached
        assert [b["startRow"] for b in connector.bodies] == [0, 2]

    def test_hard_cap_at_three_pages(self):
        full = [_query_rows(2, f"p{n}-") for n in range(5)]
        connector = FakeConnector({"query": full})
        fetcher = AnalyticsFetcher(connector, row_limit=2, max_start_row=6)

        result = _run(fetcher.fetch_dimension(Dimension.QUERY, START, END))

        assert result.pages_fetched == 3
        assert len(result.rows) == 6
        assert result.cap_reached
        assert [b["startRow"] for b in connector.bodies] == [0, 2, 4]

    def test_exactly_full_cap_is_flagged_without_extra_request(self):
        full = [_query_rows(2, f"p{n}-") for n in range(3)]
        connector = FakeConnector({"query": full})
        fetcher = AnalyticsFetcher(connector, row_limit=2, max_start_row=6)

        result = _run(fetcher.fetch_dimension(Dimension.QUERY, START, END))

        assert len(result.rows) == 6
        assert result.cap_reached
        assert result.to_dict()["cap_reached"] is True
        assert len(connector.bodies) == 3

    def test_empty_first_page(self):
        fetcher = AnalyticsFetcher(FakeConnector(), row_limit=2, max_start_row=6)
        result = _run(fetcher.fetch_dimension(Dimension.PAGE, START, END))
        assert result.pages_fetched == 1
        assert result.rows == []

    def test_request_body_uses_single_dimension(self):
        connector = FakeConnector()
        _run(AnalyticsFetcher(connector).fetch_dimension(Dimension.SEARCH_APPEARANCE, START, END))

        body = connector.bodies[0]
        assert body["dimensions"] == ["searchAppearance"]
        assert body["startDate"] == "2023-01-01"
        assert body["endDate"] == "2024-04-25"
        assert body["rowLimit"] == 25000
        assert body["startRow"] == 0

    def test_provider_error_propagates_from_single_fetch(self):
        fetcher = AnalyticsFetcher(FakeConnector(failing={"query"}))
        with pytest.raises(ProviderError) as exc_info:
            _run(fetcher.fetch_dimension(Dimension.QUERY, START, END))
        assert exc_info.value.status == 500


class TestFetchAll:

    def test_failed_dimension_is_isolated(self):
        connector = FakeConnector(
            {
                "date": [[{"keys": ["2024-01-01"], "clicks": 3, "impressions": 30, "ctr": 0.1, "position": 2.0}]],
                "page": [[{"keys": ["https://example.com/a"], "clicks": 1, "impressions": 5, "ctr": 0.2, "position": 1.0}]],
            },
            failing={"query"},
        )
        results = _run(AnalyticsFetcher(connector).fetch_all(START, END, ALL_DIMENSIONS))

        assert set(results) == set(ALL_DIMENSIONS)
        assert not results[Dimension.QUERY].success
        assert results[Dimension.QUERY].status_code == 500
        assert results[Dimension.QUERY].rows == []
        assert results[Dimension.DATE].success
        assert results[Dimension.DATE].rows[0].key == DateKey(date(2024, 1, 1))
        assert results[Dimension.PAGE].rows[0].key == PageKey("https://example.com/a")


class TestMetricRow:

    def test_ctr_is_percentage_and_position_one_decimal(self):
        row = MetricRow.from_api_row(
            Dimension.DATE,
            {"keys": ["2024-01-01"], "clicks": 10, "impressions": 200, "ctr": 0.05, "position": 4.32},
        )
        assert row.ctr == 5.0
        assert row.position == 4.3
        assert row.clicks == 10
        assert row.impressions == 200

    def test_to_columns_sets_only_own_key(self):
        row = MetricRow.from_api_row(
            Dimension.QUERY, {"keys": ["running shoes"], "clicks": 2, "impressions": 40, "ctr": 0.05, "position": 7.06}
        )
        columns = row.to_columns()

        assert columns["dimension_type"] == "query"
        assert columns["query"] == "running shoes"
        for other in ("metric_date", "url", "country", "device", "appearance_type"):
            assert columns[other] is None
        assert columns["position"] == 7.1

    def test_rejects_multi_key_rows(self):
        with pytest.raises(ValueError):
            MetricRow.from_api_row(Dimension.QUERY, {"keys": ["a", "b"], "clicks": 1})
        with pytest.raises(ValueError):
            MetricRow.from_api_row(Dimension.QUERY, {"keys": [], "clicks": 1})

    def test_make_key_variants(self):
        assert make_key("query", "shoes") == QueryKey("shoes")
        assert make_key(Dimension.DATE, "2024-02-29") == DateKey(date(2024, 2, 29))
        assert make_key(Dimension.DEVICE, "MOBILE").column == "device"
