"""
Search analytics extraction

Pulls the complete result set for each dimension separately over a fixed
lookback window. Dimensions are never combined in one query: a combined query
returns cross-product rows, which misattributes clicks and impressions when
the rows are later grouped by a single key.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

import httpx

from gsc_pipeline.config import get_settings
from gsc_pipeline.errors import ProviderError
from gsc_pipeline.models.metric_row import Dimension, MetricRow
from gsc_pipeline.utils.helpers import format_date
from gsc_pipeline.utils.logger import log

settings = get_settings()

ALL_DIMENSIONS = (
    Dimension.DATE,
    Dimension.QUERY,
    Dimension.PAGE,
    Dimension.COUNTRY,
    Dimension.DEVICE,
    Dimension.SEARCH_APPEARANCE,
)


@dataclass
class DimensionResult:
    """Outcome of fetching one dimension"""
    dimension: Dimension
    rows: List[MetricRow] = field(default_factory=list)
    pages_fetched: int = 0
    # Last page was full at the startRow cap; more rows may exist but were not requested
    cap_reached: bool = False
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "dimension": self.dimension.value,
            "success": self.success,
            "rows": len(self.rows),
            "pages": self.pages_fetched,
            "cap_reached": self.cap_reached,
            "error": self.error,
            "status_code": self.status_code,
        }


class AnalyticsFetcher:
    """Paginated searchAnalytics/query reader, one dimension per query"""

    def __init__(
        self,
        connector,
        row_limit: Optional[int] = None,
        max_start_row: Optional[int] = None,
    ):
        self.connector = connector
        self.row_limit = row_limit or settings.gsc_row_limit
        self.max_start_row = max_start_row or settings.gsc_max_start_row

    async def fetch_dimension(
        self,
        dimension: Dimension,
        start_date: date,
        end_date: date,
    ) -> DimensionResult:
        """
        Fetch every row for one dimension.

        Pages are requested sequentially: each ``startRow`` depends on the size
        of the previous page. Stops on a short page, or once the next
        ``startRow`` reaches ``max_start_row``. Hitting the cap sets
        ``cap_reached``; the API has no row count, so an export of exactly
        ``max_start_row`` rows is flagged the same way.

        Raises:
            ProviderError: any non-2xx response (the partial rows are discarded)
        """
        dimension = Dimension(dimension)
        result = DimensionResult(dimension=dimension)
        start_row = 0

        while True:
            body = {
                "startDate": format_date(start_date),
                "endDate": format_date(end_date),
                "dimensions": [dimension.value],
                "rowLimit": self.row_limit,
                "startRow": start_row,
            }

            response = await self.connector.query_search_analytics(body)
            rows = response.get("rows", []) or []
            result.pages_fetched += 1

            for row in rows:
                result.rows.append(MetricRow.from_api_row(dimension, row))

            log.debug(
                f"[{dimension.value}] startRow={start_row}: {len(rows)} rows "
                f"(total {len(result.rows)})"
            )

            if len(rows) < self.row_limit:
                break

            start_row += self.row_limit
            if start_row >= self.max_start_row:
                result.cap_reached = True
                log.warning(
                    f"[{dimension.value}] pagination cap reached at {len(result.rows)} rows; "
                    f"any further rows were not fetched"
                )
                break

        log.info(f"Fetched {len(result.rows)} {dimension.value} rows in {result.pages_fetched} page(s)")
        return result

    async def _fetch_captured(self, dimension: Dimension, start_date: date, end_date: date) -> DimensionResult:
        try:
            return await self.fetch_dimension(dimension, start_date, end_date)
        except ProviderError as e:
            log.error(f"Search analytics fetch failed for dimension {dimension.value}: {e}")
            return DimensionResult(dimension=dimension, error=str(e), status_code=e.status)
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"Search analytics fetch failed for dimension {dimension.value}: {e}")
            return DimensionResult(dimension=dimension, error=str(e))

    async def fetch_all(
        self,
        start_date: date,
        end_date: date,
        dimensions: Iterable[Dimension] = ALL_DIMENSIONS,
    ) -> Dict[Dimension, DimensionResult]:
        """
        Fetch each dimension independently and concurrently.

        A failing dimension is reported in its own result and never mixed
        with rows from another; all fetches finish before this returns.
        """
        dimensions = [Dimension(d) for d in dimensions]
        results = await asyncio.gather(
            *(self._fetch_captured(d, start_date, end_date) for d in dimensions)
        )
        return {result.dimension: result for result in results}
