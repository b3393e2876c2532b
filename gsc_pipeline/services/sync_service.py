"""
Search Console Sync Service
Pull-then-replace of search analytics metrics for one project
"""
import time
from datetime import date
from typing import Dict, Optional

import httpx
from sqlalchemy.orm import Session

from gsc_pipeline.config import get_settings
from gsc_pipeline.connectors.google_auth import SCOPE_WEBMASTERS_READONLY
from gsc_pipeline.services.analytics_fetcher import ALL_DIMENSIONS, AnalyticsFetcher
from gsc_pipeline.services.connection_service import credential_for, get_connection, open_connector
from gsc_pipeline.services.metrics_writer import MetricsWriter, WriteResult
from gsc_pipeline.utils.helpers import calculate_date_range, format_date
from gsc_pipeline.utils.logger import log

settings = get_settings()


class SearchConsoleSyncService:
    """Runs a manual sync: fetch every dimension, then replace the stored snapshot"""

    def __init__(self, db: Session, client: Optional[httpx.AsyncClient] = None):
        self.db = db
        self.client = client

    async def run_sync(self, project_id: str, today: Optional[date] = None) -> Dict:
        """
        Sync the last ``gsc_lookback_days`` of search analytics for a project.

        Pipeline-level failures (missing connection, token rejection) raise.
        Per-dimension failures are reported; the stored rows of a failed
        dimension are left untouched, so every dimension in the table always
        comes from one complete fetch.
        """
        sync_start = time.time()
        connection = get_connection(self.db, project_id)
        credential = credential_for(connection)
        start_date, end_date = calculate_date_range(settings.gsc_lookback_days, today)

        log.info(
            f"Starting Search Console sync for project {project_id} "
            f"({format_date(start_date)} to {format_date(end_date)})"
        )

        async with open_connector(credential, self.client) as connector:
            # Mint once up front so an AuthError aborts before any fetch
            await connector.token(SCOPE_WEBMASTERS_READONLY)
            fetcher = AnalyticsFetcher(connector)
            results = await fetcher.fetch_all(start_date, end_date, ALL_DIMENSIONS)

        succeeded = [dim for dim, result in results.items() if result.success]
        failed = [dim for dim, result in results.items() if not result.success]
        rows = [row for dim in succeeded for row in results[dim].rows]

        writer = MetricsWriter(self.db)
        if not succeeded:
            write_result = WriteResult()
        elif failed:
            write_result = writer.replace(connection, rows, dimensions=succeeded)
        else:
            write_result = writer.replace(connection, rows)

        if not failed:
            status = "success"
        elif succeeded:
            status = "partial"
        else:
            status = "failed"

        duration = round(time.time() - sync_start, 2)
        log.info(
            f"GSC sync complete for project {project_id}: {write_result.inserted} rows inserted, "
            f"{len(failed)} dimension(s) failed in {duration}s"
        )

        return {
            "success": not failed,
            "status": status,
            "project_id": project_id,
            "start_date": format_date(start_date),
            "end_date": format_date(end_date),
            "inserted": write_result.inserted,
            "deleted": write_result.deleted,
            "failed_rows": write_result.failed,
            "dimensions": [results[dim].to_dict() for dim in results],
            "failed_dimensions": [dim.value for dim in failed],
            "duration_seconds": duration,
        }
