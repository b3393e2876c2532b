"""
Index Coverage Service

Inspects inventory URLs with the URL Inspection API in small, rate-limited
batches and upserts one coverage record per (project_id, url). A URL is not
re-inspected within the staleness window.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import and_, desc, or_
from sqlalchemy.orm import Session

from gsc_pipeline.config import get_settings
from gsc_pipeline.connectors.google_auth import SCOPE_WEBMASTERS_READONLY
from gsc_pipeline.connectors.search_console_connector import SearchConsoleConnector
from gsc_pipeline.errors import ConfigurationError, InvalidRequestError, ProviderError
from gsc_pipeline.models.search_console_data import GSCConnection, IndexCoverage, SiteUrl
from gsc_pipeline.services.connection_service import credential_for, get_connection, open_connector
from gsc_pipeline.utils.helpers import dedupe_preserving_order, parse_rfc3339, utcnow
from gsc_pipeline.utils.logger import log
from gsc_pipeline.utils.rate_limiter import RateLimiter

settings = get_settings()


def map_inspection_result(inspection_result: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten ``inspectionResult.indexStatusResult`` into IndexCoverage columns"""
    status = (inspection_result or {}).get("indexStatusResult") or {}
    sitemaps = status.get("sitemap") or []
    return {
        "verdict": status.get("verdict") or "VERDICT_UNSPECIFIED",
        "coverage_state": status.get("coverageState"),
        "indexing_state": status.get("indexingState"),
        "robotstxt_state": status.get("robotsTxtState"),
        "page_fetch_state": status.get("pageFetchState"),
        "crawled_as": status.get("crawledAs"),
        "last_crawl_time": parse_rfc3339(status.get("lastCrawlTime")),
        "referring_urls": list(status.get("referringUrls") or []),
        "sitemap": sitemaps[0] if sitemaps else None,
    }


def is_stale(inspected_at: Optional[datetime], now: datetime, staleness: timedelta) -> bool:
    """Never-inspected URLs and URLs inspected before ``now - staleness`` are due"""
    return inspected_at is None or inspected_at < now - staleness


class CoverageInspector:
    """Staleness-gated URL inspection for one project"""

    def __init__(
        self,
        db: Session,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        batch_size: Optional[int] = None,
        staleness_hours: Optional[int] = None,
    ):
        self.db = db
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter(settings.provider_call_interval_seconds)
        self.batch_size = batch_size or settings.inspection_batch_size
        self.staleness = timedelta(hours=staleness_hours or settings.inspection_staleness_hours)

    def list_coverage(self, project_id: str) -> List[Dict]:
        get_connection(self.db, project_id)
        rows = (
            self.db.query(IndexCoverage)
            .filter(IndexCoverage.project_id == project_id)
            .order_by(desc(IndexCoverage.inspected_at))
            .all()
        )
        return [row.to_dict() for row in rows]

    def select_due(self, project_id: str, urls: List[str], now: Optional[datetime] = None) -> List[str]:
        """Filter ``urls`` down to those never inspected or inspected outside the window"""
        now = now or utcnow()
        inspected = dict(
            self.db.query(IndexCoverage.url, IndexCoverage.inspected_at)
            .filter(IndexCoverage.project_id == project_id, IndexCoverage.url.in_(urls))
            .all()
        ) if urls else {}
        return [url for url in urls if is_stale(inspected.get(url), now, self.staleness)]

    async def scan(self, project_id: str, now: Optional[datetime] = None) -> Dict:
        """
        Inspect the next batch of due URLs from the project's inventory.

        Raises:
            ConfigurationError: the project has no inventory URLs
        """
        connection = get_connection(self.db, project_id)
        inventory_size = self.db.query(SiteUrl).filter(SiteUrl.project_id == project_id).count()
        if not inventory_size:
            raise ConfigurationError(
                "No URLs found in site_urls. Import URLs first via Sitemaps or URL management."
            )

        # Staleness is filtered before the limit so URLs past the first page still come due
        now = now or utcnow()
        cutoff = now - self.staleness
        due_rows = (
            self.db.query(SiteUrl.url)
            .outerjoin(
                IndexCoverage,
                and_(IndexCoverage.project_id == SiteUrl.project_id, IndexCoverage.url == SiteUrl.url),
            )
            .filter(
                SiteUrl.project_id == project_id,
                or_(IndexCoverage.inspected_at.is_(None), IndexCoverage.inspected_at < cutoff),
            )
            .order_by(SiteUrl.id)
            .limit(settings.inspection_inventory_limit)
            .all()
        )

        return await self._inspect_due(connection, [row.url for row in due_rows], now, total=inventory_size)

    async def inspect_urls(self, project_id: str, urls: List[str], now: Optional[datetime] = None) -> Dict:
        """Inspect an explicit URL list; the staleness window still applies"""
        if not urls or not isinstance(urls, list):
            raise InvalidRequestError("urls array is required")
        connection = get_connection(self.db, project_id)
        return await self._inspect_due(connection, dedupe_preserving_order(urls), now)

    async def _inspect_due(
        self,
        connection: GSCConnection,
        candidates: List[str],
        now: Optional[datetime],
        total: Optional[int] = None,
    ) -> Dict:
        now = now or utcnow()
        total = len(candidates) if total is None else total
        credential = credential_for(connection)
        due = self.select_due(connection.project_id, candidates, now)

        if not due:
            log.info(f"All {len(candidates)} URL(s) inspected recently for project {connection.project_id}")
            return {
                "message": "All URLs were inspected recently. Try again in 24h.",
                "inspected": 0,
                "errors": 0,
                "remaining": 0,
                "total": total,
            }

        batch = due[:self.batch_size]
        records: List[Dict[str, Any]] = []
        failures: List[Dict[str, str]] = []

        async with open_connector(credential, self.client) as connector:
            await connector.token(SCOPE_WEBMASTERS_READONLY)

            for url in batch:
                record = await self._inspect_one(connector, url, failures)
                if record is not None:
                    records.append(record)

        inspected_at = utcnow()
        for record in records:
            self._upsert(connection, record, inspected_at)
        self.db.commit()

        log.info(
            f"Coverage scan for project {connection.project_id}: {len(records)} inspected, "
            f"{len(failures)} failed, {len(due) - len(batch)} remaining"
        )

        return {
            "inspected": len(records),
            "errors": len(failures),
            "failures": failures,
            "remaining": len(due) - len(batch),
            "total": total,
        }

    async def _inspect_one(
        self,
        connector: SearchConsoleConnector,
        url: str,
        failures: List[Dict[str, str]],
    ) -> Optional[Dict[str, Any]]:
        await self.rate_limiter.wait()
        try:
            result = await connector.inspect_url(url)
        except ProviderError as e:
            log.warning(f"URL inspection failed for {url}: [{e.status}]")
            failures.append({"url": url, "error": str(e)})
            return None
        except httpx.HTTPError as e:
            log.warning(f"URL inspection failed for {url}: {e}")
            failures.append({"url": url, "error": str(e) or type(e).__name__})
            return None
        return {"url": url, **map_inspection_result(result)}

    def _upsert(self, connection: GSCConnection, record: Dict[str, Any], inspected_at: datetime):
        """Insert or update the single IndexCoverage row for (project_id, url)"""
        existing = (
            self.db.query(IndexCoverage)
            .filter(IndexCoverage.project_id == connection.project_id, IndexCoverage.url == record["url"])
            .first()
        )
        if existing is None:
            existing = IndexCoverage(project_id=connection.project_id, url=record["url"])
            self.db.add(existing)

        existing.owner_id = connection.owner_id
        for column, value in record.items():
            if column != "url":
                setattr(existing, column, value)
        existing.inspected_at = inspected_at
        existing.updated_at = inspected_at
        self.db.flush()
