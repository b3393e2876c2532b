"""
Sitemap Service
List, submit and delete sitemaps for a project's Search Console property
"""
from typing import Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from gsc_pipeline.config import get_settings
from gsc_pipeline.connectors.google_auth import SCOPE_WEBMASTERS
from gsc_pipeline.errors import InvalidRequestError, ProviderError
from gsc_pipeline.services.connection_service import credential_for, get_connection, open_connector
from gsc_pipeline.utils.helpers import dedupe_preserving_order
from gsc_pipeline.utils.logger import log
from gsc_pipeline.utils.rate_limiter import RateLimiter

settings = get_settings()


def summarize_sitemap(sitemap: Dict) -> Dict:
    """Aggregate submitted/indexed counts across a sitemap's content types"""
    submitted = 0
    indexed = 0
    for content in sitemap.get("contents", []) or []:
        submitted += int(content.get("submitted", 0) or 0)
        indexed += int(content.get("indexed", 0) or 0)

    return {
        "url": sitemap.get("path"),
        "submitted_urls": submitted,
        "indexed_urls": indexed,
        "last_submitted": sitemap.get("lastSubmitted"),
        "last_downloaded": sitemap.get("lastDownloaded"),
        "is_pending": sitemap.get("isPending", False),
        "is_sitemaps_index": sitemap.get("isSitemapsIndex", False),
        "errors": int(sitemap.get("errors", 0) or 0),
        "warnings": int(sitemap.get("warnings", 0) or 0),
    }


class SitemapManager:
    """Sitemap operations against the webmasters v3 API"""

    def __init__(
        self,
        db: Session,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.db = db
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter(settings.provider_call_interval_seconds)

    async def list_sitemaps(self, project_id: str) -> Dict:
        connection = get_connection(self.db, project_id)
        async with open_connector(credential_for(connection), self.client) as connector:
            sitemaps = await connector.list_sitemaps()

        log.info(f"Fetched {len(sitemaps)} sitemaps for project {project_id}")
        return {
            "sitemap": sitemaps,
            "sitemaps": [summarize_sitemap(s) for s in sitemaps],
        }

    async def submit(
        self,
        project_id: str,
        sitemap_url: Optional[str] = None,
        sitemaps: Optional[List[str]] = None,
    ) -> Dict:
        """
        Submit one sitemap or a batch. Each URL is its own PUT; failures are
        reported per URL and never stop the batch.
        """
        targets = dedupe_preserving_order(sitemaps) if sitemaps else ([sitemap_url] if sitemap_url else [])
        if not targets:
            raise InvalidRequestError("No sitemaps provided")

        connection = get_connection(self.db, project_id)
        results = []
        async with open_connector(credential_for(connection), self.client) as connector:
            await connector.token(SCOPE_WEBMASTERS)

            for url in targets:
                await self.rate_limiter.wait()
                try:
                    await connector.submit_sitemap(url)
                    results.append({"url": url, "success": True})
                except ProviderError as e:
                    results.append({"url": url, "success": False, "error": f"[{e.status}] {e.body}"})
                except httpx.HTTPError as e:
                    results.append({"url": url, "success": False, "error": str(e) or type(e).__name__})

        succeeded = sum(1 for r in results if r["success"])
        failed = len(results) - succeeded
        log.info(f"Sitemap submit for project {project_id}: {succeeded} submitted, {failed} failed")

        return {"success": failed == 0, "submitted": succeeded, "failed": failed, "results": results}

    async def delete(self, project_id: str, sitemap_url: str) -> Dict:
        """
        Raises:
            ProviderError: the provider rejected the delete
        """
        if not sitemap_url:
            raise InvalidRequestError("sitemap_url is required")

        connection = get_connection(self.db, project_id)
        async with open_connector(credential_for(connection), self.client) as connector:
            await connector.delete_sitemap(sitemap_url)

        log.info(f"Deleted sitemap {sitemap_url} for project {project_id}")
        return {"success": True}
