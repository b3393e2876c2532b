"""
Indexing Service

Submits URLs to the Google Indexing API and tracks each request's lifecycle:

    pending -> submitted | failed | quota_exceeded
    failed | quota_exceeded -> pending   (explicit retry only, retries += 1)

The API has no batch endpoint, so a batch is one call per URL, paced by the
rate limiter. A failing URL never stops the rest of the batch.
"""
from datetime import datetime, time as dt_time
from typing import Dict, List, Optional

import httpx
from sqlalchemy import desc
from sqlalchemy.orm import Session

from gsc_pipeline.config import get_settings
from gsc_pipeline.connectors.google_auth import SCOPE_INDEXING
from gsc_pipeline.connectors.search_console_connector import SearchConsoleConnector, failure_reason
from gsc_pipeline.errors import (
    InvalidRequestError,
    InvalidStateError,
    ProviderError,
    QuotaExceeded,
    RequestNotFound,
)
from gsc_pipeline.models.search_console_data import GSCConnection, IndexingRequest, SiteUrl
from gsc_pipeline.services.connection_service import credential_for, get_connection, open_connector
from gsc_pipeline.utils.helpers import dedupe_preserving_order, utcnow
from gsc_pipeline.utils.logger import log
from gsc_pipeline.utils.rate_limiter import RateLimiter

settings = get_settings()

# Request types
URL_UPDATED = "URL_UPDATED"
URL_DELETED = "URL_DELETED"
REQUEST_TYPES = (URL_UPDATED, URL_DELETED)

# Statuses
PENDING = "pending"
SUBMITTED = "submitted"
FAILED = "failed"
QUOTA_EXCEEDED = "quota_exceeded"

ALLOWED_TRANSITIONS = {
    PENDING: {SUBMITTED, FAILED, QUOTA_EXCEEDED},
    SUBMITTED: set(),
    FAILED: {PENDING},
    QUOTA_EXCEEDED: {PENDING},
}

QUOTA_MESSAGE = "Quota exceeded. Try again later."


def transition(request: IndexingRequest, new_status: str):
    """Move ``request`` to ``new_status`` or raise InvalidStateError"""
    current = request.status or PENDING
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidStateError(f"Cannot move indexing request {request.id} from {current} to {new_status}")
    request.status = new_status


class IndexingOrchestrator:
    """Per-URL indexing submission, retry and status tracking for one project"""

    def __init__(
        self,
        db: Session,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.db = db
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter(settings.provider_call_interval_seconds)

    # ============================================================
    # Read side
    # ============================================================

    def list_requests(self, project_id: str, limit: Optional[int] = None) -> List[Dict]:
        get_connection(self.db, project_id)
        rows = (
            self.db.query(IndexingRequest)
            .filter(IndexingRequest.project_id == project_id)
            .order_by(desc(IndexingRequest.submitted_at), desc(IndexingRequest.id))
            .limit(limit or settings.indexing_list_limit)
            .all()
        )
        return [row.to_dict() for row in rows]

    def daily_usage(self, project_id: str, now: Optional[datetime] = None) -> Dict:
        """Submissions recorded for the project since 00:00 UTC today"""
        now = now or utcnow()
        day_start = datetime.combine(now.date(), dt_time.min)
        used = (
            self.db.query(IndexingRequest)
            .filter(
                IndexingRequest.project_id == project_id,
                IndexingRequest.submitted_at >= day_start,
            )
            .count()
        )
        limit = settings.indexing_daily_limit
        return {"used": used, "limit": limit, "remaining": max(limit - used, 0)}

    # ============================================================
    # Submission
    # ============================================================

    async def _publish(self, connector: SearchConsoleConnector, request: IndexingRequest):
        """Issue one notification and apply the outcome to ``request`` (must be pending)"""
        await self.rate_limiter.wait()
        try:
            body = await connector.publish_url_notification(request.url, request.request_type)
            transition(request, SUBMITTED)
            request.response_code = 200
            latest = (body.get("urlNotificationMetadata") or {}).get("latestUpdate") or {}
            request.response_message = latest.get("type") or request.request_type
            request.fail_reason = None
        except QuotaExceeded as e:
            transition(request, QUOTA_EXCEEDED)
            request.response_code = e.status
            request.response_message = None
            request.fail_reason = QUOTA_MESSAGE
        except ProviderError as e:
            transition(request, FAILED)
            request.response_code = e.status
            request.response_message = None
            request.fail_reason = failure_reason(e)
        except httpx.HTTPError as e:
            transition(request, FAILED)
            request.response_code = None
            request.response_message = None
            request.fail_reason = str(e) or type(e).__name__

        request.completed_at = utcnow()
        self._update_inventory(request)

    def _update_inventory(self, request: IndexingRequest):
        """Mirror the latest request onto the URL inventory row, if the URL is tracked"""
        site_url = (
            self.db.query(SiteUrl)
            .filter(SiteUrl.project_id == request.project_id, SiteUrl.url == request.url)
            .first()
        )
        if site_url:
            site_url.last_request_status = request.status
            site_url.last_request_type = request.request_type
            site_url.last_request_at = request.completed_at or request.submitted_at

    async def submit_urls(
        self,
        project_id: str,
        urls: List[str],
        request_type: str = URL_UPDATED,
        limit: Optional[int] = None,
    ) -> Dict:
        """
        Submit a batch of URLs, one Indexing API call each.

        Args:
            project_id: Project whose connection supplies the credential
            urls: URLs to notify; duplicates are collapsed
            request_type: URL_UPDATED or URL_DELETED, shared by the batch
            limit: Max URLs processed in this call (default indexing_batch_size)

        Returns:
            Counts {submitted, failed, quota_exceeded, total}, per-URL results,
            URLs skipped by the batch cap, and daily usage
        """
        if not urls or not isinstance(urls, list):
            raise InvalidRequestError("urls array is required")
        request_type = request_type or URL_UPDATED
        if request_type not in REQUEST_TYPES:
            raise InvalidRequestError(f"request_type must be one of {', '.join(REQUEST_TYPES)}")

        connection = get_connection(self.db, project_id)
        credential = credential_for(connection, require_site=False)

        unique_urls = dedupe_preserving_order(urls)
        batch_limit = limit or settings.indexing_batch_size
        batch, skipped = unique_urls[:batch_limit], unique_urls[batch_limit:]

        log.info(f"Submitting {len(batch)} URL(s) for indexing ({request_type}) for project {project_id}")

        requests: List[IndexingRequest] = []
        async with open_connector(credential, self.client) as connector:
            await connector.token(SCOPE_INDEXING)

            for url in batch:
                request = self._create_request(connection, url, request_type)
                requests.append(request)
                await self._publish(connector, request)
                self.db.commit()

        counts = {SUBMITTED: 0, FAILED: 0, QUOTA_EXCEEDED: 0}
        for request in requests:
            counts[request.status] += 1

        log.info(
            f"Indexing batch for project {project_id}: {counts[SUBMITTED]} submitted, "
            f"{counts[FAILED]} failed, {counts[QUOTA_EXCEEDED]} quota exceeded"
        )

        return {
            "submitted": counts[SUBMITTED],
            "failed": counts[FAILED],
            "quota_exceeded": counts[QUOTA_EXCEEDED],
            "total": len(requests),
            "skipped": skipped,
            "results": [
                {
                    "id": r.id,
                    "url": r.url,
                    "status": r.status,
                    "response_code": r.response_code,
                    "response_message": r.response_message,
                    "fail_reason": r.fail_reason,
                }
                for r in requests
            ],
            "daily_usage": self.daily_usage(project_id),
        }

    def _create_request(self, connection: GSCConnection, url: str, request_type: str) -> IndexingRequest:
        request = IndexingRequest(
            project_id=connection.project_id,
            owner_id=connection.owner_id,
            url=url,
            request_type=request_type,
            status=PENDING,
            retries=0,
            submitted_at=utcnow(),
        )
        self.db.add(request)
        self.db.flush()
        return request

    async def retry(self, project_id: str, request_id: int) -> Dict:
        """
        Re-issue a failed or quota-exceeded request.

        Raises:
            RequestNotFound: no such request for this project
            InvalidStateError: request is pending or already submitted
        """
        if request_id is None:
            raise InvalidRequestError("request_id is required")

        connection = get_connection(self.db, project_id)
        request = (
            self.db.query(IndexingRequest)
            .filter(IndexingRequest.id == request_id, IndexingRequest.project_id == project_id)
            .first()
        )
        if not request:
            raise RequestNotFound("Request not found")
        if PENDING not in ALLOWED_TRANSITIONS.get(request.status, set()):
            raise InvalidStateError(f"Only failed or quota_exceeded requests can be retried (status: {request.status})")

        credential = credential_for(connection, require_site=False)
        async with open_connector(credential, self.client) as connector:
            await connector.token(SCOPE_INDEXING)

            transition(request, PENDING)
            request.retries = (request.retries or 0) + 1
            # A retry is a new Indexing API call and counts toward today's usage
            request.submitted_at = utcnow()
            self.db.flush()

            await self._publish(connector, request)
            self.db.commit()

        log.info(f"Retried indexing request {request.id} ({request.url}): {request.status}, retries={request.retries}")
        return {
            "id": request.id,
            "status": request.status,
            "response_code": request.response_code,
            "fail_reason": request.fail_reason,
            "retries": request.retries,
        }

    # ============================================================
    # Notification status
    # ============================================================

    async def get_statuses(self, project_id: str, urls: List[str]) -> Dict:
        """Latest Indexing API notification metadata for up to indexing_status_batch_size URLs"""
        if not urls or not isinstance(urls, list):
            raise InvalidRequestError("urls array required")

        connection = get_connection(self.db, project_id)
        credential = credential_for(connection, require_site=False)

        statuses = []
        async with open_connector(credential, self.client) as connector:
            await connector.token(SCOPE_INDEXING)

            for url in urls[:settings.indexing_status_batch_size]:
                await self.rate_limiter.wait()
                try:
                    metadata = await connector.get_url_notification_metadata(url)
                    statuses.append({**metadata, "url": url})
                except ProviderError as e:
                    statuses.append({"url": url, "error": failure_reason(e), "status_code": e.status})
                except httpx.HTTPError as e:
                    log.warning(f"Failed to fetch notification status for {url}: {e}")
                    statuses.append({"url": url, "error": "Failed to fetch status"})

        return {"statuses": statuses}

    # ============================================================
    # Inventory-driven submission (schedules)
    # ============================================================

    async def submit_unsubmitted_inventory(self, project_id: str, max_urls: int) -> Dict:
        """
        Submit inventory URLs that have never been sent to the Indexing API.

        Capped by both ``max_urls`` and today's remaining daily quota.
        """
        get_connection(self.db, project_id)
        remaining = self.daily_usage(project_id)["remaining"]
        limit = min(max_urls, remaining)
        if limit <= 0:
            log.info(f"Daily indexing quota already used for project {project_id}")
            return {"submitted": 0, "failed": 0, "quota_exceeded": 0, "total": 0, "message": "Daily quota used"}

        candidates = (
            self.db.query(SiteUrl.url)
            .filter(SiteUrl.project_id == project_id, SiteUrl.last_request_at.is_(None))
            .order_by(SiteUrl.id)
            .limit(limit)
            .all()
        )
        urls = [row.url for row in candidates]
        if not urls:
            return {"submitted": 0, "failed": 0, "quota_exceeded": 0, "total": 0, "message": "No unsubmitted URLs"}

        return await self.submit_urls(project_id, urls, URL_UPDATED, limit=limit)
