"""
Google Search Console / Indexing API connector

Thin REST client over httpx. Every call authenticates with a bearer token
minted from the project's service account; tokens are kept per scope only for
the lifetime of this connector instance (one pipeline invocation).
"""
import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from gsc_pipeline.connectors.google_auth import (
    BearerToken,
    ServiceAccountCredential,
    TokenIssuer,
    SCOPE_INDEXING,
    SCOPE_WEBMASTERS,
    SCOPE_WEBMASTERS_READONLY,
)
from gsc_pipeline.errors import ConfigurationError, ProviderError, QuotaExceeded
from gsc_pipeline.utils.logger import log

WEBMASTERS_BASE = "https://www.googleapis.com/webmasters/v3"
INSPECTION_ENDPOINT = "https://searchconsole.googleapis.com/v1/urlInspection/index:inspect"
INDEXING_PUBLISH_ENDPOINT = "https://indexing.googleapis.com/v3/urlNotifications:publish"
INDEXING_METADATA_ENDPOINT = "https://indexing.googleapis.com/v3/urlNotifications/metadata"

# Google error reasons that mean "quota exhausted", as opposed to a bad request
QUOTA_REASONS = {"rateLimitExceeded", "quotaExceeded", "dailyLimitExceeded", "userRateLimitExceeded"}


def _error_payload(body: Any) -> Dict[str, Any]:
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


def is_quota_error(status: int, body: Any) -> bool:
    """
    Recognize the provider's quota-exhausted signal.

    HTTP 429 always counts. A 403 counts when the Google error envelope says
    RESOURCE_EXHAUSTED or lists a quota/rate-limit reason.
    """
    if status == 429:
        return True
    if status != 403:
        return False
    error = _error_payload(body)
    if error.get("status") == "RESOURCE_EXHAUSTED":
        return True
    reasons = {item.get("reason") for item in error.get("errors", []) if isinstance(item, dict)}
    return bool(reasons & QUOTA_REASONS)


def provider_message(status: int, body: Any) -> str:
    """Human-readable failure reason from a Google error envelope"""
    message = _error_payload(body).get("message")
    return message or f"HTTP {status}"


class SearchConsoleConnector:
    """Connector for the Search Console (webmasters v3), URL Inspection and Indexing APIs"""

    def __init__(
        self,
        credential: ServiceAccountCredential,
        client: httpx.AsyncClient,
        token_issuer: Optional[TokenIssuer] = None,
    ):
        self.credential = credential
        self.client = client
        self.token_issuer = token_issuer or TokenIssuer(client)
        self._tokens: Dict[str, BearerToken] = {}

    @property
    def site_url(self) -> str:
        if not self.credential.site_url:
            raise ConfigurationError("No property selected on the Search Console connection")
        return self.credential.site_url

    def _site_base(self) -> str:
        return f"{WEBMASTERS_BASE}/sites/{quote(self.site_url, safe='')}"

    async def token(self, scope: str) -> BearerToken:
        """Bearer token for ``scope``, minted on first use and re-minted when near expiry"""
        cached = self._tokens.get(scope)
        if cached is None or cached.is_expired():
            cached = await self.token_issuer.get_token(self.credential, scope)
            self._tokens[scope] = cached
        return cached

    async def _request(
        self,
        method: str,
        url: str,
        scope: str,
        context: str,
        **kwargs
    ) -> httpx.Response:
        token = await self.token(scope)
        headers = dict(kwargs.pop("headers", {}) or {})
        headers.update(token.authorization_header)

        response = await self.client.request(method, url, headers=headers, **kwargs)
        if response.is_success:
            return response

        try:
            body = response.json()
        except ValueError:
            body = None

        if is_quota_error(response.status_code, body):
            log.warning(f"{context} quota exhausted [{response.status_code}]")
            raise QuotaExceeded(response.status_code, response.text, context)

        raise ProviderError(response.status_code, response.text, context)

    @staticmethod
    def _json(response: httpx.Response, context: str = "Google API") -> Dict[str, Any]:
        """Decode a 2xx body; anything but a JSON object is a ProviderError"""
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            raise ProviderError(response.status_code, response.text, f"{context} (unparseable response)")
        if not isinstance(body, dict):
            raise ProviderError(response.status_code, response.text, f"{context} (unexpected response)")
        return body

    # ============================================================
    # Sites
    # ============================================================

    async def list_sites(self) -> List[Dict[str, Any]]:
        """Properties the service account can access"""
        response = await self._request(
            "GET", f"{WEBMASTERS_BASE}/sites", SCOPE_WEBMASTERS_READONLY, "Search Console API"
        )
        return [
            {"siteUrl": site.get("siteUrl"), "permissionLevel": site.get("permissionLevel")}
            for site in self._json(response, "Search Console API").get("siteEntry", [])
        ]

    # ============================================================
    # Search analytics
    # ============================================================

    async def query_search_analytics(self, body: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"{self._site_base()}/searchAnalytics/query",
            SCOPE_WEBMASTERS_READONLY,
            "GSC API",
            json=body,
        )
        return self._json(response, "GSC API")

    # ============================================================
    # URL inspection
    # ============================================================

    async def inspect_url(self, url: str) -> Dict[str, Any]:
        """Returns ``inspectionResult`` for one URL of this property"""
        response = await self._request(
            "POST",
            INSPECTION_ENDPOINT,
            SCOPE_WEBMASTERS_READONLY,
            "URL Inspection API",
            json={"inspectionUrl": url, "siteUrl": self.site_url},
        )
        return self._json(response, "URL Inspection API").get("inspectionResult", {})

    # ============================================================
    # Indexing API
    # ============================================================

    async def publish_url_notification(self, url: str, request_type: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            INDEXING_PUBLISH_ENDPOINT,
            SCOPE_INDEXING,
            "Indexing API",
            json={"url": url, "type": request_type},
        )
        return self._json(response, "Indexing API")

    async def get_url_notification_metadata(self, url: str) -> Dict[str, Any]:
        response = await self._request(
            "GET",
            INDEXING_METADATA_ENDPOINT,
            SCOPE_INDEXING,
            "Indexing API",
            params={"url": url},
        )
        return self._json(response, "Indexing API")

    # ============================================================
    # Sitemaps
    # ============================================================

    async def list_sitemaps(self) -> List[Dict[str, Any]]:
        response = await self._request(
            "GET", f"{self._site_base()}/sitemaps", SCOPE_WEBMASTERS_READONLY, "Sitemaps list"
        )
        return self._json(response, "Sitemaps list").get("sitemap", [])

    async def submit_sitemap(self, sitemap_url: str) -> None:
        await self._request(
            "PUT",
            f"{self._site_base()}/sitemaps/{quote(sitemap_url, safe='')}",
            SCOPE_WEBMASTERS,
            "Sitemap submit",
        )

    async def delete_sitemap(self, sitemap_url: str) -> None:
        await self._request(
            "DELETE",
            f"{self._site_base()}/sitemaps/{quote(sitemap_url, safe='')}",
            SCOPE_WEBMASTERS,
            "Sitemap delete",
        )


def failure_reason(error: ProviderError) -> str:
    """Short failure reason for a ProviderError, preferring Google's own message"""
    try:
        body = json.loads(error.body) if error.body else None
    except ValueError:
        return f"{error.context} [{error.status}]"
    return provider_message(error.status, body)
