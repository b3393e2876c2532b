"""
Search Console connection lookup

Resolves a project's stored service-account connection into a credential and
an authenticated connector. Missing or incomplete connections fail here,
before any network call is attempted.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from gsc_pipeline.config import get_settings
from gsc_pipeline.connectors.google_auth import ServiceAccountCredential
from gsc_pipeline.connectors.search_console_connector import SearchConsoleConnector
from gsc_pipeline.errors import ConfigurationError, ConnectionNotFound
from gsc_pipeline.models.search_console_data import GSCConnection
from gsc_pipeline.utils.logger import log

settings = get_settings()


def get_connection(db: Session, project_id: str) -> GSCConnection:
    if not project_id:
        raise ConfigurationError("project_id is required")
    connection = db.query(GSCConnection).filter(GSCConnection.project_id == project_id).first()
    if not connection:
        raise ConnectionNotFound("No GSC connection found. Connect Google Search Console first.")
    return connection


def credential_for(connection: GSCConnection, require_site: bool = True) -> ServiceAccountCredential:
    if not connection.client_email or not connection.private_key:
        raise ConfigurationError("GSC connection is missing client_email or private_key")
    if require_site and not connection.site_url:
        raise ConfigurationError("No property selected on the GSC connection")
    return ServiceAccountCredential(
        client_email=connection.client_email,
        private_key=connection.private_key,
        site_url=connection.site_url,
    )


def create_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds, transport=transport)


@asynccontextmanager
async def open_connector(
    credential: ServiceAccountCredential,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[SearchConsoleConnector]:
    """
    Yield a connector for one invocation.

    A caller-supplied client is left open; otherwise a client is created and
    closed on exit.
    """
    if client is not None:
        yield SearchConsoleConnector(credential, client)
        return

    async with create_http_client() as owned_client:
        yield SearchConsoleConnector(credential, owned_client)


async def verify_credentials(
    credentials: Dict[str, Any],
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Check a service-account key by minting a token and listing its properties.

    Returns:
        {"success": True, "sites": [{"siteUrl", "permissionLevel"}]}
    """
    credential = ServiceAccountCredential.from_json(credentials)

    async with open_connector(credential, client) as connector:
        sites = await connector.list_sites()

    log.info(f"Verified service account {credential.client_email}: {len(sites)} properties")
    return {"success": True, "sites": sites}
