"""
Shared request dependencies
"""
from typing import AsyncIterator

import httpx

from gsc_pipeline.services.connection_service import create_http_client


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """One outbound HTTP client per API request"""
    async with create_http_client() as client:
        yield client
