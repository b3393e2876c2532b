"""
Search Console connection endpoints
"""
from typing import Any, Dict

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from gsc_pipeline.api.dependencies import get_http_client
from gsc_pipeline.services.connection_service import verify_credentials

router = APIRouter(prefix="/connections", tags=["connections"])


class VerifyCredentialsRequest(BaseModel):
    """Parsed service-account key file"""
    credentials: Dict[str, Any]


@router.post("/verify")
async def verify_connection(
    request: VerifyCredentialsRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Mint a token from the key and list the properties it can access"""
    return await verify_credentials(request.credentials, client)
