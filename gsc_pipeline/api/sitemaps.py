"""
Sitemap endpoints
"""
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gsc_pipeline.api.dependencies import get_http_client
from gsc_pipeline.models.base import get_db
from gsc_pipeline.services.sitemap_service import SitemapManager

router = APIRouter(prefix="/sitemaps", tags=["sitemaps"])


class SubmitSitemapsRequest(BaseModel):
    sitemap_url: Optional[str] = None
    sitemaps: Optional[List[str]] = None


@router.get("/{project_id}")
async def list_sitemaps(
    project_id: str,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    return await SitemapManager(db, client).list_sitemaps(project_id)


@router.post("/{project_id}")
async def submit_sitemaps(
    project_id: str,
    request: SubmitSitemapsRequest,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Submit one sitemap (sitemap_url) or a batch (sitemaps)"""
    manager = SitemapManager(db, client)
    return await manager.submit(project_id, request.sitemap_url, request.sitemaps)


@router.delete("/{project_id}")
async def delete_sitemap(
    project_id: str,
    sitemap_url: str = Query(..., description="Full sitemap URL"),
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    return await SitemapManager(db, client).delete(project_id, sitemap_url)
