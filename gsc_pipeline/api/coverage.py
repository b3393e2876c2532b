"""
Index coverage (URL inspection) endpoints
"""
from typing import List

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gsc_pipeline.api.dependencies import get_http_client
from gsc_pipeline.models.base import get_db
from gsc_pipeline.services.coverage_service import CoverageInspector

router = APIRouter(prefix="/coverage", tags=["coverage"])


class InspectUrlsRequest(BaseModel):
    urls: List[str]


@router.get("/{project_id}")
async def list_coverage(project_id: str, db: Session = Depends(get_db)):
    return {"coverage": CoverageInspector(db).list_coverage(project_id)}


@router.post("/{project_id}/scan")
async def scan_inventory(
    project_id: str,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Inspect the next batch of inventory URLs not inspected in the last 24h"""
    inspector = CoverageInspector(db, client)
    return await inspector.scan(project_id)


@router.post("/{project_id}/inspect")
async def inspect_urls(
    project_id: str,
    request: InspectUrlsRequest,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    inspector = CoverageInspector(db, client)
    return await inspector.inspect_urls(project_id, request.urls)
