"""
Indexing API endpoints
"""
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gsc_pipeline.api.dependencies import get_http_client
from gsc_pipeline.models.base import get_db
from gsc_pipeline.services.indexing_service import URL_UPDATED, IndexingOrchestrator

router = APIRouter(prefix="/indexing", tags=["indexing"])


class SubmitUrlsRequest(BaseModel):
    urls: List[str]
    request_type: str = URL_UPDATED


class RetryRequest(BaseModel):
    request_id: int


class StatusRequest(BaseModel):
    urls: List[str]


@router.get("/{project_id}")
async def list_indexing_requests(
    project_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Most recent indexing requests for the project"""
    orchestrator = IndexingOrchestrator(db)
    return {"requests": orchestrator.list_requests(project_id, limit)}


@router.get("/{project_id}/quota")
async def get_daily_quota(project_id: str, db: Session = Depends(get_db)):
    return IndexingOrchestrator(db).daily_usage(project_id)


@router.post("/{project_id}/submit")
async def submit_urls(
    project_id: str,
    request: SubmitUrlsRequest,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    orchestrator = IndexingOrchestrator(db, client)
    return await orchestrator.submit_urls(project_id, request.urls, request.request_type)


@router.post("/{project_id}/retry")
async def retry_request(
    project_id: str,
    request: RetryRequest,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Re-issue a failed or quota-exceeded request"""
    orchestrator = IndexingOrchestrator(db, client)
    return await orchestrator.retry(project_id, request.request_id)


@router.post("/{project_id}/status")
async def get_notification_status(
    project_id: str,
    request: StatusRequest,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    orchestrator = IndexingOrchestrator(db, client)
    return await orchestrator.get_statuses(project_id, request.urls)
