"""
Search analytics sync endpoints
"""
import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gsc_pipeline.api.dependencies import get_http_client
from gsc_pipeline.models.base import get_db
from gsc_pipeline.services.sync_service import SearchConsoleSyncService

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/{project_id}")
async def sync_project(
    project_id: str,
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Replace the project's stored search analytics with a fresh pull of the
    lookback window, one query per dimension.
    """
    service = SearchConsoleSyncService(db, client)
    return await service.run_sync(project_id)
