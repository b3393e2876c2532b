"""
Indexing schedule endpoints
"""
import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gsc_pipeline.api.dependencies import get_http_client
from gsc_pipeline.models.base import get_db
from gsc_pipeline.services.schedule_service import process_due_schedules

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.post("/run")
async def run_due_schedules(
    db: Session = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Run every schedule that is due now (same pass the background poller makes)"""
    return await process_due_schedules(db, client=client)
