"""Job router - FastAPI endpoints for pushing job changes to HouseCall Pro and pulling HCP data back"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import ConfigurationError, get_current_organization_id
from ...config import HCP_SYNC_RATE_LIMIT
from ...database import get_db
from ...rate_limiter import create_rate_limiter
from .orchestrator import JobUpdateOrchestrator
from .schemas import (
    ChangeRequest,
    ConnectionTestRequest,
    ConnectionTestResult,
    SyncRequest,
    SyncResult,
    UpdateJobResult,
)
from .sync import JobSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])

sync_rate_limit = create_rate_limiter(limit=HCP_SYNC_RATE_LIMIT, window_seconds=60, key_prefix="hcp_sync")


def get_job_orchestrator(db: Session = Depends(get_db)) -> JobUpdateOrchestrator:
    """Dependency injection for JobUpdateOrchestrator"""
    return JobUpdateOrchestrator(db)


def get_job_sync_service(db: Session = Depends(get_db)) -> JobSyncService:
    """Dependency injection for JobSyncService"""
    return JobSyncService(db)


@router.post("/update", response_model=UpdateJobResult)
async def update_job(
    data: ChangeRequest,
    organization_id: str = Depends(get_current_organization_id),
    orchestrator: JobUpdateOrchestrator = Depends(get_job_orchestrator),
):
    """
    Apply schedule, status, dispatch, note and line item changes to one HCP job.
    Only a rejected schedule/status update fails the request.
    """
    if data.organizationId != organization_id:
        logger.warning(
            f"⚠️ Org mismatch: header {organization_id}, body {data.organizationId}"
        )
        raise HTTPException(status_code=403, detail="Organization mismatch")

    try:
        return await orchestrator.execute(data)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/sync", response_model=SyncResult)
async def sync_jobs(
    data: Optional[SyncRequest] = None,
    organization_id: str = Depends(get_current_organization_id),
    service: JobSyncService = Depends(get_job_sync_service),
    _: None = Depends(sync_rate_limit),
):
    """Pull upcoming jobs, employees, price book services and service zones from HCP"""
    data = data or SyncRequest()
    try:
        return await service.sync(organization_id, data.days)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/connection-test", response_model=ConnectionTestResult)
async def test_connection(
    data: Optional[ConnectionTestRequest] = None,
    organization_id: str = Depends(get_current_organization_id),
    service: JobSyncService = Depends(get_job_sync_service),
):
    """Check an HCP API key, either the one given or the stored one"""
    api_key = data.apiKey if data else None
    try:
        return await service.test_connection(organization_id, api_key)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
