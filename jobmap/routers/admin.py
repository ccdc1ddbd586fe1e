"""
Admin Router - moderation, ingestion trigger, cache control
jobmap/routers/admin.py

When ADMIN_API_KEY is configured every endpoint requires a matching
X-Admin-Key header.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse

from jobmap.config import settings
from jobmap.models.job import AdminJobList, IngestRequest, JobStatus, StatusUpdateResponse
from jobmap.models.result import ConfigurationError
from jobmap.pipelines.ingest_runner import run_ingestion
from jobmap.pipelines.sources import get_source
from jobmap.repositories.job_repository import get_job_repository
from jobmap.services.search_service import SearchService, get_search_service

logger = logging.getLogger(__name__)


def verify_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    expected = settings.secret("ADMIN_API_KEY")
    if expected and not secrets.compare_digest(x_admin_key or "", expected):
        raise HTTPException(status_code=401, detail="Invalid admin key")


router = APIRouter(
    prefix="/api/v1/admin",
    tags=["admin"],
    dependencies=[Depends(verify_admin_key)],
)


@router.get("/jobs", response_model=AdminJobList)
def list_jobs(
    status: Optional[JobStatus] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    repository=Depends(get_job_repository),
):
    rows, total = repository.list_jobs(status=status, limit=limit, offset=offset)
    return {"jobs": rows, "total": total, "limit": limit, "offset": offset}


def _moderate(job_id: str, status: JobStatus, repository, service: SearchService):
    row = repository.set_status(job_id, status)
    if row is None:
        return JSONResponse(status_code=404, content={"error": "Job not found"})
    service.invalidate()
    logger.info(f"✅ Job {job_id} -> {status.value}")
    return StatusUpdateResponse(id=job_id, status=status)


@router.post("/jobs/{job_id}/approve", response_model=StatusUpdateResponse)
def approve_job(
    job_id: str,
    repository=Depends(get_job_repository),
    service: SearchService = Depends(get_search_service),
):
    return _moderate(job_id, JobStatus.APPROVED, repository, service)


@router.post("/jobs/{job_id}/reject", response_model=StatusUpdateResponse)
def reject_job(
    job_id: str,
    repository=Depends(get_job_repository),
    service: SearchService = Depends(get_search_service),
):
    return _moderate(job_id, JobStatus.REJECTED, repository, service)


@router.post("/ingest", status_code=202)
async def trigger_ingestion(req: IngestRequest, background_tasks: BackgroundTasks):
    """
    Queue one ingestion run in the background.

    Unknown sources and missing credentials are rejected here, before the
    run is queued.
    """
    names = req.sources or settings.INGEST_SOURCES
    try:
        adapters = [get_source(name) for name in names]
        for adapter in adapters:
            adapter.ensure_configured()
    except (ValueError, ConfigurationError) as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    location = req.location or settings.INGEST_LOCATION
    background_tasks.add_task(run_ingestion, adapters, location, req.keyword)
    return {
        "status": "queued",
        "sources": [a.name for a in adapters],
        "location": location,
        "keyword": req.keyword,
    }


@router.post("/cache/invalidate")
def invalidate_cache(service: SearchService = Depends(get_search_service)):
    return {"invalidated": service.invalidate()}
