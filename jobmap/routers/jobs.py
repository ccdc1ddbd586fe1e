"""
Jobs Router - map search, suggestions and job detail
jobmap/routers/jobs.py

- GET /search: bounding box + filters, read-through cached
- GET /suggestions: title/company completions, cached for an hour
- GET /{job_id}: full record for approved jobs
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from jobmap.models.job import (
    BoundingBox,
    EmploymentType,
    JobDetail,
    SearchFilters,
    SearchResponse,
    SuggestionResponse,
    SuggestionType,
)
from jobmap.repositories.job_repository import get_job_repository
from jobmap.services.search_service import SearchService, get_search_service

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])

BBOX_PATTERN = r"^-?\d+\.?\d*,-?\d+\.?\d*,-?\d+\.?\d*,-?\d+\.?\d*$"


def error_details(errors) -> List[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in errors
    ]


def invalid_parameters(details: List[dict]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid query parameters", "details": details},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request validation failures are reported as 400 with field details."""
    return invalid_parameters(error_details(exc.errors()))


def parse_types(type_: Optional[EmploymentType], types: Optional[str]) -> List[EmploymentType]:
    """'types' (comma-separated) wins over the single 'type' parameter."""
    if types:
        return [EmploymentType(t.strip().upper()) for t in types.split(",") if t.strip()]
    return [type_] if type_ else []


@router.get("/search", response_model=SearchResponse)
def search_jobs(
    response: Response,
    bbox: str = Query(..., pattern=BBOX_PATTERN, description="minLon,minLat,maxLon,maxLat"),
    q: Optional[str] = Query(None),
    company: Optional[str] = Query(None),
    minPay: Optional[int] = Query(None, gt=0),
    maxAgeDays: Optional[int] = Query(None, gt=0),
    type: Optional[EmploymentType] = Query(None),
    types: Optional[str] = Query(None, description="Comma-separated employment types"),
    limit: int = Query(200, ge=1, le=500),
    service: SearchService = Depends(get_search_service),
):
    try:
        filters = SearchFilters(
            bbox=BoundingBox.parse(bbox),
            q=q or None,
            company=company or None,
            min_pay=minPay,
            max_age_days=maxAgeDays,
            types=parse_types(type, types),
            limit=limit,
        )
    except ValidationError as e:
        return invalid_parameters(error_details(e.errors()))
    except ValueError as e:
        return invalid_parameters([{"loc": ["query"], "msg": str(e), "type": "value_error"}])

    payload, hit = service.search(filters)
    response.headers["X-Cache"] = "HIT" if hit else "MISS"
    return payload


@router.get("/suggestions", response_model=SuggestionResponse)
def job_suggestions(
    response: Response,
    q: Optional[str] = Query(None),
    type: SuggestionType = Query(SuggestionType.title),
    service: SearchService = Depends(get_search_service),
):
    payload, hit = service.suggestions(q, type)
    response.headers["X-Cache"] = "HIT" if hit else "MISS"
    return payload


@router.get("/{job_id}", response_model=JobDetail)
def get_job(job_id: str, repository=Depends(get_job_repository)):
    row = repository.get_by_id(job_id, approved_only=True)
    if row is None:
        return JSONResponse(status_code=404, content={"error": "Job not found"})
    return row
