"""
Employer Router - direct job submissions
jobmap/routers/employer.py

Submissions are stored as MANUAL postings in PENDING status and only become
searchable after an admin approves them.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from jobmap.models.geocode import StructuredAddress
from jobmap.models.job import (
    AddressValidationRequest,
    EmployerPostRequest,
    EmployerPostResponse,
    JobPostingInput,
    JobSource,
    JobStatus,
)
from jobmap.repositories.job_repository import get_job_repository
from jobmap.routers.jobs import error_details
from jobmap.services.geocode import get_geocode_resolver
from jobmap.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/employer", tags=["employer"])

GEOCODE_FAILED = {
    "error": "Could not verify address",
    "message": "Please check the street, city, state and ZIP code and try again.",
}


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/validate-address")
def validate_address(req: AddressValidationRequest, resolver=Depends(get_geocode_resolver)):
    result = resolver.forward(StructuredAddress(**req.model_dump()))
    if not result.ok:
        return JSONResponse(status_code=422, content=GEOCODE_FAILED)
    return {"lat": result.value.lat, "lon": result.value.lon}


@router.post("/post", response_model=EmployerPostResponse, status_code=201)
def post_job(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    limiter: RateLimiter = Depends(get_rate_limiter),
    resolver=Depends(get_geocode_resolver),
    repository=Depends(get_job_repository),
):
    key = client_key(request)
    if not limiter.allow(key):
        retry_after = limiter.retry_after(key)
        return JSONResponse(
            status_code=429,
            content={"error": "Too many submissions. Please try again later.", "retryAfter": retry_after},
            headers={"Retry-After": str(retry_after)},
        )

    try:
        req = EmployerPostRequest.model_validate(payload)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid submission", "details": error_details(e.errors())},
        )

    if not (req.captcha_token or "").strip():
        return JSONResponse(status_code=400, content={"error": "Captcha verification required"})

    address = StructuredAddress(
        street=req.street,
        city=req.city,
        state=req.state.upper(),
        postal_code=req.postal_code,
        country=req.country,
    )
    located = resolver.forward(address)
    if not located.ok:
        logger.info(f"⚠️ Employer submission address not resolved ({located.kind.value})")
        return JSONResponse(status_code=422, content=GEOCODE_FAILED)

    point = located.value
    posting = JobPostingInput(
        source=JobSource.MANUAL,
        source_id=f"manual-{secrets.token_hex(8)}",
        title=req.title.strip(),
        company=req.company.strip(),
        description=req.description,
        url=str(req.url),
        street=address.street,
        city=address.city,
        state=address.state,
        postal_code=address.postal_code,
        country=address.country,
        latitude=point.lat,
        longitude=point.lon,
        employment_type=req.employment_type,
        pay_min=req.pay_min,
        pay_max=req.pay_max,
        status=JobStatus.PENDING,
    )
    stored, _ = repository.upsert(posting)
    logger.info(f"📥 Employer submission {stored['id']} queued for review")

    return EmployerPostResponse(
        id=stored["id"],
        title=posting.title,
        company=posting.company,
        latitude=point.lat,
        longitude=point.lon,
        message="Job submitted for review. It will appear on the map once approved.",
    )
