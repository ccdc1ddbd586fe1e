"""
Health Router
jobmap/routers/health.py
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from jobmap.services.cache import get_cache_service
from jobmap.services.snowflake import check_snowflake

router = APIRouter(tags=["health"])


@router.get("/health")
def health(cache=Depends(get_cache_service)):
    """Snowflake is required; Redis is optional and only reported."""
    snowflake_ok = check_snowflake()
    redis_ok = cache.ping()
    body = {
        "status": "healthy" if snowflake_ok else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "dependencies": {
            "snowflake": "connected" if snowflake_ok else "unreachable",
            "redis": "connected" if redis_ok else ("unreachable" if cache.enabled else "disabled"),
        },
    }
    return JSONResponse(status_code=200 if snowflake_ok else 503, content=body)
