import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jobmap.config import settings
from jobmap.logging_setup import configure_logging
from jobmap.services.rate_limiter import RateLimiter

# IMPORT ROUTERS
from jobmap.routers.jobs import router as jobs_router
from jobmap.routers.jobs import validation_exception_handler
from jobmap.routers.employer import router as employer_router
from jobmap.routers.admin import router as admin_router
from jobmap.routers.health import router as health_router

load_dotenv()

logger = logging.getLogger(__name__)

# FASTAPI APPLICATION CONFIGURATION
app = FastAPI(
    title="JobMap API",
    description="""
# JobMap API

Map-based job search over postings aggregated from job boards and employer
submissions. Every searchable job has a street-level location.

---

| Area | Endpoint | Method | Description |
|------|----------|--------|-------------|
| Search | `/api/v1/jobs/search` | GET | Jobs inside a bounding box, with filters |
| Search | `/api/v1/jobs/suggestions` | GET | Title / company completions |
| Search | `/api/v1/jobs/{id}` | GET | Full job record |
| Employer | `/api/v1/employer/validate-address` | POST | Geocode an address |
| Employer | `/api/v1/employer/post` | POST | Submit a job for review |
| Admin | `/api/v1/admin/jobs` | GET | Moderation queue |
| Admin | `/api/v1/admin/jobs/{id}/approve` | POST | Approve a job |
| Admin | `/api/v1/admin/jobs/{id}/reject` | POST | Reject a job |
| Admin | `/api/v1/admin/ingest` | POST | Queue an ingestion run |
| Admin | `/api/v1/admin/cache/invalidate` | POST | Drop cached searches |

Search responses carry `X-Cache: HIT|MISS`.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# REGISTER EXCEPTION HANDLERS
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, internal_error_handler)


# ROOT ENDPOINT
@app.get("/", tags=["Root"], summary="Root endpoint")
async def root():
    """Root endpoint that returns API information."""
    return {
        "message": "Welcome to the JobMap API",
        "version": "1.0.0",
        "documentation": {
            "swagger": "/docs",
            "redoc": "/redoc"
        },
    }


# REGISTER ROUTERS (order matters for docs display)
app.include_router(jobs_router)       # Map search
app.include_router(employer_router)   # Employer submissions
app.include_router(admin_router)      # Moderation + ingestion
app.include_router(health_router)     # Health check


# STARTUP & SHUTDOWN EVENTS
@app.on_event("startup")
async def startup_event():
    """Runs when the application starts."""
    configure_logging(settings.LOG_LEVEL)
    # Geocoding is required by employer submissions; fail at start, not on first request
    settings.require("MAPBOX_TOKEN")

    limiter = RateLimiter(
        max_requests=settings.SUBMISSION_RATE_LIMIT,
        window_seconds=settings.SUBMISSION_RATE_WINDOW_SECONDS,
        sweep_interval=settings.RATE_LIMIT_SWEEP_SECONDS,
    )
    limiter.start()
    app.state.rate_limiter = limiter

    logger.info("=" * 60)
    logger.info("  JobMap API")
    logger.info("=" * 60)
    logger.info("📚 Documentation: http://localhost:8000/docs")
    logger.info(f"   Employer submissions: {settings.SUBMISSION_RATE_LIMIT} per "
                f"{settings.SUBMISSION_RATE_WINDOW_SECONDS}s per client")
    logger.info(f"   Search cache: {'enabled' if settings.cache_configured else 'disabled'}")


@app.on_event("shutdown")
async def shutdown_event():
    """Runs when the application shuts down."""
    limiter = getattr(app.state, "rate_limiter", None)
    if limiter is not None:
        await limiter.stop()
    logger.info("Shutting down JobMap API...")


# RUN WITH UVICORN
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "jobmap.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
