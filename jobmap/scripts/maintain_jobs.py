#!/usr/bin/env python
"""
Offline maintenance passes over stored jobs.

Usage:
    python -m jobmap.scripts.maintain_jobs spread
    python -m jobmap.scripts.maintain_jobs cleanup-expired --days 90
    python -m jobmap.scripts.maintain_jobs cleanup-duplicates
    python -m jobmap.scripts.maintain_jobs backfill-streets --limit 200
"""

import argparse
import sys

import structlog

from jobmap.config import settings
from jobmap.logging_setup import configure_logging
from jobmap.models.result import ConfigurationError
from jobmap.pipelines.maintenance import (
    backfill_street_addresses,
    cleanup_duplicate_identities,
    cleanup_expired_jobs,
    spread_coordinate_collisions,
)
from jobmap.repositories.job_repository import get_job_repository
from jobmap.services.cache import get_cache_service
from jobmap.services.geocode import get_geocode_resolver

logger = structlog.get_logger()


def run(command: str, days: int = None, limit: int = 100) -> dict:
    repository = get_job_repository()
    if command == "spread":
        stats = spread_coordinate_collisions(repository, get_geocode_resolver())
        changed = stats["spread"] + stats["demoted"]
    elif command == "cleanup-expired":
        changed = cleanup_expired_jobs(repository, retention_days=days)
        stats = {"deleted": changed}
    elif command == "cleanup-duplicates":
        changed = cleanup_duplicate_identities(repository)
        stats = {"deleted": changed}
    elif command == "backfill-streets":
        stats = backfill_street_addresses(repository, get_geocode_resolver(), limit=limit)
        changed = stats["fixed"] + stats["demoted"]
    else:
        raise ValueError(f"Unknown command: {command}")

    if changed:
        result = get_cache_service().invalidate_search()
        stats["cache_keys_invalidated"] = result.value if result.ok else 0
    logger.info("Maintenance complete", command=command, **stats)
    return stats


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Job table maintenance")
    parser.add_argument(
        "command",
        choices=["spread", "cleanup-expired", "cleanup-duplicates", "backfill-streets"],
    )
    parser.add_argument("--days", type=int, default=settings.JOB_RETENTION_DAYS,
                        help="Retention window for cleanup-expired")
    parser.add_argument("--limit", type=int, default=100, help="Rows per backfill-streets run")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL)
    try:
        run(args.command, days=args.days, limit=args.limit)
    except ConfigurationError as e:
        logger.error("Missing configuration", error=str(e))
        sys.exit(1)
