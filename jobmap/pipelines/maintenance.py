"""
Job Maintenance - offline repair passes over stored postings
jobmap/pipelines/maintenance.py

Many postings at one rounded coordinate usually means a city-level geocode
rather than a shared building. Small clusters are spread onto a grid around
the shared point and re-resolved; large clusters are demoted outright.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from jobmap.config import settings
from jobmap.models.geocode import StructuredAddress
from jobmap.models.job import JobStatus
from jobmap.pipelines.normalizer import extract_street_address

logger = logging.getLogger(__name__)


def grid_offsets(count: int, step: float) -> List[Tuple[float, float]]:
    """(dlat, dlon) for count points on a grid centered on the origin."""
    if count <= 0:
        return []
    cols = math.ceil(math.sqrt(count))
    rows = math.ceil(count / cols)
    offsets = []
    for i in range(count):
        row, col = divmod(i, cols)
        offsets.append((
            round((row - (rows - 1) / 2) * step, 7),
            round((col - (cols - 1) / 2) * step, 7),
        ))
    return offsets


def spread_coordinate_collisions(
    repository,
    resolver,
    threshold: Optional[int] = None,
    step: Optional[float] = None,
    precision: Optional[int] = None,
    pause_seconds: Optional[float] = None,
) -> Dict[str, int]:
    """
    Resolve approved postings that share one coordinate.

    Clusters larger than threshold are rejected as a whole. Smaller clusters
    move each member to its own grid point with a street reverse-geocoded at
    that point; a member whose grid point has no street is rejected.
    """
    threshold = settings.COLLISION_DEMOTE_THRESHOLD if threshold is None else threshold
    step = step or settings.COLLISION_GRID_STEP
    precision = settings.COLLISION_PRECISION if precision is None else precision
    pause_seconds = settings.COLLISION_PAUSE_SECONDS if pause_seconds is None else pause_seconds

    stats = {"clusters": 0, "spread": 0, "demoted": 0}
    clusters = repository.find_coordinate_clusters(precision=precision, min_size=2)
    logger.info(f"🔍 Found {len(clusters)} coordinate clusters")

    for index, cluster in enumerate(clusters):
        if index:
            time.sleep(pause_seconds)
        stats["clusters"] += 1
        ids = cluster["ids"]
        lat, lon = cluster["lat"], cluster["lon"]

        if len(ids) > threshold:
            stats["demoted"] += repository.set_status_many(ids, JobStatus.REJECTED)
            logger.info(f"   ⚠️ {len(ids)} jobs at {lat},{lon}: demoted")
            continue

        for job_id, (dlat, dlon) in zip(ids, grid_offsets(len(ids), step)):
            new_lat, new_lon = round(lat + dlat, 7), round(lon + dlon, 7)
            result = resolver.reverse(new_lat, new_lon)
            if result.ok and result.value.street:
                resolved = result.value
                repository.update_location(
                    job_id, new_lat, new_lon, resolved.street,
                    resolved.city, resolved.state, resolved.postal_code,
                )
                stats["spread"] += 1
            else:
                stats["demoted"] += repository.set_status_many([job_id], JobStatus.REJECTED)
        logger.info(f"   ✅ {len(ids)} jobs at {lat},{lon}: spread")

    logger.info(
        f"✅ Collisions: clusters={stats['clusters']} spread={stats['spread']} demoted={stats['demoted']}"
    )
    return stats


def cleanup_expired_jobs(
    repository, retention_days: Optional[int] = None, now: Optional[datetime] = None
) -> int:
    retention_days = retention_days or settings.JOB_RETENTION_DAYS
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    deleted = repository.delete_posted_before(cutoff)
    logger.info(f"🧹 Deleted {deleted} jobs posted before {cutoff:%Y-%m-%d}")
    return deleted


def cleanup_duplicate_identities(repository) -> int:
    deleted = repository.delete_duplicate_identities()
    logger.info(f"🧹 Deleted {deleted} duplicate (source, source_id) rows")
    return deleted


def backfill_street_addresses(repository, resolver, limit: int = 100) -> Dict[str, int]:
    """
    Approved rows without a street: try the description first, then a
    reverse geocode of the stored point. Rows still without a street are
    rejected so they stay out of search.
    """
    stats = {"checked": 0, "fixed": 0, "demoted": 0}
    for row in repository.list_without_street(limit):
        stats["checked"] += 1
        job_id = row["id"]

        extracted = extract_street_address(row.get("description"))
        if extracted:
            point = resolver.forward_safe(StructuredAddress(
                street=extracted,
                city=row.get("city"),
                state=row.get("state"),
                country=row.get("country") or "US",
            ))
            if point:
                repository.update_location(job_id, point.lat, point.lon, extracted)
                stats["fixed"] += 1
                continue

        if row.get("latitude") is not None and row.get("longitude") is not None:
            result = resolver.reverse(float(row["latitude"]), float(row["longitude"]))
            if result.ok and result.value.street:
                resolved = result.value
                repository.update_location(
                    job_id, float(row["latitude"]), float(row["longitude"]), resolved.street,
                    resolved.city, resolved.state, resolved.postal_code,
                )
                stats["fixed"] += 1
                continue

        stats["demoted"] += repository.set_status_many([job_id], JobStatus.REJECTED)

    logger.info(
        f"✅ Backfill: checked={stats['checked']} fixed={stats['fixed']} demoted={stats['demoted']}"
    )
    return stats
