from __future__ import annotations

import fnmatch
import json
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import httpx
import pytest

from jobmap.models.geocode import GeoPoint
from jobmap.models.job import JobPostingInput, JobStatus, SearchFilters, default_status
from jobmap.services.geocode import GeocodeResolver

PHOENIX = (33.4484, -112.0740)
CENTRAL_AVE = (33.4530, -112.0738)


# ============================================================
# Mapbox
# ============================================================

def place_feature(lon: float, lat: float, text: str = "Phoenix") -> Dict[str, Any]:
    return {
        "place_type": ["place"],
        "text": text,
        "center": [lon, lat],
        "context": [
            {"id": "region.1", "short_code": "US-AZ", "text": "Arizona"},
            {"id": "country.1", "short_code": "us", "text": "United States"},
        ],
    }


def address_feature(
    lon: float, lat: float, number: str = "123", street: str = "N Central Ave", postcode: str = "85004"
) -> Dict[str, Any]:
    return {
        "place_type": ["address"],
        "address": number,
        "text": street,
        "center": [lon, lat],
        "properties": {"accuracy": "rooftop"},
        "context": [
            {"id": "postcode.1", "text": postcode},
            {"id": "place.1", "text": "Phoenix"},
            {"id": "region.1", "short_code": "US-AZ", "text": "Arizona"},
            {"id": "country.1", "short_code": "us", "text": "United States"},
        ],
    }


def poi_feature(lon: float, lat: float, name: str, address: Optional[str] = None) -> Dict[str, Any]:
    return {
        "place_type": ["poi"],
        "text": name,
        "center": [lon, lat],
        "properties": {"address": address} if address else {},
        "context": [
            {"id": "place.1", "text": "Phoenix"},
            {"id": "region.1", "short_code": "US-AZ", "text": "Arizona"},
        ],
    }


_REVERSE_PATH = re.compile(r"/(-?\d+(?:\.\d+)?),(-?\d+(?:\.\d+)?)\.json$")


class MapboxResponder:
    """
    httpx.MockTransport handler standing in for the Mapbox Places API.

    forward: first registered substring contained in the decoded query wins;
    reverse: the reverse handler receives (lat, lon) and returns features.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.forward_routes: List[tuple] = []
        self.reverse_handler: Callable[[float, float], List[dict]] = lambda lat, lon: []
        self.status_queue: List[int] = []

    def on_forward(self, contains: str, features: List[dict]) -> None:
        self.forward_routes.append((contains.lower(), features))

    def on_reverse(self, handler: Callable[[float, float], List[dict]]) -> None:
        self.reverse_handler = handler

    def fail_next(self, *statuses: int) -> None:
        self.status_queue.extend(statuses)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_queue:
            return httpx.Response(self.status_queue.pop(0), json={"message": "error"})

        path = httpx.URL(str(request.url)).path
        match = _REVERSE_PATH.search(path)
        if match:
            lon, lat = float(match.group(1)), float(match.group(2))
            return httpx.Response(200, json={"features": self.reverse_handler(lat, lon)})

        query = path.rsplit("/", 1)[-1][: -len(".json")].lower()
        for contains, features in self.forward_routes:
            if contains in query:
                return httpx.Response(200, json={"features": features})
        return httpx.Response(200, json={"features": []})


class FakeGeocodeCache:
    def __init__(self, fail: bool = False):
        self.entries: Dict[str, GeoPoint] = {}
        self.fail = fail

    def get(self, key: str) -> Optional[GeoPoint]:
        if self.fail:
            raise RuntimeError("geocode cache down")
        return self.entries.get(key)

    def put(self, key: str, point: GeoPoint) -> None:
        if self.fail:
            raise RuntimeError("geocode cache down")
        self.entries[key] = point


@pytest.fixture
def mapbox() -> MapboxResponder:
    return MapboxResponder()


@pytest.fixture
def geocode_cache() -> FakeGeocodeCache:
    return FakeGeocodeCache()


@pytest.fixture
def resolver(mapbox, geocode_cache) -> GeocodeResolver:
    client = httpx.Client(transport=httpx.MockTransport(mapbox))
    resolver = GeocodeResolver(
        token="test-token",
        cache=geocode_cache,
        client=client,
        base_url="https://mapbox.test/geocoding/v5/mapbox.places",
        max_attempts=3,
        retry_base_delay=0,
    )
    yield resolver
    resolver.close()


# ============================================================
# Job storage
# ============================================================

class InMemoryJobRepository:
    """Dict-backed stand-in for JobRepository with the same semantics."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    def _identity(self, source: str, source_id: str) -> Optional[Dict[str, Any]]:
        for row in self.rows.values():
            if row["source"] == source and row["source_id"] == source_id:
                return row
        return None

    def upsert(self, posting: JobPostingInput):
        if not posting.source_id or not posting.source_id.strip():
            raise ValueError("source_id is required")
        now = datetime.now(timezone.utc)
        values = posting.model_dump(mode="json", exclude={"status"})
        values["employment_type"] = posting.employment_type.value if posting.employment_type else None
        values["posted_at"] = posting.posted_at

        existing = self._identity(posting.source.value, posting.source_id)
        if existing is not None:
            existing.update(values)
            if posting.status is not None:
                existing["status"] = posting.status.value
            existing["updated_at"] = now
            return dict(existing), False

        status = (posting.status or default_status(posting.source)).value
        row = {**values, "id": str(uuid4()), "status": status, "created_at": now, "updated_at": now}
        self.rows[row["id"]] = row
        return dict(row), True

    def get_by_identity(self, source: str, source_id: str):
        row = self._identity(source, source_id)
        return dict(row) if row else None

    def get_by_id(self, job_id: str, approved_only: bool = True):
        row = self.rows.get(job_id)
        if row is None or (approved_only and row["status"] != JobStatus.APPROVED.value):
            return None
        return dict(row)

    def set_status(self, job_id: str, status: JobStatus):
        row = self.rows.get(job_id)
        if row is None:
            return None
        row["status"] = status.value
        return dict(row)

    def set_status_many(self, job_ids: List[str], status: JobStatus) -> int:
        return sum(1 for job_id in job_ids if self.set_status(job_id, status))

    def list_jobs(self, status=None, limit: int = 100, offset: int = 0):
        rows = [r for r in self.rows.values() if status is None or r["status"] == status.value]
        rows.sort(key=lambda r: (r["created_at"], r["id"]), reverse=True)
        return [dict(r) for r in rows[offset:offset + limit]], len(rows)

    @staticmethod
    def _visible(row) -> bool:
        return row["status"] == JobStatus.APPROVED.value and bool(row.get("street"))

    def search(self, filters: SearchFilters):
        now = datetime.now(timezone.utc)
        results = []
        for row in self.rows.values():
            if not self._visible(row) or not filters.bbox.contains(row["latitude"], row["longitude"]):
                continue
            if filters.q and filters.q.lower() not in (row["title"] + " " + row["description"]).lower():
                continue
            if filters.company and filters.company.lower() not in row["company"].lower():
                continue
            if filters.min_pay and not (
                (row["pay_max"] or 0) >= filters.min_pay or (row["pay_min"] or 0) >= filters.min_pay
            ):
                continue
            if filters.max_age_days and (now - row["posted_at"]).days >= filters.max_age_days:
                continue
            if filters.types and row["employment_type"] not in {t.value for t in filters.types}:
                continue
            results.append(dict(row))
        results.sort(key=lambda r: r["id"])
        results.sort(key=lambda r: r["posted_at"], reverse=True)
        return results[: filters.limit]

    def suggestions(self, q: str, kind, limit: int = 10):
        column = kind.value
        values = {r[column] for r in self.rows.values() if self._visible(r) and q.lower() in r[column].lower()}
        return sorted(values)[:limit]

    def find_coordinate_clusters(self, precision: int = 5, min_size: int = 2):
        groups: Dict[tuple, List[str]] = {}
        for row in self.rows.values():
            if row["status"] != JobStatus.APPROVED.value:
                continue
            key = (round(row["latitude"], precision), round(row["longitude"], precision))
            groups.setdefault(key, []).append(row["id"])
        clusters = [
            {"lat": lat, "lon": lon, "count": len(ids), "ids": sorted(ids)}
            for (lat, lon), ids in groups.items()
            if len(ids) >= min_size
        ]
        return sorted(clusters, key=lambda c: c["count"], reverse=True)

    def update_location(self, job_id, lat, lon, street, city=None, state=None, postal_code=None) -> int:
        row = self.rows.get(job_id)
        if row is None:
            return 0
        row.update(latitude=lat, longitude=lon, street=street)
        for name, value in (("city", city), ("state", state), ("postal_code", postal_code)):
            if value is not None:
                row[name] = value
        return 1

    def list_without_street(self, limit: int = 100):
        rows = [r for r in self.rows.values() if r["status"] == JobStatus.APPROVED.value and not r.get("street")]
        return [dict(r) for r in rows[:limit]]

    def delete_posted_before(self, cutoff: datetime) -> int:
        doomed = [k for k, r in self.rows.items() if r["posted_at"] < cutoff]
        for key in doomed:
            del self.rows[key]
        return len(doomed)

    def delete_duplicate_identities(self) -> int:
        return 0


@pytest.fixture
def job_repo() -> InMemoryJobRepository:
    return InMemoryJobRepository()


# ============================================================
# Redis
# ============================================================

class FakeRedis:
    """The subset of redis.Redis used by CacheService (decode_responses=True)."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def scan_iter(self, match="*", count=None):
        return iter([k for k in list(self.store) if fnmatch.fnmatchcase(k, match)])

    def ping(self):
        return True

    def cached(self, key):
        return json.loads(self.store[key])


class BrokenRedis:
    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            import redis
            raise redis.ConnectionError("Connection refused")
        return _fail


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# ============================================================
# Postings
# ============================================================

def make_posting(**overrides) -> JobPostingInput:
    values = dict(
        source="ADZUNA",
        source_id=f"adz-{uuid4().hex[:8]}",
        title="Registered Nurse",
        company="Banner Health",
        description="Night shift RN",
        url="https://example.com/job",
        street="1111 E McDowell Rd",
        city="Phoenix",
        state="AZ",
        postal_code="85006",
        latitude=PHOENIX[0],
        longitude=PHOENIX[1],
        employment_type="FULL_TIME",
        pay_min=60000,
        pay_max=80000,
        posted_at=datetime.now(timezone.utc),
    )
    values.update(overrides)
    return JobPostingInput(**values)


@pytest.fixture
def posting_factory() -> Callable[..., JobPostingInput]:
    return make_posting
