from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_posting
from jobmap.models.geocode import GeoPoint
from jobmap.models.job import BoundingBox, EmploymentType, JobStatus, SearchFilters
from jobmap.repositories.geocode_cache_repository import GeocodeCacheRepository
from jobmap.repositories.job_repository import (
    UPSERT_SQL,
    JobRepository,
    build_search_query,
    upsert_params,
)
from jobmap.repositories.predicates import Predicate, PredicateBuilder, like_pattern

PHOENIX_BBOX = BoundingBox(min_lon=-112.3, min_lat=33.3, max_lon=-111.9, max_lat=33.7)


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self.rowcount = 0
        self._rows = []

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        if self.conn.fail:
            raise RuntimeError("warehouse suspended")
        columns, rows, rowcount = self.conn.results.pop(0) if self.conn.results else ([], [], 0)
        self.description = [(c,) for c in columns]
        self._rows = rows
        self.rowcount = rowcount

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)

    def close(self):
        self.conn.closed_cursors += 1


class FakeConnection:
    def __init__(self, results=None, fail=False):
        self.results = list(results or [])
        self.fail = fail
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed_cursors = 0

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


# ============================================================
# Predicates
# ============================================================

@pytest.mark.parametrize(
    "text, expected",
    [
        ("Nurse", "%nurse%"),
        ("100%", "%100!%%"),
        ("front_desk", "%front!_desk%"),
        ("wow!", "%wow!!%"),
    ],
)
def test_like_pattern_escapes_wildcards(text, expected):
    assert like_pattern(text) == expected


def test_predicate_rejects_placeholder_mismatch():
    with pytest.raises(ValueError):
        Predicate("a = %s AND b = %s", (1,))


def test_builder_add_any_and_empty_clause():
    builder = PredicateBuilder()
    assert builder.where_clause() == ""

    builder.add_any("employment_type", [])
    assert len(builder) == 0

    builder.add("status = %s", "APPROVED").add_any("employment_type", ["FULL_TIME", "TEMP"])
    assert builder.where_clause() == (
        "WHERE status = %s AND (employment_type = %s OR employment_type = %s)"
    )
    assert builder.params() == ["APPROVED", "FULL_TIME", "TEMP"]


# ============================================================
# Search query
# ============================================================

def test_search_query_bbox_only_has_visibility_predicates():
    sql, params = build_search_query(SearchFilters(bbox=PHOENIX_BBOX))

    assert "ST_INTERSECTS(location" in sql
    assert "status = 'APPROVED'" in sql
    assert "street IS NOT NULL" in sql
    assert "ORDER BY posted_at DESC NULLS LAST, id" in sql
    assert params == [PHOENIX_BBOX.to_wkt(), 200]
    assert sql.count("%s") == len(params)


def test_search_query_binds_filters_in_order():
    now = datetime(2026, 10, 18, tzinfo=timezone.utc)
    filters = SearchFilters(
        bbox=PHOENIX_BBOX,
        q="Nurse",
        company="Banner",
        min_pay=50000,
        max_age_days=7,
        types=[EmploymentType.FULL_TIME, EmploymentType.PART_TIME],
        limit=25,
    )

    sql, params = build_search_query(filters, now=now)

    assert params == [
        PHOENIX_BBOX.to_wkt(),
        "%nurse%", "%nurse%",
        "%banner%",
        50000, 50000,
        now - timedelta(days=7),
        "FULL_TIME", "PART_TIME",
        25,
    ]
    assert sql.count("%s") == len(params)


def test_search_query_never_inlines_user_text():
    sql, params = build_search_query(SearchFilters(bbox=PHOENIX_BBOX, q="'; DROP TABLE jobs; --"))

    assert "DROP TABLE" not in sql
    assert "%'; drop table jobs; --%" in params


def test_bbox_wkt_is_closed_ring():
    wkt = PHOENIX_BBOX.to_wkt()
    assert wkt.startswith("POLYGON((-112.3 33.3,")
    assert wkt.endswith("-112.3 33.3))")


def test_bbox_rejects_inverted_corners():
    with pytest.raises(ValueError):
        BoundingBox.parse("-111.9,33.3,-112.3,33.7")


# ============================================================
# Upsert
# ============================================================

def test_upsert_params_match_placeholders():
    params = upsert_params(make_posting(), "new-id")
    assert UPSERT_SQL.count("%s") == len(params)


def test_upsert_params_keep_status_on_update_but_default_on_insert():
    params = upsert_params(make_posting(source="MANUAL"), "new-id")

    # matched branch: COALESCE(NULL, t.status)
    assert params[22] is None
    # not-matched branch: manual submissions start pending
    assert params[-1] == "PENDING"


def test_upsert_params_explicit_status_applies_to_both_branches():
    params = upsert_params(make_posting(status="REJECTED"), "new-id")
    assert params[22] == "REJECTED"
    assert params[-1] == "REJECTED"


def test_upsert_reports_created_and_reads_back_row():
    conn = FakeConnection(results=[
        (["number of rows inserted", "number of rows updated"], [(1, 0)], 1),
        (["ID", "SOURCE", "SOURCE_ID"], [("job-1", "ADZUNA", "adz-1")], 1),
    ])
    repository = JobRepository(conn=conn)

    stored, created = repository.upsert(make_posting(source_id="adz-1"))

    assert created is True
    assert stored == {"id": "job-1", "source": "ADZUNA", "source_id": "adz-1"}
    assert conn.commits == 1
    assert conn.executed[1][1] == ("ADZUNA", "adz-1")


def test_upsert_update_is_not_created():
    conn = FakeConnection(results=[
        (["inserted", "updated"], [(0, 1)], 1),
        (["ID"], [("job-1",)], 1),
    ])

    _, created = JobRepository(conn=conn).upsert(make_posting())

    assert created is False


def test_upsert_rolls_back_and_raises_on_failure():
    conn = FakeConnection(fail=True)

    with pytest.raises(RuntimeError, match="warehouse suspended"):
        JobRepository(conn=conn).upsert(make_posting())

    assert conn.rollbacks == 1
    assert conn.closed_cursors == 1


def test_upsert_requires_source_id():
    with pytest.raises(ValueError):
        JobRepository(conn=FakeConnection()).upsert(make_posting(source_id="  "))


def test_set_status_many_binds_each_id():
    conn = FakeConnection(results=[([], [], 3)])

    updated = JobRepository(conn=conn).set_status_many(["a", "b", "c"], JobStatus.REJECTED)

    sql, params = conn.executed[0]
    assert updated == 3
    assert "IN (%s, %s, %s)" in sql
    assert params == ["REJECTED", "a", "b", "c"]


def test_set_status_missing_job_returns_none():
    conn = FakeConnection(results=[([], [], 0)])

    assert JobRepository(conn=conn).set_status("missing", JobStatus.APPROVED) is None


def test_find_coordinate_clusters_parses_id_lists():
    conn = FakeConnection(results=[
        (["LAT", "LON", "JOB_COUNT", "IDS"], [(33.4484, -112.074, 3, "a,b,c")], 1),
    ])

    clusters = JobRepository(conn=conn).find_coordinate_clusters()

    assert clusters == [{"lat": 33.4484, "lon": -112.074, "count": 3, "ids": ["a", "b", "c"]}]


# ============================================================
# Geocode cache table
# ============================================================

def test_geocode_cache_get_hit_and_miss():
    conn = FakeConnection(results=[(["LAT", "LON"], [(33.4484, -112.074)], 1), (["LAT", "LON"], [], 0)])
    cache = GeocodeCacheRepository(conn=conn)

    assert cache.get("phoenix, az, us") == GeoPoint(lat=33.4484, lon=-112.074)
    assert cache.get("nowhere, us") is None
    assert conn.executed[0][1] == ("phoenix, az, us",)


def test_geocode_cache_put_merges_and_commits():
    conn = FakeConnection()

    GeocodeCacheRepository(conn=conn).put("phoenix, az, us", GeoPoint(lat=33.4484, lon=-112.074))

    sql, params = conn.executed[0]
    assert "MERGE INTO geocode_cache" in sql
    assert params == ("phoenix, az, us", 33.4484, -112.074)
    assert conn.commits == 1
