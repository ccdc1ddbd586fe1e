from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_posting
from jobmap.scripts import maintain_jobs
from jobmap.scripts.init_schema import SCHEMA_FILE, split_statements
from jobmap.services.cache import SEARCH_PREFIX, CacheService


def test_split_statements_drops_comments():
    sql = """
    -- header
    CREATE TABLE a (id INT);
    -- between
    ALTER TABLE a CLUSTER BY (id);
    """
    assert split_statements(sql) == ["CREATE TABLE a (id INT)", "ALTER TABLE a CLUSTER BY (id)"]


def test_schema_file_defines_both_tables():
    statements = split_statements(SCHEMA_FILE.read_text(encoding="utf-8"))

    creates = [s for s in statements if s.startswith("CREATE TABLE")]
    assert len(creates) == 2
    assert any("UNIQUE (source, source_id)" in s for s in creates)
    assert any("geocode_cache" in s for s in creates)


@pytest.fixture
def wired(monkeypatch, job_repo, fake_redis, resolver):
    cache = CacheService(client=fake_redis)
    monkeypatch.setattr(maintain_jobs, "get_job_repository", lambda: job_repo)
    monkeypatch.setattr(maintain_jobs, "get_cache_service", lambda: cache)
    monkeypatch.setattr(maintain_jobs, "get_geocode_resolver", lambda: resolver)
    return job_repo, fake_redis


def test_maintenance_run_invalidates_cache_when_rows_change(wired):
    job_repo, fake_redis = wired
    job_repo.upsert(make_posting(posted_at=datetime.now(timezone.utc) - timedelta(days=200)))
    fake_redis.setex(f"{SEARCH_PREFIX}:x", 60, "{}")

    stats = maintain_jobs.run("cleanup-expired", days=90)

    assert stats == {"deleted": 1, "cache_keys_invalidated": 1}
    assert fake_redis.store == {}


def test_maintenance_run_without_changes_keeps_cache(wired):
    _, fake_redis = wired
    fake_redis.setex(f"{SEARCH_PREFIX}:x", 60, "{}")

    assert maintain_jobs.run("cleanup-duplicates") == {"deleted": 0}
    assert fake_redis.store


def test_maintenance_run_unknown_command(wired):
    with pytest.raises(ValueError):
        maintain_jobs.run("vacuum")
