from __future__ import annotations

import pytest

from conftest import PHOENIX, address_feature
from jobmap.models.job import JobSource, SourceJobDraft
from jobmap.models.result import ConfigurationError
from jobmap.pipelines.ingest_runner import run_ingestion
from jobmap.pipelines.ingest_state import IngestState
from jobmap.pipelines.normalizer import Normalizer
from jobmap.pipelines.sources.base import JobSourceAdapter
from jobmap.services.cache import SEARCH_PREFIX, CacheService


def draft(source_id: str, **overrides) -> SourceJobDraft:
    values = dict(
        source=JobSource.ADZUNA,
        source_id=source_id,
        title="Warehouse Associate",
        company="Amazon",
        description="Pick and pack",
        city="Phoenix",
        state="AZ",
        latitude=PHOENIX[0],
        longitude=PHOENIX[1],
    )
    values.update(overrides)
    return SourceJobDraft(**values)


class StaticSource(JobSourceAdapter):
    source = JobSource.ADZUNA

    def __init__(self, name, drafts):
        self.name = name
        self.drafts = drafts
        self.calls = []

    async def _fetch(self, location, keyword):
        self.calls.append((location, keyword))
        return list(self.drafts)


class BrokenSource(JobSourceAdapter):
    name = "broken"
    source = JobSource.USAJOBS

    async def _fetch(self, location, keyword):
        raise RuntimeError("board is down")


class UnconfiguredSource(StaticSource):
    required_settings = ("SOME_MISSING_SETTING",)


class ExplodingRepository:
    def upsert(self, posting):
        raise RuntimeError("warehouse suspended")


@pytest.fixture
def normalizer(resolver, mapbox):
    mapbox.on_reverse(lambda lat, lon: [address_feature(lon, lat)])
    return Normalizer(resolver)


@pytest.fixture
def cache(fake_redis):
    return CacheService(client=fake_redis)


@pytest.mark.asyncio
async def test_one_failing_source_does_not_affect_another(normalizer, job_repo, cache):
    good = StaticSource("good", [draft("a"), draft("b")])

    state = await run_ingestion(
        [good, BrokenSource()], "Phoenix, AZ", "warehouse",
        normalizer=normalizer, repository=job_repo, cache=cache,
    )

    assert good.calls == [("Phoenix, AZ", "warehouse")]
    assert state.counts("good") == {"fetched": 2, "normalized": 2, "created": 2, "updated": 0, "failed": 0}
    assert state.counts("broken")["fetched"] == 0
    (error,) = state.summary["errors"]
    assert (error["step"], error["source"]) == ("fetch", "broken")
    assert "board is down" in error["error"]
    assert len(job_repo.rows) == 2


@pytest.mark.asyncio
async def test_second_run_updates_instead_of_creating(normalizer, job_repo, cache):
    source = StaticSource("good", [draft("a")])

    await run_ingestion([source], normalizer=normalizer, repository=job_repo, cache=cache)
    state = await run_ingestion([source], normalizer=normalizer, repository=job_repo, cache=cache)

    assert state.totals["created"] == 0
    assert state.totals["updated"] == 1
    assert len(job_repo.rows) == 1


@pytest.mark.asyncio
async def test_dropped_drafts_are_not_counted_as_failures(resolver, mapbox, job_repo, cache):
    mapbox.on_reverse(lambda lat, lon: [])
    source = StaticSource("good", [draft("a")])

    state = await run_ingestion([source], normalizer=Normalizer(resolver), repository=job_repo, cache=cache)

    assert state.counts("good") == {"fetched": 1, "normalized": 0, "created": 0, "updated": 0, "failed": 0}
    assert state.summary["errors"] == []


@pytest.mark.asyncio
async def test_upsert_failure_is_recorded_per_draft(normalizer, cache):
    source = StaticSource("good", [draft("a"), draft("b")])

    state = await run_ingestion([source], normalizer=normalizer, repository=ExplodingRepository(), cache=cache)

    assert state.counts("good")["failed"] == 2
    assert [e["step"] for e in state.summary["errors"]] == ["normalize_upsert", "normalize_upsert"]


@pytest.mark.asyncio
async def test_missing_credentials_abort_before_any_fetch(normalizer, job_repo, cache):
    good = StaticSource("good", [draft("a")])
    unconfigured = UnconfiguredSource("unconfigured", [draft("b")])

    with pytest.raises(ConfigurationError):
        await run_ingestion([good, unconfigured], normalizer=normalizer, repository=job_repo, cache=cache)

    assert good.calls == []
    assert job_repo.rows == {}


@pytest.mark.asyncio
async def test_unknown_source_name_is_rejected(normalizer, job_repo, cache):
    with pytest.raises(ValueError):
        await run_ingestion(["monster"], normalizer=normalizer, repository=job_repo, cache=cache)


@pytest.mark.asyncio
async def test_search_cache_invalidated_only_when_rows_change(normalizer, job_repo, cache, fake_redis):
    fake_redis.setex(f"{SEARCH_PREFIX}:stale", 300, "{}")

    empty = await run_ingestion([StaticSource("empty", [])], normalizer=normalizer, repository=job_repo, cache=cache)
    assert f"{SEARCH_PREFIX}:stale" in fake_redis.store
    assert empty.summary["cache_keys_invalidated"] == 0

    state = await run_ingestion(
        [StaticSource("good", [draft("a")])], normalizer=normalizer, repository=job_repo, cache=cache
    )
    assert fake_redis.store == {}
    assert state.summary["cache_keys_invalidated"] == 1


@pytest.mark.asyncio
async def test_state_records_timestamps_and_totals(normalizer, job_repo, cache):
    state = await run_ingestion(
        [StaticSource("a", [draft("1")]), StaticSource("b", [draft("2")])],
        "Tempe, AZ", normalizer=normalizer, repository=job_repo, cache=cache,
    )

    summary = state.to_dict()
    assert summary["location"] == "Tempe, AZ"
    assert summary["totals"]["created"] == 2
    assert set(summary["sources"]) == {"a", "b"}
    assert summary["started_at"] and summary["completed_at"]


def test_ingest_state_counters():
    state = IngestState(sources=["adzuna"])
    state.mark_started()
    state.increment("adzuna", "fetched", 3)
    state.increment("adzuna", "failed")

    assert state.totals["fetched"] == 3
    assert state.totals["failed"] == 1
    assert state.counts("adzuna")["created"] == 0
