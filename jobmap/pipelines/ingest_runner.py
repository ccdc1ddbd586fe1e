"""
Ingestion Runner - Source Adapters -> Normalizer -> Upsert Engine
jobmap/pipelines/ingest_runner.py

One asyncio task per source. Sources run concurrently so a slow or broken
board never holds up the others; within a source, drafts are processed one
at a time. Normalization and the upsert are blocking (HTTP geocoding and
Snowflake), so each draft runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence, Union

from jobmap.config import settings
from jobmap.models.job import SourceJobDraft
from jobmap.pipelines.ingest_state import IngestState
from jobmap.pipelines.normalizer import Normalizer
from jobmap.pipelines.sources import JobSourceAdapter, get_source

logger = logging.getLogger(__name__)


def _resolve_adapters(
    sources: Sequence[Union[str, JobSourceAdapter]],
) -> List[JobSourceAdapter]:
    return [get_source(s) if isinstance(s, str) else s for s in sources]


def process_draft(normalizer: Normalizer, repository, draft: SourceJobDraft) -> Optional[bool]:
    """Normalize and upsert one draft. None when dropped, else the created flag."""
    posting = normalizer.normalize(draft)
    if posting is None:
        return None
    _, created = repository.upsert(posting)
    return created


async def step1_ingest_source(
    state: IngestState,
    adapter: JobSourceAdapter,
    normalizer: Normalizer,
    repository,
) -> None:
    name = adapter.name
    result = await adapter.fetch(state.location, state.keyword)
    if not result.ok:
        state.add_error("fetch", name, f"{result.kind.value}: {result.error}")
        logger.warning(f"   ⚠️ {name}: no drafts ({result.kind.value})")
        return

    drafts = result.value
    state.increment(name, "fetched", len(drafts))
    for draft in drafts:
        try:
            created = await asyncio.to_thread(process_draft, normalizer, repository, draft)
        except Exception as e:
            state.increment(name, "failed")
            state.add_error("normalize_upsert", name, f"{draft.source_id}: {e}")
            logger.error(f"      ❌ {name}/{draft.source_id}: {e}")
            continue
        if created is None:
            continue
        state.increment(name, "normalized")
        state.increment(name, "created" if created else "updated")

    counts = state.counts(name)
    logger.info(
        f"   ✅ {name}: fetched={counts['fetched']} normalized={counts['normalized']} "
        f"created={counts['created']} updated={counts['updated']} failed={counts['failed']}"
    )


def step2_invalidate_search_cache(state: IngestState, cache) -> None:
    totals = state.totals
    if not (totals["created"] or totals["updated"]):
        return
    result = cache.invalidate_search()
    if result.ok:
        state.summary["cache_keys_invalidated"] = result.value
    else:
        logger.info(f"Search cache not invalidated ({result.kind.value})")


async def run_ingestion(
    sources: Optional[Sequence[Union[str, JobSourceAdapter]]] = None,
    location: Optional[str] = None,
    keyword: Optional[str] = None,
    *,
    normalizer: Optional[Normalizer] = None,
    repository=None,
    cache=None,
) -> IngestState:
    """
    Run every selected source once.

    Raises ConfigurationError before anything is fetched when any selected
    source is missing credentials. Everything after that is recorded in the
    returned state instead of raised.
    """
    adapters = _resolve_adapters(sources or settings.INGEST_SOURCES)
    for adapter in adapters:
        adapter.ensure_configured()

    if normalizer is None:
        from jobmap.services.geocode import get_geocode_resolver
        normalizer = Normalizer(get_geocode_resolver())
    if repository is None:
        from jobmap.repositories.job_repository import get_job_repository
        repository = get_job_repository()
    if cache is None:
        from jobmap.services.cache import get_cache_service
        cache = get_cache_service()

    state = IngestState(
        location=location or settings.INGEST_LOCATION,
        keyword=keyword,
        sources=[a.name for a in adapters],
    )
    state.mark_started()

    logger.info("=" * 60)
    logger.info(f"📥 INGESTING {', '.join(state.sources)} for {state.location}"
                f"{f' (keyword={keyword})' if keyword else ''}")
    logger.info("-" * 40)

    outcomes = await asyncio.gather(
        *(step1_ingest_source(state, a, normalizer, repository) for a in adapters),
        return_exceptions=True,
    )
    for adapter, outcome in zip(adapters, outcomes):
        if isinstance(outcome, BaseException):
            state.add_error("source_task", adapter.name, str(outcome))
            logger.error(f"   ❌ {adapter.name}: task crashed: {outcome}")

    step2_invalidate_search_cache(state, cache)
    state.mark_completed()

    totals = state.totals
    logger.info("-" * 40)
    logger.info(
        f"✅ Ingestion complete: created={totals['created']} updated={totals['updated']} "
        f"failed={totals['failed']} errors={len(state.summary['errors'])}"
    )
    return state
