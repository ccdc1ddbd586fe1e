"""
Search Service - read-through cache in front of the job search
jobmap/services/search_service.py

Cache keys cover every search parameter, with absent filters normalized so
that equivalent requests share one entry. Filtered searches get the shorter
TTL. A cache that is down or unconfigured only costs latency.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from jobmap.config import settings
from jobmap.models.job import (
    JobPin,
    SearchFilters,
    SearchResponse,
    SuggestionResponse,
    SuggestionType,
)
from jobmap.services.cache import SEARCH_PREFIX, SUGGESTIONS_PREFIX, cache_key

logger = logging.getLogger(__name__)

MIN_SUGGESTION_LENGTH = 2


def search_cache_params(filters: SearchFilters) -> Dict[str, Any]:
    bbox = filters.bbox
    return {
        "bbox": f"{bbox.min_lon},{bbox.min_lat},{bbox.max_lon},{bbox.max_lat}",
        "q": filters.q or "",
        "company": filters.company or "",
        "minPay": filters.min_pay or 0,
        "maxAgeDays": filters.max_age_days or 0,
        "types": ",".join(sorted(t.value for t in filters.types)),
        "limit": filters.limit,
    }


def search_ttl(filters: SearchFilters) -> int:
    if filters.has_optional_filters:
        return settings.SEARCH_TTL_FILTERED
    return settings.SEARCH_TTL_UNFILTERED


def row_to_pin(row: Dict[str, Any]) -> JobPin:
    return JobPin(
        id=row["id"],
        title=row["title"],
        company=row["company"],
        url=row.get("url"),
        lat=float(row["latitude"]),
        lon=float(row["longitude"]),
        pay_min=row.get("pay_min"),
        pay_max=row.get("pay_max"),
        posted_at=row.get("posted_at"),
        street=row.get("street"),
        city=row.get("city"),
        state=row.get("state"),
        employment_type=row.get("employment_type"),
        source=row["source"],
    )


class SearchService:
    """Search and suggestions, each returning (payload, cache_hit)."""

    def __init__(self, repository=None, cache=None):
        self._repository = repository
        self._cache = cache

    @property
    def repository(self):
        if self._repository is None:
            from jobmap.repositories.job_repository import get_job_repository
            self._repository = get_job_repository()
        return self._repository

    @property
    def cache(self):
        if self._cache is None:
            from jobmap.services.cache import get_cache_service
            self._cache = get_cache_service()
        return self._cache

    def search(self, filters: SearchFilters) -> Tuple[Dict[str, Any], bool]:
        key = cache_key(SEARCH_PREFIX, search_cache_params(filters))
        cached = self.cache.get(key)
        if cached.ok:
            return cached.value, True

        pins = [row_to_pin(row) for row in self.repository.search(filters)]
        payload = SearchResponse(jobs=pins, count=len(pins)).model_dump(mode="json")
        self.cache.set(key, payload, search_ttl(filters))
        return payload, False

    def suggestions(
        self, q: Optional[str], kind: SuggestionType = SuggestionType.title
    ) -> Tuple[Dict[str, List[str]], bool]:
        if not q or len(q.strip()) < MIN_SUGGESTION_LENGTH:
            return SuggestionResponse(suggestions=[]).model_dump(), False

        term = q.strip()
        key = cache_key(SUGGESTIONS_PREFIX, {"q": term.lower(), "type": kind.value})
        cached = self.cache.get(key)
        if cached.ok:
            return cached.value, True

        values = self.repository.suggestions(term, kind, settings.SUGGESTIONS_LIMIT)
        payload = SuggestionResponse(suggestions=values).model_dump()
        self.cache.set(key, payload, settings.SUGGESTIONS_TTL)
        return payload, False

    def invalidate(self) -> int:
        result = self.cache.invalidate_search()
        return result.value if result.ok else 0


_search_service: Optional[SearchService] = None


def get_search_service() -> SearchService:
    global _search_service
    if _search_service is None:
        _search_service = SearchService()
    return _search_service
