"""
Adzuna Source - REST API adapter
jobmap/pipelines/sources/adzuna.py

API Docs: https://developer.adzuna.com/docs/search
Results carry lat/long for most US postings, so the normalizer can usually
skip the forward geocode.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from jobmap.config import settings
from jobmap.models.job import JobSource, SourceJobDraft
from jobmap.pipelines.sources.base import JobSourceAdapter, parse_posted_at
from jobmap.services.http_retry import async_retrying

logger = logging.getLogger(__name__)

ADZUNA_SEARCH_URL = "https://api.adzuna.com/v1/api/jobs/us/search/{page}"


def adzuna_result_to_draft(result: Dict[str, Any]) -> Optional[SourceJobDraft]:
    """Map one Adzuna result to a draft; None when it has no id."""
    if result.get("id") in (None, ""):
        return None
    location = result.get("location") or {}
    company = result.get("company") or {}

    latitude = result.get("latitude", location.get("latitude"))
    longitude = result.get("longitude", location.get("longitude"))

    return SourceJobDraft(
        source=JobSource.ADZUNA,
        source_id=str(result["id"]),
        title=(result.get("title") or "").strip() or None,
        company=(company.get("display_name") or "").strip() or None,
        description=result.get("description") or "",
        url=result.get("redirect_url") or "",
        location_text=location.get("display_name"),
        latitude=float(latitude) if latitude is not None else None,
        longitude=float(longitude) if longitude is not None else None,
        pay_min=result.get("salary_min"),
        pay_max=result.get("salary_max"),
        pay_currency="USD",
        employment_type_text=result.get("contract_time") or result.get("contract_type"),
        posted_at=parse_posted_at(result.get("created")),
    )


class AdzunaSource(JobSourceAdapter):
    name = "adzuna"
    source = JobSource.ADZUNA
    required_settings = ("ADZUNA_APP_ID", "ADZUNA_APP_KEY")

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_pages: Optional[int] = None,
        page_delay: Optional[float] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self._client = client
        self.max_pages = max_pages or settings.ADZUNA_MAX_PAGES
        self.page_delay = settings.API_PAGE_DELAY if page_delay is None else page_delay
        self.retry_base_delay = retry_base_delay

    async def _get_page(
        self, client: httpx.AsyncClient, page: int, location: str, keyword: Optional[str]
    ) -> Dict[str, Any]:
        params = {
            "app_id": settings.ADZUNA_APP_ID,
            "app_key": settings.secret("ADZUNA_APP_KEY"),
            "results_per_page": settings.ADZUNA_RESULTS_PER_PAGE,
            "where": location,
            "sort_by": "date",
            "what": keyword or "jobs",
        }
        async for attempt in async_retrying(base_delay=self.retry_base_delay):
            with attempt:
                response = await client.get(ADZUNA_SEARCH_URL.format(page=page), params=params)
                response.raise_for_status()
                return response.json()
        raise RuntimeError("unreachable")

    async def _fetch(self, location: str, keyword: Optional[str]) -> List[SourceJobDraft]:
        self.ensure_configured()
        drafts: List[SourceJobDraft] = []
        client = self._client or httpx.AsyncClient(timeout=30.0)
        try:
            for page in range(1, self.max_pages + 1):
                logger.info(f"   📥 Adzuna page {page} ({location}, what={keyword or 'jobs'})")
                data = await self._get_page(client, page, location, keyword)
                results = data.get("results") or []
                for result in results:
                    draft = adzuna_result_to_draft(result)
                    if draft:
                        drafts.append(draft)

                total = int(data.get("count") or 0)
                if not results or page * settings.ADZUNA_RESULTS_PER_PAGE >= total:
                    break
                await asyncio.sleep(self.page_delay)
        finally:
            if self._client is None:
                await client.aclose()
        return drafts
