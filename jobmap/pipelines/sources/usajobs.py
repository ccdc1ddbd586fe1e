"""
USAJOBS Source - federal job search API adapter
jobmap/pipelines/sources/usajobs.py

API Docs: https://developer.usajobs.gov/api-reference/get-api-search

- 25 results per page, paging until SearchResultCount is exhausted or the page cap
- One posting may list many duty locations: each distinct location becomes its
  own draft with source_id "<MatchedObjectId>-<index>"
- Drafts outside the configured metro radius are dropped
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from geopy.distance import geodesic

from jobmap.config import settings
from jobmap.models.job import JobSource, SourceJobDraft
from jobmap.pipelines.sources.base import JobSourceAdapter, parse_posted_at
from jobmap.services.http_retry import async_retrying

logger = logging.getLogger(__name__)

USAJOBS_SEARCH_URL = "https://data.usajobs.gov/api/Search"
RESULTS_PER_PAGE = 25
# ~1km; closer locations in the same city/state are the same place
SAME_LOCATION_DEGREES = 0.01


def annualize_remuneration(remuneration: List[Dict[str, Any]]) -> tuple:
    """(pay_min, pay_max) per year from PositionRemuneration[0]."""
    if not remuneration:
        return None, None
    rem = remuneration[0]
    interval = (rem.get("RateIntervalCode") or rem.get("Description") or "").lower()

    def _amount(value) -> Optional[float]:
        if value in (None, ""):
            return None
        try:
            return float(str(value).replace(",", ""))
        except ValueError:
            return None

    pay_min, pay_max = _amount(rem.get("MinimumRange")), _amount(rem.get("MaximumRange"))
    # PH = per hour, PM = per month
    if "hour" in interval or interval == "ph":
        factor = 2080
    elif "month" in interval or interval == "pm":
        factor = 12
    else:
        factor = 1
    return (
        round(pay_min * factor) if pay_min else None,
        round(pay_max * factor) if pay_max else None,
    )


def _same_location(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    lat_a, lon_a = a.get("Latitude"), a.get("Longitude")
    lat_b, lon_b = b.get("Latitude"), b.get("Longitude")
    if None not in (lat_a, lon_a, lat_b, lon_b):
        if abs(lat_a - lat_b) > SAME_LOCATION_DEGREES or abs(lon_a - lon_b) > SAME_LOCATION_DEGREES:
            return False
    return (
        a.get("CityName") == b.get("CityName")
        and a.get("CountrySubDivisionCode") == b.get("CountrySubDivisionCode")
    )


def distinct_locations(locations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Locations with coordinates, duplicates collapsed, original order kept."""
    distinct: List[Dict[str, Any]] = []
    for loc in locations:
        if loc.get("Latitude") is None or loc.get("Longitude") is None:
            continue
        if any(_same_location(existing, loc) for existing in distinct):
            continue
        distinct.append(loc)
    return distinct


def _city_from_location_name(loc: Dict[str, Any]) -> Optional[str]:
    city = loc.get("CityName")
    if city and "," in city:
        # "Phoenix, Arizona" style
        city = city.split(",")[0]
    return city.strip() if city else None


def usajobs_item_to_drafts(item: Dict[str, Any]) -> List[SourceJobDraft]:
    descriptor = item.get("MatchedObjectDescriptor") or {}
    object_id = item.get("MatchedObjectId") or descriptor.get("PositionID")
    if not object_id:
        return []

    user_area = (descriptor.get("UserArea") or {}).get("Details") or {}
    description = (
        user_area.get("JobSummary")
        or "\n\n".join(
            d.get("Content", "") for d in descriptor.get("PositionFormattedDescription") or []
        )
        or descriptor.get("PositionLocationDisplay")
        or ""
    )
    schedule = (descriptor.get("PositionSchedule") or [{}])[0].get("Name")
    pay_min, pay_max = annualize_remuneration(descriptor.get("PositionRemuneration") or [])
    apply_uris = descriptor.get("ApplyURI") or []
    url = apply_uris[0] if apply_uris else descriptor.get("PositionURI") or ""
    posted_at = parse_posted_at(
        descriptor.get("PublicationStartDate") or descriptor.get("PositionStartDate")
    )

    drafts = []
    for index, loc in enumerate(distinct_locations(descriptor.get("PositionLocation") or [])):
        drafts.append(SourceJobDraft(
            source=JobSource.USAJOBS,
            source_id=f"{object_id}-{index}",
            title=descriptor.get("PositionTitle") or "Untitled Position",
            company=descriptor.get("OrganizationName") or "Federal Government",
            description=description,
            url=url,
            location_text=loc.get("LocationName"),
            city=_city_from_location_name(loc),
            state=loc.get("CountrySubDivisionCode"),
            country="US",
            latitude=float(loc["Latitude"]),
            longitude=float(loc["Longitude"]),
            pay_min=pay_min,
            pay_max=pay_max,
            pay_currency="USD",
            employment_type_text=schedule,
            posted_at=posted_at,
        ))
    return drafts


def within_metro(draft: SourceJobDraft, center: tuple, radius_km: float) -> bool:
    return geodesic(center, (draft.latitude, draft.longitude)).km <= radius_km


class USAJobsSource(JobSourceAdapter):
    name = "usajobs"
    source = JobSource.USAJOBS
    required_settings = ("USAJOBS_API_KEY", "USAJOBS_USER_AGENT")

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_pages: Optional[int] = None,
        page_delay: Optional[float] = None,
        retry_base_delay: Optional[float] = None,
        center: Optional[tuple] = None,
        radius_km: Optional[float] = None,
    ):
        self._client = client
        self.max_pages = max_pages or settings.USAJOBS_MAX_PAGES
        self.page_delay = settings.API_PAGE_DELAY if page_delay is None else page_delay
        self.retry_base_delay = retry_base_delay
        self.center = center or (settings.METRO_CENTER_LAT, settings.METRO_CENTER_LON)
        self.radius_km = radius_km or settings.METRO_RADIUS_KM

    def _headers(self) -> Dict[str, str]:
        return {
            "User-Agent": settings.USAJOBS_USER_AGENT or "",
            "Authorization-Key": settings.secret("USAJOBS_API_KEY") or "",
        }

    async def _get_page(
        self, client: httpx.AsyncClient, page: int, location: str, keyword: Optional[str]
    ) -> Dict[str, Any]:
        params = {
            "Page": page,
            "ResultsPerPage": RESULTS_PER_PAGE,
            "LocationName": location,
            "DatePosted": 30,
        }
        if keyword:
            params["Keyword"] = keyword
        async for attempt in async_retrying(base_delay=self.retry_base_delay):
            with attempt:
                response = await client.get(USAJOBS_SEARCH_URL, params=params, headers=self._headers())
                response.raise_for_status()
                return response.json()
        raise RuntimeError("unreachable")

    async def _fetch(self, location: str, keyword: Optional[str]) -> List[SourceJobDraft]:
        self.ensure_configured()
        drafts: List[SourceJobDraft] = []
        skipped_far = 0
        client = self._client or httpx.AsyncClient(timeout=30.0)
        try:
            page = 1
            while page <= self.max_pages:
                logger.info(f"   📥 USAJOBS page {page} ({location})")
                data = await self._get_page(client, page, location, keyword)
                search_result = data.get("SearchResult") or {}
                items = search_result.get("SearchResultItems") or []
                total = int(search_result.get("SearchResultCountAll") or search_result.get("SearchResultCount") or 0)

                for item in items:
                    for draft in usajobs_item_to_drafts(item):
                        if within_metro(draft, self.center, self.radius_km):
                            drafts.append(draft)
                        else:
                            skipped_far += 1

                if not items or page * RESULTS_PER_PAGE >= total:
                    break
                page += 1
                if page <= self.max_pages:
                    await asyncio.sleep(self.page_delay)
        finally:
            if self._client is None:
                await client.aclose()

        if skipped_far:
            logger.info(f"      • Skipped {skipped_far} locations outside {self.radius_km:.0f}km")
        return drafts
