"""
HTML Fetch Scraping - ScraperAPI fetch path
jobmap/pipelines/sources/html_fetch.py

Pages are fetched through ScraperAPI (proxy rotation + JS rendering) and
parsed with BeautifulSoup. A page that still shows the anti-bot interstitial
is refetched on a fresh proxy session until the challenge timeout runs out.
"""

from __future__ import annotations

import logging
import random
import time
from typing import List, Optional

import httpx

from jobmap.config import settings
from jobmap.models.job import SourceJobDraft
from jobmap.pipelines.sources.scraping import (
    ChallengeNotResolved,
    ScrapedSource,
    async_pause,
    is_challenge_page,
)
from jobmap.services.http_retry import async_retrying

logger = logging.getLogger(__name__)

SCRAPERAPI_URL = "http://api.scraperapi.com/"
# Rendered fetches routinely take 30-60s on the proxy side
SCRAPERAPI_TIMEOUT = 70.0


class ScraperAPIClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self.api_key = api_key or settings.secret("SCRAPERAPI_KEY")
        self._client = client
        self.retry_base_delay = retry_base_delay

    async def fetch(
        self,
        url: str,
        render: bool = True,
        premium: bool = False,
        session_number: Optional[int] = None,
    ) -> str:
        params = {
            "api_key": self.api_key,
            "url": url,
            "render": str(render).lower(),
            "country_code": "us",
        }
        if premium:
            params["premium"] = "true"
        if session_number is not None:
            params["session_number"] = session_number

        client = self._client or httpx.AsyncClient(timeout=SCRAPERAPI_TIMEOUT)
        try:
            async for attempt in async_retrying(base_delay=self.retry_base_delay):
                with attempt:
                    response = await client.get(SCRAPERAPI_URL, params=params)
                    response.raise_for_status()
                    return response.text
        finally:
            if self._client is None:
                await client.aclose()
        raise RuntimeError("unreachable")


class HtmlScrapedSource(ScrapedSource):
    """Listing + detail scrape through the HTML fetch service."""

    required_settings = ("SCRAPERAPI_KEY",)
    premium = False

    def __init__(self, fetcher: Optional[ScraperAPIClient] = None, **kwargs):
        super().__init__(**kwargs)
        self._fetcher = fetcher

    @property
    def fetcher(self) -> ScraperAPIClient:
        if self._fetcher is None:
            self._fetcher = ScraperAPIClient()
        return self._fetcher

    async def _load(self, url: str, render: bool = True) -> str:
        deadline = time.monotonic() + self.challenge_timeout
        session_number = None
        while True:
            html = await self.fetcher.fetch(
                url, render=render, premium=self.premium, session_number=session_number
            )
            if not is_challenge_page(html):
                return html
            if time.monotonic() >= deadline:
                raise ChallengeNotResolved(f"challenge not cleared after {self.challenge_timeout}s: {url}")
            session_number = random.randint(1, 10_000)
            logger.info(f"      • challenge page, retrying on session {session_number}")

    async def _fetch(self, location: str, keyword: Optional[str]) -> List[SourceJobDraft]:
        self.ensure_configured()
        url = self.search_url(location, keyword)
        logger.info(f"   📥 {self.name}: fetching {url}")
        listings = self.parse_listings(await self._load(url))
        logger.info(f"      • {len(listings)} listings on page")
        await async_pause(self.page_delay)

        drafts = []
        for i, listing in enumerate(listings):
            if i:
                await async_pause(self.detail_delay)
            try:
                self.apply_detail(listing, await self._load(self.detail_url(listing), render=False))
            except (ChallengeNotResolved, httpx.HTTPError) as e:
                logger.warning(f"      ⚠️ {self.name}: detail page skipped ({listing.url}): {e}")
            drafts.append(self.to_draft(listing))
        return drafts
