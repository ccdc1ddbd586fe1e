"""
Scraped Sources - shared listing/detail extraction
jobmap/pipelines/sources/scraping.py

Scraped job boards change markup often, so every field is read through a
prioritized selector list (first match wins). Pages are fetched either by a
headless browser (selenium) or through an HTML fetch service; both paths
hand raw HTML to the same BeautifulSoup extraction code.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from abc import abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from jobmap.config import settings
from jobmap.models.job import SourceJobDraft
from jobmap.pipelines.sources.base import JobSourceAdapter, parse_posted_at

logger = logging.getLogger(__name__)

CHALLENGE_TITLE = "Just a moment..."
CHALLENGE_SELECTOR = "#challenge-form"
DESCRIPTION_UNAVAILABLE = "Description unavailable"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class ChallengeNotResolved(RuntimeError):
    """Anti-bot interstitial still present after the wait timeout."""


@dataclass
class ScrapedListing:
    title: str
    company: str
    location: str
    url: str
    salary_text: Optional[str] = None
    snippet: Optional[str] = None
    employment_type_text: Optional[str] = None
    posted_text: Optional[str] = None
    address_text: Optional[str] = None
    description: Optional[str] = None


# ============================================================
# Extraction helpers
# ============================================================

def node_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return re.sub(r"\s+", " ", node.get_text(" ", strip=True)).strip()


def select_first(node: Tag, selectors: Sequence[str]) -> Optional[Tag]:
    """First element matched by the first selector that matches anything."""
    for selector in selectors:
        found = node.select_one(selector)
        if found is not None:
            return found
    return None


def select_listing_nodes(soup: Tag, selectors: Sequence[str]) -> List[Tag]:
    for selector in selectors:
        nodes = soup.select(selector)
        if nodes:
            logger.debug(f"Found {len(nodes)} listings with {selector}")
            return nodes
    return []


def is_challenge_page(html: str) -> bool:
    soup = BeautifulSoup(html or "", "html.parser")
    title = node_text(soup.title) if soup.title else ""
    return title == CHALLENGE_TITLE or soup.select_one(CHALLENGE_SELECTOR) is not None


def random_delay(bounds: Sequence[float]) -> float:
    low, high = (bounds[0], bounds[-1]) if bounds else (0.0, 0.0)
    return random.uniform(low, high)


def pause(bounds: Sequence[float]) -> None:
    time.sleep(random_delay(bounds))


async def async_pause(bounds: Sequence[float]) -> None:
    await asyncio.sleep(random_delay(bounds))


# ============================================================
# Adapter base
# ============================================================

class ScrapedSource(JobSourceAdapter):
    """Selector-driven listing and detail extraction for one job board."""

    base_url: str
    source_id_prefix: str
    listing_selectors: Tuple[str, ...] = ()
    title_selectors: Tuple[str, ...] = ()
    company_selectors: Tuple[str, ...] = ()
    location_selectors: Tuple[str, ...] = ()
    link_selectors: Tuple[str, ...] = ()
    salary_selectors: Tuple[str, ...] = ()
    snippet_selectors: Tuple[str, ...] = ()
    posted_selectors: Tuple[str, ...] = ()
    employment_type_selectors: Tuple[str, ...] = ()
    detail_selectors: Tuple[str, ...] = ()
    # Fields a listing card must carry to be kept
    required_fields: Tuple[str, ...] = ("title", "company", "location")

    def __init__(
        self,
        max_results: Optional[int] = None,
        page_delay: Optional[Sequence[float]] = None,
        detail_delay: Optional[Sequence[float]] = None,
        challenge_timeout: Optional[float] = None,
    ):
        self.max_results = max_results or settings.SCRAPE_MAX_RESULTS
        self.page_delay = settings.SCRAPE_PAGE_DELAY if page_delay is None else page_delay
        self.detail_delay = settings.SCRAPE_DETAIL_DELAY if detail_delay is None else detail_delay
        self.challenge_timeout = (
            settings.CHALLENGE_TIMEOUT_SECONDS if challenge_timeout is None else challenge_timeout
        )

    @abstractmethod
    def search_url(self, location: str, keyword: Optional[str]) -> str:
        raise NotImplementedError

    def detail_url(self, listing: ScrapedListing) -> str:
        return listing.url

    def source_id_for(self, url: str) -> str:
        path_parts = [p for p in urlparse(url).path.split("/") if p]
        return path_parts[-1] if path_parts else url

    def parse_listings(self, html: str) -> List[ScrapedListing]:
        soup = BeautifulSoup(html or "", "html.parser")
        listings: List[ScrapedListing] = []
        seen = set()
        for node in select_listing_nodes(soup, self.listing_selectors):
            if len(listings) >= self.max_results:
                break
            title_el = select_first(node, self.title_selectors)
            link_el = select_first(node, self.link_selectors) if self.link_selectors else None
            if link_el is None:
                link_el = title_el if title_el is not None and title_el.name == "a" else node.find("a")
            href = link_el.get("href", "") if link_el is not None else ""

            posted_el = select_first(node, self.posted_selectors) if self.posted_selectors else None
            posted_text = None
            if posted_el is not None:
                posted_text = posted_el.get("datetime") or node_text(posted_el)

            listing = ScrapedListing(
                title=node_text(title_el),
                company=node_text(select_first(node, self.company_selectors)),
                location=node_text(select_first(node, self.location_selectors)),
                url=urljoin(self.base_url, href) if href else "",
                salary_text=node_text(select_first(node, self.salary_selectors)) or None,
                snippet=node_text(select_first(node, self.snippet_selectors)) or None,
                employment_type_text=node_text(select_first(node, self.employment_type_selectors)) or None,
                posted_text=posted_text,
            )
            if listing.url and listing.url not in seen and self.keep_listing(listing):
                seen.add(listing.url)
                listings.append(listing)
        return listings

    def keep_listing(self, listing: ScrapedListing) -> bool:
        return all(getattr(listing, field) for field in self.required_fields)

    def apply_detail(self, listing: ScrapedListing, html: str) -> None:
        """Fill the listing from its detail page."""
        soup = BeautifulSoup(html or "", "html.parser")
        listing.description = node_text(select_first(soup, self.detail_selectors)) or None
        if not listing.employment_type_text:
            listing.employment_type_text = (
                node_text(select_first(soup, self.employment_type_selectors)) or None
            )

    def to_draft(self, listing: ScrapedListing) -> SourceJobDraft:
        description = listing.description or listing.snippet or DESCRIPTION_UNAVAILABLE
        return SourceJobDraft(
            source=self.source,
            source_id=f"{self.source_id_prefix}{self.source_id_for(listing.url)}",
            title=listing.title,
            company=listing.company,
            description=description,
            url=listing.url,
            location_text=listing.location,
            address_text=listing.address_text,
            salary_text=listing.salary_text,
            employment_type_text=listing.employment_type_text,
            posted_at=parse_posted_at(listing.posted_text),
        )
