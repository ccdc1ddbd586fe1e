"""
Google Jobs Source - aggregated search results (ScraperAPI + BeautifulSoup)
jobmap/pipelines/sources/google_jobs.py

Google blocks direct traffic, so results are always fetched rendered through
ScraperAPI's premium pool. Result cards have no stable class names; a card is
any block whose text reads "Title · Company · Location · ...". Links point at
the original posting, sometimes wrapped in a google.com/url redirect.
"""

from __future__ import annotations

import hashlib
import re
from typing import List, Optional
from urllib.parse import parse_qs, urlencode, urlparse

from bs4 import BeautifulSoup

from jobmap.models.job import JobSource
from jobmap.pipelines.sources.html_fetch import HtmlScrapedSource
from jobmap.pipelines.sources.scraping import ScrapedListing, node_text, select_first

SEPARATOR = "·"
MIN_CARD_TEXT = 50
MIN_TITLE_LENGTH = 5
TITLE_FROM_TEXT = re.compile(r"^([^·\n]{10,}?)\s*·")
SALARY_FROM_TEXT = re.compile(
    r"\$[\d,]+(?:\s*-\s*\$[\d,]+)?(?:\s*(?:per|an|hour|year|month|yr|hr)\b)?", re.IGNORECASE
)
# Chips after company and location, e.g. "3 days ago", "Full-time", "Health insurance"
MAX_CHIP_LENGTH = 30


def unwrap_redirect(href: str) -> str:
    """'/url?q=https://real/job&sa=U' -> 'https://real/job'."""
    parsed = urlparse(href)
    if parsed.path == "/url" and (not parsed.netloc or "google." in parsed.netloc):
        values = parse_qs(parsed.query).get("q")
        return values[0] if values else ""
    return href


class GoogleJobsSource(HtmlScrapedSource):
    name = "googlejobs"
    source = JobSource.GOOGLE_JOBS
    base_url = "https://www.google.com"
    source_id_prefix = "google-"
    premium = True

    listing_selectors = ("div[data-ved]", "div.g", "[class*='job']")
    title_selectors = ("h3", "h2", "h4", "[class*='title']")
    link_selectors = ("a[href*='jobs']", "a[href*='linkedin']", "a[href*='indeed']")
    snippet_selectors = ("[class*='snippet']", "[class*='description']", ".s")
    detail_selectors = (
        "#jobDescriptionText",
        ".show-more-less-html__markup",
        "#job_description",
        "[class*='description']",
        "main",
    )

    def search_url(self, location: str, keyword: Optional[str]) -> str:
        query = f"{keyword} jobs in {location}" if keyword else f"jobs in {location}"
        return f"{self.base_url}/search?{urlencode({'q': query})}&ibp=htl;jobs"

    def source_id_for(self, url: str) -> str:
        # Postings live on many boards; only id-like path tails are reused as-is
        tail = super().source_id_for(url)
        if re.search(r"\d", tail) and not urlparse(url).query:
            return tail
        return hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]

    def parse_listings(self, html: str) -> List[ScrapedListing]:
        soup = BeautifulSoup(html or "", "html.parser")
        listings: List[ScrapedListing] = []
        seen = set()
        for node in soup.select(", ".join(self.listing_selectors)):
            if len(listings) >= self.max_results:
                break
            listing = self._parse_card(node)
            if listing is not None and listing.url not in seen:
                seen.add(listing.url)
                listings.append(listing)
        return listings

    def _parse_card(self, node) -> Optional[ScrapedListing]:
        text = node_text(node)
        if SEPARATOR not in text or len(text) < MIN_CARD_TEXT:
            return None

        title = node_text(select_first(node, self.title_selectors))
        if len(title) < MIN_TITLE_LENGTH:
            match = TITLE_FROM_TEXT.match(text)
            title = match.group(1).strip() if match else ""
        if len(title) < MIN_TITLE_LENGTH or "Search" in title or "Filter" in title:
            return None

        parts = [p.strip() for p in text.split(SEPARATOR) if p.strip()]
        company = parts[1] if len(parts) > 1 else ""
        location = parts[2] if len(parts) > 2 else ""
        link_el = select_first(node, self.link_selectors)
        url = unwrap_redirect(link_el.get("href", "")) if link_el is not None else ""
        if not company or len(url) <= 10:
            return None

        salary = SALARY_FROM_TEXT.search(text)
        chips = [p for p in parts[3:] if "$" not in p and len(p) <= MAX_CHIP_LENGTH]
        return ScrapedListing(
            title=title,
            company=company,
            location=location,
            url=url,
            salary_text=salary.group(0) if salary else None,
            snippet=node_text(select_first(node, self.snippet_selectors)) or None,
            employment_type_text=" ".join(chips) or None,
        )
