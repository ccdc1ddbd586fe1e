"""
Arizona Job Connection Source - state job board scraper (headless browser)
jobmap/pipelines/sources/azjobconnection.py

Search results render as table rows (older layout) or job cards. Detail pages
often carry the worksite street address, salary and posting date in their own
elements, which are read alongside the description.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from jobmap.models.job import JobSource
from jobmap.pipelines.sources.browser import BrowserScrapedSource
from jobmap.pipelines.sources.scraping import ScrapedListing, node_text, select_first

SEARCH_RADIUS_MILES = 50
MIN_TITLE_LENGTH = 10
# Link text of search chrome that sits in the same rows as real postings
UI_LABELS = ("Total", "Keyword", "Location")


class ArizonaJobConnectionSource(BrowserScrapedSource):
    name = "azjobconnection"
    source = JobSource.ARIZONA_JOB_CONNECTION
    base_url = "https://www.azjobconnection.gov"
    source_id_prefix = "azjobconnection-"
    # Rows often leave employer and city blank
    required_fields = ("title",)

    listing_selectors = (
        "table tbody tr:has(a[href*='/jobs/'])",
        "div[class*='job']:has(a[href*='/jobs/'])",
        "li[class*='job']:has(a[href*='/jobs/'])",
        "article[class*='job']:has(a[href*='/jobs/'])",
    )
    title_selectors = ("a[href*='/jobs/']",)
    link_selectors = ("a[href*='/jobs/']",)
    company_selectors = (".company", ".employer", "[class*='company']", "td:nth-child(2)")
    location_selectors = (".location", "[class*='location']", "[class*='city']", "td:nth-child(3)")
    detail_selectors = (
        ".job-description",
        ".description",
        "#job-description",
        ".job-details",
        "main",
        ".content",
    )
    detail_address_selectors = (
        ".address",
        ".job-address",
        "[data-address]",
        ".location-detail",
        "[class*='address']",
    )
    detail_salary_selectors = (".salary", ".pay", ".compensation", "[data-salary]", "[class*='salary']")
    detail_posted_selectors = (".posted-date", ".date-posted", "[data-date]", "[class*='date']")

    def search_url(self, location: str, keyword: Optional[str]) -> str:
        params = {
            "search_job_search[job_location_city]": location.split(",")[0].strip(),
            "search_job_search[job_location_state]": "Arizona",
            "search_job_search[radius]": SEARCH_RADIUS_MILES,
        }
        if keyword:
            params = {"search_job_search[keywords]": keyword, **params}
        return f"{self.base_url}/search/jobs?{urlencode(params)}"

    def keep_listing(self, listing: ScrapedListing) -> bool:
        title = listing.title
        if not super().keep_listing(listing) or len(title) < MIN_TITLE_LENGTH:
            return False
        if any(label in title for label in UI_LABELS):
            return False
        return "/jobs/" in listing.url

    def apply_detail(self, listing: ScrapedListing, html: str) -> None:
        super().apply_detail(listing, html)
        soup = BeautifulSoup(html or "", "html.parser")

        address = node_text(select_first(soup, self.detail_address_selectors))
        if re.search(r"\d", address):
            listing.address_text = address
        listing.salary_text = node_text(select_first(soup, self.detail_salary_selectors)) or listing.salary_text
        posted_el = select_first(soup, self.detail_posted_selectors)
        if posted_el is not None:
            listing.posted_text = posted_el.get("datetime") or node_text(posted_el)
