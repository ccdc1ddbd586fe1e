"""
Indeed Source - job search scraper
jobmap/pipelines/sources/indeed.py

Indeed blocks plain datacenter traffic, so listing pages normally go through
the ScraperAPI premium proxy pool. Without a SCRAPERAPI_KEY the same markup is
scraped through a local headless browser instead. Job keys ("jk") identify
postings across searches and across both fetch paths.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

from jobmap.config import settings
from jobmap.models.job import JobSource
from jobmap.pipelines.sources.base import JobSourceAdapter
from jobmap.pipelines.sources.browser import BrowserScrapedSource
from jobmap.pipelines.sources.html_fetch import HtmlScrapedSource
from jobmap.pipelines.sources.scraping import ScrapedListing


def indeed_job_key(url: str) -> Optional[str]:
    values = parse_qs(urlparse(url).query).get("jk")
    return values[0] if values else None


class IndeedMarkup:
    """Selectors and URLs shared by both Indeed fetch paths."""

    name = "indeed"
    source = JobSource.INDEED
    base_url = "https://www.indeed.com"
    source_id_prefix = "indeed-"

    listing_selectors = (
        ".job_seen_beacon",
        "[data-testid='job-card']",
        ".jobCard",
        ".result",
    )
    title_selectors = (
        "h2.jobTitle a",
        "h2 a",
        "[data-testid='job-title'] a",
        ".jobTitle a",
    )
    company_selectors = (
        "[data-testid='company-name']",
        ".companyName",
        ".company",
    )
    location_selectors = (
        "[data-testid='text-location']",
        ".companyLocation",
        ".location",
        ".jobLocation",
    )
    salary_selectors = (
        "[data-testid='attribute_snippet_testid']",
        ".salary-snippet-container",
        ".salaryText",
        ".salary",
    )
    snippet_selectors = (
        ".job-snippet",
        ".summary",
        "[data-testid='job-snippet']",
    )
    # Detail header: "<span>$20 - $24 an hour</span><span> - Full-time</span>"
    employment_type_selectors = (
        "#salaryInfoAndJobType span:nth-of-type(2)",
        "[data-testid='jobsearch-JobInfoHeader-jobType']",
    )
    detail_selectors = ("#jobDescriptionText", ".jobsearch-jobDescriptionText")

    def search_url(self, location: str, keyword: Optional[str]) -> str:
        params = {"q": keyword or "", "l": location, "fromage": 1, "sort": "date"}
        return f"{self.base_url}/jobs?{urlencode(params)}"

    def source_id_for(self, url: str) -> str:
        return indeed_job_key(url) or super().source_id_for(url)

    def detail_url(self, listing: ScrapedListing) -> str:
        jk = indeed_job_key(listing.url)
        return f"{self.base_url}/viewjob?jk={jk}" if jk else listing.url


class IndeedSource(IndeedMarkup, HtmlScrapedSource):
    premium = True


class IndeedBrowserSource(IndeedMarkup, BrowserScrapedSource):
    pass


def indeed_source() -> JobSourceAdapter:
    """ScraperAPI when a key is configured, else direct browser scraping."""
    if settings.secret("SCRAPERAPI_KEY"):
        return IndeedSource()
    return IndeedBrowserSource()
