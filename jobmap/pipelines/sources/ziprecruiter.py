"""
ZipRecruiter Source - job search scraper (headless browser)
jobmap/pipelines/sources/ziprecruiter.py
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from jobmap.models.job import JobSource
from jobmap.pipelines.sources.browser import BrowserScrapedSource


class ZipRecruiterSource(BrowserScrapedSource):
    name = "ziprecruiter"
    source = JobSource.ZIPRECRUITER
    base_url = "https://www.ziprecruiter.com"
    source_id_prefix = "ziprecruiter-"

    listing_selectors = (
        ".job_content",
        ".job_tile",
        "[data-testid='job-card']",
        "article.job-listing",
    )
    title_selectors = (
        ".job_link",
        ".job_title a",
        "h2 a",
        "[data-testid='job-title']",
    )
    company_selectors = (
        ".company_name",
        ".company",
        "[data-testid='company-name']",
    )
    location_selectors = (
        ".job_location",
        ".location",
        "[data-testid='job-location']",
    )
    salary_selectors = (
        ".salary",
        "[data-testid='salary']",
        ".job_snippet",
    )
    snippet_selectors = (".job_snippet", "[data-testid='job-snippet']")
    employment_type_selectors = (
        "[data-testid='employment-type']",
        ".employment_type",
        ".t_employment_type",
    )
    detail_selectors = (
        "#job_description",
        ".job_description",
        "[data-testid='job-description']",
    )

    def search_url(self, location: str, keyword: Optional[str]) -> str:
        params = {"search": keyword or "", "location": location, "days": 1}
        return f"{self.base_url}/jobs-search?{urlencode(params)}"
