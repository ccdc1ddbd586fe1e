"""
LinkedIn Source - public job search scraper (headless browser)
jobmap/pipelines/sources/linkedin.py

Only the guest search page is used (no login). f_TPR=r86400 limits results
to the last 24 hours.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from jobmap.models.job import JobSource
from jobmap.pipelines.sources.browser import BrowserScrapedSource


class LinkedInSource(BrowserScrapedSource):
    name = "linkedin"
    source = JobSource.LINKEDIN
    base_url = "https://www.linkedin.com"
    source_id_prefix = "linkedin-"

    listing_selectors = (
        ".jobs-search__results-list li",
        ".scaffold-layout__list-container li",
        "[data-test-id='job-card']",
        ".job-card-container",
    )
    title_selectors = (
        ".base-search-card__title",
        ".job-card-list__title a",
        "h3 a",
        "[data-test-id='job-title']",
    )
    company_selectors = (
        ".base-search-card__subtitle a",
        ".base-search-card__subtitle",
        ".job-card-container__company-name a",
        "[data-test-id='job-company']",
    )
    location_selectors = (
        ".job-search-card__location",
        ".job-card-container__metadata-item",
        "[data-test-id='job-location']",
    )
    link_selectors = (
        "a.base-card__full-link",
        ".base-search-card__full-link",
        ".job-card-list__title a",
        "a[href*='/jobs/view/']",
    )
    salary_selectors = (".job-search-card__salary-info",)
    posted_selectors = ("time[datetime]", ".job-search-card__listdate")
    # Detail-page criteria list: seniority level first, employment type second
    employment_type_selectors = (
        "li.description__job-criteria-item:nth-of-type(2) .description__job-criteria-text",
        ".job-criteria__text--criteria",
    )
    detail_selectors = (
        ".show-more-less-html__markup",
        ".description__text",
        ".jobs-description__content",
    )

    def search_url(self, location: str, keyword: Optional[str]) -> str:
        params = {"keywords": keyword or "", "location": location, "f_TPR": "r86400"}
        return f"{self.base_url}/jobs/search?{urlencode(params)}"
