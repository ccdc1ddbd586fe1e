"""
Browser Scraping - headless Chrome fetch path
jobmap/pipelines/sources/browser.py

Selenium is blocking, so the whole scrape (listing page plus every detail
page) runs in a worker thread. Within that thread pages are visited one at a
time with randomized pauses.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait

from jobmap.config import settings
from jobmap.models.job import SourceJobDraft
from jobmap.pipelines.sources.scraping import (
    CHALLENGE_SELECTOR,
    CHALLENGE_TITLE,
    USER_AGENT,
    ChallengeNotResolved,
    ScrapedSource,
    pause,
)

logger = logging.getLogger(__name__)


def create_chrome_driver(headless: Optional[bool] = None) -> webdriver.Chrome:
    chrome_options = Options()
    if settings.SCRAPER_HEADLESS if headless is None else headless:
        chrome_options.add_argument("--headless=new")
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument("--disable-gpu")
    chrome_options.add_argument("--window-size=1920,1080")
    chrome_options.add_argument("--disable-blink-features=AutomationControlled")
    chrome_options.add_argument(f"user-agent={USER_AGENT}")
    return webdriver.Chrome(options=chrome_options)


def challenge_cleared(driver) -> bool:
    return driver.title != CHALLENGE_TITLE and not driver.find_elements(By.CSS_SELECTOR, CHALLENGE_SELECTOR)


def wait_for_challenge(driver, timeout: float) -> bool:
    """Block until the anti-bot interstitial is gone; False once timeout passes."""
    try:
        WebDriverWait(driver, timeout, poll_frequency=0.5).until(challenge_cleared)
        return True
    except TimeoutException:
        return False


class BrowserScrapedSource(ScrapedSource):
    """Listing + detail scrape through a real browser session."""

    def __init__(self, driver_factory: Optional[Callable[[], object]] = None, **kwargs):
        super().__init__(**kwargs)
        self.driver_factory = driver_factory or create_chrome_driver

    def _load(self, driver, url: str) -> str:
        driver.get(url)
        if not wait_for_challenge(driver, self.challenge_timeout):
            raise ChallengeNotResolved(f"challenge not cleared after {self.challenge_timeout}s: {url}")
        return driver.page_source

    def _scroll(self, driver) -> None:
        # Boards lazy-load more cards once the list is scrolled
        try:
            driver.execute_script("window.scrollTo(0, document.body.scrollHeight);")
        except WebDriverException as e:
            logger.debug(f"Scroll failed: {e}")

    def _scrape(self, location: str, keyword: Optional[str]) -> List[SourceJobDraft]:
        driver = self.driver_factory()
        try:
            url = self.search_url(location, keyword)
            logger.info(f"   📥 {self.name}: loading {url}")
            self._load(driver, url)
            pause(self.page_delay)
            self._scroll(driver)
            listings = self.parse_listings(driver.page_source)
            logger.info(f"      • {len(listings)} listings on page")

            drafts = []
            for i, listing in enumerate(listings):
                if i:
                    pause(self.detail_delay)
                try:
                    self.apply_detail(listing, self._load(driver, self.detail_url(listing)))
                except (ChallengeNotResolved, WebDriverException) as e:
                    logger.warning(f"      ⚠️ {self.name}: detail page skipped ({listing.url}): {e}")
                drafts.append(self.to_draft(listing))
            return drafts
        finally:
            try:
                driver.quit()
            except WebDriverException as e:
                logger.debug(f"Driver quit failed: {e}")

    async def _fetch(self, location: str, keyword: Optional[str]) -> List[SourceJobDraft]:
        self.ensure_configured()
        return await asyncio.to_thread(self._scrape, location, keyword)
