"""
Shared utilities for all portal strategies.

  - Exceptions (one taxonomy for every portal family)
  - Retry policy for transient Playwright timeouts
  - Browser launch
  - Plain HTTP downloads (httpx) for report documents
"""

import logging
import os
import random
from pathlib import Path
from typing import Optional

import httpx
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeout, async_playwright
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

SCREENSHOT_DIR = Path("data") / "screenshots"


# ============================================================
# EXCEPTIONS
# ============================================================

class ScraperError(Exception):
    """Base scraper exception."""
    pass


class NavigationError(ScraperError):
    """Page load, selector or timeout failure while setting up a search."""
    pass


class ContentNotFoundError(ScraperError):
    """Expected content missing from page."""
    pass


class InvalidDocumentError(ScraperError):
    """Downloaded report is not what it claims to be."""
    pass


class AuthenticationError(ScraperError):
    """Portal login failed or credentials are missing."""
    pass


class ConfigurationError(ScraperError):
    """Unknown city, unknown strategy, or a city that can't be scraped as asked."""
    pass


# ============================================================
# RETRY LOGIC
# ============================================================

# Portals are slow, not flaky: one retry on a timeout, nothing else.
retry_on_timeout = retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type((PlaywrightTimeout,)),
    reraise=True,
)


# ============================================================
# USER AGENTS
# ============================================================

USER_AGENTS = [
    # Chrome Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Chrome Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
]

HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/pdf,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


def get_random_user_agent() -> str:
    """Get a random user agent string."""
    return random.choice(USER_AGENTS)


def get_headers() -> dict:
    """Get headers with random user agent."""
    return {**HEADERS, "User-Agent": get_random_user_agent()}


# ============================================================
# BROWSER
# ============================================================

def headless_default() -> bool:
    """SCRAPER_HEADLESS=0 shows the browser (useful when debugging selectors)."""
    return os.getenv("SCRAPER_HEADLESS", "1") != "0"


async def create_browser(headless: Optional[bool] = None) -> tuple:
    """
    Create Playwright browser instance.

    Returns:
        Tuple of (playwright, browser) - caller must close both
    """
    if headless is None:
        headless = headless_default()
    playwright = await async_playwright().start()
    browser = await playwright.chromium.launch(
        headless=headless,
        args=[
            '--disable-blink-features=AutomationControlled',
            '--disable-dev-shm-usage',
            '--no-sandbox',
        ]
    )
    return playwright, browser


# ============================================================
# HTTP
# ============================================================

@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((httpx.TransportError,)),
    reraise=True,
)
async def download_bytes(url: str, timeout: float = 60.0) -> bytes:
    """
    Download a binary document (monthly PDF reports).

    Raises:
        httpx.HTTPStatusError on 4xx/5xx
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url, headers=get_headers(), follow_redirects=True)
        response.raise_for_status()
        logger.info(f"Downloaded {len(response.content)} bytes from {url}")
        return response.content


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((httpx.TransportError,)),
    reraise=True,
)
async def fetch_static_page(url: str, timeout: float = 30.0) -> BeautifulSoup:
    """
    Fetch static HTML page with httpx.

    Use when: Page content exists in initial HTML response (report index pages).

    Returns:
        BeautifulSoup parsed HTML
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url, headers=get_headers(), follow_redirects=True)
        response.raise_for_status()
        return BeautifulSoup(response.text, 'html.parser')
