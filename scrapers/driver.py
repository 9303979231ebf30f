"""
Portal driver: the only place strategies touch Playwright.

Strategies talk to a PortalDriver (navigate, fill, click a list of candidate
selectors, wait, evaluate JS, open side tabs, screenshot). That keeps the
navigation state machines testable with a mocked driver, and keeps untyped
browser plumbing out of them.

Playwright's TimeoutError is not swallowed here; strategies decide whether
a timeout aborts the city or skips a single permit.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Union

from playwright.async_api import Page

from .utils import create_browser, get_random_user_agent, retry_on_timeout

logger = logging.getLogger(__name__)


class PortalDriver:
    """Thin async wrapper around one Playwright page."""

    def __init__(self, page: Page):
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    @retry_on_timeout
    async def navigate(self, url: str, timeout: int = 60000, wait_until: str = 'domcontentloaded'):
        await self.page.goto(url, wait_until=wait_until, timeout=timeout)

    async def fill(self, selector: str, value: str, timeout: int = 10000):
        await self.page.fill(selector, value, timeout=timeout)

    async def select_option(self, selector: str, value: str, timeout: int = 10000):
        await self.page.select_option(selector, value=value, timeout=timeout)

    async def click(self, candidates: Union[str, list[str]], timeout: int = 5000) -> Optional[str]:
        """
        Click the first candidate selector present on the page.

        Returns:
            The selector that was clicked, or None if none matched
        """
        if isinstance(candidates, str):
            candidates = [candidates]

        for selector in candidates:
            element = await self.page.query_selector(selector)
            if element:
                await element.click(timeout=timeout)
                return selector

        return None

    async def click_locator(self, selector: str, index: int = 0, timeout: int = 5000):
        """Click the nth match of a Playwright locator (supports :has-text())."""
        await self.page.locator(selector).nth(index).click(timeout=timeout)

    async def count(self, selector: str) -> int:
        return await self.page.locator(selector).count()

    async def wait_for_selector(self, selector: str, timeout: int = 10000, state: str = 'visible'):
        await self.page.wait_for_selector(selector, timeout=timeout, state=state)

    async def wait_for_function(self, expression: str, timeout: int = 30000, arg: Any = None):
        await self.page.wait_for_function(expression, arg=arg, timeout=timeout)

    async def wait_for_load_state(self, state: str = 'networkidle', timeout: int = 30000):
        await self.page.wait_for_load_state(state, timeout=timeout)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def exists(self, selector: str) -> bool:
        return await self.page.query_selector(selector) is not None

    async def read_text(self, selector: str) -> Optional[str]:
        """Inner text of the first match, stripped; None when absent or blank."""
        element = await self.page.query_selector(selector)
        if not element:
            return None
        text = (await element.inner_text() or '').strip()
        return text or None

    async def type_text(self, text: str, delay: int = 50):
        await self.page.keyboard.type(text, delay=delay)

    async def new_tab(self, url: Optional[str] = None) -> "PortalDriver":
        """Open a side tab in the same browser context (detail pages)."""
        page = await self.page.context.new_page()
        tab = PortalDriver(page)
        if url:
            await tab.navigate(url)
        return tab

    async def close_tab(self):
        await self.page.close()

    async def screenshot(self, path: Union[str, Path]):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        await self.page.screenshot(path=str(path), full_page=True)

    async def settle(self, seconds: float):
        """Fixed delay for client-rendered pages whose readiness can't be observed."""
        await asyncio.sleep(seconds)


class BrowserSession:
    """
    One browser per city scrape.

    Usage:
        session = BrowserSession()
        try:
            driver = await session.start()
            ...
        finally:
            await session.close()
    """

    def __init__(self, headless: Optional[bool] = None):
        self.headless = headless
        self._playwright = None
        self._browser = None

    async def start(self) -> PortalDriver:
        self._playwright, self._browser = await create_browser(self.headless)
        context = await self._browser.new_context(
            viewport={'width': 1280, 'height': 900},
            user_agent=get_random_user_agent(),
            locale='en-US',
            accept_downloads=True,
        )
        page = await context.new_page()
        return PortalDriver(page)

    async def close(self):
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        logger.debug("Browser session closed")
