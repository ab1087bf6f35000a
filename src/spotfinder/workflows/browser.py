"""Shared headless Chromium for the browser fetch strategy.

One browser per process, launched on first use; every fetch gets a fresh
context and page and hands them back through :meth:`BrowserPool.release_page`.
Playwright is optional, and without it acquiring a page raises ``FetchError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

from .models import FetchError
from .scrape_config import BROWSER_LAUNCH_ARGS
from .stealth import StealthProfile, choose_profile

logger = logging.getLogger(__name__)

try:  # Playwright is optional; the browser strategy is skipped without it
    from playwright.async_api import async_playwright  # type: ignore
except Exception:  # pragma: no cover - handled at runtime
    async_playwright = None  # type: ignore


class BrowserPool:
    """Process-lifetime headless browser shared by every browser fetch.

    The browser is launched lazily on the first :meth:`acquire_page` and only
    ever read afterwards (to spawn pages) until :meth:`close`. Each page gets
    its own context so the user agent can differ per fetch.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        launch_args: Sequence[str] = BROWSER_LAUNCH_ARGS,
        locale: str = "en-US",
        launcher: Any = None,
    ) -> None:
        self.headless = headless
        self.launch_args = list(launch_args)
        self.locale = locale
        self._launcher = launcher
        self._pw: Any = None
        self._browser: Any = None
        self._lock = asyncio.Lock()
        self._closed = False
        self.pages_open = 0

    @property
    def started(self) -> bool:
        return self._browser is not None

    async def _ensure_browser(self) -> Any:
        if self._browser is not None:
            return self._browser
        async with self._lock:
            if self._browser is not None:
                return self._browser
            if self._closed:
                raise FetchError("Browser pool already closed", strategy="browser")
            launcher = self._launcher or async_playwright
            if launcher is None:
                raise FetchError("Playwright is not installed", strategy="browser")
            pw = await launcher().start()
            try:
                browser = await pw.chromium.launch(headless=self.headless, args=self.launch_args)
            except Exception:
                await pw.stop()
                raise
            self._pw, self._browser = pw, browser
            logger.info("Launched shared headless browser (headless=%s)", self.headless)
        return self._browser

    async def acquire_page(self, profile: Optional[StealthProfile] = None) -> Any:
        browser = await self._ensure_browser()
        profile = profile or choose_profile()
        context = await browser.new_context(
            user_agent=profile.user_agent,
            viewport=profile.viewport,
            locale=self.locale,
            java_script_enabled=True,
        )
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        self.pages_open += 1
        return page

    async def release_page(self, page: Any) -> None:
        if page is None:
            return
        self.pages_open = max(0, self.pages_open - 1)
        context = getattr(page, "context", None)
        try:
            await page.close()
        except Exception as exc:  # pragma: no cover - runtime-specific failures
            logger.debug("Page close failed: %s", exc)
        if context is not None:
            try:
                await context.close()
            except Exception as exc:  # pragma: no cover - runtime-specific failures
                logger.debug("Context close failed: %s", exc)

    async def close(self) -> None:
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            browser, pw = self._browser, self._pw
            self._browser = None
            self._pw = None
        if browser is not None:
            await browser.close()
        if pw is not None:
            await pw.stop()
        logger.info("Shared headless browser closed")

    async def __aenter__(self) -> "BrowserPool":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def playwright_available() -> bool:
    return async_playwright is not None


__all__ = ["BrowserPool", "playwright_available"]
