import asyncio
import random

import pytest

from spotfinder.workflows import browser as browser_mod
from spotfinder.workflows.browser import BrowserPool
from spotfinder.workflows.models import FetchError
from spotfinder.workflows.scrape_config import BROWSER_HEADERS, USER_AGENTS, VIEWPORTS
from spotfinder.workflows.stealth import STEALTH_INIT_SCRIPT, apply_stealth, choose_profile


class FakeStealthPage:
    def __init__(self):
        self.viewports = []
        self.headers = []
        self.scripts = []

    async def set_viewport_size(self, viewport):
        self.viewports.append(viewport)

    async def set_extra_http_headers(self, headers):
        self.headers.append(headers)

    async def add_init_script(self, script):
        self.scripts.append(script)


class FakeContext:
    def __init__(self, kwargs):
        self.kwargs = kwargs
        self.closed = False

    async def new_page(self):
        return FakePage(self)

    async def close(self):
        self.closed = True


class FakePage:
    def __init__(self, context):
        self.context = context
        self.closed = False

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.contexts = []
        self.closed = False

    async def new_context(self, **kwargs):
        context = FakeContext(kwargs)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self):
        self.launches = []
        self.browser = FakeBrowser()

    async def launch(self, **kwargs):
        self.launches.append(kwargs)
        await asyncio.sleep(0)
        return self.browser


class FakePlaywright:
    def __init__(self):
        self.chromium = FakeChromium()
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeLauncher:
    def __init__(self):
        self.playwright = FakePlaywright()
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self

    async def start(self):
        return self.playwright


def test_choose_profile_draws_from_pools() -> None:
    profile = choose_profile(random.Random(7))

    assert profile.user_agent in USER_AGENTS
    assert profile.viewport in VIEWPORTS
    assert profile.headers == BROWSER_HEADERS


def test_apply_stealth_is_idempotent() -> None:
    page = FakeStealthPage()
    profile = choose_profile(random.Random(1))

    first = asyncio.run(apply_stealth(page, profile))
    second = asyncio.run(apply_stealth(page, profile))

    assert first is True and second is False
    assert page.viewports == [profile.viewport]
    assert page.headers == [profile.headers]
    assert page.scripts == [STEALTH_INIT_SCRIPT]
    assert "webdriver" in STEALTH_INIT_SCRIPT


def test_concurrent_acquires_launch_one_browser() -> None:
    launcher = FakeLauncher()
    pool = BrowserPool(launcher=launcher)

    async def run():
        return await asyncio.gather(*(pool.acquire_page() for _ in range(4)))

    pages = asyncio.run(run())

    assert launcher.calls == 1
    assert len(launcher.playwright.chromium.launches) == 1
    assert launcher.playwright.chromium.launches[0]["headless"] is True
    assert "--disable-blink-features=AutomationControlled" in launcher.playwright.chromium.launches[0]["args"]
    assert len(pages) == 4 and pool.pages_open == 4
    assert all(c.kwargs["user_agent"] in USER_AGENTS for c in launcher.playwright.chromium.browser.contexts)


def test_release_closes_page_and_context() -> None:
    pool = BrowserPool(launcher=FakeLauncher())

    async def run():
        page = await pool.acquire_page()
        await pool.release_page(page)
        return page

    page = asyncio.run(run())

    assert page.closed and page.context.closed
    assert pool.pages_open == 0


def test_close_is_idempotent_and_blocks_new_pages() -> None:
    launcher = FakeLauncher()
    pool = BrowserPool(launcher=launcher)

    async def run():
        await pool.acquire_page()
        await pool.close()
        await pool.close()
        with pytest.raises(FetchError):
            await pool.acquire_page()

    asyncio.run(run())

    assert launcher.playwright.chromium.browser.closed
    assert launcher.playwright.stopped
    assert not pool.started


def test_missing_playwright_raises_fetch_error(monkeypatch) -> None:
    monkeypatch.setattr(browser_mod, "async_playwright", None)
    pool = BrowserPool()

    with pytest.raises(FetchError, match="Playwright is not installed"):
        asyncio.run(pool.acquire_page())
    assert not browser_mod.playwright_available()


class MissingChromium:
    async def launch(self, **kwargs):
        raise RuntimeError("Executable doesn't exist at chromium-1105/chrome-linux/chrome")


class FailingLaunchLauncher:
    def __init__(self):
        self.started = []

    def __call__(self):
        return self

    async def start(self):
        playwright = FakePlaywright()
        playwright.chromium = MissingChromium()
        self.started.append(playwright)
        return playwright


def test_failed_launch_stops_its_driver() -> None:
    launcher = FailingLaunchLauncher()
    pool = BrowserPool(launcher=launcher)

    async def run():
        for _ in range(3):
            with pytest.raises(RuntimeError):
                await pool.acquire_page()
        await pool.close()

    asyncio.run(run())

    assert len(launcher.started) == 3
    assert all(pw.stopped for pw in launcher.started)
    assert not pool.started
