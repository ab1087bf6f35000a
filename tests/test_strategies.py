import asyncio

import pytest

from spotfinder.workflows.models import FetchError, PageLoadError, ScrapeConfig, ScrapingTarget
from spotfinder.workflows.strategies import AlternateEndpointStrategy, BrowserStrategy, HttpStrategy

HEADINGS_HTML = b"""
<html><body>
  <h1>Amala guide</h1>
  <h2>Mama Cass Amala Restaurant</h2>
  <h3>About us</h3>
</body></html>
"""

CARDS_HTML = b"""
<html><body>
  <div class="listing"><div class="name">Iya Eba Joint</div><div class="address">Yaba, Lagos</div></div>
</body></html>
"""


class FakeResponse:
    def __init__(self, status, body=b""):
        self.status = status
        self._body = body
        self.headers = {"Content-Type": "text/html; charset=utf-8"}

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Maps URL -> response or exception; unknown URLs answer 404."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def get(self, url, timeout=None, headers=None):
        self.requests.append((url, timeout.total if timeout else None, headers or {}))
        answer = self.routes.get(url, FakeResponse(404))
        if isinstance(answer, Exception):
            raise answer
        return answer


def _target(url="https://site.example/search", **kwargs):
    kwargs.setdefault("search_queries", ("amala",))
    return ScrapingTarget(url=url, source_type="directory", **kwargs)


def test_http_strategy_reads_keyword_headings() -> None:
    session = FakeSession({"https://site.example/search?q=amala": FakeResponse(200, HEADINGS_HTML)})
    strategy = HttpStrategy(ScrapeConfig.fast(), session_factory=lambda: session)

    result = asyncio.run(strategy.fetch(_target()))

    assert result.success and result.strategy == "http"
    assert [c.name for c in result.candidates] == ["Amala guide", "Mama Cass Amala Restaurant"]
    assert result.source == "https://site.example/search"
    url, timeout, headers = session.requests[0]
    assert timeout == 30.0
    assert headers["User-Agent"].startswith("Mozilla/5.0")
    assert headers["Accept-Language"] == "en-US,en;q=0.5"


def test_http_strategy_raises_on_bad_status() -> None:
    session = FakeSession({})
    strategy = HttpStrategy(ScrapeConfig.fast(), session_factory=lambda: session)

    with pytest.raises(FetchError, match="HTTP 404"):
        asyncio.run(strategy.fetch(_target()))


def test_alternative_strategy_skips_failures_until_a_hit() -> None:
    session = FakeSession(
        {
            "https://site.example/restaurants": asyncio.TimeoutError(),
            "https://site.example/places": FakeResponse(500),
            "https://site.example/directory": FakeResponse(200, CARDS_HTML),
        }
    )
    strategy = AlternateEndpointStrategy(ScrapeConfig.fast(), session_factory=lambda: session)

    result = asyncio.run(strategy.fetch(_target()))

    assert result.success and result.strategy == "alternative"
    assert result.source == "https://site.example/directory"
    assert [c.name for c in result.candidates] == ["Iya Eba Joint"]
    assert result.candidates[0].source_url == "https://site.example/directory"
    assert [r[0] for r in session.requests] == [
        "https://site.example/restaurants",
        "https://site.example/places",
        "https://site.example/directory",
    ]
    assert all(r[1] == 15.0 for r in session.requests)


def test_alternative_strategy_prefers_headings() -> None:
    session = FakeSession({"https://site.example/restaurants": FakeResponse(200, HEADINGS_HTML + CARDS_HTML)})
    strategy = AlternateEndpointStrategy(ScrapeConfig.fast(), session_factory=lambda: session)

    result = asyncio.run(strategy.fetch(_target()))

    assert [c.name for c in result.candidates] == ["Amala guide", "Mama Cass Amala Restaurant"]


def test_alternative_strategy_exhausts_endpoints() -> None:
    empty = FakeResponse(200, b"<html><body><p>nothing here</p></body></html>")
    session = FakeSession({"https://site.example/restaurants": empty})
    strategy = AlternateEndpointStrategy(ScrapeConfig.fast(), session_factory=lambda: session)

    with pytest.raises(FetchError, match="No alternative endpoints worked"):
        asyncio.run(strategy.fetch(_target()))
    assert len(session.requests) == 8


class FakeLoadedPage:
    def __init__(self, title, body):
        self.title_text = title
        self.body = body

    async def set_viewport_size(self, viewport):
        pass

    async def set_extra_http_headers(self, headers):
        pass

    async def add_init_script(self, script):
        pass

    async def goto(self, url, wait_until=None, timeout=None):
        self.url = url

    async def title(self):
        return self.title_text

    async def evaluate(self, script):
        return {"title": self.title_text, "text": self.body}

    async def content(self):
        return f"<html><head><title>{self.title_text}</title></head><body>{self.body}</body></html>"


class FakePool:
    def __init__(self, page):
        self.page = page
        self.released = []

    async def acquire_page(self, profile=None):
        return self.page

    async def release_page(self, page):
        self.released.append(page)


def test_browser_strategy_extracts_cards() -> None:
    body = '<div class="restaurant"><h2>Buka Hut Amala</h2><p class="address">Allen Avenue, Ikeja</p></div>' + (
        "<p>Serving amala, ewedu and gbegiri to Lagos every afternoon.</p>" * 3
    )
    page = FakeLoadedPage("Amala Spots", body)
    pool = FakePool(page)
    strategy = BrowserStrategy(pool, config=ScrapeConfig.fast())

    result = asyncio.run(strategy.fetch(_target()))

    assert page.url == "https://site.example/search?q=amala"
    assert [c.name for c in result.candidates] == ["Buka Hut Amala"]
    assert result.candidates[0].address == "Allen Avenue, Ikeja"
    assert result.strategy == "browser"
    assert pool.released == [page]


def test_browser_strategy_releases_page_on_failure() -> None:
    page = FakeLoadedPage("Access Denied", "blocked")
    pool = FakePool(page)
    strategy = BrowserStrategy(pool, config=ScrapeConfig.fast(max_retries=2))

    with pytest.raises(PageLoadError, match="after 2 attempts"):
        asyncio.run(strategy.fetch(_target()))
    assert pool.released == [page]
