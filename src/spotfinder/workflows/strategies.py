"""Fetch strategies tried in order by :class:`spotfinder.workflows.chain.StrategyChain`.

Each strategy turns one :class:`ScrapingTarget` into a :class:`ScrapingResult`
or raises; it never retries across strategies itself.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import aiohttp

from .alternate_urls import build_search_url, generate_alternative_urls
from .browser import BrowserPool
from .extract_utils import extract_candidates, extract_heading_candidates
from .html_normalize import decode_bytes_auto
from .models import FetchError, LocationCandidate, PageLoadError, ScrapeConfig, ScrapingResult, ScrapingTarget
from .page_loader import PageLoader
from .scrape_config import HTTP_HEADERS
from .stealth import apply_stealth, choose_profile, random_user_agent

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Any]


class FetchStrategy(ABC):
    """One way of getting candidates out of a target."""

    name: str = "base"

    @abstractmethod
    async def fetch(self, target: ScrapingTarget) -> ScrapingResult:
        raise NotImplementedError


class BrowserStrategy(FetchStrategy):
    """Headless browser on a stealth-configured page from the shared pool."""

    name = "browser"

    def __init__(
        self,
        pool: BrowserPool,
        loader: Optional[PageLoader] = None,
        config: Optional[ScrapeConfig] = None,
    ) -> None:
        self.config = config or (loader.config if loader is not None else ScrapeConfig())
        self.pool = pool
        self.loader = loader or PageLoader(self.config)

    async def fetch(self, target: ScrapingTarget) -> ScrapingResult:
        search_url = build_search_url(target)
        logger.debug("Browser scraping: %s", search_url)
        profile = choose_profile()
        page = await self.pool.acquire_page(profile)
        try:
            await apply_stealth(page, profile)
            outcome = await self.loader.load(page, search_url)
            if not outcome.success:
                raise PageLoadError(outcome.error or "page load failed", url=search_url, strategy=self.name)
            candidates = extract_candidates(
                outcome.html,
                target.selectors,
                source_url=target.url,
                limit=self.config.max_candidates,
            )
        finally:
            await self.pool.release_page(page)
        return ScrapingResult(success=True, candidates=tuple(candidates), source=target.url, strategy=self.name)


class _HttpStrategyBase(FetchStrategy):
    def __init__(self, config: Optional[ScrapeConfig] = None, session_factory: Optional[SessionFactory] = None) -> None:
        self.config = config or ScrapeConfig()
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[Any]:
        # A caller-supplied session is shared and owned by the caller.
        if self._session_factory is not None:
            yield self._session_factory()
            return
        async with aiohttp.ClientSession() as session:
            yield session

    async def _get(self, session: Any, url: str, timeout: float, headers: Dict[str, str]) -> Tuple[int, str]:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers=headers,
        ) as resp:
            status = resp.status
            raw = await resp.read()
            text = decode_bytes_auto(raw, resp.headers) if status == 200 else ""
        return status, text


class HttpStrategy(_HttpStrategyBase):
    """Plain GET of the search URL; reads keyword-bearing headings only."""

    name = "http"

    async def fetch(self, target: ScrapingTarget) -> ScrapingResult:
        search_url = build_search_url(target)
        logger.debug("HTTP scraping: %s", search_url)
        headers = {"User-Agent": random_user_agent(), **HTTP_HEADERS}
        async with self._session() as session:
            status, html = await self._get(session, search_url, self.config.page_timeout, headers)
        if status != 200:
            raise FetchError(f"HTTP {status}", url=search_url, strategy=self.name)
        candidates = extract_heading_candidates(
            html,
            source_url=target.url,
            limit=self.config.max_heading_candidates,
        )
        return ScrapingResult(success=True, candidates=tuple(candidates), source=target.url, strategy=self.name)


class AlternateEndpointStrategy(_HttpStrategyBase):
    """Probe same-origin search/listing endpoints until one yields candidates."""

    name = "alternative"

    def _extract(self, html: str, target: ScrapingTarget, url: str) -> List[LocationCandidate]:
        found = extract_heading_candidates(html, source_url=url, limit=self.config.max_heading_candidates)
        if found:
            return found
        return extract_candidates(html, target.selectors, source_url=url, limit=self.config.max_candidates)

    async def fetch(self, target: ScrapingTarget) -> ScrapingResult:
        urls = generate_alternative_urls(target)
        async with self._session() as session:
            for alt_url in urls:
                logger.debug("Trying alternative: %s", alt_url)
                headers = {"User-Agent": random_user_agent()}
                try:
                    status, html = await self._get(session, alt_url, self.config.probe_timeout, headers)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.debug("Alternative %s failed: %s", alt_url, exc)
                    continue
                if status != 200:
                    logger.debug("Alternative %s returned HTTP %s", alt_url, status)
                    continue
                candidates = self._extract(html, target, alt_url)
                if candidates:
                    return ScrapingResult(
                        success=True,
                        candidates=tuple(candidates),
                        source=alt_url,
                        strategy=self.name,
                    )
        raise FetchError("No alternative endpoints worked", url=target.url, strategy=self.name)


__all__ = [
    "AlternateEndpointStrategy",
    "BrowserStrategy",
    "FetchStrategy",
    "HttpStrategy",
]
