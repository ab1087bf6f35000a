"""Ordered fallback over fetch strategies for a single target."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from .browser import BrowserPool
from .models import FallbackHint, ScrapeConfig, ScrapingResult, ScrapingTarget
from .page_loader import PageLoader
from .strategies import AlternateEndpointStrategy, BrowserStrategy, FetchStrategy, HttpStrategy

logger = logging.getLogger(__name__)

ALL_FAILED = "All scraping strategies failed"
NO_STRATEGY = "none"


def default_strategies(config: ScrapeConfig, pool: BrowserPool) -> List[FetchStrategy]:
    """browser -> http -> alternative, sharing one config."""

    return [
        BrowserStrategy(pool, PageLoader(config), config),
        HttpStrategy(config),
        AlternateEndpointStrategy(config),
    ]


class StrategyChain:
    """Run strategies in order and keep the first one that yields candidates.

    Strategy errors never escape :meth:`scrape_with_fallbacks`; exhausting
    the chain produces a failed result tagged ``"none"``.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[FetchStrategy]] = None,
        config: Optional[ScrapeConfig] = None,
        *,
        pool: Optional[BrowserPool] = None,
    ) -> None:
        self.config = config or ScrapeConfig()
        self._owns_pool = pool is None and strategies is None
        self.pool = pool or (BrowserPool(headless=self.config.headless) if strategies is None else None)
        if strategies is None:
            strategies = default_strategies(self.config, self.pool)
        self.strategies: List[FetchStrategy] = list(strategies)

    @property
    def names(self) -> List[str]:
        return [s.name for s in self.strategies]

    def _plan(self, target: ScrapingTarget) -> List[FetchStrategy]:
        if target.fallback is FallbackHint.SKIP:
            return self.strategies[:1]
        return list(self.strategies)

    async def scrape_with_fallbacks(self, target: ScrapingTarget) -> ScrapingResult:
        last_error: Optional[str] = None
        for strategy in self._plan(target):
            try:
                result = await strategy.fetch(target)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning("Strategy %s failed for %s: %s", strategy.name, target.url, last_error)
                continue

            if result.success and result.has_candidates:
                logger.info(
                    "Strategy %s found %s candidates for %s",
                    strategy.name,
                    len(result.candidates),
                    target.url,
                )
                return result.with_strategy(strategy.name)

            if result.error:
                last_error = result.error
            logger.warning(
                "Strategy %s returned no candidates for %s%s",
                strategy.name,
                target.url,
                f": {result.error}" if result.error else "",
            )

        return ScrapingResult.failure(target.url, last_error or ALL_FAILED, strategy=NO_STRATEGY)

    async def aclose(self) -> None:
        if self._owns_pool and self.pool is not None:
            await self.pool.close()

    async def __aenter__(self) -> "StrategyChain":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = ["ALL_FAILED", "NO_STRATEGY", "StrategyChain", "default_strategies"]
