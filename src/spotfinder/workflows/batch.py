"""Bounded-concurrency processing of many scraping targets.

Targets are split into chunks of ``max_concurrent``; a chunk runs its targets
concurrently and the orchestrator waits ``batch_delay`` between chunks. Each
target task sleeps ``request_delay`` after its own fetch. Output length and
order always match the input.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from .chain import StrategyChain
from .models import ScrapeConfig, ScrapingResult, ScrapingTarget, TargetValidationError, coerce_targets

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def _chunks(items: Sequence[ScrapingTarget], size: int) -> List[Sequence[ScrapingTarget]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _validate_concurrency(max_concurrent: Any) -> int:
    if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int) or max_concurrent < 1:
        raise TargetValidationError(f"max_concurrent must be a positive integer, got {max_concurrent!r}")
    return max_concurrent


class BatchOrchestrator:
    def __init__(
        self,
        chain: Optional[StrategyChain] = None,
        config: Optional[ScrapeConfig] = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or (chain.config if chain is not None else ScrapeConfig())
        self.chain = chain or StrategyChain(config=self.config)
        self._sleep = sleep

    async def _process(self, target: ScrapingTarget) -> ScrapingResult:
        try:
            result = await self.chain.scrape_with_fallbacks(target)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Target %s failed outside the strategy chain: %s", target.url, exc)
            result = ScrapingResult.failure(target.url, str(exc) or type(exc).__name__)
        if self.config.request_delay > 0:
            await self._sleep(self.config.request_delay)
        return result

    async def run(self, targets: Iterable[Any], max_concurrent: Optional[int] = None) -> List[ScrapingResult]:
        limit = _validate_concurrency(self.config.max_concurrent if max_concurrent is None else max_concurrent)
        validated = coerce_targets(targets)
        chunks = _chunks(validated, limit)
        logger.info(
            "Scraping %s targets in %s chunks (max_concurrent=%s)",
            len(validated),
            len(chunks),
            limit,
        )

        results: List[ScrapingResult] = []
        for index, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(*(self._process(t) for t in chunk), return_exceptions=True)
            for target, outcome in zip(chunk, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.warning("Target %s raised: %s", target.url, outcome)
                    outcome = ScrapingResult.failure(target.url, str(outcome) or type(outcome).__name__)
                results.append(outcome)
            if index < len(chunks) - 1 and self.config.batch_delay > 0:
                await self._sleep(self.config.batch_delay)

        summary = self.summarize(results)
        logger.info(
            "Batch finished: %s/%s targets succeeded, %s candidates",
            summary["succeeded"],
            summary["total"],
            summary["candidates"],
        )
        return results

    @staticmethod
    def summarize(results: Sequence[ScrapingResult]) -> Dict[str, Any]:
        strategies = Counter(r.strategy or "none" for r in results)
        succeeded = sum(1 for r in results if r.success)
        return {
            "total": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "candidates": sum(len(r.candidates) for r in results),
            "strategies": dict(strategies),
        }


async def scrape_multiple_targets(
    targets: Iterable[Any],
    max_concurrent: int = 2,
    *,
    chain: Optional[StrategyChain] = None,
    config: Optional[ScrapeConfig] = None,
    sleep: Sleep = asyncio.sleep,
) -> List[ScrapingResult]:
    """Scrape every target, never failing the batch because one target failed.

    Only caller contract violations (malformed targets, a non-positive
    ``max_concurrent``) raise :class:`TargetValidationError`. A chain created
    here is closed before returning.
    """

    _validate_concurrency(max_concurrent)
    owns_chain = chain is None
    orchestrator = BatchOrchestrator(chain, config, sleep=sleep)
    try:
        return await orchestrator.run(targets, max_concurrent)
    finally:
        if owns_chain:
            await orchestrator.chain.aclose()


__all__ = ["BatchOrchestrator", "scrape_multiple_targets"]
