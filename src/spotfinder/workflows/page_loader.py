"""Page loading with escalating wait conditions and bot-wall classification.

A load moves through ``attempting(n)`` for n = 1..max_retries and ends in
``succeeded`` or ``failed``. Each attempt relaxes the navigation wait
condition (networkidle -> domcontentloaded -> load). After every load the
rendered title and body text are classified against a fixed failure
vocabulary; a rejected page is retried after a linear backoff.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from .models import ScrapeConfig
from .scrape_config import FAILURE_INDICATORS, MIN_BODY_LENGTH, UNKNOWN_TITLE, WAIT_CONDITIONS

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

_SNAPSHOT_SCRIPT = """
() => ({
  title: document.title || '',
  text: (document.body && document.body.textContent) || '',
})
"""


class LoadState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PageSnapshot:
    title: str
    body_text: str


@dataclass(frozen=True)
class PageAssessment:
    ok: bool
    body_length: int
    indicators: Tuple[str, ...] = ()
    reasons: Tuple[str, ...] = ()


@dataclass
class PageLoadOutcome:
    state: LoadState
    attempts: int
    title: Optional[str] = None
    error: Optional[str] = None
    html: str = ""
    history: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state is LoadState.SUCCEEDED


def wait_condition_for(attempt: int) -> str:
    """Return the navigation wait condition for a 1-based attempt number."""

    index = min(max(attempt, 1), len(WAIT_CONDITIONS)) - 1
    return WAIT_CONDITIONS[index]


def classify_page(
    snapshot: PageSnapshot,
    min_body_length: int = MIN_BODY_LENGTH,
    indicators: Sequence[str] = FAILURE_INDICATORS,
) -> PageAssessment:
    """Decide whether a rendered page looks like real content.

    Accepted only with a non-empty, non-"Unknown" title, no failure
    indicator in title or body, and a body longer than ``min_body_length``.
    """

    title = (snapshot.title or "").strip()
    body = snapshot.body_text or ""
    lowered_title = title.lower()
    lowered_body = body.lower()
    hits = tuple(
        token for token in indicators if token in lowered_title or token in lowered_body
    )
    reasons: List[str] = []
    if not title or title == UNKNOWN_TITLE:
        reasons.append("missing_title")
    if hits:
        reasons.append("failure_indicator")
    if len(body) <= min_body_length:
        reasons.append("short_body")
    return PageAssessment(
        ok=not reasons,
        body_length=len(body),
        indicators=hits,
        reasons=tuple(reasons),
    )


async def snapshot_page(page: Any) -> PageSnapshot:
    try:
        title = await page.title()
    except Exception:
        title = UNKNOWN_TITLE
    try:
        info = await page.evaluate(_SNAPSHOT_SCRIPT) or {}
    except Exception:
        info = {}
    return PageSnapshot(title=title or info.get("title") or "", body_text=info.get("text") or "")


class PageLoader:
    """Drive a browser page through bounded, escalating load attempts."""

    def __init__(self, config: Optional[ScrapeConfig] = None, *, sleep: Sleep = asyncio.sleep) -> None:
        self.config = config or ScrapeConfig()
        self._sleep = sleep

    async def load(self, page: Any, url: str) -> PageLoadOutcome:
        cfg = self.config
        max_retries = max(1, int(cfg.max_retries))
        history: List[str] = []
        last_error = "no attempts made"

        for attempt in range(1, max_retries + 1):
            wait_until = wait_condition_for(attempt)
            logger.debug("Loading attempt %s/%s (%s): %s", attempt, max_retries, wait_until, url)
            try:
                await page.goto(url, wait_until=wait_until, timeout=int(cfg.page_timeout * 1000))
                settle = cfg.settle_base + attempt * cfg.settle_step
                if settle > 0:
                    await self._sleep(settle)
                snapshot = await snapshot_page(page)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = f"attempt {attempt} raised {type(exc).__name__}: {exc}"
                history.append(last_error)
                logger.debug("Attempt %s failed for %s: %s", attempt, url, exc)
                if attempt < max_retries:
                    await self._sleep(cfg.error_backoff * attempt)
                continue

            assessment = classify_page(snapshot, cfg.min_body_length, cfg.failure_indicators)
            if assessment.ok:
                logger.debug("Page loaded successfully: %s", snapshot.title)
                try:
                    html = await page.content()
                except Exception as exc:
                    last_error = f"attempt {attempt} could not read content: {exc}"
                    history.append(last_error)
                    if attempt < max_retries:
                        await self._sleep(cfg.error_backoff * attempt)
                    continue
                return PageLoadOutcome(
                    state=LoadState.SUCCEEDED,
                    attempts=attempt,
                    title=snapshot.title,
                    html=html or "",
                    history=history,
                )

            last_error = (
                f"attempt {attempt} rejected page (title={snapshot.title!r}, "
                f"reasons={','.join(assessment.reasons)}, body_length={assessment.body_length})"
            )
            history.append(last_error)
            logger.debug("Page seems invalid, %s", last_error)
            if attempt < max_retries:
                await self._sleep(cfg.retry_backoff * attempt)

        return PageLoadOutcome(
            state=LoadState.FAILED,
            attempts=max_retries,
            error=f"Failed to load page after {max_retries} attempts: {last_error}",
            history=history,
        )


__all__ = [
    "LoadState",
    "PageSnapshot",
    "PageAssessment",
    "PageLoadOutcome",
    "PageLoader",
    "classify_page",
    "snapshot_page",
    "wait_condition_for",
]
