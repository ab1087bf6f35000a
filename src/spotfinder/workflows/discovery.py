"""Discovery run: scrape targets, then sort candidates into new/duplicate/rejected."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from .batch import Sleep, scrape_multiple_targets
from .chain import StrategyChain
from .duplicates import DEFAULT_POLICY, DuplicateCheckResult, DuplicatePolicy, detect_duplicate
from .models import LocationCandidate, ScrapeConfig, ScrapingResult, ScrapingTarget, SourceType
from .scrape_config import MIN_NAME_LENGTH

logger = logging.getLogger(__name__)

RELEVANCE_KEYWORDS: Tuple[str, ...] = ("amala", "ewedu", "gbegiri", "yoruba", "nigerian", "bukka", "buka")
DEFAULT_REGION = "lagos"
VALID_CONFIDENCE = 0.6
MAX_ISSUES = 3
BATCH_NAME_SIMILARITY = 0.8
BATCH_ADDRESS_SIMILARITY = 0.9

DEFAULT_TARGETS: Tuple[ScrapingTarget, ...] = (
    ScrapingTarget(
        url="https://www.pulse.ng/lifestyle/food-travel-arts",
        source_type=SourceType.BLOG,
        selectors={
            "name": ".restaurant-name, .business-name, h3, h4",
            "address": ".address, .location, .place",
            "phone": ".phone, .contact",
            "price": ".price, .cost, .pricing, .budget",
            "reviews": ".review, .comment, .testimonial, .user-review",
        },
        search_queries=("amala restaurant lagos", "best amala spots nigeria", "yoruba food nigeria"),
    ),
    ScrapingTarget(
        url="https://www.nairaland.com/search",
        source_type=SourceType.SOCIAL,
        selectors={
            "name": ".post-title, .thread-title",
            "address": ".location-info, .address",
            "price": ".price, .cost",
            "reviews": ".post-content, .comment, .reply",
        },
        search_queries=("amala restaurant lagos", "where to eat amala", "best amala spots"),
    ),
    ScrapingTarget(
        url="https://guardian.ng/life/food-drink-travel",
        source_type=SourceType.BLOG,
        selectors={
            "name": ".entry-title, .post-title",
            "address": ".location, .address",
            "price": ".price, .cost, .pricing",
        },
        search_queries=("amala restaurant", "nigerian food lagos", "traditional yoruba food"),
    ),
    ScrapingTarget(
        url="https://www.tripadvisor.com/Restaurants",
        source_type=SourceType.REVIEW_SITE,
        selectors={
            "name": ".restaurant-name, h3, [data-test='restaurant-name']",
            "address": ".address, [data-test='address']",
            "rating": ".rating, [data-test='rating']",
            "price": ".price, .cost-range, [data-test='price']",
        },
        search_queries=("amala", "nigerian cuisine", "west african food"),
    ),
    ScrapingTarget(
        url="https://www.yelp.com/search",
        source_type=SourceType.REVIEW_SITE,
        selectors={
            "name": ".business-name, h3, [data-testid='business-name']",
            "address": ".address, [data-testid='address']",
            "rating": ".rating, [data-testid='rating']",
            "price": ".price-range, [data-testid='price']",
        },
        search_queries=("amala", "nigerian food", "west african cuisine"),
        fallback="alternative-scraper",
    ),
)


@dataclass(frozen=True)
class CandidateValidation:
    is_valid: bool
    confidence: float
    issues: Tuple[str, ...] = ()


@dataclass
class DiscoveryReport:
    new: List[LocationCandidate] = field(default_factory=list)
    duplicates: List[Tuple[LocationCandidate, DuplicateCheckResult]] = field(default_factory=list)
    rejected: List[Tuple[LocationCandidate, CandidateValidation]] = field(default_factory=list)
    results: List[ScrapingResult] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "targets": len(self.results),
            "new": len(self.new),
            "duplicates": len(self.duplicates),
            "rejected": len(self.rejected),
        }


def validate_candidate(
    candidate: LocationCandidate,
    *,
    region: str = DEFAULT_REGION,
    keywords: Sequence[str] = RELEVANCE_KEYWORDS,
) -> CandidateValidation:
    """Score how plausible a scraped candidate is before it reaches moderation."""

    issues: List[str] = []
    confidence = 1.0
    name = (candidate.name or "").strip()
    address = (candidate.address or "").strip()

    if len(name) < MIN_NAME_LENGTH:
        issues.append("Invalid or missing name")
        confidence -= 0.4
    if not address:
        issues.append("Missing address")
        confidence -= 0.3
    elif region and region.lower() not in address.lower():
        issues.append(f"Not in {region.title()}")
        confidence -= 0.2
    if not any(k in name.lower() for k in keywords):
        issues.append("May not serve the target cuisine")
        confidence -= 0.3
    if candidate.rating is not None and candidate.rating > 4.0:
        confidence += 0.1

    confidence = round(max(0.0, min(1.0, confidence)), 4)
    return CandidateValidation(
        is_valid=confidence > VALID_CONFIDENCE and len(issues) < MAX_ISSUES,
        confidence=confidence,
        issues=tuple(issues),
    )


def _similar(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a.lower().strip(), b.lower().strip())


def remove_in_batch_duplicates(candidates: Iterable[LocationCandidate]) -> List[LocationCandidate]:
    """Keep the first of any candidates that look alike within one run.

    Blank names or addresses never count as similar.
    """

    unique: List[LocationCandidate] = []
    for candidate in candidates:
        clash = any(
            _similar(candidate.name, kept.name) > BATCH_NAME_SIMILARITY
            or _similar(candidate.address, kept.address) > BATCH_ADDRESS_SIMILARITY
            for kept in unique
        )
        if not clash:
            unique.append(candidate)
    return unique


async def _load_corpus(corpus: Any) -> List[Any]:
    if callable(corpus):
        corpus = corpus()
    if inspect.isawaitable(corpus):
        corpus = await corpus
    return list(corpus or ())


async def discover(
    targets: Optional[Iterable[Any]] = None,
    corpus: Any = (),
    *,
    max_concurrent: int = 2,
    chain: Optional[StrategyChain] = None,
    config: Optional[ScrapeConfig] = None,
    policy: DuplicatePolicy = DEFAULT_POLICY,
    region: str = DEFAULT_REGION,
    sleep: Sleep = asyncio.sleep,
) -> DiscoveryReport:
    """Scrape ``targets`` and partition the candidates.

    ``corpus`` holds known locations: an iterable, a callable returning one,
    or an async callable (for instance a batched store read). It is loaded
    once per run; a failed load marks every candidate for manual review
    instead of aborting the run.
    """

    results = await scrape_multiple_targets(
        DEFAULT_TARGETS if targets is None else targets,
        max_concurrent,
        chain=chain,
        config=config,
        sleep=sleep,
    )
    report = DiscoveryReport(results=list(results))
    scraped = [c for r in results if r.success for c in r.candidates]
    unique = remove_in_batch_duplicates(scraped)
    logger.info("Discovery scraped %s candidates (%s after in-batch dedupe)", len(scraped), len(unique))

    known: Optional[List[Any]]
    try:
        known = await _load_corpus(corpus)
    except Exception as exc:
        logger.warning("Known-location load failed; duplicate checks fail open: %s", exc)
        known = None

    for candidate in unique:
        validation = validate_candidate(candidate, region=region)
        if not validation.is_valid:
            report.rejected.append((candidate, validation))
            continue
        check = DuplicateCheckResult.fail_open() if known is None else detect_duplicate(candidate, known, policy)
        if check.is_duplicate:
            report.duplicates.append((candidate, check))
        else:
            report.new.append(candidate)

    logger.info("Discovery finished: %s", report.summary())
    return report


__all__ = [
    "DEFAULT_TARGETS",
    "RELEVANCE_KEYWORDS",
    "CandidateValidation",
    "DiscoveryReport",
    "discover",
    "remove_in_batch_duplicates",
    "validate_candidate",
]
