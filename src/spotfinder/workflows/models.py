"""Typed records shared by the discovery workflow.

Targets and results are immutable once built; candidates are plain
dataclasses handed to the caller. Everything that reads a target assumes it
passed :meth:`ScrapingTarget.__post_init__` validation.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv

from ..core.keys import (
    K_ADDRESS,
    K_CANDIDATES,
    K_COORDINATES,
    K_CREATED_AT,
    K_ERROR,
    K_ID,
    K_LAT,
    K_LNG,
    K_NAME,
    K_PHONE,
    K_PRICE,
    K_RATING,
    K_SOURCE,
    K_SOURCE_URL,
    K_STATUS,
    K_STRATEGY,
    K_SUCCESS,
    K_WEBSITE,
    STATUS_PENDING,
)
from . import scrape_config as defaults


class SpotfinderError(Exception):
    """Base class for discovery errors."""


class TargetValidationError(SpotfinderError, ValueError):
    """Raised when a caller hands over a malformed target or knob."""


class FetchError(SpotfinderError):
    """Raised by a fetch strategy when a page could not be retrieved."""

    def __init__(self, message: str, *, url: Optional[str] = None, strategy: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url
        self.strategy = strategy


class PageLoadError(FetchError):
    """Raised when the page loader exhausts its attempts."""


class SourceType(str, Enum):
    BLOG = "blog"
    DIRECTORY = "directory"
    SOCIAL = "social"
    REVIEW_SITE = "review-site"
    MAPS = "maps"
    BUSINESS_DIRECTORY = "business-directory"


class FallbackHint(str, Enum):
    API = "api"
    ALTERNATIVE_SCRAPER = "alternative-scraper"
    SKIP = "skip"


SELECTOR_FIELDS: Tuple[str, ...] = ("name", "address", "phone", "website", "rating", "reviews", "price")


@dataclass(frozen=True, slots=True)
class FieldSelectors:
    """CSS selectors per field; ``None`` means use the generic fallbacks."""

    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[str] = None
    reviews: Optional[str] = None
    price: Optional[str] = None

    def get(self, field_name: str) -> Optional[str]:
        if field_name not in SELECTOR_FIELDS:
            raise KeyError(field_name)
        value = getattr(self, field_name)
        if value is None or not str(value).strip():
            return None
        return str(value)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FieldSelectors":
        if not data:
            return cls()
        unknown = sorted(k for k in data if k not in SELECTOR_FIELDS)
        if unknown:
            raise TargetValidationError(f"Unknown selector field(s): {', '.join(unknown)}")
        return cls(**{k: (str(v) if v is not None else None) for k, v in data.items()})


@dataclass(frozen=True, slots=True)
class Coordinates:
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True, slots=True)
class ScrapingTarget:
    """One crawl job: where to look and how to read it."""

    url: str
    source_type: SourceType
    selectors: FieldSelectors = field(default_factory=FieldSelectors)
    search_queries: Tuple[str, ...] = ()
    fallback: Optional[FallbackHint] = None

    def __post_init__(self) -> None:
        url = (self.url or "").strip() if isinstance(self.url, str) else ""
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise TargetValidationError(f"Target URL must be an absolute http(s) URL: {self.url!r}")
        object.__setattr__(self, "url", url)

        try:
            object.__setattr__(self, "source_type", SourceType(self.source_type))
        except ValueError as exc:
            raise TargetValidationError(f"Unknown source type: {self.source_type!r}") from exc

        selectors = self.selectors
        if isinstance(selectors, Mapping):
            selectors = FieldSelectors.from_mapping(selectors)
        elif selectors is None:
            selectors = FieldSelectors()
        if not isinstance(selectors, FieldSelectors):
            raise TargetValidationError("Target selectors must be a FieldSelectors or mapping")
        object.__setattr__(self, "selectors", selectors)

        queries = self.search_queries
        if isinstance(queries, str):
            queries = (queries,)
        try:
            cleaned = tuple(str(q).strip() for q in (queries or ()) if str(q).strip())
        except TypeError as exc:
            raise TargetValidationError("Target search queries must be an iterable of strings") from exc
        object.__setattr__(self, "search_queries", cleaned)

        if self.fallback is not None:
            try:
                object.__setattr__(self, "fallback", FallbackHint(self.fallback))
            except ValueError as exc:
                raise TargetValidationError(f"Unknown fallback hint: {self.fallback!r}") from exc

    @property
    def first_query(self) -> Optional[str]:
        return self.search_queries[0] if self.search_queries else None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScrapingTarget":
        if not isinstance(data, Mapping):
            raise TargetValidationError(f"Cannot build a target from {type(data).__name__}")
        source_type = data.get("source_type", data.get("type"))
        if source_type is None:
            raise TargetValidationError("Target mapping is missing 'type'")
        return cls(
            url=data.get("url", ""),
            source_type=source_type,
            selectors=data.get("selectors") or FieldSelectors(),
            search_queries=tuple(data.get("search_queries") or data.get("searchQueries") or ()),
            fallback=data.get("fallback") or data.get("fallbackStrategy"),
        )


def _candidate_id() -> str:
    return f"scraped-{uuid.uuid4().hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LocationCandidate:
    """A not-yet-persisted, partially filled location record."""

    name: str
    address: str = ""
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    price: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    source_url: Optional[str] = None
    id: str = field(default_factory=_candidate_id)
    created_at: datetime = field(default_factory=_utcnow)
    status: str = field(default=STATUS_PENDING, init=False)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            K_ID: self.id,
            K_NAME: self.name,
            K_ADDRESS: self.address,
            K_STATUS: self.status,
            K_CREATED_AT: self.created_at.isoformat(),
        }
        optional = {
            K_PHONE: self.phone,
            K_WEBSITE: self.website,
            K_RATING: self.rating,
            K_PRICE: self.price,
            K_SOURCE_URL: self.source_url,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        if self.coordinates is not None:
            payload[K_COORDINATES] = {K_LAT: self.coordinates.lat, K_LNG: self.coordinates.lng}
        return payload


@dataclass(frozen=True, slots=True)
class ScrapingResult:
    """Outcome of processing one target."""

    success: bool
    candidates: Tuple[LocationCandidate, ...]
    source: str
    error: Optional[str] = None
    strategy: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "candidates", tuple(self.candidates))

    @classmethod
    def failure(cls, source: str, error: str, strategy: Optional[str] = None) -> "ScrapingResult":
        return cls(success=False, candidates=(), source=source, error=error, strategy=strategy)

    @property
    def has_candidates(self) -> bool:
        return bool(self.candidates)

    def with_strategy(self, strategy: str) -> "ScrapingResult":
        return ScrapingResult(self.success, self.candidates, self.source, self.error, strategy)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            K_SUCCESS: self.success,
            K_CANDIDATES: [c.to_dict() for c in self.candidates],
            K_SOURCE: self.source,
        }
        if self.error:
            payload[K_ERROR] = self.error
        if self.strategy:
            payload[K_STRATEGY] = self.strategy
        return payload


def _env_int(name: str, default: int) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


@dataclass
class ScrapeConfig:
    """Configuration parameters for discovery scraping."""

    max_retries: int = defaults.MAX_RETRIES
    page_timeout: float = defaults.PAGE_TIMEOUT
    probe_timeout: float = defaults.PROBE_TIMEOUT
    request_delay: float = defaults.REQUEST_DELAY
    batch_delay: float = defaults.BATCH_DELAY
    max_concurrent: int = defaults.MAX_CONCURRENT
    settle_base: float = defaults.SETTLE_BASE
    settle_step: float = defaults.SETTLE_STEP
    retry_backoff: float = defaults.RETRY_BACKOFF
    error_backoff: float = defaults.ERROR_BACKOFF
    min_body_length: int = defaults.MIN_BODY_LENGTH
    max_candidates: int = defaults.MAX_CANDIDATES
    max_heading_candidates: int = defaults.MAX_HEADING_CANDIDATES
    headless: bool = True
    failure_indicators: Tuple[str, ...] = defaults.FAILURE_INDICATORS

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> "ScrapeConfig":
        """Build a config from ``SPOTFINDER_*`` env vars, ignoring malformed values."""

        if dotenv:
            load_dotenv()
        p = defaults.ENV_PREFIX
        return cls(
            max_retries=max(1, _env_int(f"{p}MAX_RETRIES", defaults.MAX_RETRIES)),
            page_timeout=_env_float(f"{p}PAGE_TIMEOUT", defaults.PAGE_TIMEOUT),
            probe_timeout=_env_float(f"{p}PROBE_TIMEOUT", defaults.PROBE_TIMEOUT),
            request_delay=max(0.0, _env_float(f"{p}REQUEST_DELAY", defaults.REQUEST_DELAY)),
            batch_delay=max(0.0, _env_float(f"{p}BATCH_DELAY", defaults.BATCH_DELAY)),
            max_concurrent=max(1, _env_int(f"{p}MAX_CONCURRENT", defaults.MAX_CONCURRENT)),
            headless=_env_bool(f"{p}HEADLESS", True),
        )

    @classmethod
    def fast(cls, **overrides: Any) -> "ScrapeConfig":
        """Config with every delay zeroed; handy for tests and dry runs."""

        base = cls(
            request_delay=0.0,
            batch_delay=0.0,
            settle_base=0.0,
            settle_step=0.0,
            retry_backoff=0.0,
            error_backoff=0.0,
        )
        known = {f.name for f in fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise TypeError(f"Unknown ScrapeConfig field: {key}")
            setattr(base, key, value)
        return base


def coerce_targets(targets: Iterable[Any]) -> Tuple[ScrapingTarget, ...]:
    """Return targets as validated :class:`ScrapingTarget` instances."""

    if targets is None or isinstance(targets, (str, bytes, Mapping)):
        raise TargetValidationError("Targets must be an iterable of ScrapingTarget")
    out = []
    for item in targets:
        if isinstance(item, ScrapingTarget):
            out.append(item)
        elif isinstance(item, Mapping):
            out.append(ScrapingTarget.from_mapping(item))
        else:
            raise TargetValidationError(f"Not a scraping target: {item!r}")
    return tuple(out)


__all__ = [
    "SpotfinderError",
    "TargetValidationError",
    "FetchError",
    "PageLoadError",
    "SourceType",
    "FallbackHint",
    "FieldSelectors",
    "Coordinates",
    "ScrapingTarget",
    "LocationCandidate",
    "ScrapingResult",
    "ScrapeConfig",
    "coerce_targets",
]
