"""High-level exports for the discovery workflows."""

from .batch import BatchOrchestrator, scrape_multiple_targets
from .browser import BrowserPool
from .chain import StrategyChain
from .discovery import DEFAULT_TARGETS, DiscoveryReport, discover, validate_candidate
from .doctor import build_doctor_report, format_doctor_report
from .duplicates import (
    DEFAULT_POLICY,
    DuplicateCheckResult,
    DuplicateDetector,
    DuplicatePolicy,
    detect_duplicate,
)
from .models import (
    FallbackHint,
    FetchError,
    FieldSelectors,
    LocationCandidate,
    ScrapeConfig,
    ScrapingResult,
    ScrapingTarget,
    SourceType,
    SpotfinderError,
    TargetValidationError,
)
from .page_loader import PageLoader

__all__ = [
    "DEFAULT_POLICY",
    "DEFAULT_TARGETS",
    "BatchOrchestrator",
    "BrowserPool",
    "DiscoveryReport",
    "DuplicateCheckResult",
    "DuplicateDetector",
    "DuplicatePolicy",
    "FallbackHint",
    "FetchError",
    "FieldSelectors",
    "LocationCandidate",
    "PageLoader",
    "ScrapeConfig",
    "ScrapingResult",
    "ScrapingTarget",
    "SourceType",
    "SpotfinderError",
    "StrategyChain",
    "TargetValidationError",
    "build_doctor_report",
    "detect_duplicate",
    "discover",
    "format_doctor_report",
    "scrape_multiple_targets",
    "validate_candidate",
]
