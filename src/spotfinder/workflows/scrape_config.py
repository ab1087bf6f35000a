"""Scraper defaults (user agents, headers, selectors, failure vocabulary).

Centralizes static defaults so the strategy modules have no embedded magic
strings. Runtime knobs live on :class:`spotfinder.workflows.models.ScrapeConfig`;
these constants are the baseline it is built from.
"""

from __future__ import annotations

from typing import Dict, Tuple

# Anti-detection pools
USER_AGENTS: Tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
)

VIEWPORTS: Tuple[Dict[str, int], ...] = (
    {"width": 1366, "height": 768},
    {"width": 1920, "height": 1080},
    {"width": 1440, "height": 900},
    {"width": 1280, "height": 720},
)

BROWSER_HEADERS: Dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}

HTTP_HEADERS: Dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
}

BROWSER_LAUNCH_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
)

# Page classification
FAILURE_INDICATORS: Tuple[str, ...] = (
    "404",
    "not found",
    "page not found",
    "error",
    "access denied",
    "forbidden",
    "blocked",
    "captcha",
    "robot",
    "bot detection",
)

UNKNOWN_TITLE = "Unknown"

# Wait conditions escalate from strict to lenient by attempt number.
WAIT_CONDITIONS: Tuple[str, ...] = ("networkidle", "domcontentloaded", "load")

# Field extraction
CONTAINER_SELECTORS: Tuple[str, ...] = (
    ".restaurant",
    ".listing",
    ".place",
    ".business",
    '[data-testid*="restaurant"]',
    '[data-testid*="place"]',
    ".search-result",
    ".result-item",
)

FIELD_FALLBACK_SELECTORS: Dict[str, Tuple[str, ...]] = {
    "name": ("h1", "h2", "h3", ".name", ".title", '[data-testid*="name"]'),
    "address": (".address", ".location", '[data-testid*="address"]'),
    "phone": (".phone", ".tel", 'a[href^="tel:"]'),
    "website": ('a[href^="http"]', ".website"),
    "rating": (".rating", ".stars", '[class*="rating"]'),
    "price": (".price", ".cost", ".price-range"),
    "reviews": (".review", ".comment", ".testimonial"),
}

HEADING_KEYWORDS: Tuple[str, ...] = (
    "amala",
    "restaurant",
    "food",
    "bukka",
    "buka",
    "eatery",
    "kitchen",
    "canteen",
    "spot",
)

MIN_NAME_LENGTH = 3

# Search URL construction
QUERY_PARAM_NAMES: Tuple[str, ...] = ("q", "query", "search", "term", "keyword")

ALTERNATE_PATHS: Tuple[str, ...] = (
    "/search",
    "/restaurants",
    "/places",
    "/directory",
    "/api/search",
    "/api/places",
)

ALTERNATE_QUERY_TEMPLATES: Tuple[str, ...] = (
    "/search?term={query}",
    "/search?keyword={query}",
    "/find?q={query}",
)

# Timing defaults (seconds)
MAX_RETRIES = 3
PAGE_TIMEOUT = 30.0
PROBE_TIMEOUT = 15.0
REQUEST_DELAY = 2.0
BATCH_DELAY = 5.0
MAX_CONCURRENT = 2
SETTLE_BASE = 1.0
SETTLE_STEP = 0.5
RETRY_BACKOFF = 2.0
ERROR_BACKOFF = 3.0
MIN_BODY_LENGTH = 100
MAX_CANDIDATES = 20
MAX_HEADING_CANDIDATES = 10

ENV_PREFIX = "SPOTFINDER_"
