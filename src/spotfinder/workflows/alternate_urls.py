"""Search-URL construction and alternative endpoint candidates for a target."""

from __future__ import annotations

from typing import List
from urllib.parse import parse_qsl, quote, urlparse, urlunparse

from .models import ScrapingTarget
from .scrape_config import ALTERNATE_PATHS, ALTERNATE_QUERY_TEMPLATES, QUERY_PARAM_NAMES

# Characters encodeURIComponent leaves alone; keeps generated URLs stable.
_QUERY_SAFE = "-_.!~*'()"


def encode_query(value: str) -> str:
    return quote(value, safe=_QUERY_SAFE)


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def search_param_for(url: str) -> str:
    """Pick the query parameter a site already uses, defaulting to ``q``."""

    present = {key.lower() for key, _ in parse_qsl(urlparse(url).query, keep_blank_values=True)}
    for name in QUERY_PARAM_NAMES:
        if name in present:
            return name
    return QUERY_PARAM_NAMES[0]


def build_search_url(target: ScrapingTarget) -> str:
    query = target.first_query
    if not query:
        return target.url
    parsed = urlparse(target.url)
    pair = f"{search_param_for(target.url)}={encode_query(query)}"
    # the fragment stays last
    return urlunparse(parsed._replace(query=f"{parsed.query}&{pair}" if parsed.query else pair))


def generate_alternative_urls(target: ScrapingTarget) -> List[str]:
    """Same-origin listing/search endpoints worth probing when the target fails.

    Order-preserving and de-duplicated; the target URL itself is excluded.
    """

    origin = _origin(target.url)
    urls = [f"{origin}{path}" for path in ALTERNATE_PATHS]
    query = target.first_query
    if query:
        encoded = encode_query(query)
        urls.extend(f"{origin}{template.format(query=encoded)}" for template in ALTERNATE_QUERY_TEMPLATES)

    seen = {target.url.rstrip("/")}
    out: List[str] = []
    for url in urls:
        key = url.rstrip("/")
        if key in seen:
            continue
        seen.add(key)
        out.append(url)
    return out


__all__ = [
    "build_search_url",
    "encode_query",
    "generate_alternative_urls",
    "search_param_for",
]
