"""Field extraction from listing pages (card containers + heading scan)."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag

from .html_normalize import clean_text, parse_html
from .models import FieldSelectors, LocationCandidate
from .scrape_config import (
    CONTAINER_SELECTORS,
    FIELD_FALLBACK_SELECTORS,
    HEADING_KEYWORDS,
    MAX_CANDIDATES,
    MAX_HEADING_CANDIDATES,
    MIN_NAME_LENGTH,
)

logger = logging.getLogger(__name__)

_HEADINGS = ("h1", "h2", "h3", "h4", "h5", "h6")
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_OUT_OF_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:/|out of)\s*(\d+)", re.I)
_PRICE_TIER_RE = re.compile(r"^\s*(\${1,4}|₦{1,4})\s*$")
_PRICE_RE = re.compile(
    r"(?P<cur>[₦$£€])?\s*(?P<low>\d[\d,]*(?:\.\d+)?)"
    r"(?:\s*(?:-|–|to)\s*(?P=cur)?\s*(?P<high>\d[\d,]*(?:\.\d+)?))?"
    r"(?:\s*(?:per|/)\s*(?P<unit>plate|person|meal|dish))?",
    re.I,
)
_STAR = "★"


def _split_selectors(selector: Optional[str]) -> List[str]:
    if not selector:
        return []
    return [part.strip() for part in selector.split(",") if part.strip()]


def _select_one(root: Tag, selector: str) -> Optional[Tag]:
    try:
        return root.select_one(selector)
    except Exception as exc:  # soupsieve raises on malformed CSS
        logger.debug("Skipping invalid selector %r: %s", selector, exc)
        return None


def _find_field(root: Tag, field_name: str, selectors: FieldSelectors) -> Optional[Tag]:
    chain = _split_selectors(selectors.get(field_name))
    chain.extend(FIELD_FALLBACK_SELECTORS.get(field_name, ()))
    for css in chain:
        el = _select_one(root, css)
        if el is None:
            continue
        if field_name == "website":
            if el.get("href"):
                return el
            continue
        if el.get_text(strip=True) or (field_name == "phone" and el.get("href")):
            return el
    return None


def _text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return clean_text(el.get_text(" ", strip=True))


def _phone(el: Optional[Tag]) -> Optional[str]:
    if el is None:
        return None
    text = _text(el)
    if text:
        return text
    href = str(el.get("href") or "")
    if href.lower().startswith("tel:"):
        return href[4:].strip() or None
    return None


def parse_rating(text: Optional[str]) -> Optional[float]:
    """Parse "4.5", "4.5/5", "9 out of 10" or star glyphs into a 0-5 rating."""

    if not text:
        return None
    cleaned = clean_text(text)
    match = _OUT_OF_RE.search(cleaned)
    if match:
        value, scale = float(match.group(1)), float(match.group(2))
        if scale <= 0:
            return None
        rating = value / scale * 5.0
    else:
        number = _NUMBER_RE.search(cleaned)
        if number:
            rating = float(number.group(1))
        elif _STAR in cleaned:
            rating = float(cleaned.count(_STAR))
        else:
            return None
    if 0.0 <= rating <= 5.0:
        return round(rating, 2)
    return None


def parse_price(text: Optional[str]) -> Optional[str]:
    """Normalize a price snippet.

    Tier strings ("$$", "₦₦₦") are returned as-is. Amounts and ranges lose
    their thousands separators and keep the currency symbol and the optional
    "per plate|person|meal|dish" unit: "₦1,500 - ₦4,000 per plate" becomes
    "₦1500-4000 per plate".
    """

    if not text:
        return None
    cleaned = clean_text(text)
    tier = _PRICE_TIER_RE.match(cleaned)
    if tier:
        return tier.group(1)
    match = _PRICE_RE.search(cleaned)
    if not match:
        return None
    cur = match.group("cur") or ""
    low = match.group("low").replace(",", "")
    high = match.group("high")
    out = f"{cur}{low}"
    if high:
        out += f"-{high.replace(',', '')}"
    unit = match.group("unit")
    if unit:
        out += f" per {unit.lower()}"
    return out


def _containers(soup: BeautifulSoup) -> List[Tag]:
    # One grouped selector keeps document order across container kinds.
    found = soup.select(", ".join(CONTAINER_SELECTORS))
    selected = {id(el) for el in found}
    # a container wrapping other containers is a list wrapper, not a venue
    wrappers = {id(parent) for el in found for parent in el.parents if id(parent) in selected}
    return [el for el in found if id(el) not in wrappers]


def extract_candidates(
    html: str,
    selectors: Optional[FieldSelectors] = None,
    *,
    source_url: Optional[str] = None,
    limit: int = MAX_CANDIDATES,
) -> List[LocationCandidate]:
    """Read listing cards out of rendered HTML.

    Containers are located with the fixed container selector list; each
    field tries the target's selector(s) first, then the generic fallbacks.
    A card without a name longer than two characters is dropped.
    """

    if not html or limit <= 0:
        return []
    selectors = selectors or FieldSelectors()
    soup = parse_html(html)
    out: List[LocationCandidate] = []
    for container in _containers(soup):
        name = _text(_find_field(container, "name", selectors))
        if len(name) < MIN_NAME_LENGTH:
            continue
        website_el = _find_field(container, "website", selectors)
        rating_text = _text(_find_field(container, "rating", selectors))
        price_text = _text(_find_field(container, "price", selectors))
        out.append(
            LocationCandidate(
                name=name,
                address=_text(_find_field(container, "address", selectors)),
                phone=_phone(_find_field(container, "phone", selectors)),
                website=str(website_el.get("href")) if website_el is not None else None,
                rating=parse_rating(rating_text),
                price=parse_price(price_text) or (price_text or None),
                source_url=source_url,
            )
        )
        if len(out) >= limit:
            break
    return out


def extract_heading_candidates(
    html: str,
    *,
    source_url: Optional[str] = None,
    limit: int = MAX_HEADING_CANDIDATES,
    keywords: Sequence[str] = HEADING_KEYWORDS,
) -> List[LocationCandidate]:
    """Collect headings whose text mentions a food/venue keyword."""

    if not html or limit <= 0:
        return []
    lowered_keywords = [k.lower() for k in keywords]
    soup = parse_html(html)
    out: List[LocationCandidate] = []
    for heading in soup.find_all(_HEADINGS):
        name = _text(heading)
        if len(name) < MIN_NAME_LENGTH:
            continue
        lowered = name.lower()
        if not any(k in lowered for k in lowered_keywords):
            continue
        out.append(LocationCandidate(name=name, source_url=source_url))
        if len(out) >= limit:
            break
    return out


__all__ = [
    "extract_candidates",
    "extract_heading_candidates",
    "parse_price",
    "parse_rating",
]
