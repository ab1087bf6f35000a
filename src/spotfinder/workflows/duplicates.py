"""Duplicate detection between a candidate and already-known locations.

Scoring per existing record:

* ``base = name_weight * name_similarity + address_weight * address_similarity``
* equal phone digits (at least 7 of them) lift the score to ``phone_confidence``
* coordinates within ``proximity_radius_m`` lift it to ``proximity_confidence``

A record matches when its score reaches ``match_threshold``; the overall
confidence is the best matched score. Any failure while reading the corpus or
scoring fails open: the candidate is reported as new and flagged for manual
review, so a broken corpus never blocks intake.
"""

from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from geopy.distance import great_circle
from rapidfuzz import fuzz
from rapidfuzz.distance import JaroWinkler

from ..core.keys import K_ADDRESS, K_COORDINATES, K_LAT, K_LNG, K_NAME, K_PHONE
from .models import Coordinates

logger = logging.getLogger(__name__)

FAIL_OPEN_MESSAGE = "Error occurred during duplicate check - manual review recommended"

BAND_EXACT = "exact"
BAND_STRONG = "strong"
BAND_POTENTIAL = "potential"
BAND_NONE = "none"

_PHONE_PREFIX = "Same phone number"
_NAME_PREFIX = "Very similar name"
_ADDRESS_PREFIX = "Similar address"
_PROXIMITY_PREFIX = "Within"

_STREET_WORDS_RE = re.compile(r"\b(street|st|road|rd|avenue|ave|lane|ln|way|close|crescent|cres)\b")
_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")
_CONTAINED_NAME_SCORE = 0.9

Corpus = Union[Iterable[Any], Callable[[], Iterable[Any]]]


@dataclass(frozen=True)
class DuplicatePolicy:
    """Thresholds and weights for duplicate scoring.

    The defaults are starting points, not calibrated constants; tune them
    per deployment.
    """

    exact_threshold: float = 0.95
    strong_threshold: float = 0.85
    match_threshold: float = 0.80
    proximity_radius_m: float = 50.0
    name_reason_threshold: float = 0.90
    address_reason_threshold: float = 0.80
    name_weight: float = 0.6
    address_weight: float = 0.4
    phone_confidence: float = 0.99
    proximity_confidence: float = 0.96
    min_phone_digits: int = 7


DEFAULT_POLICY = DuplicatePolicy()


@dataclass(frozen=True)
class DuplicateMatch:
    record: Any
    score: float
    name_score: float
    address_score: float
    phone_match: bool = False
    distance_m: Optional[float] = None
    reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DuplicateCheckResult:
    is_duplicate: bool
    similar_locations: Tuple[Any, ...] = ()
    reasons: Tuple[str, ...] = ()
    confidence: float = 0.0
    band: str = BAND_NONE
    primary_reason: Optional[str] = None
    moderation_reasons: Tuple[str, ...] = ()
    matches: Tuple[DuplicateMatch, ...] = field(default=(), repr=False)

    @classmethod
    def fail_open(cls) -> "DuplicateCheckResult":
        return cls(
            is_duplicate=False,
            reasons=(FAIL_OPEN_MESSAGE,),
            moderation_reasons=(FAIL_OPEN_MESSAGE,),
        )


def _get(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def _coordinates(record: Any) -> Optional[Coordinates]:
    raw = _get(record, K_COORDINATES)
    if raw is None:
        return None
    if isinstance(raw, Coordinates):
        return raw
    if isinstance(raw, Mapping):
        lat, lng = raw.get(K_LAT), raw.get(K_LNG)
    elif isinstance(raw, (tuple, list)) and len(raw) == 2:
        lat, lng = raw
    else:
        lat, lng = getattr(raw, K_LAT, None), getattr(raw, K_LNG, None)
    if lat is None or lng is None:
        return None
    return Coordinates(float(lat), float(lng))


def normalize_name(name: Optional[str]) -> str:
    if not name:
        return ""
    text = _PUNCT_RE.sub(" ", name.lower())
    return _WS_RE.sub(" ", text).strip()


def normalize_address(address: Optional[str]) -> str:
    if not address:
        return ""
    text = _STREET_WORDS_RE.sub("", address.lower())
    text = _PUNCT_RE.sub("", text)
    return _WS_RE.sub(" ", text).strip()


def normalize_phone(phone: Optional[str]) -> str:
    if not phone:
        return ""
    return _NON_DIGIT_RE.sub("", str(phone))


def _ordered_similarity(left: str, right: str) -> float:
    return max(JaroWinkler.normalized_similarity(left, right), fuzz.token_sort_ratio(left, right) / 100.0)


def name_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Near-exact name score.

    One name's words appearing inside the other's only counts when the
    shorter name has several words, and even then stays below an exact
    match: "Amala" alone is contained in half the city's buka names.
    """

    left, right = normalize_name(a), normalize_name(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    score = _ordered_similarity(left, right)
    shorter, longer = sorted((left.split(), right.split()), key=len)
    if len(shorter) >= 2 and set(shorter) <= set(longer):
        score = max(score, _CONTAINED_NAME_SCORE)
    return score


def _anchored(raw: str, normalized: str) -> bool:
    # a house number or a street word pins an address below area level
    tokens = normalized.split()
    if len(tokens) < 2:
        return False
    return any(ch.isdigit() for ch in normalized) or bool(_STREET_WORDS_RE.search(raw.lower()))


def address_similarity(a: Optional[str], b: Optional[str]) -> float:
    left, right = normalize_address(a), normalize_address(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    raw_short, short, long_ = (a, left, right) if len(left) <= len(right) else (b, right, left)
    if f" {short} " in f" {long_} " and _anchored(raw_short or "", short):
        return 1.0
    return _ordered_similarity(left, right)


def distance_meters(a: Coordinates, b: Coordinates) -> float:
    return great_circle(a.as_tuple(), b.as_tuple()).meters


def score_pair(candidate: Any, existing: Any, policy: DuplicatePolicy = DEFAULT_POLICY) -> DuplicateMatch:
    """Score one candidate/existing pair and collect the human-readable reasons."""

    existing_name = _get(existing, K_NAME) or ""
    existing_address = _get(existing, K_ADDRESS) or ""
    reasons: List[str] = []

    n_score = name_similarity(_get(candidate, K_NAME), existing_name)
    if n_score > policy.name_reason_threshold:
        reasons.append(f'{_NAME_PREFIX}: "{existing_name}"')

    a_score = address_similarity(_get(candidate, K_ADDRESS), existing_address)
    if a_score > policy.address_reason_threshold:
        reasons.append(f'{_ADDRESS_PREFIX}: "{existing_address}"')

    score = policy.name_weight * n_score + policy.address_weight * a_score

    cand_phone = normalize_phone(_get(candidate, K_PHONE))
    phone_match = len(cand_phone) >= policy.min_phone_digits and cand_phone == normalize_phone(
        _get(existing, K_PHONE)
    )
    if phone_match:
        reasons.append(f"{_PHONE_PREFIX}: {_get(existing, K_PHONE)}")
        score = max(score, policy.phone_confidence)

    distance: Optional[float] = None
    here, there = _coordinates(candidate), _coordinates(existing)
    if here is not None and there is not None:
        distance = distance_meters(here, there)
        if distance < policy.proximity_radius_m:
            reasons.append(f'{_PROXIMITY_PREFIX} {distance:.0f}m of "{existing_name}"')
            score = max(score, policy.proximity_confidence)

    return DuplicateMatch(
        record=existing,
        score=min(1.0, score),
        name_score=n_score,
        address_score=a_score,
        phone_match=phone_match,
        distance_m=distance,
        reasons=tuple(reasons),
    )


def confidence_band(confidence: float, policy: DuplicatePolicy = DEFAULT_POLICY) -> str:
    if confidence > policy.exact_threshold:
        return BAND_EXACT
    if confidence > policy.strong_threshold:
        return BAND_STRONG
    return BAND_POTENTIAL


def primary_reason(reasons: Sequence[str]) -> str:
    """Pick the single most telling reason (phone > name+address > name > address)."""

    if not reasons:
        return "Similar location detected"
    phone = next((r for r in reasons if r.startswith(_PHONE_PREFIX)), None)
    name = next((r for r in reasons if r.startswith(_NAME_PREFIX)), None)
    address = next((r for r in reasons if r.startswith(_ADDRESS_PREFIX)), None)
    if phone:
        return f"Duplicate detected: {phone}"
    if name and address:
        return f"Duplicate detected: {name} and {address}"
    if name:
        return f"Duplicate detected: {name}"
    if address:
        return f"Duplicate detected: {address}"
    return f"Duplicate detected: {reasons[0]}"


def moderation_reasons(
    candidate: Any,
    matches: Sequence[DuplicateMatch],
    confidence: float,
    policy: DuplicatePolicy = DEFAULT_POLICY,
) -> List[str]:
    """Reviewer-facing notes for a detected duplicate."""

    band = confidence_band(confidence, policy)
    if band == BAND_EXACT:
        out = ["High confidence duplicate match - likely exact duplicate"]
    elif band == BAND_STRONG:
        out = ["Strong duplicate match - manual verification recommended"]
    else:
        out = ["Potential duplicate - requires human review"]

    if len(matches) > 1:
        out.append(f"Multiple similar locations found ({len(matches)})")

    cand_name = (_get(candidate, K_NAME) or "").lower().strip()
    if cand_name and any((_get(m.record, K_NAME) or "").lower().strip() == cand_name for m in matches):
        out.append("Exact name match found")

    if any(m.phone_match for m in matches):
        out.append("Phone number already exists in database")

    nearby = sum(1 for m in matches if m.distance_m is not None and m.distance_m < policy.proximity_radius_m)
    if nearby:
        out.append(f"{nearby} location(s) within {policy.proximity_radius_m:.0f}m radius")
    return out


def _materialize(corpus: Corpus) -> Iterable[Any]:
    if callable(corpus):
        corpus = corpus()
    if corpus is None:
        return ()
    return corpus


def _dedupe(items: Iterable[str]) -> Tuple[str, ...]:
    seen = set()
    out: List[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return tuple(out)


def _evaluate(candidate: Any, corpus: Iterable[Any], policy: DuplicatePolicy) -> DuplicateCheckResult:
    matches: List[DuplicateMatch] = []
    for existing in corpus:
        match = score_pair(candidate, existing, policy)
        if match.score >= policy.match_threshold:
            matches.append(match)

    if not matches:
        return DuplicateCheckResult(is_duplicate=False)

    matches.sort(key=lambda m: m.score, reverse=True)
    confidence = round(matches[0].score, 4)
    reasons = _dedupe(r for m in matches for r in m.reasons)
    return DuplicateCheckResult(
        is_duplicate=True,
        similar_locations=tuple(m.record for m in matches),
        reasons=reasons,
        confidence=confidence,
        band=confidence_band(confidence, policy),
        primary_reason=primary_reason(reasons),
        moderation_reasons=tuple(moderation_reasons(candidate, matches, confidence, policy)),
        matches=tuple(matches),
    )


def detect_duplicate(
    candidate: Any,
    corpus: Corpus,
    policy: DuplicatePolicy = DEFAULT_POLICY,
) -> DuplicateCheckResult:
    """Compare ``candidate`` against every record of ``corpus``.

    ``corpus`` may be any iterable of mappings/objects exposing ``name``,
    ``address`` and optionally ``phone`` and ``coordinates``, or a callable
    returning one. Records are only read.
    """

    try:
        return _evaluate(candidate, _materialize(corpus), policy)
    except Exception as exc:
        logger.warning("Duplicate check failed for %r: %s", _get(candidate, K_NAME), exc)
        return DuplicateCheckResult.fail_open()


class DuplicateDetector:
    def __init__(self, policy: DuplicatePolicy = DEFAULT_POLICY) -> None:
        self.policy = policy

    def check(self, candidate: Any, corpus: Corpus) -> DuplicateCheckResult:
        return detect_duplicate(candidate, corpus, self.policy)

    async def check_with_loader(
        self,
        candidate: Any,
        loader: Callable[[], Union[Awaitable[Iterable[Any]], Iterable[Any]]],
    ) -> DuplicateCheckResult:
        """Load the corpus asynchronously (e.g. a batched read) then check."""

        try:
            corpus = loader()
            if inspect.isawaitable(corpus):
                corpus = await corpus
        except Exception as exc:
            logger.warning("Duplicate corpus load failed for %r: %s", _get(candidate, K_NAME), exc)
            return DuplicateCheckResult.fail_open()
        return detect_duplicate(candidate, corpus, self.policy)


__all__ = [
    "BAND_EXACT",
    "BAND_NONE",
    "BAND_POTENTIAL",
    "BAND_STRONG",
    "DEFAULT_POLICY",
    "FAIL_OPEN_MESSAGE",
    "DuplicateCheckResult",
    "DuplicateDetector",
    "DuplicateMatch",
    "DuplicatePolicy",
    "address_similarity",
    "confidence_band",
    "detect_duplicate",
    "distance_meters",
    "moderation_reasons",
    "name_similarity",
    "normalize_address",
    "normalize_name",
    "normalize_phone",
    "primary_reason",
    "score_pair",
]
