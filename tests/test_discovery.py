import asyncio

from spotfinder.workflows.chain import StrategyChain
from spotfinder.workflows.discovery import (
    DEFAULT_TARGETS,
    discover,
    remove_in_batch_duplicates,
    validate_candidate,
)
from spotfinder.workflows.duplicates import FAIL_OPEN_MESSAGE
from spotfinder.workflows.models import (
    FallbackHint,
    FetchError,
    LocationCandidate,
    ScrapeConfig,
    ScrapingResult,
    SourceType,
)
from spotfinder.workflows.strategies import FetchStrategy

KNOWN = [{"name": "Mama Cass Amala Spot", "address": "12 Ikeja Way, Lagos, Nigeria", "phone": "0801-234-5678"}]


class PagesByUrl(FetchStrategy):
    name = "http"

    def __init__(self, pages):
        self.pages = pages

    async def fetch(self, target):
        names = self.pages.get(target.url)
        if names is None:
            raise FetchError("HTTP 404")
        return ScrapingResult(success=True, candidates=[LocationCandidate(**n) for n in names], source=target.url)


PAGES = {
    "https://blog.example/amala": [
        {"name": "Mama Cass Amala", "address": "12 Ikeja Way, Lagos", "phone": "08012345678"},
        {"name": "Buka Hut Amala", "address": "Allen Avenue, Lagos"},
        {"name": "AB", "address": "Yaba, Lagos"},
    ],
    "https://forum.example/threads": [
        {"name": "Mama Cass Amala ", "address": "12 Ikeja Way Lagos"},
        {"name": "Chicken Republic", "address": "Accra Mall, Ghana"},
    ],
}

TARGETS = [
    {"url": "https://blog.example/amala", "type": "blog"},
    {"url": "https://forum.example/threads", "type": "social"},
    {"url": "https://down.example/", "type": "directory"},
]


def _chain():
    return StrategyChain([PagesByUrl(PAGES)], ScrapeConfig.fast())


def test_discover_partitions_candidates() -> None:
    report = asyncio.run(discover(TARGETS, KNOWN, chain=_chain(), config=ScrapeConfig.fast()))

    assert report.summary() == {"targets": 3, "new": 1, "duplicates": 1, "rejected": 2}
    assert [c.name for c in report.new] == ["Buka Hut Amala"]
    duplicate, check = report.duplicates[0]
    assert duplicate.name == "Mama Cass Amala"
    assert check.confidence >= 0.9
    assert sorted(c.name for c, _ in report.rejected) == ["AB", "Chicken Republic"]
    assert not report.results[2].success
    assert report.results[2].error == "HTTP 404"


def test_discover_accepts_async_corpus_loader() -> None:
    async def load_known():
        await asyncio.sleep(0)
        return KNOWN

    report = asyncio.run(discover(TARGETS[:1], load_known, chain=_chain()))

    assert [c.name for c, _ in report.duplicates] == ["Mama Cass Amala"]


def test_discover_with_broken_corpus_keeps_candidates() -> None:
    def load_known():
        raise ConnectionError("store unavailable")

    report = asyncio.run(discover(TARGETS[:1], load_known, chain=_chain()))

    assert sorted(c.name for c in report.new) == ["Buka Hut Amala", "Mama Cass Amala"]
    assert report.duplicates == []


def test_default_targets() -> None:
    assert len(DEFAULT_TARGETS) == 5
    assert {t.source_type for t in DEFAULT_TARGETS} == {SourceType.BLOG, SourceType.SOCIAL, SourceType.REVIEW_SITE}
    assert all(t.search_queries for t in DEFAULT_TARGETS)
    assert DEFAULT_TARGETS[-1].fallback is FallbackHint.ALTERNATIVE_SCRAPER
    assert DEFAULT_TARGETS[0].selectors.get("name") == ".restaurant-name, .business-name, h3, h4"


def test_validate_complete_candidate() -> None:
    result = validate_candidate(
        LocationCandidate(name="Amala Skye", address="Bode Thomas, Surulere, Lagos", rating=4.5)
    )

    assert result.is_valid
    assert result.confidence == 1.0
    assert result.issues == ()


def test_validate_candidate_outside_region() -> None:
    result = validate_candidate(LocationCandidate(name="Amala Place", address="Bodija, Ibadan"))

    assert result.is_valid
    assert result.confidence == 0.8
    assert result.issues == ("Not in Lagos",)

    elsewhere = validate_candidate(LocationCandidate(name="Amala Place", address="Bodija, Ibadan"), region="ibadan")
    assert elsewhere.issues == ()


def test_validate_empty_candidate() -> None:
    result = validate_candidate(LocationCandidate(name=""))

    assert not result.is_valid
    assert result.confidence == 0.0
    assert result.issues == ("Invalid or missing name", "Missing address", "May not serve the target cuisine")


def test_in_batch_dedupe_keeps_first() -> None:
    first = LocationCandidate(name="Mama Cass Amala", address="12 Ikeja Way, Lagos")
    echo = LocationCandidate(name="Mama Cass  Amala", address="Somewhere else")
    same_address = LocationCandidate(name="Totally New", address="12 Ikeja Way, Lagos.")
    other = LocationCandidate(name="Buka Hut")
    another = LocationCandidate(name="Iya Basira")

    unique = remove_in_batch_duplicates([first, echo, same_address, other, another])

    assert unique == [first, other, another]


def test_fail_open_message_is_stable() -> None:
    assert FAIL_OPEN_MESSAGE == "Error occurred during duplicate check - manual review recommended"
