import pytest

from spotfinder.workflows.models import (
    Coordinates,
    FallbackHint,
    FieldSelectors,
    LocationCandidate,
    ScrapeConfig,
    ScrapingResult,
    ScrapingTarget,
    SourceType,
    TargetValidationError,
    coerce_targets,
)


def test_target_normalizes_fields() -> None:
    target = ScrapingTarget(
        url=" https://example.com/search ",
        source_type="directory",
        selectors={"name": ".n", "address": ""},
        search_queries=["amala", "  "],
        fallback="skip",
    )

    assert target.url == "https://example.com/search"
    assert target.source_type is SourceType.DIRECTORY
    assert target.selectors.get("name") == ".n"
    assert target.selectors.get("address") is None
    assert target.search_queries == ("amala",)
    assert target.first_query == "amala"
    assert target.fallback is FallbackHint.SKIP


@pytest.mark.parametrize(
    "kwargs",
    [
        {"url": "ftp://example.com", "source_type": "blog"},
        {"url": "/relative/path", "source_type": "blog"},
        {"url": "https://example.com", "source_type": "newspaper"},
        {"url": "https://example.com", "source_type": "blog", "selectors": {"menu": ".m"}},
        {"url": "https://example.com", "source_type": "blog", "fallback": "retry-forever"},
    ],
)
def test_target_rejects_malformed_input(kwargs) -> None:
    with pytest.raises(TargetValidationError):
        ScrapingTarget(**kwargs)


def test_target_validation_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        ScrapingTarget(url="nope", source_type="blog")


def test_target_is_immutable() -> None:
    target = ScrapingTarget(url="https://example.com", source_type="maps")
    with pytest.raises(Exception):
        target.url = "https://other.example"  # type: ignore[misc]


def test_target_from_mapping_accepts_camel_case_keys() -> None:
    target = ScrapingTarget.from_mapping(
        {
            "url": "https://www.yelp.com/search",
            "type": "review-site",
            "selectors": {"name": "h3"},
            "searchQueries": ["amala", "ewedu"],
            "fallbackStrategy": "alternative-scraper",
        }
    )

    assert target.source_type is SourceType.REVIEW_SITE
    assert target.search_queries == ("amala", "ewedu")
    assert target.fallback is FallbackHint.ALTERNATIVE_SCRAPER


def test_field_selectors_unknown_field_lookup() -> None:
    with pytest.raises(KeyError):
        FieldSelectors().get("menu")


def test_candidate_defaults_and_serialization() -> None:
    candidate = LocationCandidate(
        name="Mama Cass Amala",
        address="12 Ikeja Way, Lagos",
        coordinates=Coordinates(6.5244, 3.3792),
    )

    payload = candidate.to_dict()

    assert candidate.id.startswith("scraped-")
    assert candidate.status == "pending"
    assert payload["status"] == "pending"
    assert payload["coordinates"] == {"lat": 6.5244, "lng": 3.3792}
    assert "phone" not in payload
    assert LocationCandidate(name="x").id != LocationCandidate(name="x").id


def test_result_helpers() -> None:
    ok = ScrapingResult(success=True, candidates=[LocationCandidate(name="Buka Hut")], source="https://a.example")
    tagged = ok.with_strategy("http")
    failed = ScrapingResult.failure("https://a.example", "HTTP 404", strategy="none")

    assert isinstance(ok.candidates, tuple)
    assert tagged.strategy == "http" and tagged.has_candidates
    assert failed.to_dict() == {
        "success": False,
        "candidates": [],
        "source": "https://a.example",
        "error": "HTTP 404",
        "strategy": "none",
    }


def test_config_from_env_ignores_malformed_values(monkeypatch) -> None:
    monkeypatch.setenv("SPOTFINDER_MAX_RETRIES", "5")
    monkeypatch.setenv("SPOTFINDER_REQUEST_DELAY", "soon")
    monkeypatch.setenv("SPOTFINDER_MAX_CONCURRENT", "0")
    monkeypatch.setenv("SPOTFINDER_HEADLESS", "off")

    config = ScrapeConfig.from_env(dotenv=False)

    assert config.max_retries == 5
    assert config.request_delay == 2.0
    assert config.max_concurrent == 1
    assert config.headless is False


def test_config_fast_zeroes_delays() -> None:
    config = ScrapeConfig.fast(max_retries=2)

    assert config.max_retries == 2
    assert config.request_delay == 0 and config.batch_delay == 0
    assert config.retry_backoff == 0 and config.settle_base == 0
    with pytest.raises(TypeError):
        ScrapeConfig.fast(retries=2)


def test_coerce_targets_accepts_mappings_and_rejects_junk() -> None:
    targets = coerce_targets([{"url": "https://a.example", "type": "blog"}])

    assert targets[0].url == "https://a.example"
    with pytest.raises(TargetValidationError):
        coerce_targets("https://a.example")
    with pytest.raises(TargetValidationError):
        coerce_targets([42])
