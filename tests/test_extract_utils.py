from spotfinder.workflows.extract_utils import (
    extract_candidates,
    extract_heading_candidates,
    parse_price,
    parse_rating,
)
from spotfinder.workflows.models import FieldSelectors

LISTING_HTML = """
<html><body>
  <div class="listing">
    <h3 class="name">Mama Cass Amala</h3>
    <span class="address">12 Ikeja Way, Lagos</span>
    <a href="tel:08012345678"></a>
    <a class="site" href="https://mamacass.example">Website</a>
    <span class="rating">4.5/5</span>
    <span class="price">₦1,500 - ₦4,000 per plate</span>
  </div>
  <div class="listing"><h3>AB</h3></div>
  <div class="place"><span class="title">Amala Shitta</span></div>
  <script>document.write("<div class='listing'><h3>Injected Place</h3></div>")</script>
</body></html>
"""


def test_extract_candidates_reads_cards_with_fallback_selectors() -> None:
    candidates = extract_candidates(LISTING_HTML, FieldSelectors(), source_url="https://dir.example")

    assert [c.name for c in candidates] == ["Mama Cass Amala", "Amala Shitta"]
    first = candidates[0]
    assert first.address == "12 Ikeja Way, Lagos"
    assert first.phone == "08012345678"
    assert first.website == "https://mamacass.example"
    assert first.rating == 4.5
    assert first.price == "₦1500-4000 per plate"
    assert first.source_url == "https://dir.example"
    assert first.status == "pending"


def test_explicit_selector_wins_over_fallbacks() -> None:
    html = '<div class="business"><h2>Generic Heading</h2><h4>Buka Express</h4></div>'

    candidates = extract_candidates(html, FieldSelectors(name=".custom-name, h4"))

    assert [c.name for c in candidates] == ["Buka Express"]


def test_invalid_selector_is_skipped() -> None:
    html = '<div class="restaurant"><h2>Iya Basira Kitchen</h2></div>'

    candidates = extract_candidates(html, FieldSelectors(name="[[[", address="::nope("))

    assert [c.name for c in candidates] == ["Iya Basira Kitchen"]
    assert candidates[0].address == ""


def test_extract_candidates_caps_results() -> None:
    cards = "".join(f'<div class="search-result"><h3>Amala Spot {i}</h3></div>' for i in range(30))

    assert len(extract_candidates(cards)) == 20
    assert len(extract_candidates(cards, limit=5)) == 5


def test_nested_containers_yield_one_candidate_per_venue() -> None:
    single = '<div class="listing"><div class="restaurant"><h3>Mama Cass Amala</h3></div></div>'
    wrapper = (
        '<div class="listing">'
        '<div class="restaurant"><h3>Mama Cass Amala</h3></div>'
        '<div class="restaurant"><h3>Amala Shitta</h3></div>'
        "</div>"
    )

    assert [c.name for c in extract_candidates(single)] == ["Mama Cass Amala"]
    assert [c.name for c in extract_candidates(wrapper)] == ["Mama Cass Amala", "Amala Shitta"]


def test_extract_candidates_without_containers_is_empty() -> None:
    assert extract_candidates("<html><body><h1>Amala Place</h1></body></html>") == []
    assert extract_candidates("") == []


def test_heading_candidates_need_a_keyword() -> None:
    html = """
    <h1>Welcome</h1>
    <h2>Best Amala Restaurant in Lagos</h2>
    <h3>Contact us</h3>
    <h4>Buka Hut KITCHEN</h4>
    <h5>ok</h5>
    <p>amala restaurant in a paragraph</p>
    """

    candidates = extract_heading_candidates(html, source_url="https://blog.example")

    assert [c.name for c in candidates] == ["Best Amala Restaurant in Lagos", "Buka Hut KITCHEN"]
    assert all(c.source_url == "https://blog.example" for c in candidates)


def test_heading_candidates_are_capped() -> None:
    html = "".join(f"<h3>Amala Joint {i}</h3>" for i in range(15))

    assert len(extract_heading_candidates(html)) == 10


def test_parse_rating_variants() -> None:
    assert parse_rating("4.5") == 4.5
    assert parse_rating("4.5 (120 reviews)") == 4.5
    assert parse_rating("9 out of 10") == 4.5
    assert parse_rating("★★★★") == 4.0
    assert parse_rating("12") is None
    assert parse_rating("no rating yet") is None
    assert parse_rating(None) is None


def test_parse_price_variants() -> None:
    assert parse_price("$$") == "$$"
    assert parse_price("₦2,000") == "₦2000"
    assert parse_price("1500 - 3000 per person") == "1500-3000 per person"
    assert parse_price("call for prices") is None
