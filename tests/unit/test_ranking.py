import pytest

from pricescout.models.schemas import SearchRequest
from pricescout.pipeline.ranking import (
    RankingThresholds,
    drop_invalid,
    filter_listings,
    sort_listings,
)

@pytest.fixture
def thresholds():
    return RankingThresholds(min_confidence=50, exact_match=70)

def request_for(**kwargs):
    return SearchRequest(product="multimetro fluke 117", **kwargs)

def test_drop_invalid(make_listing):
    listings = [
        make_listing(),
        make_listing(price=0.0),
        make_listing(product_name=""),
        make_listing(url=""),
    ]
    assert len(drop_invalid(listings)) == 1

def test_exact_matches_only_by_default(make_listing, thresholds):
    listings = [
        make_listing(confidence_score=90),
        make_listing(confidence_score=65),
        make_listing(confidence_score=40),
    ]
    kept = filter_listings(listings, request_for(), thresholds)
    assert [l.confidence_score for l in kept] == [90]

def test_alternatives_keep_close_matches(make_listing, thresholds):
    listings = [
        make_listing(confidence_score=90),
        make_listing(confidence_score=65),
        make_listing(confidence_score=40),
    ]
    kept = filter_listings(listings, request_for(alternatives=True), thresholds)
    assert [l.confidence_score for l in kept] == [90, 65]

def test_official_only(make_listing, thresholds):
    listings = [
        make_listing("fluke-us", is_official_source=True),
        make_listing("shop-pe"),
    ]
    kept = filter_listings(listings, request_for(official_only=True), thresholds)
    assert [l.source_id for l in kept] == ["fluke-us"]

def test_custom_thresholds(make_listing):
    listings = [make_listing(confidence_score=55), make_listing(confidence_score=45)]
    kept = filter_listings(listings, request_for(), RankingThresholds(min_confidence=40, exact_match=50))
    assert [l.confidence_score for l in kept] == [55]

def test_filter_never_grows(make_listing, thresholds):
    listings = [make_listing(confidence_score=c) for c in (10, 50, 70, 100)]
    kept = filter_listings(listings, request_for(alternatives=True), thresholds)
    assert len(kept) <= len(listings)
    assert all(l in listings for l in kept)

def test_sort_order(make_listing):
    listings = [
        make_listing("a-pe", confidence_score=80, price=50.0),
        make_listing("b-pe", confidence_score=95, price=200.0),
        make_listing("c-pe", confidence_score=80, price=30.0),
        make_listing("d-pe", confidence_score=70, price=10.0, is_official_source=True),
    ]
    ranked = sort_listings(listings)
    assert [l.source_id for l in ranked] == ["d-pe", "b-pe", "c-pe", "a-pe"]

def test_sort_is_stable(make_listing):
    listings = [make_listing(f"s{i}-pe", confidence_score=80, price=10.0) for i in range(5)]
    assert [l.source_id for l in sort_listings(listings)] == [l.source_id for l in listings]

def test_sort_empty():
    assert sort_listings([]) == []
