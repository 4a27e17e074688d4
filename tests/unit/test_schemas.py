import pytest
from pydantic import ValidationError

from pricescout.models.schemas import (
    Capability,
    Listing,
    SearchRequest,
    SearchResponse,
    SourceDescriptor,
    SourceType,
    ValidationResult,
    BulkPriceTier,
    clamp_confidence,
)

def test_source_descriptor_normalizes_country_and_shipping(make_source):
    src = make_source("shop-pe", country="pe", shipping_countries=["cl", " ar "])
    assert src.country == "PE"
    assert src.shipping_countries == ["CL", "AR"]

def test_source_descriptor_accepts_direct_brand_alias(make_source):
    src = make_source("fluke-us", type="direct_brand")
    assert src.type == SourceType.BRAND_DIRECT.value

def test_source_descriptor_ignores_unknown_capabilities(make_source):
    src = make_source("shop-pe", capabilities=["bulk_pricing", "teleportation", "DATASHEETS"])
    assert src.capabilities == frozenset({"bulk_pricing", "datasheets"})
    assert src.has_capability(Capability.BULK_PRICING)
    assert src.has_capability("datasheets")
    assert not src.has_capability("teleportation")

def test_source_descriptor_serializes_capabilities_sorted(make_source):
    src = make_source("shop-pe", capabilities=["lead_time", "bulk_pricing"])
    assert src.model_dump()["capabilities"] == ["bulk_pricing", "lead_time"]

def test_source_descriptor_clamps_score(make_source):
    assert make_source("a-pe", score=3).score == 1.0
    assert make_source("b-pe", score=-1).score == 0.0

def test_source_descriptor_is_frozen(make_source):
    src = make_source("shop-pe")
    with pytest.raises(ValidationError):
        src.priority = 5

def test_source_descriptor_rejects_priority_zero(make_source):
    with pytest.raises(ValidationError):
        make_source("shop-pe", priority=0)

def test_serves_country(make_source):
    src = make_source("fluke-us", shipping_countries=["PE", "MX"])
    assert src.serves_country("us")
    assert src.serves_country("PE")
    assert not src.serves_country("DE")

def test_is_b2b(make_source):
    assert make_source("efc-pe", type="b2b_specialized").is_b2b
    assert make_source("fastenal-us", type="distributor").is_b2b
    assert not make_source("ml-pe", type="marketplace").is_b2b

@pytest.mark.parametrize("value, expected", [
    (-5, 0), (0, 0), (42.4, 42), (100, 100), (250, 100),
])
def test_clamp_confidence(value, expected):
    assert clamp_confidence(value) == expected

def test_listing_clamps_confidence(make_listing):
    assert make_listing(confidence_score=140).confidence_score == 100
    assert make_listing(confidence_score=-3).confidence_score == 0

def test_listing_orders_bulk_tiers(make_listing):
    listing = make_listing(bulk_pricing=[
        BulkPriceTier(quantity=100, price=8.5, currency="USD"),
        BulkPriceTier(quantity=10, price=9.5, currency="USD"),
    ])
    assert [t.quantity for t in listing.bulk_pricing] == [10, 100]

def test_listing_is_valid_offer(make_listing):
    assert make_listing().is_valid_offer
    assert not make_listing(price=0).is_valid_offer
    assert not make_listing(url="").is_valid_offer
    assert not make_listing(product_name="").is_valid_offer

def test_validation_result_clamps_unit_score():
    assert ValidationResult(confidence_score=1.7).confidence_score == 1.0
    assert ValidationResult(confidence_score=-0.2).confidence_score == 0.0

def test_search_request_country_search():
    req = SearchRequest(product="taladro bosch", country="pe")
    assert req.country == "PE"
    assert req.countries is None
    assert not req.is_global
    assert req.max_results == 10

def test_search_request_countries_from_string():
    req = SearchRequest(product="multimetro", countries="pe, us,mx")
    assert req.countries == ["PE", "US", "MX"]
    assert req.is_global

def test_search_request_empty_countries_means_all():
    assert SearchRequest(product="x", countries=[]).countries == ["ALL"]
    assert SearchRequest(product="x", countries="").countries == ["ALL"]

def test_search_request_blank_country_is_none():
    assert SearchRequest(product="x", country="  ").country is None

@pytest.mark.parametrize("data", [
    {"product": ""},
    {"product": "x" * 201},
    {"product": "x", "max_results": 0},
    {"product": "x", "max_results": 101},
])
def test_search_request_rejects_invalid(data):
    with pytest.raises(ValidationError):
        SearchRequest(**data)

def test_search_response_syncs_total_results(make_listing):
    response = SearchResponse(query="x", results=[make_listing(), make_listing()], total_results=99)
    assert response.total_results == 2

def test_search_response_json_roundtrip(make_listing):
    response = SearchResponse(query="multimetro", results=[make_listing()])
    restored = SearchResponse.from_json(response.to_json())
    assert restored.search_id == response.search_id
    assert restored.results[0].url == response.results[0].url
    assert response.to_dict()["timestamp"].endswith("Z")
