import pytest

from pricescout.analyzers.arbitrage_analyzer import (
    ArbitrageAnalyzer,
    UNKNOWN_COUNTRY,
    estimate_delivery_days,
)
from pricescout.registry.source_registry import SourceRegistry

@pytest.fixture
def analyzer(make_source):
    registry = SourceRegistry([
        make_source("fluke", country="US"),
        make_source("amazon-usa", country="US"),
    ])
    return ArbitrageAnalyzer(registry)

@pytest.mark.parametrize("origin, destination, days", [
    ("US", "PE", 7),
    ("US", "MX", 3),
    ("DE", "FR", 1),
    ("PE", "CL", 3),
    ("PE", "PE", 1),
    ("MX", "PE", 14),
    ("CL", "US", 14),
])
def test_estimate_delivery_days(origin, destination, days):
    assert estimate_delivery_days(origin, destination) == days

@pytest.mark.parametrize("source_id, country", [
    ("mercadolibre-pe", "PE"),
    ("homedepot-us", "US"),
    ("sodimac-pe-lima", "PE"),
    ("fluke", "US"),
    ("amazon-usa", "US"),
    ("acme", UNKNOWN_COUNTRY),
])
def test_country_for_source(analyzer, source_id, country):
    assert analyzer.country_for_source(source_id) == country

def test_import_recommended(analyzer, make_listing):
    results = [
        make_listing("shop-pe", price=100.0),
        make_listing("shop-us", price=70.0, currency="USD"),
    ]

    analysis = analyzer.analyze(results, "pe")

    assert analysis.best_price.country == "US"
    assert analysis.best_price.price == 70.0
    assert analysis.best_price.source == "shop-us"
    assert analysis.best_total_cost.delivery_days == 7
    assert analysis.best_total_cost.total_cost == 70.0
    assert analysis.savings_analysis.max_savings == 30
    assert analysis.savings_analysis.recommended_action == "importar"
    assert "30.0%" in analysis.strategic_recommendation
    assert "US" in analysis.strategic_recommendation
    assert [l.source_id for l in analysis.local_availability] == ["shop-pe"]

def test_moderate_savings_imports_with_local_message(analyzer, make_listing):
    results = [make_listing("shop-pe", price=100.0), make_listing("shop-us", price=82.0)]

    analysis = analyzer.analyze(results, "PE")

    assert analysis.savings_analysis.max_savings == 18
    assert analysis.savings_analysis.recommended_action == "importar"
    assert analysis.strategic_recommendation.startswith("Mejor opción: compra local en PE")

def test_local_is_cheapest(analyzer, make_listing):
    results = [make_listing("shop-us", price=120.0), make_listing("shop-pe", price=90.0)]

    analysis = analyzer.analyze(results, "PE")

    assert analysis.best_price.country == "PE"
    assert analysis.best_total_cost.delivery_days == 1
    assert analysis.savings_analysis.max_savings == 0
    assert analysis.savings_analysis.recommended_action == "comprar_local"

def test_no_local_offers(analyzer, make_listing):
    analysis = analyzer.analyze([make_listing("shop-us", price=50.0)], "PE")

    assert analysis.local_availability == []
    assert analysis.savings_analysis.max_savings == 0
    assert analysis.savings_analysis.recommended_action == "comprar_local"
    assert analysis.strategic_recommendation.startswith("Producto disponible en US")

def test_price_tie_keeps_first(analyzer, make_listing):
    results = [make_listing("shop-pe", price=70.0), make_listing("shop-us", price=70.0)]
    assert analyzer.analyze(results, "PE").best_price.source == "shop-pe"

def test_empty_results(analyzer):
    assert analyzer.analyze([], "PE") is None
