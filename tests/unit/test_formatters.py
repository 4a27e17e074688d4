import json
import pytest

from pricescout.models.schemas import (
    BestPrice,
    BestTotalCost,
    GlobalAnalysis,
    SavingsAnalysis,
    SearchResponse,
)
from pricescout.utils.formatters import (
    format_global_analysis,
    format_price,
    format_results_table,
    format_sources_table,
    generate_search_report,
    save_report,
)

@pytest.fixture
def analysis():
    return GlobalAnalysis(
        best_price=BestPrice(country="US", source="shop-us", price=70.0, currency="USD", url="https://shop-us.example.com/p/1"),
        best_total_cost=BestTotalCost(country="US", source="shop-us", total_cost=70.0, delivery_days=7),
        local_availability=[],
        strategic_recommendation="Ahorro significativo del 30.0% comprando en US. Considerar importación.",
        savings_analysis=SavingsAnalysis(max_savings=30, recommended_action="importar"),
    )

@pytest.fixture
def response(make_listing):
    return SearchResponse(
        query="multimetro fluke 117",
        total_sources=2,
        results=[
            make_listing("fluke-us", product_name="Fluke 117 | True RMS", is_official_source=True),
            make_listing("shop-pe", synthetic=True),
        ],
    )

def test_format_price():
    assert format_price(1234.5, "PEN") == "PEN 1,234.50"

def test_results_table(response):
    table = format_results_table(response.results)
    lines = table.splitlines()
    assert lines[0].startswith("| # | Product |")
    assert len(lines) == 4
    assert "Fluke 117 - True RMS" in lines[2]
    assert "✅" in lines[2]
    assert "(demo)" in lines[3]

def test_results_table_limit_and_truncation(make_listing):
    listings = [make_listing(product_name="x" * 80) for _ in range(5)]
    table = format_results_table(listings, limit=2)
    assert len(table.splitlines()) == 4
    assert "x" * 60 + "..." in table

def test_results_table_empty():
    assert format_results_table([]) == "*No listings found.*"

def test_global_analysis(analysis):
    text = format_global_analysis(analysis)
    assert "| Best Price | USD 70.00 (shop-us, US) |" in text
    assert "| Delivery | ~7 days from US |" in text
    assert "| Max Savings | 30% |" in text
    assert "| Recommended Action | importar |" in text
    assert text.endswith("> " + analysis.strategic_recommendation)

def test_global_analysis_none():
    assert format_global_analysis(None) == "*No global analysis available.*"

def test_sources_table(make_source):
    table = format_sources_table([make_source("shop-pe", is_official=True)])
    assert "| shop-pe | Shop Pe | PE | marketplace |" in table
    assert "| yes | 0.50 |" in table
    assert format_sources_table([]) == "*No sources match.*"

def test_country_report(response):
    report = generate_search_report(response)
    assert report.startswith("# Price Search Report: multimetro fluke 117")
    assert "| Mode | Country |" in report
    assert "## Results" in report
    assert "## Global Analysis" not in report
    assert "## Warnings" not in report

def test_global_report_with_warnings(response, analysis):
    global_response = response.model_copy(update={
        "is_global_search": True,
        "global_analysis": analysis,
        "errors": ["fetch_all: shop-mx timed out after 2.0s"],
        "cache_hit": True,
    })
    report = generate_search_report(global_response)
    assert "| Mode | Global |" in report
    assert "| Cache | hit |" in report
    assert "## Global Analysis" in report
    assert "- fetch_all: shop-mx timed out after 2.0s" in report

def test_save_markdown(tmp_path, response):
    path = save_report(response, tmp_path / "reports" / "fluke.txt")
    assert path == tmp_path / "reports" / "fluke.md"
    assert path.read_text(encoding="utf-8").startswith("# Price Search Report")

def test_save_json(tmp_path, response):
    path = save_report(response, tmp_path / "fluke", format="json")
    assert path.suffix == ".json"
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["query"] == "multimetro fluke 117"
    assert data["total_results"] == 2

def test_save_unsupported_format(tmp_path, response):
    with pytest.raises(ValueError, match="Unsupported format"):
        save_report(response, tmp_path / "x", format="pdf")
