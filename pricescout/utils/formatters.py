"""
Search report formatting utilities.

Renders search responses as Markdown tables for sharing with buyers and
saves them as Markdown or JSON.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pricescout.models.schemas import GlobalAnalysis, Listing, SearchResponse, SourceDescriptor
from pricescout.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_FORMATS = ("markdown", "json")


def _cell(value: object) -> str:
    """Table cell text with pipes escaped."""
    return str(value).replace("|", "-")


def format_price(price: float, currency: str) -> str:
    """
    Price with its currency code.

    >>> format_price(1234.5, "PEN")
    'PEN 1,234.50'
    """
    return f"{currency} {price:,.2f}"


def format_results_table(results: List[Listing], limit: int = 20) -> str:
    """
    Create formatted markdown table for ranked listings.

    | # | Product | Source | Price | Confidence | Official |
    |---|---------|--------|-------|------------|----------|
    """
    if not results:
        return "*No listings found.*"

    header = (
        "| # | Product | Source | Price | Confidence | Official |\n"
        "|---|---------|--------|-------|------------|----------|"
    )
    rows = []

    for i, listing in enumerate(results[:limit], 1):
        name = listing.product_name[:60] + "..." if len(listing.product_name) > 60 else listing.product_name
        official = "✅" if listing.is_official_source else "-"
        if listing.synthetic:
            name += " (demo)"
        rows.append(
            f"| {i} | {_cell(name)} | {_cell(listing.source_name or listing.source_id)} | "
            f"{format_price(listing.price, listing.currency)} | {listing.confidence_score} | {official} |"
        )

    return header + "\n" + "\n".join(rows)


def format_global_analysis(analysis: Optional[GlobalAnalysis]) -> str:
    """Markdown summary of the arbitrage analysis."""
    if analysis is None:
        return "*No global analysis available.*"

    best = analysis.best_price
    total = analysis.best_total_cost
    savings = analysis.savings_analysis

    rows = [
        f"| Best Price | {format_price(best.price, best.currency)} ({_cell(best.source)}, {best.country}) |",
        f"| Delivery | ~{total.delivery_days} days from {total.country} |",
        f"| Local Offers | {len(analysis.local_availability)} |",
        f"| Max Savings | {savings.max_savings}% |",
        f"| Recommended Action | {savings.recommended_action} |",
    ]

    header = "| Metric | Value |\n|--------|-------|"
    return header + "\n" + "\n".join(rows) + f"\n\n> {analysis.strategic_recommendation}"


def format_sources_table(sources: List[SourceDescriptor]) -> str:
    """Markdown table of registry sources."""
    if not sources:
        return "*No sources match.*"

    header = (
        "| Id | Name | Country | Type | Priority | Official | Score |\n"
        "|----|------|---------|------|----------|----------|-------|"
    )
    rows = [
        f"| {s.id} | {_cell(s.name)} | {s.country} | {s.type} | {s.priority} | "
        f"{'yes' if s.is_official else 'no'} | {s.score:.2f} |"
        for s in sources
    ]
    return header + "\n" + "\n".join(rows)


def generate_search_report(response: SearchResponse) -> str:
    """
    Generate the complete Markdown report for a search.

    Structure:
    # Price Search Report: {query}
    ## Summary
    ## Results
    ## Global Analysis (global searches only)
    ## Warnings (when any stage reported errors)
    """
    timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC")
    mode = "Global" if response.is_global_search else "Country"

    summary = (
        "| Metric | Value |\n|--------|-------|\n"
        f"| Search ID | {response.search_id} |\n"
        f"| Mode | {mode} |\n"
        f"| Sources Queried | {response.total_sources} |\n"
        f"| Results | {response.total_results} |\n"
        f"| Response Time | {response.response_time_ms:.0f} ms |"
    )
    if response.cache_hit:
        summary += "\n| Cache | hit |"

    content = f"""# Price Search Report: {response.query}

## Summary
{summary}

## Results
{format_results_table(response.results)}
"""

    if response.is_global_search:
        content += f"\n## Global Analysis\n{format_global_analysis(response.global_analysis)}\n"

    if response.errors:
        content += "\n## Warnings\n" + "\n".join(f"- {e}" for e in response.errors) + "\n"

    content += f"\n---\nGenerated on: {timestamp}\n"
    return content


def save_report(response: SearchResponse, output_path: Path, format: str = "markdown") -> Path:
    """
    Save a search report to file.

    Args:
        response: Search response to save
        output_path: Destination path (extension is replaced)
        format: 'markdown' or 'json'
    """
    if format not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported format: {format}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    base_path = output_path.with_suffix("")

    if format == "json":
        file_path = base_path.with_suffix(".json")
        file_path.write_text(response.to_json(), encoding="utf-8")
    else:
        file_path = base_path.with_suffix(".md")
        file_path.write_text(generate_search_report(response), encoding="utf-8")

    logger.info("report_saved", path=str(file_path), format=format)
    return file_path


__all__ = [
    "format_price",
    "format_results_table",
    "format_global_analysis",
    "format_sources_table",
    "generate_search_report",
    "save_report",
]
