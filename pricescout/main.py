"""
PriceScout - CLI Entry Point.
Multi-country price search CLI using Click and Rich.
"""

import sys
import asyncio
import logging
from pathlib import Path
from functools import wraps
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pricescout import __version__
from pricescout.config.settings import get_settings
from pricescout.models.schemas import ErrorResponse, SearchResponse
from pricescout.pipeline.orchestrator import SearchPipeline
from pricescout.registry.source_registry import SourceRegistry, load_catalog_file
from pricescout.utils.formatters import format_price, save_report
from pricescout.utils.logger import setup_logging
from pricescout.utils.retry import ConfigLoadError

# Initialize Rich Console
console = Console()

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper

def setup_logger(verbose: bool):
    """Configure logging based on verbosity."""
    setup_logging(level="DEBUG" if verbose else "WARNING", json_format=False)
    # Silence third-party libs
    logging.getLogger("httpx").setLevel(logging.WARNING)

def render_error(error: ErrorResponse) -> None:
    console.print(f"[bold red]Error:[/bold red] {error.message}")
    if error.example:
        console.print(f"[dim]Example: {error.example}[/dim]")

def render_response(response: SearchResponse) -> None:
    """Print results and, for global searches, the arbitrage summary."""
    table = Table(title=f"Results for '{response.query}'", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Product")
    table.add_column("Source")
    table.add_column("Price", justify="right")
    table.add_column("Conf.", justify="right")
    table.add_column("Official", justify="center")

    for i, listing in enumerate(response.results, 1):
        name = listing.product_name
        if listing.synthetic:
            name += " [dim](demo)[/dim]"
        table.add_row(
            str(i),
            name,
            listing.source_name or listing.source_id,
            format_price(listing.price, listing.currency),
            str(listing.confidence_score),
            "[green]✓[/green]" if listing.is_official_source else "",
        )

    console.print(table)
    console.print(
        f"[dim]{response.total_results} results from {response.total_sources} sources "
        f"in {response.response_time_ms:.0f} ms"
        f"{' (cached)' if response.cache_hit else ''}[/dim]"
    )

    analysis = response.global_analysis
    if analysis is not None:
        best = analysis.best_price
        savings = analysis.savings_analysis
        console.print(Panel.fit(
            f"[bold]Best price:[/bold] {format_price(best.price, best.currency)} "
            f"at {best.source} ({best.country})\n"
            f"[bold]Delivery:[/bold] ~{analysis.best_total_cost.delivery_days} days\n"
            f"[bold]Max savings:[/bold] {savings.max_savings}% -> {savings.recommended_action}\n"
            f"{analysis.strategic_recommendation}",
            title="Global Analysis",
        ))

    for error in response.errors:
        console.print(f"[yellow]Warning:[/yellow] {error}")

async def run_search(params: dict, global_search: bool, as_json: bool, output: Optional[str], format: str) -> None:
    settings = get_settings()
    async with SearchPipeline(settings=settings) as pipeline:
        result = await pipeline.handle_request(params, global_search=global_search)

    if isinstance(result, ErrorResponse):
        if as_json:
            console.print_json(result.model_dump_json(indent=2))
        else:
            render_error(result)
        sys.exit(2)

    if as_json:
        console.print_json(result.model_dump_json(indent=2))
    else:
        render_response(result)

    if output:
        path = save_report(result, Path(output), format)
        console.print(f"[green]✓[/green] Report saved to {path}")

# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version=__version__)
def cli():
    """PriceScout - multi-country product price search"""
    pass

# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument('product')
@click.option('--country', default=None, help='Country code (defaults to DEFAULT_COUNTRY)')
@click.option('--max-results', type=int, default=None, help='Max listings per source')
@click.option('--alternatives', is_flag=True, help='Keep close alternatives, not only exact matches')
@click.option('--official-only', is_flag=True, help='Only official brand sources')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw JSON response')
@click.option('--output', default=None, help='Save a report to this path')
@click.option('--format', type=click.Choice(['markdown', 'json']), default='markdown', help='Report format')
@click.option('--verbose', is_flag=True, help='Detailed logging')
@async_command
async def search(product: str, country: Optional[str], max_results: Optional[int], alternatives: bool,
                 official_only: bool, as_json: bool, output: Optional[str], format: str, verbose: bool):
    """
    Search one country's sources for a product.

    PRODUCT: Free-text query (e.g., "taladro bosch")
    """
    setup_logger(verbose)
    params = {
        "product": product,
        "country": country,
        "max_results": max_results,
        "alternatives": alternatives,
        "official_only": official_only,
    }
    await run_search(params, False, as_json, output, format)


@cli.command('global-search')
@click.argument('product')
@click.option('--countries', default=None, help='Comma-separated country codes (default: all)')
@click.option('--country', default=None, help='Your country, for the savings analysis')
@click.option('--max-results', type=int, default=None, help='Max listings per source')
@click.option('--alternatives', is_flag=True, help='Keep close alternatives, not only exact matches')
@click.option('--official-only', is_flag=True, help='Only official brand sources')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw JSON response')
@click.option('--output', default=None, help='Save a report to this path')
@click.option('--format', type=click.Choice(['markdown', 'json']), default='markdown', help='Report format')
@click.option('--verbose', is_flag=True, help='Detailed logging')
@async_command
async def global_search(product: str, countries: Optional[str], country: Optional[str], max_results: Optional[int],
                        alternatives: bool, official_only: bool, as_json: bool, output: Optional[str],
                        format: str, verbose: bool):
    """
    Search several countries and compare prices.

    PRODUCT: Free-text query (e.g., "multimetro fluke")
    """
    setup_logger(verbose)
    params = {
        "product": product,
        "countries": countries,
        "country": country,
        "max_results": max_results,
        "alternatives": alternatives,
        "official_only": official_only,
    }
    await run_search(params, True, as_json, output, format)


@cli.command()
@click.option('--country', default=None, help='Sources serving this country')
@click.option('--type', 'source_type', default=None, help='Source type (marketplace, b2b_specialized, ...)')
@click.option('--capability', default=None, help='Capability tag (bulk_pricing, datasheets, ...)')
@click.option('--brand', default=None, help='Official sources for a brand')
@click.option('--specialization', default=None, help='Specialization (electrical, tools, ...)')
@click.option('--b2b', is_flag=True, help='Only B2B sources')
def sources(country: Optional[str], source_type: Optional[str], capability: Optional[str],
            brand: Optional[str], specialization: Optional[str], b2b: bool):
    """List registered sources."""
    setup_logger(False)
    registry = SourceRegistry.from_settings(get_settings())

    selected = registry.get_active_sources()
    filters = [
        (country, registry.get_sources_by_country),
        (source_type, registry.get_sources_by_type),
        (capability, registry.get_sources_with_capability),
        (brand, registry.get_sources_by_brand),
        (specialization, registry.get_sources_by_specialization),
    ]
    for value, query in filters:
        if value:
            ids = {s.id for s in query(value)}
            selected = [s for s in selected if s.id in ids]
    if b2b:
        selected = [s for s in selected if s.is_b2b]

    table = Table(title=f"Sources ({len(selected)})", show_header=True, header_style="bold magenta")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Country")
    table.add_column("Type")
    table.add_column("Priority", justify="right")
    table.add_column("Official", justify="center")
    table.add_column("Capabilities")

    for s in selected:
        table.add_row(
            s.id,
            s.name,
            s.country,
            str(s.type),
            str(s.priority),
            "[green]✓[/green]" if s.is_official else "",
            ", ".join(sorted(s.capabilities)),
        )

    console.print(table)


@cli.command()
def stats():
    """Show registry statistics."""
    setup_logger(False)
    registry = SourceRegistry.from_settings(get_settings())
    summary = registry.get_stats()

    table = Table(title="Source Registry", show_header=False)
    table.add_row("Total", str(summary.total))
    table.add_row("Active", str(summary.active))
    table.add_row("Official", str(summary.official))
    table.add_row("Average Score", f"{summary.average_score:.2f}")
    for source_type, count in sorted(summary.by_type.items()):
        table.add_row(f"Type: {source_type}", str(count))
    for country, count in sorted(summary.by_country.items()):
        table.add_row(f"Country: {country}", str(count))

    console.print(table)


@cli.command()
def validate_setup():
    """Check API keys, source catalog and fetch mode."""
    console.print("[bold]Validating Setup...[/bold]")

    try:
        settings = get_settings()
        failed = False

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Check")
        table.add_column("Status")
        table.add_column("Details")

        # Product-match validator
        provider = settings.get_validator_provider()
        if settings.ai_validation_enabled and provider != "claude":
            table.add_row("Validator", "[red]Fail[/red]", "AI validation enabled but ANTHROPIC_API_KEY missing")
            failed = True
        else:
            table.add_row("Validator", "[green]Pass[/green]", provider)

        # Source catalog
        if settings.sources_config_path:
            try:
                catalog = load_catalog_file(settings.sources_config_path)
                table.add_row("Source Catalog", "[green]Pass[/green]", f"{len(catalog.sources)} sources")
            except ConfigLoadError as e:
                table.add_row("Source Catalog", "[red]Fail[/red]", str(e))
                failed = True
        else:
            table.add_row("Source Catalog", "[blue]Info[/blue]", "built-in sources")

        # Fetch mode
        if settings.live_fetch_enabled:
            table.add_row("Fetch Mode", "[green]Pass[/green]", "live")
        elif settings.synthetic_fallback_enabled:
            table.add_row("Fetch Mode", "[yellow]Demo[/yellow]", "synthetic listings only")
        else:
            table.add_row("Fetch Mode", "[red]Fail[/red]", "no listing backend enabled")
            failed = True

        table.add_row("Environment", "[blue]Info[/blue]", settings.app_env)

        console.print(table)

        if failed:
            sys.exit(1)

    except Exception as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        sys.exit(1)

if __name__ == "__main__":
    cli()
