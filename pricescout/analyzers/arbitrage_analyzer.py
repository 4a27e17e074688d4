"""
Cross-border arbitrage analysis.

Given ranked listings from a multi-country search, finds the cheapest
offer, estimates delivery to the requester's country, compares against the
best local price and produces an import/buy-local recommendation.

Prices are compared as listed; no currency conversion is applied.
"""

from typing import Optional

from pricescout.models.schemas import (
    BestPrice,
    BestTotalCost,
    GlobalAnalysis,
    Listing,
    RecommendedAction,
    SavingsAnalysis,
)
from pricescout.registry.source_registry import SourceRegistry
from pricescout.utils.logger import get_logger

logger = get_logger(__name__)


UNKNOWN_COUNTRY = "UNKNOWN"

# Country tokens recognised in source ids, checked in this order
SOURCE_ID_COUNTRY_TOKENS = ["pe", "mx", "us", "ar", "cl", "de", "uk", "br", "co", "fr", "es", "ca"]

# origin -> destination -> days
DELIVERY_MATRIX: dict[str, dict[str, int]] = {
    "US": {"PE": 7, "MX": 3, "AR": 10, "CL": 8, "BR": 9},
    "DE": {"PE": 12, "US": 5, "UK": 2, "FR": 1, "ES": 2},
    "PE": {"CL": 3, "AR": 4, "BR": 5, "MX": 8, "US": 7},
}
SAME_COUNTRY_DELIVERY_DAYS = 1
DEFAULT_DELIVERY_DAYS = 14

IMPORT_SAVINGS_THRESHOLD = 15.0
STRONG_SAVINGS_THRESHOLD = 20.0

RECOMMEND_IMPORT = "Ahorro significativo del {savings:.1f}% comprando en {country}. Considerar importación."
RECOMMEND_LOCAL = "Mejor opción: compra local en {local} para entrega inmediata."
RECOMMEND_EVALUATE = "Producto disponible en {country}. Evaluar importación vs urgencia."


def estimate_delivery_days(origin: str, destination: str) -> int:
    """Estimated delivery days between two countries."""
    if origin == destination:
        return SAME_COUNTRY_DELIVERY_DAYS
    return DELIVERY_MATRIX.get(origin, {}).get(destination, DEFAULT_DELIVERY_DAYS)


class ArbitrageAnalyzer:
    """Computes the GlobalAnalysis of a ranked multi-country result set."""

    def __init__(self, registry: SourceRegistry):
        self.registry = registry

    def country_for_source(self, source_id: str) -> str:
        """Country of a source: id token first, then the registry."""
        tokens = source_id.lower().split("-")[1:]
        for code in SOURCE_ID_COUNTRY_TOKENS:
            if code in tokens:
                return code.upper()

        source = self.registry.get_source_by_id(source_id)
        return source.country if source else UNKNOWN_COUNTRY

    def analyze(self, results: list[Listing], local_country: str) -> Optional[GlobalAnalysis]:
        """
        Build the arbitrage summary.

        Args:
            results: Ranked listings; ties on price keep the first one.
            local_country: Requester's country.

        Returns:
            None when there are no results.
        """
        if not results:
            return None

        local_country = local_country.upper()

        best = results[0]
        for listing in results[1:]:
            if listing.price < best.price:
                best = listing
        best_country = self.country_for_source(best.source_id)

        best_price = BestPrice(
            country=best_country,
            source=best.source_name or best.source_id,
            price=best.price,
            currency=best.currency,
            url=best.url,
        )
        best_total_cost = BestTotalCost(
            country=best_country,
            source=best_price.source,
            total_cost=best.price,
            delivery_days=estimate_delivery_days(best_country, local_country),
        )

        local_availability = [
            r for r in results if self.country_for_source(r.source_id) == local_country
        ]
        local_best = min((r.price for r in local_availability), default=0.0)
        global_best = best.price

        max_savings = (
            (local_best - global_best) / local_best * 100
            if local_best > 0 and global_best > 0
            else 0.0
        )

        if max_savings > STRONG_SAVINGS_THRESHOLD:
            recommendation = RECOMMEND_IMPORT.format(savings=max_savings, country=best_country)
        elif local_availability:
            recommendation = RECOMMEND_LOCAL.format(local=local_country)
        else:
            recommendation = RECOMMEND_EVALUATE.format(country=best_country)

        action = (
            RecommendedAction.IMPORT
            if max_savings > IMPORT_SAVINGS_THRESHOLD
            else RecommendedAction.BUY_LOCAL
        )

        logger.info(
            "arbitrage_analyzed",
            best_country=best_country,
            best_price=best.price,
            local_country=local_country,
            local_best=local_best,
            max_savings=round(max_savings, 1),
            action=action.value,
        )

        return GlobalAnalysis(
            best_price=best_price,
            best_total_cost=best_total_cost,
            local_availability=local_availability,
            strategic_recommendation=recommendation,
            savings_analysis=SavingsAnalysis(
                max_savings=round(max_savings),
                recommended_action=action,
            ),
        )


__all__ = [
    "ArbitrageAnalyzer",
    "estimate_delivery_days",
    "DELIVERY_MATRIX",
    "UNKNOWN_COUNTRY",
]
