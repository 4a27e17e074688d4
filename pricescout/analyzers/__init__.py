"""Analyzers module for PriceScout."""

from pricescout.analyzers.arbitrage_analyzer import (
    ArbitrageAnalyzer,
    DELIVERY_MATRIX,
    UNKNOWN_COUNTRY,
    estimate_delivery_days,
)

__all__ = [
    "ArbitrageAnalyzer",
    "DELIVERY_MATRIX",
    "UNKNOWN_COUNTRY",
    "estimate_delivery_days",
]
