"""
Listing adapter layer.

Adapters turn a query plus a source descriptor into normalized listings.

Adapters:
    - HttpListingAdapter: selector-driven live HTML fetcher
    - SyntheticListingAdapter: seeded placeholder generator (demo mode)

Helpers:
    - build_search_url: table-driven search URL construction
    - extract_price / extract_currency: price text parsing
    - is_official_match / calculate_confidence_score: match heuristics
"""

from pricescout.adapters.base import AdapterStatus, ListingAdapter
from pricescout.adapters.extraction import (
    calculate_confidence_score,
    extract_currency,
    extract_price,
    is_official_match,
)
from pricescout.adapters.live import HttpListingAdapter
from pricescout.adapters.service import AdapterRegistry, ListingService, create_listing_service
from pricescout.adapters.synthetic import SyntheticListingAdapter, SyntheticListingGenerator
from pricescout.adapters.urls import build_search_url

__all__ = [
    "AdapterStatus",
    "ListingAdapter",
    "HttpListingAdapter",
    "SyntheticListingAdapter",
    "SyntheticListingGenerator",
    "AdapterRegistry",
    "ListingService",
    "create_listing_service",
    "build_search_url",
    "extract_price",
    "extract_currency",
    "is_official_match",
    "calculate_confidence_score",
]
