"""
Filtering and ranking of merged listings.

Filter stages run in a fixed order and can only shrink the set. The sort is
a total order: official sources first, then confidence descending, then
price ascending; listings equal on all three keep their fetch order.
"""

from dataclasses import dataclass

from pricescout.models.schemas import Listing, SearchRequest
from pricescout.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RankingThresholds:
    """Confidence thresholds on the 0-100 scale."""
    min_confidence: int = 50
    exact_match: int = 70


def drop_invalid(listings: list[Listing]) -> list[Listing]:
    """Drop listings with no name, a non-positive price, or no URL."""
    return [l for l in listings if l.is_valid_offer]


def filter_listings(
    listings: list[Listing],
    request: SearchRequest,
    thresholds: RankingThresholds,
) -> list[Listing]:
    """Apply the filter stages in order."""
    stages = [
        ("invalid", drop_invalid),
        (
            "official_only",
            lambda ls: [l for l in ls if l.is_official_source] if request.official_only else ls,
        ),
        (
            "min_confidence",
            lambda ls: [l for l in ls if l.confidence_score >= thresholds.min_confidence],
        ),
        (
            "exact_match",
            lambda ls: ls if request.alternatives else [
                l for l in ls if l.confidence_score >= thresholds.exact_match
            ],
        ),
    ]

    remaining = listings
    for stage, apply in stages:
        before = len(remaining)
        remaining = apply(remaining)
        if len(remaining) != before:
            logger.debug("filter_stage_applied", stage=stage, before=before, after=len(remaining))
    return remaining


def ranking_key(listing: Listing) -> tuple[bool, int, float]:
    return (not listing.is_official_source, -listing.confidence_score, listing.price)


def sort_listings(listings: list[Listing]) -> list[Listing]:
    """
    Rank listings. ``listings`` must be in fetch order; the sort is stable,
    so fetch order is the final tie-break.
    """
    return sorted(listings, key=ranking_key)


__all__ = [
    "RankingThresholds",
    "drop_invalid",
    "filter_listings",
    "ranking_key",
    "sort_listings",
]
