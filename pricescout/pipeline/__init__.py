"""Pipeline module for PriceScout."""

from pricescout.pipeline.orchestrator import (
    SearchPipeline,
    SearchStateDict,
    PipelineError,
    StageError,
    StageTimeoutError,
    create_search_pipeline,
    search_products,
)
from pricescout.pipeline.ranking import (
    RankingThresholds,
    filter_listings,
    sort_listings,
)

__all__ = [
    "SearchPipeline",
    "SearchStateDict",
    "PipelineError",
    "StageError",
    "StageTimeoutError",
    "create_search_pipeline",
    "search_products",
    "RankingThresholds",
    "filter_listings",
    "sort_listings",
]
