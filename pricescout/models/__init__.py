"""Data models module for PriceScout."""

from pricescout.models.schemas import (
    # Base Models
    BaseModel,

    # Enums
    SourceType,
    B2B_SOURCE_TYPES,
    Capability,
    Availability,
    RecommendedAction,
    ErrorType,

    # Source Models
    ScraperHints,
    SourceDescriptor,
    B2BFeatureFlags,
    SourceCatalogConfig,
    SourceStats,

    # Listing Models
    BulkPriceTier,
    ValidationVerdict,
    Listing,
    clamp_confidence,

    # Validation Models
    ValidationRequest,
    ValidationResult,

    # Search Models
    SearchRequest,
    BestPrice,
    BestTotalCost,
    SavingsAnalysis,
    GlobalAnalysis,
    SearchResponse,

    # Error Models
    ErrorDetail,
    ErrorResponse,
)

__all__ = [
    "BaseModel",
    "SourceType",
    "B2B_SOURCE_TYPES",
    "Capability",
    "Availability",
    "RecommendedAction",
    "ErrorType",
    "ScraperHints",
    "SourceDescriptor",
    "B2BFeatureFlags",
    "SourceCatalogConfig",
    "SourceStats",
    "BulkPriceTier",
    "ValidationVerdict",
    "Listing",
    "clamp_confidence",
    "ValidationRequest",
    "ValidationResult",
    "SearchRequest",
    "BestPrice",
    "BestTotalCost",
    "SavingsAnalysis",
    "GlobalAnalysis",
    "SearchResponse",
    "ErrorDetail",
    "ErrorResponse",
]
