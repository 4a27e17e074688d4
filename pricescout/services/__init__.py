"""
Services package for PriceScout.

Collaborators the search pipeline depends on.

Services:
    - ValidationService: Search request validation
    - HeuristicProductValidator / ClaudeProductValidator: Product-match verdicts
    - ClaudeService: Anthropic Claude client
    - SearchCache: TTL response cache
"""

from pricescout.services.cache import CacheEntry, SearchCache, generate_search_key
from pricescout.services.llm_service import (
    ClaudeService,
    ClaudeServiceError,
    MaxRetriesExceededError,
    ResponseParseError,
    TokenUsage,
)
from pricescout.services.product_validator import (
    ClaudeProductValidator,
    HeuristicProductValidator,
    ProductValidator,
    create_product_validator,
)
from pricescout.services.validation_service import ValidationService

__all__ = [
    # Cache
    "SearchCache",
    "CacheEntry",
    "generate_search_key",
    # LLM
    "ClaudeService",
    "ClaudeServiceError",
    "MaxRetriesExceededError",
    "ResponseParseError",
    "TokenUsage",
    # Product validation
    "ProductValidator",
    "HeuristicProductValidator",
    "ClaudeProductValidator",
    "create_product_validator",
    # Request validation
    "ValidationService",
]
