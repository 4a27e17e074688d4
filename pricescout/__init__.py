"""
PriceScout.

Multi-country product price search and cross-border arbitrage pipeline
for industrial and B2B buyers, built on LangGraph and Claude.
"""

__version__ = "1.0.0"
__author__ = "PriceScout Team"

# Lazy imports to avoid circular dependencies
def get_pipeline():
    """Get the SearchPipeline class (lazy import)."""
    from pricescout.pipeline.orchestrator import SearchPipeline
    return SearchPipeline

__all__ = ["get_pipeline", "__version__"]
