"""
Listing service: adapter dispatch and fallback policy.

Resolves the adapter for a source (by id, then by type, then the default)
and applies the live/synthetic policy. ``fetch_listings`` never raises:
an unavailable source yields synthetic listings when the synthetic fallback
is enabled, and an empty list otherwise.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from pricescout.adapters.base import ListingAdapter
from pricescout.adapters.live import HttpListingAdapter
from pricescout.adapters.synthetic import SyntheticListingAdapter, SyntheticListingGenerator
from pricescout.config.settings import Settings, get_settings
from pricescout.models.schemas import B2BFeatureFlags, Listing, SearchRequest, SourceDescriptor
from pricescout.utils.logger import get_logger
from pricescout.utils.retry import ErrorHandler

logger = get_logger(__name__)


# =============================================================================
# Adapter Registry
# =============================================================================

class AdapterRegistry:
    """Maps sources to adapters: source id first, then source type, then default."""

    def __init__(self, default: ListingAdapter):
        self.default = default
        self._by_id: dict[str, ListingAdapter] = {}
        self._by_type: dict[str, ListingAdapter] = {}

    def register_for_source(self, source_id: str, adapter: ListingAdapter) -> None:
        self._by_id[source_id] = adapter

    def register_for_type(self, source_type: str, adapter: ListingAdapter) -> None:
        self._by_type[str(getattr(source_type, "value", source_type))] = adapter

    def resolve(self, source: SourceDescriptor) -> ListingAdapter:
        return self._by_id.get(source.id) or self._by_type.get(source.type) or self.default

    def adapters(self) -> list[ListingAdapter]:
        """Distinct registered adapters, default first."""
        seen: dict[int, ListingAdapter] = {id(self.default): self.default}
        for adapter in [*self._by_id.values(), *self._by_type.values()]:
            seen.setdefault(id(adapter), adapter)
        return list(seen.values())


# =============================================================================
# Listing Service
# =============================================================================

class ListingService:
    """
    Fetches listings from one source at a time under the fallback policy.

    Args:
        settings: Application settings.
        adapters: Adapter registry; built from settings when omitted.
        synthetic: Synthetic adapter used as fallback.
        b2b_config: Feature flags for synthetic B2B fields.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        adapters: Optional[AdapterRegistry] = None,
        synthetic: Optional[SyntheticListingAdapter] = None,
        b2b_config: Optional[B2BFeatureFlags] = None,
    ):
        self.settings = settings or get_settings()
        self.synthetic = synthetic or SyntheticListingAdapter(
            settings=self.settings,
            generator=SyntheticListingGenerator(
                seed=self.settings.synthetic_seed,
                b2b_config=b2b_config,
            ),
        )

        if adapters is None:
            default: ListingAdapter = (
                HttpListingAdapter(settings=self.settings)
                if self.settings.live_fetch_enabled
                else self.synthetic
            )
            adapters = AdapterRegistry(default=default)
        self.adapters = adapters

        self.fallback_enabled = bool(self.settings.synthetic_fallback_enabled)

        if not self.settings.live_fetch_enabled:
            if self.fallback_enabled:
                logger.warning(
                    "demo_mode_active",
                    message="Live fetching is disabled; all listings are SYNTHETIC placeholders",
                    seed=self.settings.synthetic_seed,
                )
            else:
                logger.warning(
                    "no_listing_backend",
                    message="Live fetching and synthetic fallback are both disabled; searches return no listings",
                )

    async def close(self) -> None:
        """Release adapter resources."""
        for adapter in self.adapters.adapters():
            await adapter.disconnect()

    async def fetch_listings(
        self,
        source: SourceDescriptor,
        query: SearchRequest,
    ) -> list[Listing]:
        """
        Fetch listings for one source. Never raises.

        Cancellation propagates; every other failure degrades to the
        synthetic fallback (when enabled) or an empty list.
        """
        adapter = self.adapters.resolve(source)

        if not adapter.is_live and not self.fallback_enabled:
            return []

        start_time = time.perf_counter()
        try:
            return await adapter.fetch_listings(source, query)
        except Exception as e:
            error_type = ErrorHandler.categorize_error(e)
            logger.error(
                "source_fetch_failed",
                source_id=source.id,
                adapter=adapter.name,
                error_type=error_type,
                error=str(e),
                action=ErrorHandler.get_fallback_strategy(error_type)()["action"],
                duration_ms=round((time.perf_counter() - start_time) * 1000, 1),
            )

        if self.fallback_enabled and adapter is not self.synthetic:
            logger.warning("synthetic_fallback_used", source_id=source.id)
            return await self.synthetic.fetch_listings(source, query)
        return []

    def get_stats(self) -> dict[str, Any]:
        return {
            "live_fetch_enabled": self.settings.live_fetch_enabled,
            "synthetic_fallback_enabled": self.fallback_enabled,
            "adapters": [a.get_stats() for a in self.adapters.adapters()],
        }


def create_listing_service(
    settings: Optional[Settings] = None,
    b2b_config: Optional[B2BFeatureFlags] = None,
) -> ListingService:
    """Create a listing service using the configured fetch policy."""
    return ListingService(settings=settings, b2b_config=b2b_config)


__all__ = ["AdapterRegistry", "ListingService", "create_listing_service"]
