import pytest
from unittest.mock import AsyncMock

from pricescout.adapters.base import ListingAdapter
from pricescout.adapters.live import HttpListingAdapter
from pricescout.adapters.service import AdapterRegistry, ListingService, create_listing_service
from pricescout.adapters.synthetic import SyntheticListingAdapter
from pricescout.models.schemas import SearchRequest
from pricescout.utils.retry import SourceUnavailableError


class StubAdapter(ListingAdapter):
    """Live adapter returning canned listings or raising."""

    def __init__(self, settings, listings=None, error=None, label="stub"):
        super().__init__(settings)
        self.listings = listings or []
        self.error = error
        self.label = label
        self.disconnect = AsyncMock()

    @property
    def name(self):
        return self.label

    async def fetch_listings(self, source, query):
        if self.error:
            raise self.error
        return self.listings


@pytest.fixture
def request_():
    return SearchRequest(product="taladro bosch")

def test_adapter_registry_resolution(mock_settings, make_source):
    default = StubAdapter(mock_settings, label="default")
    by_type = StubAdapter(mock_settings, label="b2b")
    by_id = StubAdapter(mock_settings, label="grainger")

    registry = AdapterRegistry(default=default)
    registry.register_for_type("b2b_specialized", by_type)
    registry.register_for_source("grainger-us", by_id)

    assert registry.resolve(make_source("grainger-us", type="b2b_specialized")) is by_id
    assert registry.resolve(make_source("efc-pe", type="b2b_specialized")) is by_type
    assert registry.resolve(make_source("shop-pe")) is default
    assert registry.adapters() == [default, by_id, by_type]

def test_default_adapter_follows_live_flag(mock_settings):
    assert isinstance(ListingService(settings=mock_settings).adapters.default, SyntheticListingAdapter)

    mock_settings.live_fetch_enabled = True
    assert isinstance(create_listing_service(settings=mock_settings).adapters.default, HttpListingAdapter)

@pytest.mark.asyncio
async def test_demo_mode_returns_synthetic(mock_settings, make_source, request_):
    service = ListingService(settings=mock_settings)
    listings = await service.fetch_listings(make_source("shop-pe"), request_)
    assert listings and all(l.synthetic for l in listings)

@pytest.mark.asyncio
async def test_no_backend_returns_empty(mock_settings, make_source, request_):
    mock_settings.synthetic_fallback_enabled = False
    service = ListingService(settings=mock_settings)
    assert await service.fetch_listings(make_source("shop-pe"), request_) == []

@pytest.mark.asyncio
async def test_live_success(mock_settings, make_source, make_listing, request_):
    live = StubAdapter(mock_settings, listings=[make_listing()])
    service = ListingService(settings=mock_settings, adapters=AdapterRegistry(default=live))

    listings = await service.fetch_listings(make_source("shop-pe"), request_)

    assert listings == live.listings

@pytest.mark.asyncio
async def test_live_failure_falls_back_to_synthetic(mock_settings, make_source, request_):
    live = StubAdapter(mock_settings, error=SourceUnavailableError("shop-pe", "HTTP 503"))
    service = ListingService(settings=mock_settings, adapters=AdapterRegistry(default=live))

    listings = await service.fetch_listings(make_source("shop-pe"), request_)

    assert listings and all(l.synthetic for l in listings)

@pytest.mark.asyncio
async def test_live_failure_without_fallback(mock_settings, make_source, request_):
    mock_settings.synthetic_fallback_enabled = False
    live = StubAdapter(mock_settings, error=RuntimeError("parser exploded"))
    service = ListingService(settings=mock_settings, adapters=AdapterRegistry(default=live))

    assert await service.fetch_listings(make_source("shop-pe"), request_) == []

@pytest.mark.asyncio
async def test_close_disconnects_adapters(mock_settings):
    live = StubAdapter(mock_settings)
    service = ListingService(settings=mock_settings, adapters=AdapterRegistry(default=live))

    await service.close()

    live.disconnect.assert_awaited_once()

def test_get_stats(mock_settings):
    stats = ListingService(settings=mock_settings).get_stats()
    assert stats["live_fetch_enabled"] is False
    assert stats["synthetic_fallback_enabled"] is True
    assert stats["adapters"][0]["name"] == "synthetic"
