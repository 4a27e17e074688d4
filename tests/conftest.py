import pytest
from contextlib import ExitStack
from unittest.mock import MagicMock, patch

from pricescout.models.schemas import Listing, SearchRequest, SourceDescriptor
from pricescout.registry.defaults import builtin_sources
from pricescout.registry.source_registry import SourceRegistry

SETTINGS_IMPORTERS = [
    "pricescout.config.settings.get_settings",
    "pricescout.main.get_settings",
    "pricescout.pipeline.orchestrator.get_settings",
    "pricescout.registry.source_registry.get_settings",
    "pricescout.adapters.base.get_settings",
    "pricescout.adapters.service.get_settings",
    "pricescout.services.product_validator.get_settings",
    "pricescout.services.llm_service.get_settings",
]


@pytest.fixture
def mock_settings():
    """Create mock settings for testing."""
    settings = MagicMock()
    settings.anthropic_api_key.get_secret_value.return_value = "sk-ant-api-mock-key"
    settings.app_env = "development"
    settings.debug = False
    settings.log_level = "INFO"

    settings.default_country = "PE"
    settings.sources_config_path = None

    settings.live_fetch_enabled = False
    settings.synthetic_fallback_enabled = True
    settings.synthetic_seed = 42
    settings.max_concurrent_fetches = 5
    settings.source_timeout_seconds = 2.0
    settings.request_timeout_seconds = 5
    settings.max_retries = 3
    settings.user_agent = "pricescout-tests"

    settings.min_confidence_threshold = 50
    settings.exact_match_threshold = 70

    settings.ai_validation_enabled = False
    settings.claude_model = "claude-sonnet-4-20250514"
    settings.claude_max_tokens = 2000
    settings.validation_temperature = 0.1

    settings.cache_enabled = False
    settings.cache_ttl_seconds = 60

    settings.get_validator_provider.return_value = "heuristic"

    return settings


@pytest.fixture(autouse=True)
def patch_get_settings(mock_settings):
    """Globally patch get_settings everywhere it is imported."""
    with ExitStack() as stack:
        for target in SETTINGS_IMPORTERS:
            stack.enter_context(patch(target, return_value=mock_settings))
        yield mock_settings


@pytest.fixture
def make_source():
    """Factory for source descriptors with sensible defaults."""
    def _make(source_id: str = "shop-pe", **overrides) -> SourceDescriptor:
        data = {
            "id": source_id,
            "name": source_id.replace("-", " ").title(),
            "base_url": f"https://{source_id}.example.com",
            "country": source_id.rsplit("-", 1)[-1] if "-" in source_id else "PE",
            "type": "marketplace",
        }
        data.update(overrides)
        return SourceDescriptor(**data)
    return _make


@pytest.fixture
def make_listing():
    """Factory for listings with sensible defaults."""
    counter = {"n": 0}

    def _make(source_id: str = "shop-pe", **overrides) -> Listing:
        counter["n"] += 1
        data = {
            "source_id": source_id,
            "source_name": source_id,
            "product_name": "multimetro fluke 117",
            "brand": "Fluke",
            "price": 100.0,
            "currency": "PEN",
            "url": f"https://{source_id}.example.com/p/{counter['n']}",
            "confidence_score": 80,
        }
        data.update(overrides)
        return Listing(**data)
    return _make


@pytest.fixture
def builtin_registry():
    return SourceRegistry(builtin_sources())


@pytest.fixture
def search_request():
    return SearchRequest(product="taladro bosch", country="PE")
