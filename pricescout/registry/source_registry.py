"""
Source registry.

Holds the catalog of scrape targets and answers the lookup and filter
queries the search pipeline needs to pick sources for a request.

Features:
- Built-in catalog merged with an optional external JSON catalog
- Country membership by home country or shipping destination
- Capability, specialization and brand lookups
- Thread-safe advisory score updates
- Aggregate statistics

Example:
    >>> registry = SourceRegistry.from_settings()
    >>> [s.id for s in registry.get_sources_by_country("PE")][:2]
    ['mercadolibre-pe', 'efc-pe']
"""

import json
import threading
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from pricescout.config.settings import Settings, get_settings
from pricescout.models.schemas import (
    B2BFeatureFlags,
    Capability,
    SourceCatalogConfig,
    SourceDescriptor,
    SourceStats,
    SourceType,
)
from pricescout.registry.defaults import DEFAULT_B2B_CONFIG, builtin_sources
from pricescout.utils.logger import get_logger
from pricescout.utils.retry import ConfigLoadError

logger = get_logger(__name__)


ExternalConfig = Union[SourceCatalogConfig, dict[str, Any], list[Any]]


# =============================================================================
# Catalog Parsing
# =============================================================================

def parse_catalog(raw: ExternalConfig) -> SourceCatalogConfig:
    """
    Parse an external catalog.

    Accepts a ``SourceCatalogConfig``, a ``{"sources": [...], "b2b_config":
    {...}}`` mapping, or a bare list of source records.

    Raises:
        ConfigLoadError: If the catalog does not match the schema.
    """
    if isinstance(raw, SourceCatalogConfig):
        return raw
    if isinstance(raw, list):
        raw = {"sources": raw}
    if not isinstance(raw, dict):
        raise ConfigLoadError(f"Unsupported catalog type: {type(raw).__name__}")
    try:
        return SourceCatalogConfig.model_validate(raw)
    except PydanticValidationError as e:
        raise ConfigLoadError(f"Invalid source catalog: {e.error_count()} error(s)") from e


def load_catalog_file(path: Union[str, Path]) -> SourceCatalogConfig:
    """
    Read and parse a JSON catalog file.

    Raises:
        ConfigLoadError: On I/O, JSON or schema failure.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigLoadError(f"Cannot read source catalog {path}: {e}") from e
    return parse_catalog(raw)


# =============================================================================
# Registry
# =============================================================================

class SourceRegistry:
    """
    In-memory catalog of scrape targets.

    Lookups return descriptors in load order unless stated otherwise.
    Descriptors are frozen; ``update_score`` swaps in a modified copy under
    a lock, so readers never observe a half-updated entry.
    """

    def __init__(
        self,
        sources: Optional[list[SourceDescriptor]] = None,
        b2b_config: Optional[B2BFeatureFlags] = None,
    ):
        self._lock = threading.Lock()
        self._sources: dict[str, SourceDescriptor] = {}
        self._b2b_config = b2b_config or DEFAULT_B2B_CONFIG
        self._last_load: tuple[Optional[list[SourceDescriptor]], Optional[ExternalConfig]] = (None, None)

        if sources is not None:
            self.load_sources(sources)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SourceRegistry":
        """
        Build a registry from the built-in catalog plus SOURCES_CONFIG_PATH.

        A catalog file that cannot be loaded is logged and ignored.
        """
        settings = settings or get_settings()
        registry = cls()
        external: Optional[SourceCatalogConfig] = None
        config_path = settings.sources_config_path

        if config_path:
            try:
                external = load_catalog_file(config_path)
            except ConfigLoadError as e:
                logger.warning(
                    "source_catalog_load_failed",
                    path=str(config_path),
                    error=str(e),
                    fallback="builtin_sources",
                )

        registry.load_sources(builtin_sources(), external)
        return registry

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_sources(
        self,
        builtins: list[SourceDescriptor],
        external_config: Optional[ExternalConfig] = None,
    ) -> int:
        """
        Replace the catalog with built-ins merged with an external config.

        External entries override built-ins with the same id and are
        appended otherwise. Disabled entries are dropped. A malformed
        external config is logged and the built-ins are used alone.

        Returns:
            Number of sources loaded.
        """
        merged: dict[str, SourceDescriptor] = {s.id: s for s in builtins}
        b2b_config = DEFAULT_B2B_CONFIG

        if external_config is not None:
            try:
                catalog = parse_catalog(external_config)
            except ConfigLoadError as e:
                logger.warning("external_sources_ignored", error=str(e))
            else:
                for source in catalog.sources:
                    merged[source.id] = source
                b2b_config = catalog.b2b_config

        enabled = {sid: s for sid, s in merged.items() if s.enabled}
        dropped = len(merged) - len(enabled)

        with self._lock:
            self._sources = enabled
            self._b2b_config = b2b_config
            self._last_load = (list(builtins), external_config)

        logger.info(
            "sources_loaded",
            total=len(enabled),
            disabled_dropped=dropped,
            sources=list(enabled.keys()),
        )
        return len(enabled)

    def reload(self) -> int:
        """Re-run the last load with the same inputs."""
        builtins, external = self._last_load
        if builtins is None:
            builtins = builtin_sources()
        return self.load_sources(builtins, external)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _snapshot(self) -> list[SourceDescriptor]:
        with self._lock:
            return list(self._sources.values())

    def get_active_sources(self) -> list[SourceDescriptor]:
        """All enabled sources in load order."""
        return [s for s in self._snapshot() if s.enabled]

    def get_sources_by_country(self, country: str) -> list[SourceDescriptor]:
        """Sources based in ``country`` or shipping to it."""
        return [s for s in self.get_active_sources() if s.serves_country(country)]

    def get_sources_by_type(self, source_type: Union[SourceType, str]) -> list[SourceDescriptor]:
        value = source_type.value if isinstance(source_type, SourceType) else str(source_type)
        if value == "direct_brand":
            value = SourceType.BRAND_DIRECT.value
        return [s for s in self.get_active_sources() if s.type == value]

    def get_official_sources(self) -> list[SourceDescriptor]:
        return [s for s in self.get_active_sources() if s.is_official]

    def get_sources_by_specialization(self, specialization: str) -> list[SourceDescriptor]:
        """Match on the specialization tag or the category list, case-insensitively."""
        tag = specialization.strip().lower()
        return [
            s for s in self.get_active_sources()
            if (s.specialization or "").lower() == tag
            or tag in (c.lower() for c in s.categories)
        ]

    def get_global_sources(self, countries: Optional[list[str]] = None) -> list[SourceDescriptor]:
        """
        Sources for a multi-country search, ordered by priority.

        ``None``, an empty list, or a list containing ``"ALL"`` selects every
        active source. The sort is stable, so equal priorities keep load order.
        """
        codes = [c.upper() for c in (countries or [])]
        active = self.get_active_sources()

        if not codes or "ALL" in codes:
            selected = active
        else:
            selected = [s for s in active if any(s.serves_country(c) for c in codes)]

        return sorted(selected, key=lambda s: s.priority)

    def get_source_by_id(self, source_id: str) -> Optional[SourceDescriptor]:
        with self._lock:
            return self._sources.get(source_id)

    def get_sources_with_capability(self, capability: Union[Capability, str]) -> list[SourceDescriptor]:
        """Sources advertising a capability; unknown tags yield an empty list."""
        cap = capability if isinstance(capability, Capability) else Capability.parse(capability)
        if cap is None:
            logger.info("unknown_capability_requested", capability=str(capability))
            return []
        return [s for s in self.get_active_sources() if cap.value in s.capabilities]

    # -------------------------------------------------------------------------
    # B2B Queries
    # -------------------------------------------------------------------------

    def get_b2b_sources(self) -> list[SourceDescriptor]:
        """B2B specialized sources and distributors."""
        return [s for s in self.get_active_sources() if s.is_b2b]

    def get_sources_by_brand(self, brand: str) -> list[SourceDescriptor]:
        """Sources listing ``brand`` among their official brands."""
        needle = brand.strip().lower()
        return [
            s for s in self.get_active_sources()
            if any(b.lower() == needle for b in s.official_brands)
        ]

    def get_best_b2b_sources_for_country(
        self,
        country: str,
        specialization: Optional[str] = None,
    ) -> list[SourceDescriptor]:
        """B2B sources reaching ``country``, best first (priority, then score)."""
        candidates = [s for s in self.get_b2b_sources() if s.serves_country(country)]
        if specialization:
            tag = specialization.strip().lower()
            candidates = [s for s in candidates if (s.specialization or "").lower() == tag]
        return sorted(candidates, key=lambda s: (s.priority, -s.score))

    def get_b2b_config(self) -> B2BFeatureFlags:
        return self._b2b_config

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def update_score(
        self,
        source_id: str,
        score: float,
        response_time_ms: Optional[float] = None,
    ) -> Optional[SourceDescriptor]:
        """
        Record a source health score, clamped to [0, 1].

        Unknown ids are a logged no-op.

        Returns:
            The updated descriptor, or None for an unknown id.
        """
        clamped = min(1.0, max(0.0, float(score)))

        with self._lock:
            current = self._sources.get(source_id)
            if current is None:
                updated = None
            else:
                changes: dict[str, Any] = {"score": clamped, "last_checked": datetime.utcnow()}
                if response_time_ms is not None:
                    changes["response_time_ms"] = max(0.0, float(response_time_ms))
                updated = current.model_copy(update=changes)
                self._sources[source_id] = updated

        if updated is None:
            logger.warning("score_update_unknown_source", source_id=source_id)
            return None

        logger.debug(
            "source_score_updated",
            source_id=source_id,
            score=clamped,
            response_time_ms=response_time_ms,
        )
        return updated

    def get_stats(self) -> SourceStats:
        """Counts by type and country, official count and average score."""
        sources = self._snapshot()
        active = [s for s in sources if s.enabled]
        by_type = {t.value: 0 for t in SourceType}
        by_type.update(Counter(s.type for s in sources))

        return SourceStats(
            total=len(sources),
            active=len(active),
            by_type=by_type,
            by_country=dict(Counter(s.country for s in sources)),
            official=sum(1 for s in sources if s.is_official),
            average_score=round(sum(s.score for s in sources) / len(sources), 3) if sources else 0.0,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._sources)

    def __contains__(self, source_id: str) -> bool:
        return self.get_source_by_id(source_id) is not None


# =============================================================================
# Convenience Functions
# =============================================================================

def create_source_registry(
    settings: Optional[Settings] = None,
    external_config: Optional[ExternalConfig] = None,
) -> SourceRegistry:
    """
    Create a registry with the built-in catalog.

    Args:
        settings: Settings used to locate an external catalog file.
        external_config: In-memory catalog overriding the file lookup.
    """
    if external_config is None:
        return SourceRegistry.from_settings(settings)
    registry = SourceRegistry()
    registry.load_sources(builtin_sources(), external_config)
    return registry


__all__ = [
    "SourceRegistry",
    "create_source_registry",
    "parse_catalog",
    "load_catalog_file",
]
