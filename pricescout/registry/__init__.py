"""
Source registry package.

Catalog of scrape targets with country, type, capability and brand lookups.
"""

from pricescout.registry.defaults import BUILTIN_SOURCES, DEFAULT_B2B_CONFIG, builtin_sources
from pricescout.registry.source_registry import (
    SourceRegistry,
    create_source_registry,
    load_catalog_file,
    parse_catalog,
)

__all__ = [
    "SourceRegistry",
    "create_source_registry",
    "load_catalog_file",
    "parse_catalog",
    "BUILTIN_SOURCES",
    "DEFAULT_B2B_CONFIG",
    "builtin_sources",
]
