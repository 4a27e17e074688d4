import json
import threading

import pytest

from pricescout.models.schemas import Capability, SourceCatalogConfig, SourceType
from pricescout.registry.defaults import BUILTIN_SOURCES, builtin_sources
from pricescout.registry.source_registry import (
    SourceRegistry,
    create_source_registry,
    load_catalog_file,
    parse_catalog,
)
from pricescout.utils.retry import ConfigLoadError

# =============================================================================
# Loading
# =============================================================================

def test_builtin_catalog_loads(builtin_registry):
    assert len(builtin_registry) == len(BUILTIN_SOURCES)
    assert "mercadolibre-pe" in builtin_registry
    assert "nope-xx" not in builtin_registry

def test_builtin_ids_unique():
    ids = [s["id"] for s in BUILTIN_SOURCES]
    assert len(ids) == len(set(ids))

def test_external_overrides_and_appends():
    registry = SourceRegistry()
    count = registry.load_sources(builtin_sources(), {
        "sources": [
            {"id": "efc-pe", "name": "EFC Override", "base_url": "https://efc.pe", "country": "PE",
             "type": "b2b_specialized", "priority": 1},
            {"id": "sodimac-cl", "name": "Sodimac", "base_url": "https://sodimac.cl", "country": "CL"},
        ],
        "b2b_config": {"enable_bulk_pricing": False},
    })
    assert count == len(BUILTIN_SOURCES) + 1
    assert registry.get_source_by_id("efc-pe").name == "EFC Override"
    assert registry.get_source_by_id("sodimac-cl").country == "CL"
    assert registry.get_b2b_config().enable_bulk_pricing is False

def test_disabled_sources_dropped(make_source):
    registry = SourceRegistry([make_source("a-pe"), make_source("b-pe", enabled=False)])
    assert len(registry) == 1
    assert registry.get_source_by_id("b-pe") is None

def test_malformed_external_config_ignored():
    registry = SourceRegistry()
    count = registry.load_sources(builtin_sources(), {"sources": [{"id": "broken"}]})
    assert count == len(BUILTIN_SOURCES)

@pytest.mark.parametrize("field, value", [
    ("capabilities", 5),
    ("capabilities", "bulk_pricing"),
    ("shipping_countries", 5),
    ("score", [0.5]),
])
def test_wrongly_typed_external_fields_ignored(field, value):
    record = {"id": "x-pe", "name": "X", "base_url": "https://x.pe", "country": "PE", field: value}
    registry = SourceRegistry()
    count = registry.load_sources(builtin_sources(), [record])
    assert count == len(BUILTIN_SOURCES)
    assert "x-pe" not in registry

def test_null_score_uses_default():
    catalog = parse_catalog([{"id": "x-pe", "name": "X", "base_url": "https://x.pe", "country": "PE", "score": None}])
    assert catalog.sources[0].score == 0.5

def test_from_settings_falls_back_on_undecodable_file(mock_settings, tmp_path):
    path = tmp_path / "sources.json"
    path.write_bytes(b"\xff\xfe[]")
    mock_settings.sources_config_path = path
    registry = SourceRegistry.from_settings(mock_settings)
    assert len(registry) == len(BUILTIN_SOURCES)

def test_parse_catalog_accepts_bare_list():
    catalog = parse_catalog([{"id": "x-pe", "name": "X", "base_url": "https://x.pe", "country": "PE"}])
    assert isinstance(catalog, SourceCatalogConfig)
    assert catalog.sources[0].id == "x-pe"

def test_parse_catalog_rejects_garbage():
    with pytest.raises(ConfigLoadError):
        parse_catalog("not a catalog")

def test_load_catalog_file(tmp_path):
    path = tmp_path / "sources.json"
    path.write_text(json.dumps({"sources": [
        {"id": "x-mx", "name": "X", "base_url": "https://x.mx", "country": "mx",
         "capabilities": ["bulk_pricing", "unknown_tag"]},
    ]}), encoding="utf-8")
    catalog = load_catalog_file(path)
    assert catalog.sources[0].country == "MX"
    assert catalog.sources[0].capabilities == frozenset({"bulk_pricing"})

def test_load_catalog_file_bad_json(tmp_path):
    path = tmp_path / "sources.json"
    path.write_text("{nope", encoding="utf-8")
    with pytest.raises(ConfigLoadError):
        load_catalog_file(path)

def test_from_settings_falls_back_on_bad_file(mock_settings, tmp_path):
    mock_settings.sources_config_path = tmp_path / "missing.json"
    registry = SourceRegistry.from_settings(mock_settings)
    assert len(registry) == len(BUILTIN_SOURCES)

def test_from_settings_reads_file(mock_settings, tmp_path):
    path = tmp_path / "sources.json"
    path.write_text(json.dumps([
        {"id": "extra-ar", "name": "Extra", "base_url": "https://extra.ar", "country": "AR"},
    ]), encoding="utf-8")
    mock_settings.sources_config_path = path
    registry = SourceRegistry.from_settings(mock_settings)
    assert "extra-ar" in registry

def test_reload_repeats_last_load(make_source):
    registry = SourceRegistry([make_source("a-pe")])
    registry.update_score("a-pe", 0.9)
    assert registry.reload() == 1
    assert registry.get_source_by_id("a-pe").score == 0.5

def test_create_source_registry_with_external():
    registry = create_source_registry(external_config=[
        {"id": "extra-co", "name": "Extra", "base_url": "https://extra.co", "country": "CO"},
    ])
    assert "extra-co" in registry
    assert "grainger-us" in registry

# =============================================================================
# Queries
# =============================================================================

def test_sources_by_country_includes_shipping(builtin_registry):
    ids = [s.id for s in builtin_registry.get_sources_by_country("pe")]
    assert "mercadolibre-pe" in ids
    assert "fluke-us" in ids  # ships to PE
    assert "grainger-us" not in ids

def test_country_membership_law(builtin_registry):
    for code in ["PE", "US", "MX", "DE", "UK", "CL"]:
        for source in builtin_registry.get_sources_by_country(code):
            assert source.country == code or code in source.shipping_countries

def test_sources_by_type(builtin_registry):
    direct = builtin_registry.get_sources_by_type("direct_brand")
    assert {s.id for s in direct} == {"fluke-us", "bosch-professional-pe"}
    assert builtin_registry.get_sources_by_type(SourceType.BRAND_DIRECT) == direct

def test_official_sources(builtin_registry):
    assert all(s.is_official for s in builtin_registry.get_official_sources())

def test_global_sources_sorted_by_priority(builtin_registry):
    sources = builtin_registry.get_global_sources(["PE", "US"])
    priorities = [s.priority for s in sources]
    assert priorities == sorted(priorities)
    assert all(s.serves_country("PE") or s.serves_country("US") for s in sources)

@pytest.mark.parametrize("countries", [None, [], ["ALL"], ["all", "PE"]])
def test_global_sources_all(builtin_registry, countries):
    assert len(builtin_registry.get_global_sources(countries)) == len(builtin_registry)

def test_global_sources_stable_for_equal_priority(make_source):
    registry = SourceRegistry([
        make_source("b-pe", priority=2),
        make_source("a-pe", priority=1),
        make_source("c-pe", priority=2),
    ])
    assert [s.id for s in registry.get_global_sources(["PE"])] == ["a-pe", "b-pe", "c-pe"]

def test_sources_with_capability(builtin_registry):
    sources = builtin_registry.get_sources_with_capability(Capability.CAD_FILES)
    assert "mcmaster-us" in {s.id for s in sources}
    assert builtin_registry.get_sources_with_capability("cad_files") == sources

def test_sources_with_unknown_capability(builtin_registry):
    assert builtin_registry.get_sources_with_capability("teleportation") == []

def test_sources_by_specialization(builtin_registry):
    ids = {s.id for s in builtin_registry.get_sources_by_specialization("Electronics_Automation")}
    assert {"rs-components-uk", "conrad-de", "fluke-us"} <= ids

def test_b2b_queries(builtin_registry):
    b2b = builtin_registry.get_b2b_sources()
    assert all(s.is_b2b for s in b2b)
    best = builtin_registry.get_best_b2b_sources_for_country("US")
    assert [(s.priority, -s.score) for s in best] == sorted((s.priority, -s.score) for s in best)
    assert all(s.serves_country("US") for s in best)

def test_best_b2b_for_country_with_specialization(builtin_registry):
    best = builtin_registry.get_best_b2b_sources_for_country("US", "fasteners_tools")
    assert [s.id for s in best] == ["fastenal-us"]

def test_sources_by_brand(builtin_registry):
    ids = {s.id for s in builtin_registry.get_sources_by_brand("fluke")}
    assert "fluke-us" in ids
    assert "bosch-professional-pe" not in ids

# =============================================================================
# Maintenance
# =============================================================================

def test_update_score_clamps_and_records(builtin_registry):
    updated = builtin_registry.update_score("efc-pe", 1.7, response_time_ms=120.0)
    assert updated.score == 1.0
    assert updated.response_time_ms == 120.0
    assert updated.last_checked is not None
    assert builtin_registry.get_source_by_id("efc-pe").score == 1.0

def test_update_score_unknown_source(builtin_registry):
    assert builtin_registry.update_score("nope-xx", 0.3) is None

def test_update_score_thread_safe(make_source):
    registry = SourceRegistry([make_source("a-pe")])

    def worker(value):
        for _ in range(50):
            registry.update_score("a-pe", value)

    threads = [threading.Thread(target=worker, args=(v,)) for v in (0.1, 0.9)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert registry.get_source_by_id("a-pe").score in (0.1, 0.9)

def test_get_stats(builtin_registry):
    stats = builtin_registry.get_stats()
    assert stats.total == len(BUILTIN_SOURCES)
    assert stats.active == stats.total
    assert sum(stats.by_type.values()) == stats.total
    assert stats.by_country["US"] >= 4
    assert 0.0 <= stats.average_score <= 1.0
