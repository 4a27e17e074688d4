"""
Built-in source catalog.

These descriptors are always available; an external catalog file can
override any of them by id or add new ones.
"""

from pricescout.models.schemas import B2BFeatureFlags, SourceDescriptor


_BROWSER_HEADERS = {
    "Accept-Language": "es-419,es;q=0.9,en;q=0.8",
}

_MERCADOLIBRE_SCRAPER = {
    "item_selector": "li.ui-search-layout__item",
    "name_selector": ".ui-search-item__title",
    "price_selector": ".andes-money-amount__fraction",
    "availability_selector": ".ui-search-item__stock-info",
    "brand_selector": ".ui-search-item__brand-name",
    "link_selector": "a.ui-search-link",
    "image_selector": ".ui-search-result-image__element img",
    "wait_time_ms": 2000,
    "headers": _BROWSER_HEADERS,
}

_GENERIC_SCRAPER = {
    "item_selector": ".product-item",
    "name_selector": ".product-title",
    "price_selector": ".price-current",
    "availability_selector": ".stock-status",
    "brand_selector": ".product-brand",
    "link_selector": "a",
    "image_selector": ".product-image img",
    "wait_time_ms": 2000,
}

_TOOL_BRANDS = ["Bosch", "3M", "Makita", "DeWalt", "Stanley", "Klein Tools", "Fluke"]


BUILTIN_SOURCES: list[dict] = [
    # Marketplaces (priority 1)
    {
        "id": "mercadolibre-pe",
        "name": "MercadoLibre Perú",
        "base_url": "https://listado.mercadolibre.com.pe",
        "country": "PE",
        "type": "marketplace",
        "priority": 1,
        "is_official": True,
        "official_brands": _TOOL_BRANDS,
        "categories": ["herramientas", "epp", "instrumentos", "construccion"],
        "shipping_countries": ["PE"],
        "capabilities": ["warranty_info"],
        "scraper": _MERCADOLIBRE_SCRAPER,
    },
    {
        "id": "mercadolibre-mx",
        "name": "MercadoLibre México",
        "base_url": "https://listado.mercadolibre.com.mx",
        "country": "MX",
        "type": "marketplace",
        "priority": 1,
        "is_official": True,
        "official_brands": ["Bosch", "3M", "Makita", "DeWalt", "Stanley", "Klein Tools"],
        "categories": ["herramientas", "epp", "instrumentos", "construccion"],
        "shipping_countries": ["MX", "US"],
        "capabilities": ["warranty_info"],
        "scraper": _MERCADOLIBRE_SCRAPER,
    },
    {
        "id": "amazon-business-us",
        "name": "Amazon Business US",
        "base_url": "https://www.amazon.com",
        "country": "US",
        "type": "marketplace",
        "priority": 1,
        "is_official": True,
        "official_brands": ["Fluke", "3M", "Milwaukee", "Klein Tools", "Bosch"],
        "categories": ["tools", "safety", "instruments", "construction"],
        "shipping_countries": ["US", "MX", "CA"],
        "capabilities": ["warranty_info", "bulk_pricing"],
        "scraper": {
            "item_selector": "div.s-result-item[data-asin]",
            "name_selector": "h2 span",
            "price_selector": ".a-price .a-offscreen",
            "availability_selector": "#availability span",
            "brand_selector": "#bylineInfo",
            "link_selector": "h2 a",
            "image_selector": "img.s-image",
            "wait_time_ms": 3000,
        },
    },
    # B2B specialized distributors (priority 2)
    {
        "id": "efc-pe",
        "name": "EFC Perú",
        "base_url": "https://www.efc.com.pe",
        "country": "PE",
        "type": "b2b_specialized",
        "priority": 2,
        "specialization": "ppe_tools",
        "categories": ["epp", "herramientas", "seguridad", "industrial"],
        "shipping_countries": ["PE"],
        "capabilities": ["technical_specs", "certifications", "bulk_pricing", "lead_time"],
        "scraper": _GENERIC_SCRAPER,
    },
    {
        "id": "grainger-us",
        "name": "Grainger US",
        "base_url": "https://www.grainger.com",
        "country": "US",
        "type": "b2b_specialized",
        "priority": 2,
        "specialization": "industrial_supplies",
        "official_brands": ["Fluke", "Klein Tools", "3M", "Milwaukee"],
        "categories": ["industrial", "tools", "safety", "maintenance"],
        "shipping_countries": ["US", "MX", "CA"],
        "capabilities": [
            "technical_specs", "datasheets", "bulk_pricing",
            "lead_time", "minimum_order_quantity",
        ],
        "scraper": {**_GENERIC_SCRAPER, "price_selector": ".pricing-price", "wait_time_ms": 3000},
    },
    {
        "id": "grainger-mx",
        "name": "Grainger México",
        "base_url": "https://www.grainger.com.mx",
        "country": "MX",
        "type": "b2b_specialized",
        "priority": 2,
        "specialization": "industrial_supplies",
        "categories": ["industrial", "herramientas", "seguridad"],
        "shipping_countries": ["MX"],
        "capabilities": ["technical_specs", "bulk_pricing", "lead_time"],
        "scraper": _GENERIC_SCRAPER,
    },
    {
        "id": "fastenal-us",
        "name": "Fastenal",
        "base_url": "https://www.fastenal.com",
        "country": "US",
        "type": "distributor",
        "priority": 2,
        "specialization": "fasteners_tools",
        "categories": ["fasteners", "tools", "industrial"],
        "shipping_countries": ["US", "CA", "MX"],
        "capabilities": ["technical_specs", "bulk_pricing", "minimum_order_quantity", "lead_time"],
        "scraper": _GENERIC_SCRAPER,
    },
    {
        "id": "mcmaster-us",
        "name": "McMaster-Carr",
        "base_url": "https://www.mcmaster.com",
        "country": "US",
        "type": "distributor",
        "priority": 3,
        "specialization": "technical_components",
        "categories": ["components", "fasteners", "tools"],
        "shipping_countries": ["US"],
        "capabilities": ["technical_specs", "datasheets", "cad_files"],
        "scraper": _GENERIC_SCRAPER,
    },
    {
        "id": "rs-components-uk",
        "name": "RS Components UK",
        "base_url": "https://uk.rs-online.com",
        "country": "UK",
        "type": "b2b_specialized",
        "priority": 2,
        "specialization": "electronics_automation",
        "official_brands": ["Fluke", "3M"],
        "categories": ["electronics", "automation", "instruments"],
        "shipping_countries": ["UK", "DE", "FR", "ES"],
        "capabilities": [
            "technical_specs", "datasheets", "cad_files",
            "bulk_pricing", "certifications", "lead_time",
        ],
        "scraper": _GENERIC_SCRAPER,
    },
    {
        "id": "wurth-de",
        "name": "Würth Deutschland",
        "base_url": "https://eshop.wuerth.de",
        "country": "DE",
        "type": "distributor",
        "priority": 2,
        "specialization": "fasteners_tools",
        "categories": ["fasteners", "tools", "chemicals"],
        "shipping_countries": ["DE", "FR", "ES", "UK"],
        "capabilities": ["technical_specs", "bulk_pricing", "certifications", "minimum_order_quantity"],
        "scraper": _GENERIC_SCRAPER,
    },
    {
        "id": "conrad-de",
        "name": "Conrad Electronic",
        "base_url": "https://www.conrad.de",
        "country": "DE",
        "type": "retail_specialized",
        "priority": 3,
        "specialization": "electronics_automation",
        "categories": ["electronics", "instruments"],
        "shipping_countries": ["DE", "FR", "ES"],
        "capabilities": ["technical_specs", "datasheets", "warranty_info"],
        "scraper": _GENERIC_SCRAPER,
    },
    # Brand-direct stores (priority 3)
    {
        "id": "fluke-us",
        "name": "Fluke Store",
        "base_url": "https://www.fluke.com",
        "country": "US",
        "type": "brand_direct",
        "priority": 3,
        "is_official": True,
        "official_brands": ["Fluke"],
        "specialization": "electronics_automation",
        "categories": ["instruments", "multimeters"],
        "shipping_countries": ["US", "MX", "PE", "CL"],
        "capabilities": [
            "technical_specs", "datasheets", "cad_files", "warranty_info",
            "certifications", "bulk_pricing",
        ],
        "scraper": _GENERIC_SCRAPER,
    },
    {
        "id": "bosch-professional-pe",
        "name": "Bosch Professional Perú",
        "base_url": "https://www.bosch-professional.com/pe",
        "country": "PE",
        "type": "brand_direct",
        "priority": 3,
        "is_official": True,
        "official_brands": ["Bosch"],
        "specialization": "ppe_tools",
        "categories": ["herramientas"],
        "shipping_countries": ["PE"],
        "capabilities": ["technical_specs", "datasheets", "warranty_info", "certifications"],
        "scraper": _GENERIC_SCRAPER,
    },
]


def builtin_sources() -> list[SourceDescriptor]:
    """Return fresh descriptors for the built-in catalog."""
    return [SourceDescriptor.model_validate(raw) for raw in BUILTIN_SOURCES]


DEFAULT_B2B_CONFIG = B2BFeatureFlags()


__all__ = ["BUILTIN_SOURCES", "DEFAULT_B2B_CONFIG", "builtin_sources"]
