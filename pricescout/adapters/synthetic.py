"""
Synthetic listing generator.

Produces plausible, well-formed listings when no live fetch backend is
available, so ranking and arbitrage can run end to end in demo mode and in
tests. Every generated listing carries ``synthetic=True``.

Output is a pure function of ``(seed, source id, product)``: the random
stream for a source is derived from those three values, so results do not
depend on the order in which sources are fetched.

Example:
    >>> generator = SyntheticListingGenerator(seed=7)
    >>> listings = generator.generate(source, SearchRequest(product="taladro bosch"))
    >>> all(l.synthetic for l in listings)
    True
"""

from __future__ import annotations

import random
import re
import string
import time
import unicodedata
from typing import Optional

from pricescout.adapters.base import ListingAdapter
from pricescout.adapters.extraction import (
    calculate_confidence_score,
    extract_currency,
    is_official_match,
)
from pricescout.config.settings import Settings
from pricescout.models.schemas import (
    Availability,
    B2BFeatureFlags,
    BulkPriceTier,
    Capability,
    Listing,
    SearchRequest,
    SourceDescriptor,
    SourceType,
)
from pricescout.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Generation Tables
# =============================================================================

KNOWN_BRANDS = ["Stanley", "Bosch", "Makita", "DeWalt", "Milwaukee", "3M", "Fluke", "Klein Tools"]

# (keywords, per-country base price, base price elsewhere)
PRICE_TABLE: list[tuple[tuple[str, ...], dict[str, float], float]] = [
    (("nivel", "level"), {"PE": 80, "US": 25}, 60),
    (("taladro", "drill"), {"PE": 200, "US": 80}, 150),
    (("multimetro", "multímetro", "multimeter"), {"PE": 120, "US": 45}, 90),
    (("llave", "wrench"), {"PE": 35, "US": 15}, 25),
    (("guante", "glove"), {"PE": 25, "US": 9}, 18),
    (("casco", "helmet"), {"PE": 45, "US": 18}, 35),
]
DEFAULT_BASE_PRICE = 50.0
PRICE_VARIATION = (0.8, 1.2)

AVAILABILITY_POOL = [Availability.IN_STOCK, Availability.IN_STOCK, Availability.LIMITED]

# source id -> (URL template, serial base)
URL_TEMPLATES: dict[str, tuple[str, int]] = {
    "mercadolibre-pe": ("https://articulo.mercadolibre.com.pe/MPE-{serial}-{slug}", 600000000),
    "mercadolibre-mx": ("https://articulo.mercadolibre.com.mx/MLM-{serial}-{slug}", 700000000),
    "mercadolibre-cl": ("https://articulo.mercadolibre.cl/MLC-{serial}-{slug}", 500000000),
    "mercadolibre-ar": ("https://articulo.mercadolibre.com.ar/MLA-{serial}-{slug}", 800000000),
    "efc-pe": ("https://www.efc.com.pe/producto/{slug}-{serial}", 1000),
    "amazon-business-us": ("https://www.amazon.com/dp/B0{token}", 0),
    "grainger-us": ("https://www.grainger.com/product/{token}", 0),
}
DEFAULT_URL_TEMPLATE = ("{base_url}/producto/{slug}-{serial}", 0)

SPECS_BY_SPECIALIZATION: dict[str, dict[str, str]] = {
    "electronics_automation": {
        "Frecuencia": "50/60 Hz",
        "Temperatura de operación": "-20°C a +70°C",
        "Grado de protección": "IP65",
    },
    "industrial_supplies": {
        "Certificación": "ISO 9001",
    },
    "ppe_tools": {
        "Nivel de protección": "EN 388",
        "Talla": "M/L/XL",
        "Certificación CE": "Sí",
    },
    "fasteners_tools": {
        "Clase de resistencia": "8.8",
        "Acabado": "Galvanizado",
    },
    "technical_components": {
        "Tolerancia": "±0.1mm",
        "Acabado superficial": "Ra 0.8",
        "Material certificado": "AISI 316L",
    },
}

BULK_DISCOUNTS = [(10, 0.95), (50, 0.90), (100, 0.85)]
DEFAULT_CERTIFICATIONS = ["CE", "ISO 9001", "RoHS"]


# =============================================================================
# Helpers
# =============================================================================

def slugify(text: str, max_length: int = 50) -> str:
    """URL slug: ASCII, lower-case, hyphen-separated."""
    ascii_text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-z0-9\s]", "", ascii_text.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    return slug[:max_length]


def detect_brand(product: str) -> Optional[str]:
    """First known brand mentioned in the query, if any."""
    lowered = product.lower()
    for brand in KNOWN_BRANDS:
        if brand.lower() in lowered:
            return brand
    return None


def base_price_for(product: str, country: str) -> float:
    """Category/country base price used before random variation."""
    lowered = product.lower()
    for keywords, by_country, elsewhere in PRICE_TABLE:
        if any(k in lowered for k in keywords):
            return float(by_country.get(country.upper(), elsewhere))
    return DEFAULT_BASE_PRICE


# =============================================================================
# Generator
# =============================================================================

class SyntheticListingGenerator:
    """
    Seeded generator of placeholder listings.

    Args:
        seed: Base seed; the same seed, source and product always produce
            the same listings.
        b2b_config: Feature flags gating the B2B extension fields.
    """

    def __init__(self, seed: int = 42, b2b_config: Optional[B2BFeatureFlags] = None):
        self.seed = seed
        self.b2b_config = b2b_config or B2BFeatureFlags()

    def _rng(self, source: SourceDescriptor, product: str) -> random.Random:
        return random.Random(f"{self.seed}:{source.id}:{product.strip().lower()}")

    def _build_url(
        self,
        source: SourceDescriptor,
        slug: str,
        index: int,
        rng: random.Random,
    ) -> str:
        template, serial_base = URL_TEMPLATES.get(source.id, DEFAULT_URL_TEMPLATE)
        token = "".join(rng.choices(string.ascii_uppercase + string.digits, k=8))
        return template.format(
            base_url=source.base_url.rstrip("/"),
            slug=slug,
            serial=serial_base + index,
            token=token,
        )

    def _apply_b2b_fields(
        self,
        listing: Listing,
        source: SourceDescriptor,
        slug: str,
        rng: random.Random,
    ) -> Listing:
        flags = self.b2b_config
        base_url = source.base_url.rstrip("/")
        updates: dict = {}

        if source.has_capability(Capability.TECHNICAL_SPECS) and flags.enable_technical_specs:
            specs = {
                "Peso": f"{rng.uniform(0.1, 5.1):.2f} kg",
                "Material": "Acero inoxidable",
            }
            specs.update(SPECS_BY_SPECIALIZATION.get(source.specialization or "", {}))
            updates["technical_specs"] = specs

        if source.has_capability(Capability.DATASHEETS) and flags.enable_datasheet_extraction:
            updates["datasheet_url"] = f"{base_url}/datasheets/{slug}.pdf"

        if source.has_capability(Capability.CAD_FILES) and flags.enable_cad_file_detection:
            updates["cad_file_url"] = f"{base_url}/cad/{slug}.dwg"

        if source.has_capability(Capability.BULK_PRICING) and flags.enable_bulk_pricing:
            updates["bulk_pricing"] = [
                BulkPriceTier(
                    quantity=qty,
                    price=round(listing.price * factor, 2),
                    currency=listing.currency,
                )
                for qty, factor in BULK_DISCOUNTS
            ]

        if source.has_capability(Capability.CERTIFICATIONS):
            updates["certifications"] = list(DEFAULT_CERTIFICATIONS)

        if source.has_capability(Capability.LEAD_TIME) and flags.lead_time_extraction:
            updates["lead_time"] = f"{rng.randint(1, 14)} días"

        if (
            source.has_capability(Capability.MINIMUM_ORDER_QUANTITY)
            and flags.minimum_order_quantity_detection
        ):
            updates["minimum_order_quantity"] = rng.randint(1, 10)

        if source.has_capability(Capability.WARRANTY_INFO):
            updates["warranty"] = f"{rng.randint(1, 3)} años de garantía {listing.brand or ''}".strip()

        if source.is_b2b or source.type == SourceType.BRAND_DIRECT.value:
            prefix = (listing.brand or "MPN").replace(" ", "")[:4].upper()
            updates["manufacturer_part_number"] = f"{prefix}-{rng.randrange(16**6):06X}"

        return listing.model_copy(update=updates) if updates else listing

    def generate(
        self,
        source: SourceDescriptor,
        query: SearchRequest,
        response_time_ms: float = 0.0,
    ) -> list[Listing]:
        """Generate 1-3 listings for ``source``, capped by ``query.max_results``."""
        rng = self._rng(source, query.product)
        count = min(rng.randint(1, 3), query.max_results)

        detected = detect_brand(query.product)
        brand_offset = rng.randrange(len(KNOWN_BRANDS))
        base_price = base_price_for(query.product, source.country)
        currency = extract_currency("", source.country)
        slug = slugify(query.product)

        listings: list[Listing] = []
        for index in range(count):
            brand = detected or KNOWN_BRANDS[(brand_offset + index) % len(KNOWN_BRANDS)]
            product_name = query.product if detected else f"{query.product} {brand}"
            is_official = is_official_match(product_name, brand, source)
            price = round(base_price * rng.uniform(*PRICE_VARIATION), 2)

            listing = Listing(
                source_id=source.id,
                source_name=source.name,
                product_name=product_name,
                brand=brand,
                sku=f"{source.id.split('-')[0].upper()}-{rng.randint(10000, 99999)}",
                price=price,
                currency=currency,
                url=self._build_url(source, slug, index, rng),
                image_url=f"{source.base_url.rstrip('/')}/images/{slug}-{index}.jpg",
                availability=rng.choice(AVAILABILITY_POOL),
                is_official_source=is_official,
                confidence_score=calculate_confidence_score(
                    product_name, query.product, brand, is_official
                ),
                response_time_ms=response_time_ms,
                synthetic=True,
            )
            listings.append(self._apply_b2b_fields(listing, source, slug, rng))

        logger.debug(
            "synthetic_listings_generated",
            source_id=source.id,
            product=query.product,
            count=len(listings),
        )
        return listings


class SyntheticListingAdapter(ListingAdapter):
    """Adapter facade over ``SyntheticListingGenerator``."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        generator: Optional[SyntheticListingGenerator] = None,
    ):
        super().__init__(settings)
        self.generator = generator or SyntheticListingGenerator(seed=self.settings.synthetic_seed)

    @property
    def name(self) -> str:
        return "synthetic"

    @property
    def is_live(self) -> bool:
        return False

    async def fetch_listings(
        self,
        source: SourceDescriptor,
        query: SearchRequest,
    ) -> list[Listing]:
        start = time.perf_counter()
        listings = self.generator.generate(source, query)
        elapsed_ms = (time.perf_counter() - start) * 1000
        self._update_status(True)
        return [l.model_copy(update={"response_time_ms": elapsed_ms}) for l in listings]


__all__ = [
    "KNOWN_BRANDS",
    "PRICE_TABLE",
    "URL_TEMPLATES",
    "SyntheticListingGenerator",
    "SyntheticListingAdapter",
    "slugify",
    "detect_brand",
    "base_price_for",
]
