"""
Pydantic models and schemas for the PriceScout search pipeline.

This module defines all data structures used throughout the pipeline,
ensuring type safety, validation, and serialization consistency.

Models:
    - SourceDescriptor: Registry entry for one scrape target
    - B2BFeatureFlags / SourceCatalogConfig: External catalog format
    - Listing: One normalized product offer from one source
    - ValidationRequest / ValidationResult: Product-match collaborator contract
    - SearchRequest / SearchResponse: Pipeline input and output
    - GlobalAnalysis: Cross-border arbitrage summary
    - ErrorResponse: Standardized error handling
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Self
from uuid import UUID, uuid4

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=False,
        populate_by_name=True,
        use_enum_values=True,
        ser_json_timedelta="iso8601",
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to JSON string."""
        return self.model_dump_json(indent=2, **kwargs)

    def to_dict(self, **kwargs) -> dict[str, Any]:
        """Serialize model to dictionary."""
        return self.model_dump(**kwargs)

    @classmethod
    def from_json(cls, json_str: str) -> Self:
        """Deserialize model from JSON string."""
        return cls.model_validate_json(json_str)


def _serialize_dt(value: Optional[datetime]) -> Optional[str]:
    if not value:
        return None
    if value.tzinfo is None:
        return value.isoformat() + "Z"
    return value.isoformat()


def _as_list(value: Any, field: str) -> list[Any]:
    """List-like field input as a list; ValueError for anything else."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ValueError(f"{field} must be a list, got {type(value).__name__}")
    return list(value)


# =============================================================================
# Enums
# =============================================================================

class SourceType(str, Enum):
    """Classification of a scrape target."""
    MARKETPLACE = "marketplace"
    B2B_SPECIALIZED = "b2b_specialized"
    BRAND_DIRECT = "brand_direct"
    RETAIL_SPECIALIZED = "retail_specialized"
    DISTRIBUTOR = "distributor"


B2B_SOURCE_TYPES = frozenset({SourceType.B2B_SPECIALIZED.value, SourceType.DISTRIBUTOR.value})


class Capability(str, Enum):
    """Data a source is able to provide beyond name, price and URL."""
    TECHNICAL_SPECS = "technical_specs"
    DATASHEETS = "datasheets"
    CAD_FILES = "cad_files"
    BULK_PRICING = "bulk_pricing"
    WARRANTY_INFO = "warranty_info"
    CERTIFICATIONS = "certifications"
    LEAD_TIME = "lead_time"
    MINIMUM_ORDER_QUANTITY = "minimum_order_quantity"

    @classmethod
    def parse(cls, value: str) -> Optional["Capability"]:
        """Return the capability for a tag name, or None when unknown."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Availability(str, Enum):
    """Stock status of a listing."""
    IN_STOCK = "in_stock"
    LIMITED = "limited"
    OUT_OF_STOCK = "out_of_stock"
    UNKNOWN = "unknown"


class RecommendedAction(str, Enum):
    """Arbitrage recommendation."""
    IMPORT = "importar"
    BUY_LOCAL = "comprar_local"


class ErrorType(str, Enum):
    """Error type classification."""
    VALIDATION_ERROR = "validation_error"
    SOURCE_ERROR = "source_error"
    EXTRACTION_ERROR = "extraction_error"
    TIMEOUT_ERROR = "timeout_error"
    CONFIG_ERROR = "config_error"
    INTERNAL_ERROR = "internal_error"


# =============================================================================
# Source Models
# =============================================================================

class ScraperHints(BaseModel):
    """CSS selectors and request tweaks used by the live HTML adapter."""

    item_selector: Optional[str] = Field(default=None, description="One element per result")
    name_selector: Optional[str] = None
    price_selector: Optional[str] = None
    availability_selector: Optional[str] = None
    brand_selector: Optional[str] = None
    link_selector: Optional[str] = None
    image_selector: Optional[str] = None
    wait_time_ms: int = Field(default=0, ge=0)
    headers: dict[str, str] = Field(default_factory=dict)


class SourceDescriptor(BaseModel):
    """
    One scrape target in the source registry.

    Descriptors are immutable once loaded; score updates replace the
    registry entry with a modified copy.

    Example:
        >>> src = SourceDescriptor(
        ...     id="mercadolibre-pe",
        ...     name="MercadoLibre Perú",
        ...     base_url="https://listado.mercadolibre.com.pe",
        ...     country="pe",
        ...     type="marketplace",
        ... )
        >>> src.country
        'PE'
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable unique source id")
    name: str = Field(..., min_length=1)
    base_url: str = Field(..., min_length=1)
    country: str = Field(..., min_length=2, max_length=3)
    type: SourceType = Field(default=SourceType.MARKETPLACE)
    enabled: bool = True
    priority: int = Field(default=1, ge=1, description="1 is highest")
    is_official: bool = False
    official_brands: list[str] = Field(default_factory=list)
    shipping_countries: list[str] = Field(default_factory=list)
    capabilities: frozenset[str] = Field(default_factory=frozenset, description="Capability tag values")
    specialization: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    score: float = Field(default=0.5, description="Advisory health score, 0-1")
    last_checked: Optional[datetime] = None
    response_time_ms: Optional[float] = Field(default=None, ge=0)
    scraper: ScraperHints = Field(default_factory=ScraperHints)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Accept the legacy 'direct_brand' spelling."""
        if isinstance(v, str) and v.strip().lower() == "direct_brand":
            return SourceType.BRAND_DIRECT.value
        return v

    @field_validator("country", mode="before")
    @classmethod
    def normalize_country(cls, v: str) -> str:
        return str(v).strip().upper()

    @field_validator("shipping_countries", mode="before")
    @classmethod
    def normalize_shipping(cls, v: Any) -> list[str]:
        return [str(c).strip().upper() for c in _as_list(v, "shipping_countries")]

    @field_validator("capabilities", mode="before")
    @classmethod
    def parse_capabilities(cls, v: Any) -> frozenset:
        """Unknown capability names in a catalog are ignored."""
        tags = set()
        for item in _as_list(v, "capabilities"):
            cap = item if isinstance(item, Capability) else Capability.parse(item)
            if cap is not None:
                tags.add(cap.value)
        return frozenset(tags)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> float:
        if v is None:
            return 0.5
        try:
            score = float(v)
        except TypeError as e:
            raise ValueError(f"score must be a number, got {type(v).__name__}") from e
        return min(1.0, max(0.0, score))

    @field_serializer("last_checked")
    def serialize_last_checked(self, value: Optional[datetime]) -> Optional[str]:
        return _serialize_dt(value)

    @field_serializer("capabilities")
    def serialize_capabilities(self, value: frozenset) -> list[str]:
        return sorted(value)

    @property
    def is_b2b(self) -> bool:
        return self.type in B2B_SOURCE_TYPES

    def has_capability(self, capability: Capability | str) -> bool:
        cap = capability if isinstance(capability, Capability) else Capability.parse(capability)
        return cap is not None and cap.value in self.capabilities

    def serves_country(self, country: str) -> bool:
        """Country membership: home country or a shipping destination."""
        code = country.upper()
        return self.country == code or code in self.shipping_countries


class B2BFeatureFlags(BaseModel):
    """Global switches for the B2B extension fields of listings."""

    enable_technical_specs: bool = True
    enable_bulk_pricing: bool = True
    enable_datasheet_extraction: bool = True
    enable_cad_file_detection: bool = True
    minimum_order_quantity_detection: bool = True
    lead_time_extraction: bool = True


class SourceCatalogConfig(BaseModel):
    """External source catalog file format."""

    sources: list[SourceDescriptor] = Field(default_factory=list)
    b2b_config: B2BFeatureFlags = Field(default_factory=B2BFeatureFlags)


class SourceStats(BaseModel):
    """Aggregate view of the registry."""

    total: int
    active: int
    by_type: dict[str, int] = Field(default_factory=dict)
    by_country: dict[str, int] = Field(default_factory=dict)
    official: int = 0
    average_score: float = 0.0


# =============================================================================
# Listing Models
# =============================================================================

class BulkPriceTier(BaseModel):
    """Unit price applicable from a minimum quantity."""

    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class ValidationVerdict(BaseModel):
    """Raw verdict attached to a listing after product-match validation."""

    is_exact_match: bool = False
    reasoning: str = ""
    provider: str = "heuristic"


def clamp_confidence(value: float) -> int:
    """Clamp a confidence value to the canonical 0-100 integer scale."""
    return int(min(100, max(0, round(value))))


class Listing(BaseModel):
    """
    One normalized product offer from one source.

    ``confidence_score`` is on the 0-100 scale; validator output (0-1) is
    converted at the pipeline boundary.
    """

    source_id: str = Field(..., min_length=1)
    source_name: str = ""
    product_name: str = ""
    brand: Optional[str] = None
    model: Optional[str] = None
    sku: Optional[str] = None
    price: float = 0.0
    currency: str = Field(default="USD", min_length=3, max_length=3)
    url: str = ""
    image_url: Optional[str] = None
    availability: Availability = Availability.UNKNOWN
    is_official_source: bool = False
    confidence_score: int = Field(default=0, description="Match confidence, 0-100")
    response_time_ms: float = Field(default=0.0, ge=0)
    scraped_at: datetime = Field(default_factory=datetime.utcnow)
    synthetic: bool = Field(default=False, description="Produced by the synthetic generator")
    validation: Optional[ValidationVerdict] = None

    # B2B extension
    technical_specs: dict[str, str] = Field(default_factory=dict)
    datasheet_url: Optional[str] = None
    cad_file_url: Optional[str] = None
    bulk_pricing: list[BulkPriceTier] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    lead_time: Optional[str] = None
    minimum_order_quantity: Optional[int] = Field(default=None, ge=1)
    warranty: Optional[str] = None
    manufacturer_part_number: Optional[str] = None

    @field_validator("confidence_score", mode="before")
    @classmethod
    def validate_confidence(cls, v: Any) -> int:
        return clamp_confidence(float(v or 0))

    @field_validator("bulk_pricing")
    @classmethod
    def order_tiers(cls, v: list[BulkPriceTier]) -> list[BulkPriceTier]:
        return sorted(v, key=lambda t: t.quantity)

    @field_serializer("scraped_at")
    def serialize_scraped_at(self, value: datetime) -> Optional[str]:
        return _serialize_dt(value)

    @property
    def is_valid_offer(self) -> bool:
        """A listing worth showing has a name, a positive price and a URL."""
        return bool(self.product_name) and self.price > 0 and bool(self.url)


# =============================================================================
# Validation Collaborator Models
# =============================================================================

class ValidationRequest(BaseModel):
    """One query/listing pair submitted for product-match validation."""

    query: str
    product_name: str
    brand: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    source_type: Optional[str] = None


class ValidationResult(BaseModel):
    """Validator verdict; ``confidence_score`` is on the 0-1 scale."""

    is_exact_match: bool = False
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""
    extracted_brand: Optional[str] = None
    extracted_model: Optional[str] = None
    provider: str = "heuristic"

    @field_validator("confidence_score", mode="before")
    @classmethod
    def clamp_unit(cls, v: Any) -> float:
        return min(1.0, max(0.0, float(v or 0)))


# =============================================================================
# Search Request / Response Models
# =============================================================================

class SearchRequest(BaseModel):
    """
    Input of one search.

    ``countries`` switches to global mode. An explicit empty list means every
    source, the same as ``["ALL"]``. In global mode ``country`` names the
    requester's home country for the arbitrage analysis.

    Example:
        >>> req = SearchRequest(product="taladro bosch", countries=["pe", "us"])
        >>> req.countries
        ['PE', 'US']
    """

    product: str = Field(..., min_length=1, max_length=200)
    country: Optional[str] = Field(default=None, min_length=2, max_length=3)
    countries: Optional[list[str]] = None
    max_results: int = Field(default=10, ge=1, le=100, description="Per-source cap")
    alternatives: bool = False
    official_only: bool = False

    @field_validator("country", mode="before")
    @classmethod
    def normalize_country(cls, v: Any) -> Optional[str]:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return str(v).strip().upper()

    @field_validator("countries", mode="before")
    @classmethod
    def normalize_countries(cls, v: Any) -> Optional[list[str]]:
        if v is None:
            return None
        if isinstance(v, str):
            v = v.split(",")
        codes = [str(c).strip().upper() for c in _as_list(v, "countries") if str(c).strip()]
        return codes or ["ALL"]

    @property
    def is_global(self) -> bool:
        return self.countries is not None


class BestPrice(BaseModel):
    """Cheapest listing projected for the arbitrage summary."""

    country: str
    source: str
    price: float
    currency: str
    url: str


class BestTotalCost(BaseModel):
    """Best price plus the estimated delivery time to the requester."""

    country: str
    source: str
    total_cost: float
    delivery_days: int


class SavingsAnalysis(BaseModel):
    max_savings: int = 0
    recommended_action: RecommendedAction = RecommendedAction.BUY_LOCAL


class GlobalAnalysis(BaseModel):
    """Cross-border arbitrage summary for multi-country searches."""

    best_price: BestPrice
    best_total_cost: BestTotalCost
    local_availability: list[Listing] = Field(default_factory=list)
    strategic_recommendation: str = ""
    savings_analysis: SavingsAnalysis = Field(default_factory=SavingsAnalysis)


class SearchResponse(BaseModel):
    """Output of one search. Always well formed, possibly empty."""

    search_id: UUID = Field(default_factory=uuid4)
    query: str
    is_global_search: bool = False
    total_sources: int = 0
    total_results: int = 0
    response_time_ms: float = 0.0
    results: list[Listing] = Field(default_factory=list)
    global_analysis: Optional[GlobalAnalysis] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    cache_hit: bool = False
    errors: list[str] = Field(default_factory=list)

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> Optional[str]:
        return _serialize_dt(value)

    @model_validator(mode="after")
    def sync_total_results(self) -> Self:
        self.total_results = len(self.results)
        return self


# =============================================================================
# Error Models
# =============================================================================

class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: Optional[str] = Field(
        default=None,
        description="Field that caused the error",
    )
    message: str = Field(..., description="Error message")
    code: Optional[str] = Field(
        default=None,
        description="Error code for programmatic handling",
    )


class ErrorResponse(BaseModel):
    """
    Standardized error response structure.

    Example:
        >>> error = ErrorResponse(
        ...     error_type=ErrorType.VALIDATION_ERROR,
        ...     message='Parámetro "product" es requerido',
        ...     example="/search?product=taladro%20bosch&country=PE",
        ... )
    """

    error_id: UUID = Field(
        default_factory=uuid4,
        description="Unique error identifier for tracking",
    )
    error_type: ErrorType = Field(..., description="Error classification")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] = Field(
        default_factory=list,
        description="Detailed error information",
    )
    example: Optional[str] = Field(
        default=None,
        description="Example of a well-formed request",
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the error occurred",
    )

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        """Serialize timestamp to ISO format."""
        return value.isoformat() + "Z"


# =============================================================================
# Export All Models
# =============================================================================

__all__ = [
    # Base
    "BaseModel",

    # Enums
    "SourceType",
    "B2B_SOURCE_TYPES",
    "Capability",
    "Availability",
    "RecommendedAction",
    "ErrorType",

    # Sources
    "ScraperHints",
    "SourceDescriptor",
    "B2BFeatureFlags",
    "SourceCatalogConfig",
    "SourceStats",

    # Listings
    "BulkPriceTier",
    "ValidationVerdict",
    "Listing",
    "clamp_confidence",

    # Validation
    "ValidationRequest",
    "ValidationResult",

    # Search
    "SearchRequest",
    "BestPrice",
    "BestTotalCost",
    "SavingsAnalysis",
    "GlobalAnalysis",
    "SearchResponse",

    # Errors
    "ErrorDetail",
    "ErrorResponse",
]
