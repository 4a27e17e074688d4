"""
Search URL construction.

Each source family exposes search under a different path. Templates are
looked up by source id, then by source type; anything unmapped uses
``{base_url}/search?q={query}``.
"""

from urllib.parse import quote

from pricescout.models.schemas import SourceDescriptor, SourceType


DEFAULT_TEMPLATE = "{base_url}/search?q={query}"

URL_TEMPLATES_BY_ID: dict[str, str] = {
    # Marketplaces
    "mercadolibre-pe": "{base_url}/{query}",
    "mercadolibre-mx": "{base_url}/{query}",
    "mercadolibre-ar": "{base_url}/{query}",
    "mercadolibre-cl": "{base_url}/{query}",
    "amazon-business-us": "{base_url}/s?k={query}&ref=nb_sb_noss",
    "amazon-business-de": "{base_url}/s?k={query}&ref=nb_sb_noss",
    # B2B distributors
    "grainger-us": "{base_url}/search?searchQuery={query}",
    "grainger-mx": "{base_url}/buscar?q={query}",
    "rs-components-uk": "{base_url}/search?searchTerm={query}",
    "rs-components-de": "{base_url}/search?searchTerm={query}",
    "wurth-de": "{base_url}/search?query={query}",
    "wurth-us": "{base_url}?q={query}",
    "fastenal-us": "{base_url}/products?term={query}",
    "mcmaster-us": "{base_url}/search/results.html?Ntt={query}",
    "conrad-de": "{base_url}/de/search.html?search={query}",
    "efc-pe": "{base_url}/search?q={query}",
    "farnell-uk": "{base_url}/search?st={query}",
    "zoro-us": "{base_url}?q={query}",
    "misumi-mx": "{base_url}/vona2/result/?Keyword={query}",
    "rexel-fr": "{base_url}/recherche?q={query}",
    "hoffmann-de": "{base_url}/search?query={query}",
}

URL_TEMPLATES_BY_TYPE: dict[str, str] = {
    SourceType.BRAND_DIRECT.value: "{base_url}/search?q={query}",
    SourceType.RETAIL_SPECIALIZED.value: "{base_url}/search?q={query}",
}


def encode_query(product: str) -> str:
    """Percent-encode a product query the way browsers encode URI components."""
    return quote(product.strip(), safe="!~*'()")


def build_search_url(source: SourceDescriptor, product: str) -> str:
    """Build the search URL for ``product`` on ``source``."""
    template = (
        URL_TEMPLATES_BY_ID.get(source.id)
        or URL_TEMPLATES_BY_TYPE.get(source.type)
        or DEFAULT_TEMPLATE
    )
    return template.format(base_url=source.base_url.rstrip("/"), query=encode_query(product))


__all__ = [
    "DEFAULT_TEMPLATE",
    "URL_TEMPLATES_BY_ID",
    "URL_TEMPLATES_BY_TYPE",
    "encode_query",
    "build_search_url",
]
