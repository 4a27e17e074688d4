"""
Text extraction helpers shared by listing adapters.

Turns raw scraped text into prices, currency codes, official-source flags
and a heuristic match confidence on the 0-100 scale.
"""

import re
from typing import Optional

from pricescout.models.schemas import SourceDescriptor, clamp_confidence


# =============================================================================
# Price & Currency
# =============================================================================

_PRICE_CHARS = re.compile(r"[^\d.,]")

COUNTRY_CURRENCIES: dict[str, str] = {
    "PE": "PEN",
    "US": "USD",
    "MX": "MXN",
    "AR": "ARS",
    "CL": "CLP",
    "BR": "BRL",
    "CO": "COP",
    "DE": "EUR",
    "FR": "EUR",
    "ES": "EUR",
    "IT": "EUR",
    "UK": "GBP",
    "GB": "GBP",
    "CA": "CAD",
}

# Countries whose local currency is written with a bare "$"
DOLLAR_SIGN_CURRENCIES: dict[str, str] = {
    "US": "USD",
    "MX": "MXN",
    "AR": "ARS",
    "CL": "CLP",
    "CO": "COP",
    "CA": "CAD",
}


def extract_price(text: Optional[str]) -> float:
    """
    Parse a price out of free text.

    Only digits, ``.`` and ``,`` are kept. A comma is read as the decimal
    separator only when the text has no dot; otherwise commas are dropped
    as thousands separators. Unparseable text yields 0.0.

    Example:
        >>> extract_price("S/ 1,234.50")
        1234.5
        >>> extract_price("49,90 €")
        49.9
    """
    if not text:
        return 0.0

    cleaned = _PRICE_CHARS.sub("", text)
    if "." in cleaned:
        cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".", 1).replace(",", "")

    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def extract_currency(text: Optional[str], country: str) -> str:
    """Infer an ISO 4217 code from the price text and the source country."""
    text = text or ""
    country = (country or "").upper()

    if "S/" in text:
        return "PEN"
    if "$" in text and country in DOLLAR_SIGN_CURRENCIES:
        return DOLLAR_SIGN_CURRENCIES[country]
    if "€" in text:
        return "EUR"
    if "£" in text:
        return "GBP"

    return COUNTRY_CURRENCIES.get(country, "USD")


# =============================================================================
# Matching
# =============================================================================

def is_official_match(
    product_name: str,
    brand_text: Optional[str],
    source: SourceDescriptor,
) -> bool:
    """True when an official source carries one of its official brands."""
    if not source.is_official or not source.official_brands:
        return False

    product_lower = (product_name or "").lower()
    brand_lower = (brand_text or "").lower()

    return any(
        brand.lower() in product_lower or (brand_lower and brand.lower() in brand_lower)
        for brand in source.official_brands
    )


def query_terms(query: str) -> list[str]:
    """Significant query words: lower-cased, longer than two characters."""
    return [w for w in query.lower().split() if len(w) > 2]


def calculate_confidence_score(
    product_name: str,
    query: str,
    brand: Optional[str],
    is_official: bool,
) -> int:
    """
    Heuristic match confidence, 0-100.

    70 points scale with the share of query words found in the product
    name, 20 for an official source, 10 for a known brand.
    """
    terms = query_terms(query)
    product_lower = (product_name or "").lower()

    ratio = (sum(1 for t in terms if t in product_lower) / len(terms)) if terms else 0.0
    score = ratio * 70
    if is_official:
        score += 20
    if brand and brand.strip():
        score += 10

    return clamp_confidence(score)


__all__ = [
    "COUNTRY_CURRENCIES",
    "extract_price",
    "extract_currency",
    "is_official_match",
    "query_terms",
    "calculate_confidence_score",
]
