"""
Live HTML listing adapter.

Fetches a source's search page over HTTP and extracts listings with the CSS
selectors carried by the source descriptor. The adapter is deliberately
generic: it knows no site's markup, only the selectors it is given.

Features:
    - httpx AsyncClient with per-source headers
    - tenacity retry on transport errors
    - Per-source circuit breaker
    - Element-level extraction failures skip one result, not the page
"""

from __future__ import annotations

import time
from typing import Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    wait_exponential,
)

from pricescout.adapters.base import ListingAdapter
from pricescout.adapters.extraction import (
    calculate_confidence_score,
    extract_currency,
    extract_price,
    is_official_match,
)
from pricescout.adapters.urls import build_search_url
from pricescout.config.settings import Settings
from pricescout.models.schemas import Availability, Listing, SearchRequest, SourceDescriptor
from pricescout.utils.logger import get_logger
from pricescout.utils.retry import (
    AppTimeoutError,
    CircuitBreaker,
    ExtractionFailure,
    NetworkError,
    RateLimitError,
    ServiceUnavailableError,
    SourceUnavailableError,
)

logger = get_logger(__name__)


_AVAILABILITY_HINTS: list[tuple[tuple[str, ...], Availability]] = [
    (("agotado", "sin stock", "out of stock", "unavailable", "no disponible"), Availability.OUT_OF_STOCK),
    (("últimas", "ultimas", "limited", "only", "quedan", "pocas"), Availability.LIMITED),
    (("disponible", "in stock", "en stock", "available"), Availability.IN_STOCK),
]


def _stop_after_max_retries(retry_state: RetryCallState) -> bool:
    """Stop once the adapter's configured attempt budget is spent."""
    adapter = retry_state.args[0]
    return retry_state.attempt_number >= max(1, int(adapter.settings.max_retries))


def parse_availability(text: Optional[str]) -> Availability:
    """Map free availability text to an Availability value."""
    if not text:
        return Availability.UNKNOWN
    lowered = text.lower()
    for hints, availability in _AVAILABILITY_HINTS:
        if any(h in lowered for h in hints):
            return availability
    return Availability.UNKNOWN


def _select_text(element: Tag, selector: Optional[str]) -> str:
    if not selector:
        return ""
    found = element.select_one(selector)
    return found.get_text(" ", strip=True) if found else ""


class HttpListingAdapter(ListingAdapter):
    """
    Generic selector-driven HTML adapter.

    Example:
        >>> async with HttpListingAdapter() as adapter:
        ...     listings = await adapter.fetch_listings(source, request)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        failure_threshold: int = 3,
        recovery_timeout: float = 120,
    ):
        super().__init__(settings)
        self._client = client
        self._owns_client = client is None
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._breakers: dict[str, CircuitBreaker] = {}

    @property
    def name(self) -> str:
        return "http"

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(float(self.settings.request_timeout_seconds)),
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=self.settings.max_concurrent_fetches * 2,
                ),
                headers={
                    "User-Agent": self.settings.user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                },
                follow_redirects=True,
            )
            self._owns_client = True

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _breaker(self, source_id: str) -> CircuitBreaker:
        if source_id not in self._breakers:
            self._breakers[source_id] = CircuitBreaker(
                failure_threshold=self._failure_threshold,
                recovery_timeout=self._recovery_timeout,
                name=source_id,
            )
        return self._breakers[source_id]

    @retry(
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        stop=_stop_after_max_retries,
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _get_page(self, url: str, headers: dict[str, str]) -> str:
        response = await self._client.get(url, headers=headers)
        response.raise_for_status()
        return response.text

    async def fetch_listings(
        self,
        source: SourceDescriptor,
        query: SearchRequest,
    ) -> list[Listing]:
        """
        Fetch and parse the search page of ``source``.

        Raises:
            SourceUnavailableError: Network failure, error status or open circuit.
        """
        if not self._client:
            await self.connect()

        url = build_search_url(source, query.product)
        start_time = time.perf_counter()

        try:
            html = await self._breaker(source.id).call(self._get_page, url, source.scraper.headers)
        except httpx.HTTPStatusError as e:
            error_msg = f"HTTP {e.response.status_code}"
            self._update_status(False, error_msg)
            if e.response.status_code == 429:
                raise RateLimitError(source.id, f"rate limit exceeded ({error_msg})") from e
            raise SourceUnavailableError(source.id, error_msg) from e
        except httpx.TimeoutException as e:
            self._update_status(False, str(e))
            raise AppTimeoutError(source.id, f"request timed out ({type(e).__name__})") from e
        except httpx.HTTPError as e:
            self._update_status(False, str(e))
            raise NetworkError(source.id, f"{type(e).__name__}: {e}") from e
        except ServiceUnavailableError as e:
            self._update_status(False, str(e))
            raise SourceUnavailableError(source.id, str(e)) from e

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        listings = self.parse_listings(html, source, query, response_time_ms=elapsed_ms)
        self._update_status(True)

        logger.info(
            "live_fetch_completed",
            source_id=source.id,
            url=url,
            results_count=len(listings),
            duration_ms=round(elapsed_ms, 1),
        )
        return listings

    def parse_listings(
        self,
        html: str,
        source: SourceDescriptor,
        query: SearchRequest,
        response_time_ms: float = 0.0,
    ) -> list[Listing]:
        """Extract up to ``query.max_results`` listings from a result page."""
        hints = source.scraper
        if not (hints.item_selector and hints.name_selector and hints.price_selector):
            logger.warning("source_missing_selectors", source_id=source.id)
            return []

        soup = BeautifulSoup(html, "html.parser")
        listings: list[Listing] = []
        skipped = 0

        for element in soup.select(hints.item_selector):
            try:
                listings.append(self._parse_element(element, source, query, response_time_ms))
            except ExtractionFailure as e:
                skipped += 1
                logger.debug("listing_element_skipped", source_id=source.id, reason=str(e))
                continue
            if len(listings) >= query.max_results:
                break

        if skipped:
            logger.info("listing_elements_skipped", source_id=source.id, skipped=skipped)
        return listings

    def _parse_element(
        self,
        element: Tag,
        source: SourceDescriptor,
        query: SearchRequest,
        response_time_ms: float,
    ) -> Listing:
        hints = source.scraper

        product_name = _select_text(element, hints.name_selector)
        if not product_name:
            raise ExtractionFailure("missing product name")

        price_text = _select_text(element, hints.price_selector)
        price = extract_price(price_text)
        if price <= 0:
            raise ExtractionFailure(f"unparseable price {price_text!r}")

        link = element.select_one(hints.link_selector) if hints.link_selector else element.find("a")
        href = link.get("href") if link else None
        if not href:
            raise ExtractionFailure("missing product link")

        image_url = None
        if hints.image_selector:
            image = element.select_one(hints.image_selector)
            if image:
                src = image.get("src") or image.get("data-src")
                image_url = urljoin(source.base_url, src) if src else None

        brand = _select_text(element, hints.brand_selector) or None
        is_official = is_official_match(product_name, brand, source)

        return Listing(
            source_id=source.id,
            source_name=source.name,
            product_name=product_name,
            brand=brand,
            price=price,
            currency=extract_currency(price_text, source.country),
            url=urljoin(source.base_url, href),
            image_url=image_url,
            availability=parse_availability(_select_text(element, hints.availability_selector)),
            is_official_source=is_official,
            confidence_score=calculate_confidence_score(product_name, query.product, brand, is_official),
            response_time_ms=response_time_ms,
        )


__all__ = ["HttpListingAdapter", "parse_availability"]
