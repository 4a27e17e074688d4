"""
Search pipeline orchestrator using LangGraph.

Runs one product search end to end: selects sources from the registry,
fans out fetches under a concurrency cap, validates matches, filters and
ranks the merged listings and, for multi-country searches, attaches the
arbitrage analysis.

Features:
    - Linear LangGraph StateGraph with a conditional analysis step
    - Bounded fan-out with a per-source timeout
    - Validator fallback to the adapter's heuristic scores
    - Optional in-process response cache
    - Structured logging bound to the search id
    - Testing hooks for step-by-step execution
"""

import asyncio
import operator
import time
from datetime import datetime
from functools import wraps
from typing import Annotated, Any, Callable, Literal, Optional, TypedDict, Union
from uuid import uuid4

from langgraph.graph import END, StateGraph

from pricescout.adapters.service import ListingService, create_listing_service
from pricescout.analyzers.arbitrage_analyzer import ArbitrageAnalyzer
from pricescout.config.settings import Settings, get_settings
from pricescout.models.schemas import (
    ErrorResponse,
    ErrorType,
    Listing,
    SearchRequest,
    SearchResponse,
    SourceDescriptor,
    ValidationRequest,
    ValidationVerdict,
    clamp_confidence,
)
from pricescout.pipeline.ranking import RankingThresholds, filter_listings, sort_listings
from pricescout.registry.source_registry import SourceRegistry
from pricescout.services.cache import SearchCache, generate_search_key
from pricescout.services.product_validator import ProductValidator, create_product_validator
from pricescout.services.validation_service import ValidationService
from pricescout.utils.logger import LogContext, get_logger
from pricescout.utils.retry import ErrorHandler, SourceUnavailableError, ValidationCollaboratorError

logger = get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

VALIDATION_TIMEOUT_SECONDS = 60

# Weight of the newest fetch outcome in a source's health score
SCORE_SMOOTHING = 0.3
SCORE_SUCCESS = 1.0
SCORE_EMPTY = 0.5
SCORE_FAILURE = 0.0


# =============================================================================
# Pipeline State Definition (TypedDict for LangGraph)
# =============================================================================

class SearchStateDict(TypedDict, total=False):
    """
    LangGraph state for one search.

    Models travel serialized; ``errors`` accumulates across nodes.
    """
    search_id: str
    request: dict  # Serialized SearchRequest
    local_country: str

    sources: list[dict]  # Serialized SourceDescriptor, selection order
    listings: list[dict]  # Serialized Listing, fetch order
    results: list[dict]  # Filtered and ranked
    global_analysis: dict | None
    response: dict | None

    source_outcomes: dict  # source id -> "ok" | "empty" | "timeout" | "error"
    validation_provider: str | None

    errors: Annotated[list[str], operator.add]
    step_timings: dict  # Node name -> duration_ms
    started_at: float


# =============================================================================
# Error Classes
# =============================================================================

class PipelineError(Exception):
    """Base exception for pipeline errors."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL_ERROR,
        details: dict | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}
        self.recoverable = recoverable


class StageError(PipelineError):
    """A node failed; carries the stage name for the response."""

    def __init__(self, stage: str, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            error_type=ErrorType.INTERNAL_ERROR,
            details={"stage": stage, **(details or {})},
            recoverable=False,
        )
        self.stage = stage


class StageTimeoutError(PipelineError):
    """Timeout-specific error."""

    def __init__(self, node_name: str, timeout_seconds: float):
        super().__init__(
            message=f"'{node_name}' timed out after {timeout_seconds} seconds",
            error_type=ErrorType.TIMEOUT_ERROR,
            details={"node": node_name, "timeout": timeout_seconds},
            recoverable=True,
        )


# =============================================================================
# Decorators for Node Execution
# =============================================================================

def with_timeout(timeout_seconds: float):
    """Decorator to add timeout to async functions."""
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await asyncio.wait_for(
                    func(*args, **kwargs),
                    timeout=timeout_seconds,
                )
            except asyncio.TimeoutError:
                raise StageTimeoutError(func.__name__, timeout_seconds)
        return wrapper
    return decorator


def track_timing(func: Callable):
    """Decorator to track node execution timing and tag failures with the stage."""
    @wraps(func)
    async def wrapper(self, state: SearchStateDict) -> dict[str, Any]:
        start_time = time.time()
        node_name = func.__name__.strip("_").replace("_node", "")

        logger.debug("node_started", stage=node_name)

        try:
            result = await func(self, state)
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "node_failed",
                stage=node_name,
                duration_ms=duration_ms,
                error_type=ErrorHandler.categorize_error(e),
                error=str(e),
            )
            if isinstance(e, StageError):
                raise
            raise StageError(node_name, str(e)) from e

        duration_ms = int((time.time() - start_time) * 1000)
        step_timings = state.get("step_timings", {}).copy()
        step_timings[node_name] = duration_ms
        result["step_timings"] = step_timings

        logger.debug("node_completed", stage=node_name, duration_ms=duration_ms)
        return result

    return wrapper


# =============================================================================
# Main Pipeline Class
# =============================================================================

class SearchPipeline:
    """
    LangGraph-based product search pipeline.

    ``search`` never raises for source, validator or stage failures: the
    worst case is a well-formed empty response whose ``errors`` name the
    failing stage.

    Example:
        >>> async with SearchPipeline() as pipeline:
        ...     response = await pipeline.search(SearchRequest(product="taladro bosch", country="PE"))
        ...     print(response.total_results)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[SourceRegistry] = None,
        listing_service: Optional[ListingService] = None,
        product_validator: Optional[ProductValidator] = None,
        cache: Optional[SearchCache] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Application settings (uses defaults if not provided)
            registry: Source registry (loaded from settings if not provided)
            listing_service: Fetch layer (built from settings if not provided)
            product_validator: Match validator (heuristic unless AI validation is on)
            cache: Response cache; created when caching is enabled
        """
        self.settings = settings or get_settings()
        self.registry = registry or SourceRegistry.from_settings(self.settings)
        self.listing_service = listing_service or create_listing_service(
            settings=self.settings,
            b2b_config=self.registry.get_b2b_config(),
        )
        self.product_validator = product_validator or create_product_validator(self.settings)
        self.analyzer = ArbitrageAnalyzer(self.registry)
        self.validator = ValidationService()

        if cache is None and self.settings.cache_enabled:
            cache = SearchCache(default_ttl=self.settings.cache_ttl_seconds)
        self.cache = cache

        self.thresholds = RankingThresholds(
            min_confidence=self.settings.min_confidence_threshold,
            exact_match=self.settings.exact_match_threshold,
        )

        # Build graph
        self._graph = self._build_graph()

        # Testing hooks
        self._mock_nodes: dict[str, Callable] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_graph(self) -> StateGraph:
        """
        Build the LangGraph state machine.

        Graph structure:
            select_sources -> fetch_all -> validate -> filter -> sort
                                                                  |
                                                     +------------+
                                                     |            |
                                                     v            |
                                              analyze_global      |
                                                     |            |
                                                     v            v
                                                    respond <-----+
                                                     |
                                                     v
                                                    END
        """
        graph = StateGraph(SearchStateDict)

        graph.add_node("select_sources", self._select_sources_node)
        graph.add_node("fetch_all", self._fetch_all_node)
        graph.add_node("validate", self._validate_node)
        graph.add_node("filter", self._filter_node)
        graph.add_node("sort", self._sort_node)
        graph.add_node("analyze_global", self._analyze_global_node)
        graph.add_node("respond", self._respond_node)

        graph.set_entry_point("select_sources")

        graph.add_edge("select_sources", "fetch_all")
        graph.add_edge("fetch_all", "validate")
        graph.add_edge("validate", "filter")
        graph.add_edge("filter", "sort")

        graph.add_conditional_edges(
            "sort",
            self._route_after_sort,
            {
                "analyze": "analyze_global",
                "respond": "respond",
            },
        )

        graph.add_edge("analyze_global", "respond")
        graph.add_edge("respond", END)

        return graph.compile()

    def _route_after_sort(self, state: SearchStateDict) -> Literal["analyze", "respond"]:
        """Analyze only global searches that produced results."""
        request = SearchRequest.model_validate(state["request"])
        if request.is_global and state.get("results"):
            return "analyze"
        return "respond"

    # =========================================================================
    # Node Implementations
    # =========================================================================

    @track_timing
    async def _select_sources_node(self, state: SearchStateDict) -> dict[str, Any]:
        """Node 1: pick the sources for the request's country or countries."""
        request = SearchRequest.model_validate(state["request"])

        if request.is_global:
            sources = self.registry.get_global_sources(request.countries)
        else:
            sources = self.registry.get_sources_by_country(state["local_country"])

        logger.info(
            "sources_selected",
            count=len(sources),
            source_ids=[s.id for s in sources],
            is_global=request.is_global,
        )
        return {"sources": [s.model_dump() for s in sources]}

    @track_timing
    async def _fetch_all_node(self, state: SearchStateDict) -> dict[str, Any]:
        """
        Node 2: fetch every selected source concurrently.

        - At most ``max_concurrent_fetches`` fetches in flight
        - Each fetch bounded by ``source_timeout_seconds``
        - Timeouts and errors contribute no listings
        - Listings merged in selection order, whatever the completion order
        """
        request = SearchRequest.model_validate(state["request"])
        sources = [SourceDescriptor.model_validate(s) for s in state.get("sources", [])]

        if "fetch_all" in self._mock_nodes:
            listings = await self._mock_nodes["fetch_all"](state)
            return {"listings": [l.model_dump() for l in listings]}

        if not sources:
            return {"listings": [], "source_outcomes": {}}

        semaphore = asyncio.Semaphore(max(1, int(self.settings.max_concurrent_fetches)))
        outcomes = await asyncio.gather(
            *(self._fetch_source(source, request, semaphore) for source in sources)
        )

        listings: list[Listing] = []
        source_outcomes: dict[str, str] = {}
        errors: list[str] = []
        for source, (source_listings, status, error) in zip(sources, outcomes):
            listings.extend(source_listings)
            source_outcomes[source.id] = status
            if error:
                errors.append(f"fetch_all: {error}")

        logger.info(
            "fetch_completed",
            sources=len(sources),
            listings=len(listings),
            failed=sum(1 for s in source_outcomes.values() if s in ("timeout", "error")),
        )
        return {
            "listings": [l.model_dump() for l in listings],
            "source_outcomes": source_outcomes,
            "errors": errors,
        }

    async def _fetch_source(
        self,
        source: SourceDescriptor,
        request: SearchRequest,
        semaphore: asyncio.Semaphore,
    ) -> tuple[list[Listing], str, Optional[str]]:
        """Fetch one source; returns ``(listings, status, error)``."""
        timeout = self.settings.source_timeout_seconds
        error: Optional[str] = None

        async with semaphore:
            start_time = time.perf_counter()
            try:
                listings = await asyncio.wait_for(
                    self.listing_service.fetch_listings(source, request),
                    timeout=timeout,
                )
                status = "ok" if listings else "empty"
            except asyncio.TimeoutError:
                listings, status = [], "timeout"
                error = f"{source.id} timed out after {timeout}s"
                logger.warning("source_timeout", stage="fetch_all", source_id=source.id, timeout=timeout)
            except Exception as e:
                listings, status = [], "error"
                # SourceUnavailableError messages already lead with the id
                error = str(e) if isinstance(e, SourceUnavailableError) else f"{source.id}: {e}"
                logger.error(
                    "source_fetch_failed",
                    stage="fetch_all",
                    source_id=source.id,
                    error_type=ErrorHandler.categorize_error(e),
                    error=str(e),
                )
            elapsed_ms = (time.perf_counter() - start_time) * 1000

        self._record_outcome(source, status, elapsed_ms)
        return listings, status, error

    def _record_outcome(self, source: SourceDescriptor, status: str, elapsed_ms: float) -> None:
        """Fold one fetch outcome into the source's health score."""
        outcome = {
            "ok": SCORE_SUCCESS,
            "empty": SCORE_EMPTY,
        }.get(status, SCORE_FAILURE)

        current = self.registry.get_source_by_id(source.id) or source
        score = (1 - SCORE_SMOOTHING) * current.score + SCORE_SMOOTHING * outcome
        self.registry.update_score(source.id, score, response_time_ms=round(elapsed_ms, 1))

    @track_timing
    async def _validate_node(self, state: SearchStateDict) -> dict[str, Any]:
        """
        Node 3: one batch validation call over all fetched listings.

        Verdict scores (0-1) become listing confidence (0-100). Any
        collaborator failure keeps the adapter's scores.
        """
        listings = [Listing.model_validate(l) for l in state.get("listings", [])]
        if not listings:
            return {"validation_provider": None}

        request = SearchRequest.model_validate(state["request"])
        source_types = {s["id"]: s.get("type") for s in state.get("sources", [])}

        requests = [
            ValidationRequest(
                query=request.product,
                product_name=l.product_name,
                brand=l.brand,
                price=l.price,
                currency=l.currency,
                source_type=source_types.get(l.source_id),
            )
            for l in listings
        ]

        provider = self.product_validator.name
        try:
            if "validate" in self._mock_nodes:
                verdicts = await self._mock_nodes["validate"](requests)
            else:
                verdicts = await self._run_validator(requests)
            if len(verdicts) != len(requests):
                raise ValidationCollaboratorError(
                    f"validator returned {len(verdicts)} verdicts for {len(requests)} listings"
                )
        except Exception as e:
            logger.warning(
                "validation_fallback",
                stage="validate",
                provider=provider,
                error_type=ErrorHandler.categorize_error(e),
                error=str(e),
            )
            return {
                "validation_provider": None,
                "errors": [f"validate: {provider} validator failed, heuristic scores kept ({e})"],
            }

        validated = [
            listing.model_copy(update={
                "confidence_score": clamp_confidence(round(verdict.confidence_score * 100)),
                "brand": verdict.extracted_brand or listing.brand,
                "model": verdict.extracted_model or listing.model,
                "validation": ValidationVerdict(
                    is_exact_match=verdict.is_exact_match,
                    reasoning=verdict.reasoning,
                    provider=verdict.provider,
                ),
            })
            for listing, verdict in zip(listings, verdicts)
        ]

        return {
            "listings": [l.model_dump() for l in validated],
            "validation_provider": provider,
        }

    @with_timeout(VALIDATION_TIMEOUT_SECONDS)
    async def _run_validator(self, requests: list[ValidationRequest]):
        return await self.product_validator.batch_validate(requests)

    @track_timing
    async def _filter_node(self, state: SearchStateDict) -> dict[str, Any]:
        """Node 4: drop invalid, unofficial (on request) and low-confidence listings."""
        request = SearchRequest.model_validate(state["request"])
        listings = [Listing.model_validate(l) for l in state.get("listings", [])]

        kept = filter_listings(listings, request, self.thresholds)

        logger.info("listings_filtered", before=len(listings), after=len(kept))
        return {"results": [l.model_dump() for l in kept]}

    @track_timing
    async def _sort_node(self, state: SearchStateDict) -> dict[str, Any]:
        """Node 5: rank results; fetch order breaks remaining ties."""
        results = [Listing.model_validate(l) for l in state.get("results", [])]
        return {"results": [l.model_dump() for l in sort_listings(results)]}

    @track_timing
    async def _analyze_global_node(self, state: SearchStateDict) -> dict[str, Any]:
        """Node 6: arbitrage analysis for multi-country searches."""
        results = [Listing.model_validate(l) for l in state.get("results", [])]
        analysis = self.analyzer.analyze(results, state["local_country"])
        return {"global_analysis": analysis.model_dump() if analysis else None}

    @track_timing
    async def _respond_node(self, state: SearchStateDict) -> dict[str, Any]:
        """Node 7: assemble the response."""
        request = SearchRequest.model_validate(state["request"])
        response_time_ms = (time.time() - state.get("started_at", time.time())) * 1000

        response = SearchResponse(
            search_id=state["search_id"],
            query=request.product,
            is_global_search=request.is_global,
            total_sources=len(state.get("sources", [])),
            results=state.get("results", []),
            global_analysis=state.get("global_analysis"),
            response_time_ms=round(response_time_ms, 1),
            errors=state.get("errors", []),
        )
        return {"response": response.model_dump()}

    # =========================================================================
    # Public API
    # =========================================================================

    def _cache_key(self, request: SearchRequest, local_country: str) -> str:
        """
        Cache key for a request.

        Extends ``generate_search_key`` with everything else that changes
        the response: the home country of a global search and the filter flags.
        """
        if request.is_global:
            key = generate_search_key(
                request.product,
                max_results=request.max_results,
                countries=request.countries,
            )
            key += f":from={local_country}"
        else:
            key = generate_search_key(request.product, local_country, request.max_results)

        if request.alternatives:
            key += ":alt"
        if request.official_only:
            key += ":official"
        return key

    async def search(self, request: SearchRequest) -> SearchResponse:
        """
        Execute a search.

        Args:
            request: Validated search request

        Returns:
            SearchResponse; empty with stage-tagged ``errors`` if a stage failed
        """
        search_id = str(uuid4())
        started_at = time.time()
        local_country = (request.country or self.settings.default_country).upper()

        with LogContext(search_id=search_id):
            logger.info(
                "search_started",
                product=request.product,
                country=local_country,
                countries=request.countries,
            )

            cache_key = self._cache_key(request, local_country) if self.cache else None
            if cache_key:
                cached = await self.cache.get(cache_key)
                if cached is not None:
                    logger.info("search_cache_hit", cache_key=cache_key)
                    return cached.model_copy(deep=True, update={
                        "search_id": search_id,
                        "cache_hit": True,
                        "timestamp": datetime.utcnow(),
                        "response_time_ms": round((time.time() - started_at) * 1000, 1),
                    })

            initial_state: SearchStateDict = {
                "search_id": search_id,
                "request": request.model_dump(),
                "local_country": local_country,
                "sources": [],
                "listings": [],
                "results": [],
                "global_analysis": None,
                "response": None,
                "source_outcomes": {},
                "validation_provider": None,
                "errors": [],
                "step_timings": {},
                "started_at": started_at,
            }

            try:
                final_state = await self._graph.ainvoke(initial_state)
                response = SearchResponse.model_validate(final_state["response"])
            except Exception as e:
                stage = e.stage if isinstance(e, StageError) else "pipeline"
                logger.error(
                    "search_failed",
                    stage=stage,
                    error_type=ErrorHandler.categorize_error(e),
                    error=str(e),
                )
                return SearchResponse(
                    search_id=search_id,
                    query=request.product,
                    is_global_search=request.is_global,
                    response_time_ms=round((time.time() - started_at) * 1000, 1),
                    errors=[f"{stage}: {e}"],
                )

            logger.info(
                "search_completed",
                total_sources=response.total_sources,
                total_results=response.total_results,
                response_time_ms=response.response_time_ms,
                step_timings=final_state.get("step_timings", {}),
            )

            if cache_key:
                await self.cache.set(cache_key, response.model_copy(deep=True))

            return response

    async def handle_request(
        self,
        params: dict[str, Any],
        global_search: bool = False,
    ) -> Union[SearchResponse, ErrorResponse]:
        """
        Validate raw request parameters and run the search.

        Returns:
            SearchResponse, or ErrorResponse when the parameters are invalid
        """
        request, error = self.validator.validate(params, global_search=global_search)
        if error is not None:
            logger.info("search_rejected", error_type=error.error_type, message=error.message)
            return error
        return await self.search(request)

    async def run_step(
        self,
        step_name: str,
        state: SearchStateDict,
    ) -> SearchStateDict:
        """
        Execute a single pipeline step (for testing/debugging).

        Args:
            step_name: Name of the step to execute
            state: Current pipeline state

        Returns:
            Updated pipeline state
        """
        node_methods = {
            "select_sources": self._select_sources_node,
            "fetch_all": self._fetch_all_node,
            "validate": self._validate_node,
            "filter": self._filter_node,
            "sort": self._sort_node,
            "analyze_global": self._analyze_global_node,
            "respond": self._respond_node,
        }

        if step_name not in node_methods:
            raise ValueError(f"Unknown step: {step_name}")

        result = await node_methods[step_name](state)

        errors = state.get("errors", []) + result.pop("errors", [])
        return {**state, **result, "errors": errors}

    # =========================================================================
    # Testing Hooks
    # =========================================================================

    def mock_node(self, node_name: str, mock_func: Callable) -> None:
        """
        Register a mock for a collaborator call (testing).

        ``fetch_all`` receives the state and returns listings; ``validate``
        receives the validation requests and returns verdicts.
        """
        self._mock_nodes[node_name] = mock_func

    def clear_mocks(self) -> None:
        """Clear all registered mocks."""
        self._mock_nodes.clear()

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def close(self) -> None:
        """Close all service connections."""
        try:
            await self.listing_service.close()
            await self.product_validator.close()
        except Exception as e:
            logger.warning("pipeline_close_failed", error=str(e))


# =============================================================================
# Convenience Functions
# =============================================================================

def create_search_pipeline(
    settings: Optional[Settings] = None,
    registry: Optional[SourceRegistry] = None,
) -> SearchPipeline:
    """Create a pipeline wired from settings."""
    return SearchPipeline(settings=settings, registry=registry)


async def search_products(
    product: str,
    country: Optional[str] = None,
    countries: Optional[list[str]] = None,
    settings: Optional[Settings] = None,
    **options: Any,
) -> SearchResponse:
    """
    Convenience function for a one-off search.

    Example:
        >>> response = await search_products("multimetro fluke", countries=["PE", "US"])
        >>> response.global_analysis.savings_analysis.recommended_action
        'importar'
    """
    request = SearchRequest(product=product, country=country, countries=countries, **options)
    async with SearchPipeline(settings=settings) as pipeline:
        return await pipeline.search(request)


__all__ = [
    "SearchPipeline",
    "SearchStateDict",
    "PipelineError",
    "StageError",
    "StageTimeoutError",
    "create_search_pipeline",
    "search_products",
]
