"""
Validation service for search requests.

Turns raw request parameters (query-string style or CLI options) into a
``SearchRequest``, or a structured ``ErrorResponse`` describing the
expected shape.
"""

from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from pricescout.models.schemas import ErrorDetail, ErrorResponse, ErrorType, SearchRequest
from pricescout.utils.logger import get_logger
from pricescout.utils.retry import InvalidRequestError

logger = get_logger(__name__)


SEARCH_EXAMPLE = "/search?product=taladro%20bosch&country=PE"
GLOBAL_SEARCH_EXAMPLE = "/search/global?product=multimetro%20fluke&countries=PE,US,MX"

_TRUE_VALUES = {"1", "true", "yes", "y", "on", "si", "sí"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


class ValidationService:
    """Service for validating search request parameters."""

    def parse_search_params(self, params: dict[str, Any], global_search: bool = False) -> SearchRequest:
        """
        Validate raw parameters and build a SearchRequest.

        ``countries`` may be a list or a comma-separated string. A global
        search without ``countries`` searches every source.

        Raises:
            InvalidRequestError: If ``product`` is missing or a value is malformed.
        """
        example = GLOBAL_SEARCH_EXAMPLE if global_search else SEARCH_EXAMPLE
        product = params.get("product")
        if product is None or not str(product).strip():
            raise InvalidRequestError(
                'Parámetro "product" es requerido',
                field="product",
                example=example,
            )

        data: dict[str, Any] = {"product": str(product)}
        if params.get("country"):
            data["country"] = params["country"]

        countries = params.get("countries")
        if countries is not None:
            data["countries"] = countries
        elif global_search:
            data["countries"] = ["ALL"]

        if params.get("max_results") not in (None, ""):
            data["max_results"] = params["max_results"]
        for flag in ("alternatives", "official_only"):
            if params.get(flag) is not None:
                data[flag] = _as_bool(params[flag])

        try:
            return SearchRequest(**data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            logger.warning("search_request_invalid", error=str(e), field=field)
            raise InvalidRequestError(
                f"Invalid value for '{field}': {first.get('msg')}",
                field=field,
                example=example,
            ) from e

    def build_error_response(self, error: InvalidRequestError) -> ErrorResponse:
        """Structured payload for an invalid request."""
        return ErrorResponse(
            error_type=ErrorType.VALIDATION_ERROR,
            message=str(error),
            details=[ErrorDetail(field=error.field, message=str(error), code="INVALID_REQUEST")],
            example=error.example,
        )

    def validate(
        self,
        params: dict[str, Any],
        global_search: bool = False,
    ) -> tuple[Optional[SearchRequest], Optional[ErrorResponse]]:
        """Return ``(request, None)`` on success or ``(None, error)``."""
        try:
            return self.parse_search_params(params, global_search=global_search), None
        except InvalidRequestError as e:
            return None, self.build_error_response(e)
