"""
Product-match validators.

A validator receives ``(query, listing)`` pairs and returns one verdict per
pair, same length and same order, with ``confidence_score`` in [0, 1].

Validators:
    - HeuristicProductValidator: word-overlap and brand heuristic, no I/O
    - ClaudeProductValidator: asks Claude for JSON verdicts in one batch call
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from pricescout.adapters.extraction import query_terms
from pricescout.config.settings import Settings, get_settings
from pricescout.models.schemas import ValidationRequest, ValidationResult
from pricescout.services.llm_service import ClaudeService, ClaudeServiceError, ResponseParseError
from pricescout.utils.logger import get_logger
from pricescout.utils.retry import APIKeyError, ValidationCollaboratorError, async_retry

logger = get_logger(__name__)


# =============================================================================
# Contract
# =============================================================================

class ProductValidator(ABC):
    """Batch product-match validator contract."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def batch_validate(self, requests: list[ValidationRequest]) -> list[ValidationResult]:
        """Return one verdict per request, in request order."""
        pass

    async def close(self) -> None:
        """Release resources. No-op by default."""


# =============================================================================
# Heuristic Validator
# =============================================================================

COMMON_BRANDS = [
    "bosch", "makita", "dewalt", "stanley", "3m", "caterpillar",
    "milwaukee", "fluke", "klein tools",
]

MODEL_PATTERNS = [
    re.compile(r"modelo\s+([a-z0-9\-]+)", re.IGNORECASE),
    re.compile(r"model\s+([a-z0-9\-]+)", re.IGNORECASE),
    re.compile(r"\b([a-z]{2,4}\d{2,4}[a-z]?)\b", re.IGNORECASE),  # GSB120, DWE7491
    re.compile(r"\b(v\d{2})\b", re.IGNORECASE),  # V20
]


def extract_model(product_text: str) -> Optional[str]:
    """Model designator found in a product name, upper-cased."""
    for pattern in MODEL_PATTERNS:
        match = pattern.search(product_text)
        if match:
            return match.group(1).upper()
    return None


class HeuristicProductValidator(ProductValidator):
    """
    Scores matches from word overlap, brand agreement and a valid price.

    ``0.6 * word_match_ratio + 0.3 (brand confirmed) + 0.1 (price > 0)``;
    an exact match needs a score of at least 0.85 and 70% word overlap.
    """

    @property
    def name(self) -> str:
        return "heuristic"

    def validate(self, request: ValidationRequest) -> ValidationResult:
        query_lower = request.query.lower()
        product_lower = request.product_name.lower()

        terms = query_terms(request.query)
        ratio = (sum(1 for t in terms if t in product_lower) / len(terms)) if terms else 0.0

        detected = next(
            (b for b in COMMON_BRANDS if b in query_lower or b in product_lower),
            None,
        )
        brand_match = bool(detected) and (
            detected in (request.brand or "").lower() or detected in product_lower
        )

        score = ratio * 0.6
        if brand_match:
            score += 0.3
        if request.price and request.price > 0:
            score += 0.1
        score = round(min(score, 1.0), 2)

        extracted_brand = request.brand
        if detected:
            extracted_brand = request.brand if brand_match and request.brand else detected.title()

        return ValidationResult(
            is_exact_match=score >= 0.85 and ratio >= 0.7,
            confidence_score=score,
            extracted_brand=extracted_brand,
            extracted_model=extract_model(product_lower),
            reasoning=(
                f"Heuristic: {round(ratio * 100)}% word match, "
                f"brand {'confirmed' if brand_match else 'unconfirmed'}"
            ),
            provider=self.name,
        )

    async def batch_validate(self, requests: list[ValidationRequest]) -> list[ValidationResult]:
        results = [self.validate(r) for r in requests]
        if results:
            logger.info(
                "batch_validation_completed",
                provider=self.name,
                total=len(results),
                exact_matches=sum(1 for r in results if r.is_exact_match),
                avg_confidence=round(sum(r.confidence_score for r in results) / len(results), 2),
            )
        return results


# =============================================================================
# Claude Validator
# =============================================================================

VALIDATION_SYSTEM_PROMPT = """You are a procurement analyst matching marketplace \
listings to a buyer's product query. Judge each listing strictly: same product, \
same brand, correct model, plausible price. Reply with JSON only."""

VALIDATION_PROMPT_TEMPLATE = """Evaluate whether each listing is exactly the product searched for.

## Search query
"{query}"

## Listings
{listings}

## Output
Return a JSON array with exactly {count} objects, in the same order as the listings:
[
  {{
    "index": 0,
    "is_exact_match": true,
    "confidence_score": 0.0,
    "extracted_brand": "brand or null",
    "extracted_model": "model or null",
    "reasoning": "short explanation"
  }}
]
confidence_score must be between 0.0 and 1.0."""


class _ClaudeVerdict(ValidationResult):
    index: Optional[int] = None


class ClaudeProductValidator(ProductValidator):
    """
    Validates a whole batch with one Claude request per query.

    Raises ``ValidationCollaboratorError`` on API failure, unparseable
    output, or a verdict count that does not match the batch.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        service: Optional[ClaudeService] = None,
    ):
        self.settings = settings or get_settings()
        self.service = service or ClaudeService(settings=self.settings)
        self._adapter = TypeAdapter(list[_ClaudeVerdict])

    @property
    def name(self) -> str:
        return "claude"

    def _build_prompt(self, query: str, requests: list[ValidationRequest]) -> str:
        lines = [
            json.dumps(
                {
                    "index": i,
                    "product_name": r.product_name,
                    "brand": r.brand,
                    "price": r.price,
                    "currency": r.currency,
                    "source_type": r.source_type,
                },
                ensure_ascii=False,
            )
            for i, r in enumerate(requests)
        ]
        return VALIDATION_PROMPT_TEMPLATE.format(
            query=query,
            listings="\n".join(lines),
            count=len(requests),
        )

    @async_retry(max_attempts=2, backoff_factor=1.0, exceptions=(ResponseParseError,))
    async def _request_verdicts(self, prompt: str):
        """Ask Claude for verdicts; a malformed reply is retried once."""
        return await self.service.generate_json(prompt, system=VALIDATION_SYSTEM_PROMPT)

    async def _validate_group(self, query: str, requests: list[ValidationRequest]) -> list[ValidationResult]:
        prompt = self._build_prompt(query, requests)
        try:
            raw = await self._request_verdicts(prompt)
            verdicts = self._adapter.validate_python(raw)
        except (ClaudeServiceError, PydanticValidationError) as e:
            raise ValidationCollaboratorError(f"Claude validation failed: {e}") from e

        if len(verdicts) != len(requests):
            raise ValidationCollaboratorError(
                f"Claude returned {len(verdicts)} verdicts for {len(requests)} listings"
            )

        if all(v.index is not None for v in verdicts):
            verdicts = sorted(verdicts, key=lambda v: v.index)

        return [
            ValidationResult(**v.model_dump(exclude={"index", "provider"}), provider=self.name)
            for v in verdicts
        ]

    async def batch_validate(self, requests: list[ValidationRequest]) -> list[ValidationResult]:
        if not requests:
            return []

        # Group by query so each prompt carries a single search intent
        groups: dict[str, list[int]] = {}
        for i, r in enumerate(requests):
            groups.setdefault(r.query, []).append(i)

        results: list[Optional[ValidationResult]] = [None] * len(requests)
        for query, indices in groups.items():
            group_results = await self._validate_group(query, [requests[i] for i in indices])
            for i, result in zip(indices, group_results):
                results[i] = result

        logger.info(
            "batch_validation_completed",
            provider=self.name,
            total=len(results),
            exact_matches=sum(1 for r in results if r and r.is_exact_match),
        )
        return [r for r in results if r is not None]

    async def close(self) -> None:
        await self.service.close()


# =============================================================================
# Factory
# =============================================================================

def create_product_validator(settings: Optional[Settings] = None) -> ProductValidator:
    """Claude validator when enabled and keyed, heuristic otherwise."""
    settings = settings or get_settings()
    if settings.get_validator_provider() == "claude":
        try:
            return ClaudeProductValidator(settings=settings)
        except (ClaudeServiceError, APIKeyError) as e:
            logger.warning("claude_validator_unavailable", error=str(e), fallback="heuristic")
    return HeuristicProductValidator()


__all__ = [
    "ProductValidator",
    "HeuristicProductValidator",
    "ClaudeProductValidator",
    "create_product_validator",
    "extract_model",
    "COMMON_BRANDS",
]
