"""
Claude API service for LLM-backed product-match validation.

Thin async wrapper around Anthropic's Messages API with retry/backoff,
token accounting and JSON extraction from model replies.

Example:
    >>> async with ClaudeService() as service:
    ...     data = await service.generate_json(prompt, system=SYSTEM_PROMPT)
"""

from __future__ import annotations

import asyncio
import json
import random
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import anthropic
from anthropic import APIError, APIStatusError, RateLimitError

from pricescout.config.settings import Settings, get_settings
from pricescout.utils.logger import get_logger
from pricescout.utils.retry import APIKeyError

logger = get_logger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class TokenUsage:
    """Token usage tracking for a single request."""
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


# =============================================================================
# Custom Exceptions
# =============================================================================

class ClaudeServiceError(Exception):
    """Base exception for Claude service errors."""
    pass


class MaxRetriesExceededError(ClaudeServiceError):
    """Raised when max retries are exceeded."""
    pass


class ResponseParseError(ClaudeServiceError):
    """Raised when a reply does not contain parseable JSON."""

    def __init__(self, message: str, raw_response: str):
        super().__init__(message)
        self.raw_response = raw_response


# =============================================================================
# Main Service Class
# =============================================================================

class ClaudeService:
    """
    Claude API client with retries and usage tracking.

    Attributes:
        settings: Application settings
        client: Anthropic API client
        token_usage_history: List of token usage records
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
        max_retries: Optional[int] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.settings = settings or get_settings()
        self.max_retries = max_retries or self.settings.max_retries

        if client is None:
            if api_key is None:
                if not self.settings.anthropic_api_key:
                    raise APIKeyError("ANTHROPIC_API_KEY is not configured")
                api_key = self.settings.anthropic_api_key.get_secret_value()
            client = anthropic.AsyncAnthropic(api_key=api_key)
        self.client = client

        self.token_usage_history: list[TokenUsage] = []

        logger.info(
            "claude_service_initialized",
            model=self.settings.claude_model,
            max_retries=self.max_retries,
        )

    async def __aenter__(self) -> "ClaudeService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client connection."""
        await self.client.close()

    # =========================================================================
    # Core API Methods
    # =========================================================================

    async def _call_api(
        self,
        messages: list[dict[str, str]],
        system: str = "",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> tuple[str, TokenUsage]:
        """
        Make an API call with retry logic.

        Raises:
            ClaudeServiceError: On non-retryable API errors
            MaxRetriesExceededError: When retries are exhausted
        """
        max_tokens = max_tokens or self.settings.claude_max_tokens
        if temperature is None:
            temperature = self.settings.validation_temperature

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                response = await self.client.messages.create(
                    model=self.settings.claude_model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=system,
                    messages=messages,
                )
                elapsed = time.time() - start_time

                response_text = response.content[0].text
                usage = TokenUsage(
                    input_tokens=response.usage.input_tokens,
                    output_tokens=response.usage.output_tokens,
                    model=self.settings.claude_model,
                )
                self.token_usage_history.append(usage)

                logger.info(
                    "claude_call_succeeded",
                    attempt=attempt + 1,
                    elapsed_seconds=round(elapsed, 2),
                    input_tokens=usage.input_tokens,
                    output_tokens=usage.output_tokens,
                )
                return response_text, usage

            except RateLimitError as e:
                last_error = e
                wait_time = self._calculate_backoff(attempt, base=10)
                logger.warning("claude_rate_limited", attempt=attempt + 1, wait_seconds=wait_time)
                await asyncio.sleep(wait_time)

            except APIStatusError as e:
                last_error = e
                if e.status_code >= 500:
                    wait_time = self._calculate_backoff(attempt)
                    logger.warning(
                        "claude_server_error",
                        attempt=attempt + 1,
                        status_code=e.status_code,
                        wait_seconds=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                elif e.status_code == 401:
                    logger.error("claude_authentication_failed", error=str(e))
                    raise ClaudeServiceError(f"Authentication failed: {e}") from e
                else:
                    logger.error("claude_api_error", status_code=e.status_code, error=str(e))
                    raise ClaudeServiceError(f"API error: {e}") from e

            except APIError as e:
                last_error = e
                wait_time = self._calculate_backoff(attempt)
                logger.warning("claude_api_error_retrying", attempt=attempt + 1, wait_seconds=wait_time)
                await asyncio.sleep(wait_time)

        logger.error("claude_max_retries_exceeded", max_retries=self.max_retries, last_error=str(last_error))
        raise MaxRetriesExceededError(f"Failed after {self.max_retries} attempts: {last_error}")

    async def generate_json(
        self,
        prompt: str,
        system: str = "",
        temperature: Optional[float] = None,
    ) -> Any:
        """
        Ask Claude for a JSON document and parse the reply.

        Raises:
            ResponseParseError: If the reply holds no valid JSON.
        """
        response_text, _ = await self._call_api(
            messages=[{"role": "user", "content": prompt}],
            system=system,
            temperature=temperature,
        )
        json_str = self._extract_json(response_text)
        try:
            return json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"Invalid JSON in reply: {e}", raw_response=response_text) from e

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def _extract_json(self, text: str) -> str:
        """Extract JSON from text that may contain markdown or other content."""
        code_block_pattern = r"```(?:json)?\s*([\s\S]*?)```"
        matches = re.findall(code_block_pattern, text)
        if matches:
            return matches[0].strip()

        json_pattern = r"(\{[\s\S]*\}|\[[\s\S]*\])"
        matches = re.findall(json_pattern, text)
        if matches:
            return max(matches, key=len)

        return text.strip()

    def _calculate_backoff(self, attempt: int, base: float = 1.0) -> float:
        """Calculate exponential backoff with jitter."""
        backoff = base * (2 ** attempt)
        jitter = random.uniform(0, backoff * 0.1)
        return min(backoff + jitter, 60)

    def get_usage_stats(self) -> dict[str, Any]:
        """Get usage statistics for the service."""
        total_tokens = sum(u.total_tokens for u in self.token_usage_history)
        return {
            "total_requests": len(self.token_usage_history),
            "total_tokens": total_tokens,
        }


__all__ = [
    "ClaudeService",
    "TokenUsage",
    "ClaudeServiceError",
    "MaxRetriesExceededError",
    "ResponseParseError",
]
