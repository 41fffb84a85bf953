"""LLM Layer — every classification, edit and drafting call goes through here.

Uses AsyncAnthropic + Instructor for structured outputs, so each call site
declares a Pydantic response model and receives a validated instance.
Malformed model output surfaces as an exception that the pipeline treats
as an item-level failure.

Transport errors (rate limits, dropped connections, 5xx) are retried with
exponential backoff. A run that keeps failing trips the circuit breaker, so
the remaining entries of that run fail fast instead of each waiting out
the full retry schedule.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import anthropic
import instructor
from pydantic import BaseModel

from playbook_sync.config import MODEL_MAP, ModelTier, settings

logger = logging.getLogger(__name__)

# USD per million tokens
PRICES_PER_MTOK: dict[str, dict[str, float]] = {
    "opus":   {"input": 15.0, "output": 75.0, "cache_read": 1.50},
    "sonnet": {"input": 3.0,  "output": 15.0, "cache_read": 0.30},
    "haiku":  {"input": 0.80, "output": 4.0,  "cache_read": 0.08},
}

RETRYABLE_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)


@dataclass
class LLMResponse:
    """Usage and cost of one call; accumulated into the run's llm_cost."""

    model_version: str = ""          # Exact model ID from API response
    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0
    stop_reason: str = ""
    cost: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CircuitBreakerOpenError(Exception):
    """Raised instead of calling the API while the breaker is open."""


class CircuitBreaker:
    """Consecutive-failure breaker for the Anthropic API.

    CLOSED → OPEN after ``failure_threshold`` failures in a row; OPEN →
    HALF_OPEN once ``reset_timeout`` seconds have passed, letting one request
    through. Any success closes it again.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, reset_timeout: float = 60.0) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._state = self.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0

    @property
    def state(self) -> str:
        if self._state == self.OPEN and time.monotonic() - self._opened_at >= self.reset_timeout:
            self._state = self.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state != self.OPEN

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = self.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._failure_count >= self.failure_threshold:
            if self._state != self.OPEN:
                logger.warning("LLM circuit breaker open after %d consecutive failures", self._failure_count)
            self._state = self.OPEN
            self._opened_at = time.monotonic()


async def _retry_with_backoff(
    coro_factory,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    circuit_breaker: CircuitBreaker | None = None,
):
    """Await ``coro_factory()``, retrying RETRYABLE_ERRORS with exponential backoff.

    Anything else (auth, bad request, Instructor validation) is raised on
    the first attempt. Every failure counts against the circuit breaker.
    """
    if circuit_breaker is not None and not circuit_breaker.allow_request():
        raise CircuitBreakerOpenError("LLM circuit breaker is open; skipping call")

    attempt = 0
    while True:
        try:
            result = await coro_factory()
        except RETRYABLE_ERRORS as e:
            if circuit_breaker is not None:
                circuit_breaker.record_failure()
            if attempt >= max_retries:
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            attempt += 1
            logger.warning(
                "LLM call failed (%s), retry %d/%d in %.1fs",
                type(e).__name__, attempt, max_retries, delay,
            )
            await asyncio.sleep(delay)
        except Exception:
            if circuit_breaker is not None:
                circuit_breaker.record_failure()
            raise
        else:
            if circuit_breaker is not None:
                circuit_breaker.record_success()
            return result


class LLMLayer:
    """Anthropic access for the sync stages.

    Usage:
        llm = LLMLayer()
        classification, meta = await llm.complete_structured(
            messages=[{"role": "user", "content": prompt}],
            model_tier="opus",
            response_model=Classification,
            system=llm.build_cached_system(SYSTEM_PROMPT),
        )
    """

    def __init__(self) -> None:
        self.raw_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.client = instructor.from_anthropic(self.raw_client)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.llm_breaker_failures,
            reset_timeout=settings.llm_breaker_reset_seconds,
        )

    async def complete_structured(
        self,
        messages: list[dict],
        model_tier: ModelTier,
        response_model: type[BaseModel],
        system: str | list[dict] | None = None,
        max_tokens: int | None = None,
        max_retries: int | None = None,
        temperature: float | None = None,
    ) -> tuple[BaseModel, LLMResponse]:
        """One structured call, validated against ``response_model``.

        Args:
            messages: Conversation messages.
            model_tier: "opus", "sonnet", or "haiku".
            response_model: Pydantic model the reply must parse into.
            system: System prompt (str or list of cache_control blocks).
            max_tokens: Max output tokens.
            max_retries: Instructor re-asks on validation failure.
            temperature: Sampling temperature (0.0 = deterministic).

        Returns:
            Tuple of (validated model instance, LLMResponse metadata).
        """
        kwargs: dict[str, Any] = {
            "model": MODEL_MAP[model_tier],
            "max_tokens": max_tokens or settings.default_max_tokens,
            "messages": messages,
            "response_model": response_model,
            "max_retries": max_retries or settings.default_max_retries,
            "temperature": settings.default_temperature if temperature is None else temperature,
        }
        if system:
            kwargs["system"] = system

        result, raw_response = await _retry_with_backoff(
            lambda: self.client.messages.create_with_completion(**kwargs),
            max_retries=settings.llm_api_retries,
            circuit_breaker=self.circuit_breaker,
        )

        meta = self._extract_metadata(raw_response, model_tier)
        logger.debug(
            "LLM %s → %s (%d in / %d cached / %d out, $%.4f)",
            model_tier, response_model.__name__, meta.input_tokens,
            meta.cached_input_tokens, meta.output_tokens, meta.cost,
        )
        return result, meta

    def _extract_metadata(self, response: anthropic.types.Message, model_tier: ModelTier) -> LLMResponse:
        usage = response.usage
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        cached = getattr(usage, "cache_read_input_tokens", 0) or 0
        return LLMResponse(
            model_version=response.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cached_input_tokens=cached,
            stop_reason=response.stop_reason or "",
            cost=self.estimate_cost(model_tier, input_tokens, output_tokens, cached),
        )

    def build_cached_system(self, text: str) -> list[dict]:
        """System prompt as a single ephemeral-cached block.

        The classifier sends the same system prompt for every entry of a
        run, so after the first call it is billed at the cache-read rate.
        """
        return [{"type": "text", "text": text, "cache_control": {"type": "ephemeral"}}]

    def estimate_cost(
        self,
        model_tier: ModelTier,
        input_tokens: int,
        output_tokens: int,
        cached_input_tokens: int = 0,
    ) -> float:
        """USD cost of one call from PRICES_PER_MTOK, rounded to 6 places."""
        p = PRICES_PER_MTOK[model_tier]
        cost = (
            (input_tokens - cached_input_tokens) * p["input"]
            + cached_input_tokens * p["cache_read"]
            + output_tokens * p["output"]
        ) / 1_000_000
        return round(cost, 6)
