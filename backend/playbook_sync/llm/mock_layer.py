"""Mock LLM Layer for testing the sync stages without API calls."""

from __future__ import annotations

from pydantic import BaseModel

from playbook_sync.config import ModelTier
from playbook_sync.llm.layer import LLMResponse


class MockLLMLayer:
    """Returns predefined responses for testing.

    Responses are keyed by "<tier>:<ResponseModelName>". A value may be a
    model instance (returned every time), an exception (raised), or a list
    of those consumed one per call in order.

    Usage:
        mock = MockLLMLayer({
            "opus:Classification": [
                Classification(action="enrich", rationale="adds a tip", target_section="Steps"),
                RuntimeError("model overloaded"),
            ],
        })
        result, meta = await mock.complete_structured(
            messages=[...],
            model_tier="opus",
            response_model=Classification,
        )
    """

    def __init__(self, responses: dict | None = None) -> None:
        self.responses = responses or {}
        self.call_log: list[dict] = []

    def _mock_meta(self, model_tier: ModelTier) -> LLMResponse:
        return LLMResponse(
            model_version=f"mock-{model_tier}",
            input_tokens=100,
            output_tokens=50,
            stop_reason="end_turn",
            cost=0.001,
        )

    def calls_for(self, response_model: type[BaseModel]) -> list[dict]:
        return [c for c in self.call_log if c["response_model"] == response_model.__name__]

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
        """Return (or raise) the next predefined response for this key."""
        key = f"{model_tier}:{response_model.__name__}"
        self.call_log.append({
            "method": "complete_structured",
            "model_tier": model_tier,
            "response_model": response_model.__name__,
            "messages": messages,
            "system": system,
        })
        result = self.responses.get(key)
        if isinstance(result, list):
            if not result:
                raise AssertionError(f"MockLLMLayer: no responses left for {key}")
            result = result.pop(0)
        if result is None:
            raise AssertionError(f"MockLLMLayer: no response configured for {key}")
        if isinstance(result, BaseException):
            raise result
        return result, self._mock_meta(model_tier)

    def build_cached_system(self, text: str) -> list[dict]:
        return [{"type": "text", "text": text, "cache_control": {"type": "ephemeral"}}]

    def estimate_cost(self, model_tier: ModelTier, input_tokens: int,
                      output_tokens: int, cached_input_tokens: int = 0) -> float:
        return 0.0
