"""
Cost Calculation

Estimates the USD cost of a completion from the per-model pricing table.
"""

from __future__ import annotations

import math

from evaltrace.domain.constants import MODEL_PRICING
from evaltrace.domain.value_objects import TokenUsage


def get_pricing(model: str) -> dict | None:
    """
    Look up pricing for a model

    Falls back to the name before a ':' tag (e.g. "qwen3:8b" -> "qwen3").
    """
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]
    return MODEL_PRICING.get(model.split(":")[0])


def calculate_cost(model: str, usage: TokenUsage | None) -> float | None:
    """
    Calculate the cost of a request

    Args:
        model: Model name
        usage: Token usage reported by the provider

    Returns:
        Cost in USD, or None when usage or pricing is unknown
    """
    if usage is None:
        return None
    pricing = get_pricing(model)
    if pricing is None:
        return None

    input_cost = (usage.prompt_tokens / 1_000_000) * pricing["input"]
    output_cost = (usage.completion_tokens / 1_000_000) * pricing["output"]
    return input_cost + output_cost


def estimate_tokens(text: str | None) -> int:
    """Rough token count (4 characters per token on average)"""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def estimate_request_tokens(messages: list[dict], max_tokens: int) -> int:
    """Estimated total tokens for a request: prompt estimate + output ceiling"""
    return sum(estimate_tokens(m.get("content", "")) for m in messages) + max_tokens
