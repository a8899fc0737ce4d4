"""
Domain Value Objects

Defines immutable data structures representing values such as sampling options,
completion results, token usage, and evaluation verdicts.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field

from evaltrace.domain.constants import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE


@dataclass(frozen=True)
class CompletionOptions:
    """Sampling options sent with a completion request"""
    model: str
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS


@dataclass(frozen=True)
class CompletionRequest:
    """Normalized request: the unit the cache and rate limiter key on"""
    provider: str
    messages: tuple[dict, ...]
    options: CompletionOptions

    @property
    def model(self) -> str:
        return self.options.model

    @property
    def message_list(self) -> list[dict]:
        return [dict(m) for m in self.messages]

    def fingerprint(self) -> str:
        """Deterministic, order-sensitive cache key (32 hex chars of SHA-256)"""
        payload = {
            "provider": self.provider,
            "model": self.options.model,
            "messages": self.message_list,
            "temperature": self.options.temperature,
            "max_tokens": self.options.max_tokens,
        }
        canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by a provider"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def of(cls, prompt_tokens: int, completion_tokens: int) -> "TokenUsage":
        prompt_tokens = prompt_tokens or 0
        completion_tokens = completion_tokens or 0
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "TokenUsage | None":
        if not data:
            return None
        return cls(
            prompt_tokens=int(data.get("prompt_tokens", 0) or 0),
            completion_tokens=int(data.get("completion_tokens", 0) or 0),
            total_tokens=int(data.get("total_tokens", 0) or 0),
        )


@dataclass
class CompletionResult:
    """Provider response"""
    text: str
    latency_ms: int
    model: str
    provider: str
    usage: TokenUsage | None = None
    cost: float | None = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "usage": self.usage.to_dict() if self.usage else None,
            "latency_ms": self.latency_ms,
            "model": self.model,
            "provider": self.provider,
            "cost": self.cost,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CompletionResult":
        """Create from dictionary (raises KeyError/TypeError/ValueError on malformed data)"""
        if not isinstance(data.get("text"), str):
            raise ValueError("Completion result is missing 'text'")
        cost = data.get("cost")
        return cls(
            text=data["text"],
            latency_ms=int(data.get("latency_ms", 0) or 0),
            model=str(data["model"]),
            provider=str(data["provider"]),
            usage=TokenUsage.from_dict(data.get("usage")),
            cost=float(cost) if cost is not None else None,
        )


@dataclass
class EvalVerdict:
    """Evaluation verdict (passed=None means skipped or inconclusive)"""
    passed: bool | None
    score: float | None
    reason: str
    eval_type: str
    details: dict = field(default_factory=dict)

    @classmethod
    def skipped(cls, reason: str = "Evaluation skipped") -> "EvalVerdict":
        return cls(passed=None, score=None, reason=reason, eval_type="none")

    @classmethod
    def failure(cls, eval_type: str, reason: str, **details) -> "EvalVerdict":
        return cls(passed=False, score=0.0, reason=reason, eval_type=eval_type, details=details)
