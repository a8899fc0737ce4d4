"""
Domain Entities

Defines the primary data structures produced by an evaluation run.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from evaltrace.domain.value_objects import CompletionResult, EvalVerdict, TokenUsage


@dataclass
class ExecutionRecord:
    """Outcome of one (test case, model) execution"""
    test_case: str
    provider: str
    model: str
    success: bool
    passed: bool | None = None
    score: float | None = None
    eval_type: str | None = None
    eval_reason: str | None = None
    eval_details: dict = field(default_factory=dict)
    text: str | None = None
    usage: TokenUsage | None = None
    latency_ms: int = 0
    cost: float | None = None
    error: str | None = None
    retries: int = 0
    from_cache: bool = False
    prompt: str = ""
    system_prompt: str | None = None
    timestamp: str | None = None

    @property
    def model_label(self) -> str:
        return f"{self.provider}/{self.model}"

    @property
    def key(self) -> tuple[str, str]:
        """Identity used when comparing runs"""
        return (self.test_case, self.model_label)

    @classmethod
    def from_completion(
        cls,
        test_case: str,
        result: CompletionResult,
        verdict: EvalVerdict,
        *,
        from_cache: bool = False,
        prompt: str = "",
        system_prompt: str | None = None,
    ) -> "ExecutionRecord":
        return cls(
            test_case=test_case,
            provider=result.provider,
            model=result.model,
            success=True,
            passed=verdict.passed,
            score=verdict.score,
            eval_type=verdict.eval_type,
            eval_reason=verdict.reason,
            eval_details=verdict.details,
            text=result.text,
            usage=result.usage,
            latency_ms=result.latency_ms,
            cost=result.cost,
            from_cache=from_cache,
            prompt=prompt,
            system_prompt=system_prompt,
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "test_case": self.test_case,
            "provider": self.provider,
            "model": self.model,
            "success": self.success,
            "passed": self.passed,
            "score": self.score,
            "eval_type": self.eval_type,
            "eval_reason": self.eval_reason,
            "eval_details": self.eval_details,
            "latency_ms": self.latency_ms,
            "cost": self.cost,
            "usage": self.usage.to_dict() if self.usage else None,
            "retries": self.retries,
            "from_cache": self.from_cache,
            "request": {
                "prompt": self.prompt,
                "system_prompt": self.system_prompt,
            },
            "response": {
                "text": self.text,
                "error": self.error,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionRecord":
        request = data.get("request") or {}
        response = data.get("response") or {}
        return cls(
            test_case=data["test_case"],
            provider=data["provider"],
            model=data["model"],
            success=bool(data.get("success", False)),
            passed=data.get("passed"),
            score=data.get("score"),
            eval_type=data.get("eval_type"),
            eval_reason=data.get("eval_reason"),
            eval_details=data.get("eval_details") or {},
            text=response.get("text"),
            usage=TokenUsage.from_dict(data.get("usage")),
            latency_ms=int(data.get("latency_ms") or 0),
            cost=data.get("cost"),
            error=response.get("error"),
            retries=int(data.get("retries") or 0),
            from_cache=bool(data.get("from_cache", False)),
            prompt=request.get("prompt", ""),
            system_prompt=request.get("system_prompt"),
            timestamp=data.get("timestamp"),
        )


@dataclass
class RunSummary:
    """Counts over the full result set of a run"""
    passed: int = 0
    failed: int = 0
    errors: int = 0
    total: int = 0

    @classmethod
    def from_records(cls, records: list[ExecutionRecord]) -> "RunSummary":
        return cls(
            passed=sum(1 for r in records if r.passed is True),
            failed=sum(1 for r in records if r.passed is False),
            errors=sum(1 for r in records if not r.success),
            total=len(records),
        )

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "errors": self.errors,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "RunSummary | None":
        if data is None:
            return None
        return cls(
            passed=int(data.get("passed", 0)),
            failed=int(data.get("failed", 0)),
            errors=int(data.get("errors", 0)),
            total=int(data.get("total", 0)),
        )


@dataclass
class Trace:
    """Record of one evaluation run"""
    id: str
    eval_name: str
    started_at: str
    config: dict = field(default_factory=dict)
    results: list[ExecutionRecord] = field(default_factory=list)
    completed_at: str | None = None
    summary: RunSummary | None = None
    sealed: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eval_name": self.eval_name,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "config": self.config,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict() if self.summary else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Trace":
        return cls(
            id=data["id"],
            eval_name=data.get("eval_name", ""),
            started_at=data.get("started_at", ""),
            completed_at=data.get("completed_at"),
            config=data.get("config") or {},
            results=[ExecutionRecord.from_dict(r) for r in data.get("results", [])],
            summary=RunSummary.from_dict(data.get("summary")),
            sealed=data.get("completed_at") is not None,
        )


@dataclass
class TraceChange:
    """A (test case, model) pair whose pass state flipped between two runs"""
    test_case: str
    model: str
    was: str
    now: str
    reason: str | None = None


@dataclass
class RegressionReport:
    """Result of comparing two traces"""
    old_trace_id: str
    new_trace_id: str
    regressions: list[TraceChange] = field(default_factory=list)
    improvements: list[TraceChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.regressions or self.improvements)


@dataclass
class ProviderHealth:
    """Provider availability check result"""
    name: str
    available: bool
    error: str | None = None
