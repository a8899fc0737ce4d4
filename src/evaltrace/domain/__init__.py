"""
Domain Layer

Defines constants, entities, and value objects that form the core of the business logic.
Has no dependencies on external libraries.
"""

from evaltrace.domain.constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_RATE_LIMITS,
    DEFAULT_TEMPERATURE,
    EVAL_TYPES,
    MODEL_PRICING,
    PROVIDER_PREFERENCE,
)
from evaltrace.domain.entities import (
    ExecutionRecord,
    ProviderHealth,
    RegressionReport,
    RunSummary,
    Trace,
    TraceChange,
)
from evaltrace.domain.value_objects import (
    CompletionOptions,
    CompletionRequest,
    CompletionResult,
    EvalVerdict,
    TokenUsage,
)

__all__ = [
    # constants
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_RATE_LIMITS",
    "DEFAULT_TEMPERATURE",
    "EVAL_TYPES",
    "MODEL_PRICING",
    "PROVIDER_PREFERENCE",
    # entities
    "ExecutionRecord",
    "ProviderHealth",
    "RegressionReport",
    "RunSummary",
    "Trace",
    "TraceChange",
    # value objects
    "CompletionOptions",
    "CompletionRequest",
    "CompletionResult",
    "EvalVerdict",
    "TokenUsage",
]
