"""
Test Case Execution

Runs one (test case, model) pair through the cache, the rate limiter, the
provider and the evaluator, and wraps it with bounded retries.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from evaltrace.cost_calc import calculate_cost, estimate_request_tokens
from evaltrace.dataset_loader import ModelConfig, TestCase
from evaltrace.domain.constants import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from evaltrace.domain.entities import ExecutionRecord
from evaltrace.domain.value_objects import CompletionOptions, CompletionResult, EvalVerdict
from evaltrace.harness_config import HarnessConfig
from evaltrace.infrastructure.providers.base import Provider, ProviderConfigurationError
from evaltrace.infrastructure.providers.registry import ProviderRegistry
from evaltrace.infrastructure.rate_limiter import RateLimiterRegistry
from evaltrace.infrastructure.response_cache import ResponseCache, fingerprint
from evaltrace.scoring.evaluator import EvaluationOptions, evaluate

logger = logging.getLogger(__name__)

# Error message fragments that mean retrying cannot help
_NON_RETRYABLE_MARKERS = ("API key", "not configured")


@dataclass
class PipelineContext:
    """Collaborators shared by every execution in a run"""
    config: HarnessConfig
    registry: ProviderRegistry
    limiters: RateLimiterRegistry
    cache: ResponseCache | None = None
    evaluation: EvaluationOptions = field(default_factory=EvaluationOptions)
    provider_override: str | None = None
    skip_evaluation: bool = False


def resolve_provider(model_config: ModelConfig, context: PipelineContext) -> Provider:
    """CLI override, then the model's own provider, then the registry default"""
    if context.provider_override:
        return context.registry.get(context.provider_override)
    if model_config.provider:
        return context.registry.get(model_config.provider)
    return context.registry.default()


def build_messages(test_case: TestCase) -> list[dict]:
    messages = []
    if test_case.system_prompt:
        messages.append({"role": "system", "content": test_case.system_prompt})
    messages.append({"role": "user", "content": test_case.prompt})
    return messages


def build_options(test_case: TestCase, model_config: ModelConfig, provider: Provider) -> CompletionOptions:
    """Sampling options: test case overrides, then model overrides, then defaults"""
    temperature = test_case.temperature
    if temperature is None:
        temperature = model_config.temperature
    if temperature is None:
        temperature = DEFAULT_TEMPERATURE

    max_tokens = test_case.max_tokens
    if max_tokens is None:
        max_tokens = model_config.max_tokens
    if max_tokens is None:
        max_tokens = DEFAULT_MAX_TOKENS

    return CompletionOptions(
        model=model_config.model or provider.default_model,
        temperature=temperature,
        max_tokens=max_tokens,
    )


def complete_messages(
    provider: Provider,
    messages: list[dict],
    options: CompletionOptions,
    context: PipelineContext,
) -> tuple[CompletionResult, bool]:
    """
    Fetch a completion through the cache and the provider's rate limiter

    Returns:
        (CompletionResult with cost filled in, whether it came from the cache)
    """
    key = fingerprint(provider.name, options.model, messages, options)
    if context.cache is not None:
        cached = context.cache.get(key)
        if cached is not None:
            # Served instantly from the cache
            return _with_cost(dataclasses.replace(cached, latency_ms=0), options), True

    limiter = context.limiters.for_provider(provider.name)
    result = limiter.admit(
        lambda: provider.complete(messages, options),
        estimate_request_tokens(messages, options.max_tokens),
    )
    if context.cache is not None:
        context.cache.put(key, result)
    return _with_cost(result, options), False


def _with_cost(result: CompletionResult, options: CompletionOptions) -> CompletionResult:
    if result.usage is not None and result.cost is None:
        return dataclasses.replace(result, cost=calculate_cost(options.model, result.usage))
    return result


def execute_test_case(
    test_case: TestCase,
    model_config: ModelConfig,
    context: PipelineContext,
) -> ExecutionRecord:
    """
    Execute a single (test case, model) pair

    Args:
        test_case: Test case
        model_config: Execution target
        context: Shared pipeline collaborators

    Returns:
        ExecutionRecord with completion and verdict fields

    Raises:
        ProviderError: When the provider cannot produce a response
    """
    provider = resolve_provider(model_config, context)
    messages = build_messages(test_case)
    options = build_options(test_case, model_config, provider)
    result, from_cache = complete_messages(provider, messages, options, context)

    if context.skip_evaluation:
        verdict = EvalVerdict.skipped()
    else:
        verdict = evaluate(test_case, result.text, context.evaluation)

    return ExecutionRecord.from_completion(
        test_case.name,
        result,
        verdict,
        from_cache=from_cache,
        prompt=test_case.prompt,
        system_prompt=test_case.system_prompt,
    )


def is_retryable(error: BaseException) -> bool:
    """Configuration failures are final; everything else may be transient"""
    if isinstance(error, ProviderConfigurationError):
        return False
    message = str(error)
    return not any(marker in message for marker in _NON_RETRYABLE_MARKERS)


def run_with_retry(
    execute: Callable[[], ExecutionRecord],
    *,
    max_retries: int,
    base_delay_seconds: float,
    make_failure: Callable[..., ExecutionRecord],
    on_retry: Callable[[int, Exception], None] | None = None,
) -> ExecutionRecord:
    """
    Run an execution with bounded retries and linear backoff

    Args:
        execute: Execution to attempt
        max_retries: Retries after the first attempt
        base_delay_seconds: Delay unit; attempt n waits base_delay_seconds * n
        make_failure: Builds the failure record from (error, retries=...)
        on_retry: Called with (attempt, error) before each retry

    Returns:
        The successful record (retries = attempts - 1), or a failure record
    """
    last_error: Exception | None = None
    for attempt in range(1, max_retries + 2):
        try:
            record = execute()
        except Exception as e:
            if not is_retryable(e):
                logger.warning("Not retrying after configuration error: %s", e)
                return make_failure(e, retries=attempt - 1)
            last_error = e
            if attempt <= max_retries:
                if on_retry is not None:
                    on_retry(attempt, e)
                logger.info("Retry %d/%d after error: %s", attempt, max_retries, e)
                time.sleep(base_delay_seconds * attempt)
            continue
        record.retries = attempt - 1
        return record

    return make_failure(last_error, retries=max_retries)


def failure_factory(
    test_case: TestCase,
    model_config: ModelConfig,
    context: PipelineContext,
) -> Callable[..., ExecutionRecord]:
    """Build the make_failure callback for one (test case, model) pair"""

    def make_failure(error: Exception, retries: int = 0) -> ExecutionRecord:
        # Label failures like successes so runs stay comparable
        try:
            provider_name = resolve_provider(model_config, context).name
        except Exception:
            provider_name = context.provider_override or model_config.provider or "default"
        if retries:
            reason = f"Failed after {retries} retries: {error}"
        else:
            reason = f"Error: {error}"
        return ExecutionRecord(
            test_case=test_case.name,
            provider=provider_name,
            model=model_config.model,
            success=False,
            passed=False,
            score=0.0,
            eval_type="error",
            eval_reason=reason,
            error=str(error),
            retries=retries,
            prompt=test_case.prompt,
            system_prompt=test_case.system_prompt,
        )

    return make_failure


def execute_with_retry(
    test_case: TestCase,
    model_config: ModelConfig,
    context: PipelineContext,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> ExecutionRecord:
    """execute_test_case wrapped by run_with_retry using the configured policy"""
    return run_with_retry(
        lambda: execute_test_case(test_case, model_config, context),
        max_retries=context.config.retry.max_retries,
        base_delay_seconds=context.config.retry.retry_delay_seconds,
        make_failure=failure_factory(test_case, model_config, context),
        on_retry=on_retry,
    )
