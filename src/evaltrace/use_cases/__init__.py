"""
Use Case Layer

Execution, scheduling, regression comparison, health checks, A/B tests
and multi-turn conversations.
"""

from evaltrace.use_cases.ab_test import ABTestResult, run_ab_test, summarize
from evaltrace.use_cases.execution import (
    PipelineContext,
    complete_messages,
    execute_test_case,
    execute_with_retry,
    is_retryable,
    run_with_retry,
)
from evaltrace.use_cases.health_check import (
    health_check_providers,
    require_available_provider,
    run_judge_health_check,
)
from evaltrace.use_cases.multi_turn import ConversationResult, run_conversation, run_conversation_suite
from evaltrace.use_cases.regression import compare_loaded, compare_traces, diff_records
from evaltrace.use_cases.scheduler import (
    EvalRun,
    build_work_list,
    run_eval,
    run_parallel,
    run_sequential,
)

__all__ = [
    # execution
    "PipelineContext",
    "complete_messages",
    "execute_test_case",
    "execute_with_retry",
    "is_retryable",
    "run_with_retry",
    # scheduling
    "EvalRun",
    "build_work_list",
    "run_eval",
    "run_parallel",
    "run_sequential",
    # regression
    "compare_loaded",
    "compare_traces",
    "diff_records",
    # health check
    "health_check_providers",
    "require_available_provider",
    "run_judge_health_check",
    # A/B testing
    "ABTestResult",
    "run_ab_test",
    "summarize",
    # multi-turn
    "ConversationResult",
    "run_conversation",
    "run_conversation_suite",
]
