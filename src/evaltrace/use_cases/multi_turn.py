"""
Multi-Turn Conversations

Plays a conversation turn by turn against one model, carrying the message
history forward, scoring each turn and optionally the whole dialogue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from evaltrace.dataset_loader import Conversation, ConversationSuite, ModelConfig, TestCase
from evaltrace.domain.entities import ExecutionRecord
from evaltrace.domain.value_objects import EvalVerdict
from evaltrace.scoring.evaluator import detect_eval_type, evaluate
from evaltrace.scoring.text_scorers import strip_reasoning
from evaltrace.use_cases.execution import (
    PipelineContext,
    build_options,
    complete_messages,
    failure_factory,
    resolve_provider,
    run_with_retry,
)

logger = logging.getLogger(__name__)


@dataclass
class ConversationResult:
    name: str
    model: str
    turns: list[ExecutionRecord]
    passed: bool | None
    score: float
    reason: str
    messages: list[dict] = field(default_factory=list)


def _has_expectations(turn: TestCase) -> bool:
    return bool(turn.eval_type) or detect_eval_type(turn) != "existence"


def transcript(turns: list[ExecutionRecord]) -> str:
    """User/Assistant transcript of the played turns"""
    return "\n\n".join(
        f"User: {r.prompt}\nAssistant: {strip_reasoning(r.text) if r.text else '[error]'}"
        for r in turns
    )


def _overall(conversation: Conversation, turns: list[ExecutionRecord], context: PipelineContext):
    if conversation.overall_criteria and not context.skip_evaluation:
        text = transcript(turns)
        overall_case = TestCase(
            name=f"{conversation.name} overall",
            prompt=text,
            eval_type="llm_judge",
            criteria=conversation.overall_criteria,
        )
        verdict = evaluate(overall_case, text, context.evaluation)
        return verdict.passed, verdict.score or 0.0, verdict.reason

    passed = all(r.passed is not False for r in turns)
    score = sum(r.score or 0.0 for r in turns) / len(turns) if turns else 0.0
    return passed, score, "Aggregated from turns"


def run_conversation(
    conversation: Conversation,
    model_config: ModelConfig,
    context: PipelineContext,
    *,
    continue_on_error: bool = False,
    on_turn: Callable[[int, ExecutionRecord], None] | None = None,
) -> ConversationResult:
    """
    Play one conversation against one model

    Each turn goes through the cache, the rate limiter and the retry policy
    with the full history so far. A failed turn ends the conversation unless
    continue_on_error is set.

    Args:
        conversation: Conversation to play
        model_config: Execution target
        context: Shared pipeline collaborators
        continue_on_error: Keep going after a failed turn
        on_turn: Called with (turn number, record) after each turn

    Returns:
        ConversationResult
    """
    messages: list[dict] = []
    if conversation.system_prompt:
        messages.append({"role": "system", "content": conversation.system_prompt})

    records: list[ExecutionRecord] = []
    for number, turn in enumerate(conversation.turns, start=1):
        messages.append({"role": "user", "content": turn.prompt})
        history = list(messages)

        def execute_turn(turn=turn, history=history) -> ExecutionRecord:
            provider = resolve_provider(model_config, context)
            options = build_options(turn, model_config, provider)
            result, from_cache = complete_messages(provider, history, options, context)
            if context.skip_evaluation or not _has_expectations(turn):
                verdict = EvalVerdict.skipped("No evaluation")
            else:
                verdict = evaluate(turn, result.text, context.evaluation)
            return ExecutionRecord.from_completion(
                turn.name,
                result,
                verdict,
                from_cache=from_cache,
                prompt=turn.prompt,
                system_prompt=conversation.system_prompt,
            )

        record = run_with_retry(
            execute_turn,
            max_retries=context.config.retry.max_retries,
            base_delay_seconds=context.config.retry.retry_delay_seconds,
            make_failure=failure_factory(turn, model_config, context),
        )
        records.append(record)
        if on_turn is not None:
            on_turn(number, record)

        if record.success:
            messages.append({"role": "assistant", "content": record.text or ""})
        elif not continue_on_error:
            logger.info("Conversation '%s' stopped at turn %d: %s", conversation.name, number, record.error)
            break

    passed, score, reason = _overall(conversation, records, context)
    return ConversationResult(
        name=conversation.name,
        model=model_config.label,
        turns=records,
        passed=passed,
        score=score,
        reason=reason,
        messages=messages,
    )


def run_conversation_suite(
    suite: ConversationSuite,
    context: PipelineContext,
    *,
    continue_on_error: bool = False,
    on_conversation: Callable[[ConversationResult], None] | None = None,
) -> list[ConversationResult]:
    """Every conversation against every model, in input order"""
    results = []
    for conversation in suite.conversations:
        for model_config in suite.models:
            result = run_conversation(
                conversation,
                model_config,
                context,
                continue_on_error=continue_on_error,
            )
            results.append(result)
            if on_conversation is not None:
                on_conversation(result)
    return results
