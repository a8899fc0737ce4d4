"""
Evaluation dispatch function

Routes a response to the appropriate evaluator based on the test case.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from evaltrace.dataset_loader import TestCase
    from evaltrace.scoring.similarity import Embedder

from evaltrace.domain.value_objects import EvalVerdict
from evaltrace.scoring.llm_judge import LLMJudgeError, LLMJudgeScorer
from evaltrace.scoring.safety import score_safety
from evaltrace.scoring.similarity import score_semantic_similarity
from evaltrace.scoring.structured_scorers import score_json_match, score_tool_call
from evaltrace.scoring.text_scorers import (
    score_contains,
    score_exact_match,
    score_regex,
    strip_reasoning,
)

logger = logging.getLogger(__name__)

CustomEvaluator = Callable[["TestCase", str], EvalVerdict]


@dataclass
class EvaluationOptions:
    """Collaborators and settings for evaluators that need them"""
    judge: LLMJudgeScorer | None = None
    embedder: Embedder | None = None
    similarity_threshold: float = 0.7
    custom_evaluators: dict[str, CustomEvaluator] = field(default_factory=dict)


def _present(value) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def detect_eval_type(test_case: TestCase) -> str:
    """Infer the evaluation type from which expectation fields are set"""
    if _present(test_case.expected_tool):
        return "tool_call"
    if _present(test_case.expected_json):
        return "json_match"
    if _present(test_case.expected_regex):
        return "regex"
    if _present(test_case.expected_contains):
        return "contains"
    if _present(test_case.expected_semantic):
        return "semantic_similarity"
    if test_case.safety_check:
        return "safety"
    if _present(test_case.expected):
        return "exact_match"
    if _present(test_case.criteria):
        return "llm_judge"
    return "existence"


def _existence(text: str) -> EvalVerdict:
    if text:
        return EvalVerdict(passed=True, score=1.0, reason="Response received", eval_type="existence")
    return EvalVerdict(
        passed=False,
        score=0.0,
        reason="No response (or only reasoning tags)",
        eval_type="existence",
    )


def _llm_judge(test_case: TestCase, text: str, options: EvaluationOptions) -> EvalVerdict:
    if options.judge is None:
        return EvalVerdict.failure("llm_judge", "LLM judge error: no judge provider configured")
    reference = test_case.expected if _present(test_case.expected) else None
    try:
        return options.judge.judge(
            test_case.prompt,
            text,
            reference=str(reference) if reference is not None else None,
            criteria=test_case.criteria,
        )
    except LLMJudgeError as e:
        logger.warning("LLM judge failed for '%s': %s", test_case.name, e)
        return EvalVerdict.failure("llm_judge", f"LLM judge error: {e}")


def _custom(test_case: TestCase, text: str, options: EvaluationOptions) -> EvalVerdict:
    evaluator = options.custom_evaluators.get(test_case.custom_evaluator or "")
    if evaluator is None:
        return EvalVerdict(
            passed=None,
            score=None,
            reason=f"Custom evaluator not registered: {test_case.custom_evaluator}",
            eval_type="custom",
        )
    return evaluator(test_case, text)


def _dispatch(eval_type: str, test_case: TestCase, text: str, options: EvaluationOptions) -> EvalVerdict:
    if eval_type == "exact_match":
        return score_exact_match(test_case.expected, text)
    if eval_type == "contains":
        expected = test_case.expected_contains if _present(test_case.expected_contains) else test_case.expected
        return score_contains(expected, text)
    if eval_type == "regex":
        pattern = test_case.expected_regex if _present(test_case.expected_regex) else test_case.expected
        return score_regex(pattern, text, test_case.regex_flags)
    if eval_type == "tool_call":
        return score_tool_call(test_case.expected_tool or "", test_case.expected_args, text)
    if eval_type == "json_match":
        return score_json_match(test_case.expected_json, text)
    if eval_type == "llm_judge":
        return _llm_judge(test_case, text, options)
    if eval_type == "semantic_similarity":
        reference = test_case.expected_semantic if _present(test_case.expected_semantic) else test_case.expected
        threshold = test_case.similarity_threshold
        if threshold is None:
            threshold = options.similarity_threshold
        return score_semantic_similarity(reference, text, options.embedder, threshold)
    if eval_type == "safety":
        return score_safety(test_case.prompt, text)
    if eval_type == "custom":
        return _custom(test_case, text, options)
    if eval_type == "existence":
        return _existence(text)
    return EvalVerdict(
        passed=None,
        score=None,
        reason=f"Unknown eval type: {eval_type}",
        eval_type=eval_type,
    )


def evaluate(
    test_case: TestCase,
    response_text: str | None,
    options: EvaluationOptions | None = None,
) -> EvalVerdict:
    """
    Score a response against a test case

    The response is sanitized with strip_reasoning first. An explicit
    eval_type wins; otherwise the type is inferred with detect_eval_type.

    Args:
        test_case: Test case with evaluation criteria
        response_text: Raw model output
        options: Judge, embedder and custom evaluators (optional)

    Returns:
        EvalVerdict (never raises; evaluator errors become failing verdicts)
    """
    options = options or EvaluationOptions()
    text = strip_reasoning(response_text)
    eval_type = test_case.eval_type or detect_eval_type(test_case)
    try:
        return _dispatch(eval_type, test_case, text, options)
    except Exception as e:
        logger.warning("Evaluator '%s' failed for '%s': %s", eval_type, test_case.name, e)
        return EvalVerdict.failure(eval_type, f"Evaluation error: {e}")
