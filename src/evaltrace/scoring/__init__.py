"""
Scoring sub-package

Provides the evaluator dispatch and the individual evaluators.
"""

from evaltrace.domain.value_objects import EvalVerdict
from evaltrace.scoring.evaluator import EvaluationOptions, detect_eval_type, evaluate
from evaltrace.scoring.llm_judge import LLMJudgeError, LLMJudgeScorer
from evaltrace.scoring.safety import check_safety, redact_pii, score_safety
from evaltrace.scoring.similarity import (
    Embedder,
    embedding_similarity,
    create_embedder,
    score_semantic_similarity,
)
from evaltrace.scoring.structured_scorers import (
    extract_json,
    parse_tool_call,
    score_json_match,
    score_tool_call,
)
from evaltrace.scoring.text_scorers import (
    score_contains,
    score_exact_match,
    score_regex,
    strip_reasoning,
)

__all__ = [
    # value objects (re-exported from domain)
    "EvalVerdict",
    # dispatcher
    "EvaluationOptions",
    "detect_eval_type",
    "evaluate",
    # text scorers
    "score_contains",
    "score_exact_match",
    "score_regex",
    "strip_reasoning",
    # structured scorers
    "extract_json",
    "parse_tool_call",
    "score_json_match",
    "score_tool_call",
    # llm judge
    "LLMJudgeError",
    "LLMJudgeScorer",
    # similarity
    "Embedder",
    "embedding_similarity",
    "create_embedder",
    "score_semantic_similarity",
    # safety
    "check_safety",
    "redact_pii",
    "score_safety",
]
