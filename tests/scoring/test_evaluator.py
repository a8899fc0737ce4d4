"""
evaluator.py (評価ディスパッチ) のテスト
"""

import pytest

from evaltrace.dataset_loader import TestCase
from evaltrace.domain.value_objects import EvalVerdict
from evaltrace.scoring.evaluator import EvaluationOptions, detect_eval_type, evaluate
from evaltrace.scoring.llm_judge import LLMJudgeError


def _tc(**kwargs) -> TestCase:
    kwargs.setdefault("name", "case")
    kwargs.setdefault("prompt", "Capital of France?")
    return TestCase(**kwargs)


class StubJudge:
    def __init__(self, verdict=None, error=None):
        self._verdict = verdict
        self._error = error
        self.calls = []

    def judge(self, prompt, actual, *, reference=None, criteria=None):
        self.calls.append({"prompt": prompt, "actual": actual, "reference": reference, "criteria": criteria})
        if self._error:
            raise self._error
        return self._verdict


class TestDetectEvalType:
    """期待値フィールドからの評価タイプ推定"""

    @pytest.mark.parametrize("fields,expected", [
        ({"expected_tool": "search", "expected_json": {"a": 1}}, "tool_call"),
        ({"expected_json": {"a": 1}, "expected_regex": "x"}, "json_match"),
        ({"expected_regex": "x", "expected_contains": ["y"]}, "regex"),
        ({"expected_contains": ["y"], "expected": "z"}, "contains"),
        ({"expected_semantic": "ref", "expected": "z"}, "semantic_similarity"),
        ({"safety_check": True, "expected": "z"}, "safety"),
        ({"expected": "Paris", "criteria": ["accuracy"]}, "exact_match"),
        ({"criteria": ["accuracy"]}, "llm_judge"),
        ({}, "existence"),
    ])
    def test_priority(self, fields, expected):
        assert detect_eval_type(_tc(**fields)) == expected

    def test_empty_values_are_ignored(self):
        assert detect_eval_type(_tc(expected_contains=[], expected="")) == "existence"


class TestEvaluate:
    def test_exact_match_after_stripping_reasoning(self):
        verdict = evaluate(_tc(expected="Paris"), "<think>France... capital is</think> Paris")
        assert verdict.passed is True
        assert verdict.eval_type == "exact_match"

    def test_explicit_type_wins(self):
        verdict = evaluate(_tc(eval_type="contains", expected="Paris"), "It is Paris, of course")
        assert verdict.eval_type == "contains"
        assert verdict.passed is True

    def test_regex_falls_back_to_expected(self):
        assert evaluate(_tc(eval_type="regex", expected=r"\d+"), "42").passed is True

    def test_tool_call(self):
        verdict = evaluate(_tc(expected_tool="get_weather", expected_args=["Tokyo"]), "TOOL: get_weather(Tokyo)")
        assert verdict.score == 1.0

    def test_json_match(self):
        assert evaluate(_tc(expected_json={"status": "*"}), '{"status": "ok"}').passed is True

    def test_existence(self):
        assert evaluate(_tc(), "anything").reason == "Response received"
        verdict = evaluate(_tc(), "<think>only thinking</think>")
        assert verdict.passed is False
        assert verdict.reason == "No response (or only reasoning tags)"

    def test_none_response(self):
        assert evaluate(_tc(), None).passed is False

    def test_unknown_type_is_inconclusive(self):
        verdict = evaluate(_tc(eval_type="vibes"), "x")
        assert verdict.passed is None
        assert verdict.reason == "Unknown eval type: vibes"

    def test_safety(self):
        verdict = evaluate(_tc(safety_check=True), "Paris")
        assert verdict.eval_type == "safety"
        assert verdict.passed is True

    def test_similarity_without_embedder_is_inconclusive(self):
        verdict = evaluate(_tc(expected_semantic="Paris is the capital"), "Paris")
        assert verdict.eval_type == "semantic_similarity"
        assert verdict.passed is None

    def test_similarity_uses_case_threshold(self):
        class Embedder:
            def embed(self, texts):
                return [[1.0, 0.0], [1.0, 1.0]]

        options = EvaluationOptions(embedder=Embedder(), similarity_threshold=0.9)
        assert evaluate(_tc(expected_semantic="ref"), "x", options).passed is False
        assert evaluate(_tc(expected_semantic="ref", similarity_threshold=0.5), "x", options).passed is True

    def test_similarity_zero_threshold_is_respected(self):
        """閾値 0.0 を明示した場合はデフォルト閾値に置き換えない"""
        class Embedder:
            def embed(self, texts):
                return [[1.0, 0.0], [0.0, 1.0]]

        options = EvaluationOptions(embedder=Embedder(), similarity_threshold=0.9)
        verdict = evaluate(_tc(expected_semantic="ref", similarity_threshold=0.0), "x", options)
        assert verdict.passed is True
        assert verdict.details["threshold"] == 0.0

    def test_evaluator_exception_becomes_failure(self):
        def broken(test_case, text):
            raise RuntimeError("boom")

        options = EvaluationOptions(custom_evaluators={"broken": broken})
        verdict = evaluate(_tc(eval_type="custom", custom_evaluator="broken"), "x", options)
        assert verdict.passed is False
        assert verdict.reason == "Evaluation error: boom"


class TestLLMJudgeDispatch:
    def test_no_judge_fails(self):
        verdict = evaluate(_tc(criteria=["accuracy"]), "Paris")
        assert verdict.passed is False
        assert verdict.reason.startswith("LLM judge error")

    def test_judge_receives_sanitized_text_and_reference(self):
        judge = StubJudge(EvalVerdict(passed=True, score=0.9, reason="ok", eval_type="llm_judge"))
        options = EvaluationOptions(judge=judge)

        verdict = evaluate(_tc(eval_type="llm_judge", expected="Paris", criteria=["accuracy"]),
                           "<think>x</think>Paris", options)

        assert verdict.passed is True
        assert judge.calls == [{
            "prompt": "Capital of France?",
            "actual": "Paris",
            "reference": "Paris",
            "criteria": ["accuracy"],
        }]

    def test_judge_error_becomes_failure(self):
        options = EvaluationOptions(judge=StubJudge(error=LLMJudgeError("timeout")))
        verdict = evaluate(_tc(criteria=["accuracy"]), "Paris", options)
        assert verdict.passed is False
        assert verdict.score == 0.0
        assert verdict.reason == "LLM judge error: timeout"


class TestCustomEvaluators:
    def test_registered(self):
        def shouting(test_case, text):
            passed = text.isupper()
            return EvalVerdict(passed=passed, score=1.0 if passed else 0.0, reason="caps", eval_type="custom")

        options = EvaluationOptions(custom_evaluators={"shouting": shouting})
        assert evaluate(_tc(eval_type="custom", custom_evaluator="shouting"), "PARIS", options).passed is True

    def test_unregistered_is_inconclusive(self):
        verdict = evaluate(_tc(eval_type="custom", custom_evaluator="missing"), "x")
        assert verdict.passed is None
        assert "missing" in verdict.reason
