"""
multi_turn.py (複数ターン会話) のテスト
"""

from unittest.mock import patch

import pytest

from evaltrace.dataset_loader import Conversation, ConversationSuite, ModelConfig, TestCase
from evaltrace.domain.value_objects import CompletionResult, EvalVerdict, TokenUsage
from evaltrace.harness_config import HarnessConfig
from evaltrace.infrastructure.providers.base import ProviderStatusError
from evaltrace.infrastructure.providers.registry import ProviderRegistry
from evaltrace.infrastructure.rate_limiter import RateLimiterRegistry
from evaltrace.scoring.evaluator import EvaluationOptions
from evaltrace.use_cases.execution import PipelineContext
from evaltrace.use_cases.multi_turn import run_conversation, run_conversation_suite, transcript


class SupportAgent:
    """直前のユーザ発話に応じて返答するモックプロバイダ (履歴を記録)"""

    name = "fake"
    default_model = "fake-default"

    REPLIES = {
        "I forgot my password": "You can reset it from the login page.",
        "The email never arrived": "<think>hmm</think>Please check your spam folder.",
        "Thanks!": "Glad I could help!",
    }

    def __init__(self, fail_on=()):
        self.histories = []
        self._fail_on = set(fail_on)

    def complete(self, messages, options):
        self.histories.append([dict(m) for m in messages])
        prompt = messages[-1]["content"]
        if prompt in self._fail_on:
            raise ProviderStatusError("Server error", 500)
        return CompletionResult(
            text=self.REPLIES.get(prompt, "Sorry?"),
            latency_ms=5,
            model=options.model,
            provider=self.name,
            usage=TokenUsage.of(10, 5),
        )

    def get_models(self):
        return []

    def is_available(self):
        return True


class StubJudge:
    def __init__(self):
        self.calls = []

    def judge(self, prompt, response, reference=None, criteria=None):
        self.calls.append((prompt, criteria))
        return EvalVerdict(passed=True, score=0.9, reason="Coherent", eval_type="llm_judge")


def _context(provider, judge=None, **kwargs):
    config = HarnessConfig()
    config.retry.max_retries = 1
    return PipelineContext(
        config=config,
        registry=ProviderRegistry(config, {"fake": provider}),
        limiters=RateLimiterRegistry(),
        evaluation=EvaluationOptions(judge=judge),
        **kwargs,
    )


def _conversation(overall_criteria=None):
    return Conversation(
        name="support",
        system_prompt="You are a support agent.",
        turns=[
            TestCase(name="support #1", prompt="I forgot my password", expected_contains=["reset"]),
            TestCase(name="support #2", prompt="The email never arrived", expected_contains=["spam"]),
            TestCase(name="support #3", prompt="Thanks!"),
        ],
        overall_criteria=overall_criteria,
    )


MC = ModelConfig(model="llama3.2", provider="fake")


class TestRunConversation:
    """会話履歴の引き継ぎとターンごとの評価"""

    def test_history_accumulates(self):
        provider = SupportAgent()

        result = run_conversation(_conversation(), MC, _context(provider))

        assert [len(h) for h in provider.histories] == [2, 4, 6]
        assert provider.histories[2][:4] == [
            {"role": "system", "content": "You are a support agent."},
            {"role": "user", "content": "I forgot my password"},
            {"role": "assistant", "content": "You can reset it from the login page."},
            {"role": "user", "content": "The email never arrived"},
        ]
        assert result.messages[-1] == {"role": "assistant", "content": "Glad I could help!"}
        assert result.model == "fake/llama3.2"

    def test_turn_verdicts(self):
        result = run_conversation(_conversation(), MC, _context(SupportAgent()))

        assert [r.passed for r in result.turns] == [True, True, None]
        assert result.turns[2].eval_reason == "No evaluation"
        assert [r.test_case for r in result.turns] == ["support #1", "support #2", "support #3"]

    def test_aggregate_without_overall_criteria(self):
        result = run_conversation(_conversation(), MC, _context(SupportAgent()))

        assert result.passed is True
        assert result.score == pytest.approx(2 / 3)
        assert result.reason == "Aggregated from turns"

    def test_overall_criteria_use_judge(self):
        judge = StubJudge()

        result = run_conversation(_conversation(["resolved issue"]), MC, _context(SupportAgent(), judge=judge))

        assert result.passed is True
        assert result.score == 0.9
        assert result.reason == "Coherent"
        prompt, criteria = judge.calls[0]
        assert criteria == ["resolved issue"]
        assert "User: The email never arrived\nAssistant: Please check your spam folder." in prompt

    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_failed_turn_stops_conversation(self, mock_sleep):
        provider = SupportAgent(fail_on={"The email never arrived"})

        result = run_conversation(_conversation(), MC, _context(provider))

        assert len(result.turns) == 2
        assert result.turns[1].success is False
        assert result.turns[1].retries == 1
        assert result.passed is False

    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_continue_on_error(self, mock_sleep):
        provider = SupportAgent(fail_on={"The email never arrived"})

        result = run_conversation(_conversation(), MC, _context(provider), continue_on_error=True)

        assert len(result.turns) == 3
        # The failed turn's user message stays in the history
        assert [m["role"] for m in provider.histories[-1]] == ["system", "user", "assistant", "user", "user"]

    def test_skip_evaluation(self):
        judge = StubJudge()
        context = _context(SupportAgent(), judge=judge, skip_evaluation=True)

        result = run_conversation(_conversation(["resolved issue"]), MC, context)

        assert all(r.passed is None for r in result.turns)
        assert judge.calls == []
        assert result.reason == "Aggregated from turns"


class TestTranscript:
    def test_marks_failed_turns(self):
        result = run_conversation(_conversation(), MC, _context(SupportAgent()))
        result.turns[0].text = None
        text = transcript(result.turns)
        assert text.startswith("User: I forgot my password\nAssistant: [error]\n\n")


class TestRunConversationSuite:
    def test_every_conversation_on_every_model(self):
        suite = ConversationSuite(
            name="support",
            description="",
            conversations=[_conversation(), _conversation()],
            models=[MC, ModelConfig(model="other", provider="fake")],
        )
        seen = []

        results = run_conversation_suite(suite, _context(SupportAgent()), on_conversation=seen.append)

        assert [r.model for r in results] == ["fake/llama3.2", "fake/other", "fake/llama3.2", "fake/other"]
        assert seen == results
