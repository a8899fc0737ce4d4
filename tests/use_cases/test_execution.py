"""
execution.py (単一実行とリトライ) のテスト

プロバイダはスクリプト化されたモックで置き換え、リトライ待機はtime.sleepをパッチする。
"""

from unittest.mock import patch

import pytest

from evaltrace.dataset_loader import ModelConfig, TestCase
from evaltrace.domain.value_objects import CompletionOptions, CompletionResult, TokenUsage
from evaltrace.harness_config import HarnessConfig
from evaltrace.infrastructure.providers.base import (
    ProviderNotConfiguredError,
    ProviderStatusError,
    UnknownProviderError,
)
from evaltrace.infrastructure.providers.registry import ProviderRegistry
from evaltrace.infrastructure.rate_limiter import RateLimiterRegistry
from evaltrace.infrastructure.response_cache import ResponseCache
from evaltrace.use_cases.execution import (
    PipelineContext,
    build_messages,
    build_options,
    complete_messages,
    execute_test_case,
    execute_with_retry,
    is_retryable,
    resolve_provider,
    run_with_retry,
)


class ScriptedProvider:
    """呼び出しごとに用意した応答 (または例外) を返すモックプロバイダ"""

    def __init__(self, name="fake", responses=None, available=True):
        self.name = name
        self.default_model = f"{name}-default"
        self._responses = list(responses or ["Paris"])
        self._available = available
        self.calls: list[tuple[list[dict], CompletionOptions]] = []

    def complete(self, messages, options):
        self.calls.append((messages, options))
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return CompletionResult(
            text=item,
            latency_ms=250,
            model=options.model,
            provider=self.name,
            usage=TokenUsage.of(10, 2),
        )

    def get_models(self):
        return []

    def is_available(self):
        return self._available


def _context(providers, tmp_path=None, **kwargs) -> PipelineContext:
    config = HarnessConfig()
    config.retry.max_retries = kwargs.pop("max_retries", 2)
    config.retry.retry_delay_seconds = 1.0
    return PipelineContext(
        config=config,
        registry=ProviderRegistry(config, {p.name: p for p in providers}),
        limiters=RateLimiterRegistry(),
        cache=ResponseCache(tmp_path / "cache") if tmp_path is not None else None,
        **kwargs,
    )


TC = TestCase(name="capital", prompt="Capital of France?", system_prompt="Be brief", expected="Paris")
MC = ModelConfig(model="llama3.2", provider="fake")


class TestRequestBuilding:
    def test_messages(self):
        assert build_messages(TC) == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Capital of France?"},
        ]

    def test_messages_without_system_prompt(self):
        assert build_messages(TestCase(name="x", prompt="hi")) == [{"role": "user", "content": "hi"}]

    def test_options_precedence(self):
        provider = ScriptedProvider()
        tc = TestCase(name="x", prompt="hi", temperature=0.0)
        mc = ModelConfig(model="m", temperature=0.9, max_tokens=128)
        options = build_options(tc, mc, provider)
        assert options == CompletionOptions(model="m", temperature=0.0, max_tokens=128)

    def test_options_defaults(self):
        options = build_options(TestCase(name="x", prompt="hi"), ModelConfig(model=""), ScriptedProvider())
        assert options == CompletionOptions(model="fake-default", temperature=0.7, max_tokens=2048)


class TestResolveProvider:
    def test_override_wins(self):
        a, b = ScriptedProvider("a"), ScriptedProvider("b")
        context = _context([a, b], provider_override="b")
        assert resolve_provider(ModelConfig(model="m", provider="a"), context) is b

    def test_model_provider(self):
        a, b = ScriptedProvider("a"), ScriptedProvider("b")
        assert resolve_provider(ModelConfig(model="m", provider="b"), _context([a, b])) is b

    def test_default(self):
        a = ScriptedProvider("a")
        assert resolve_provider(ModelConfig(model="m"), _context([a])) is a

    def test_unknown(self):
        with pytest.raises(UnknownProviderError):
            resolve_provider(ModelConfig(model="m", provider="nope"), _context([ScriptedProvider()]))


class TestExecuteTestCase:
    """キャッシュ・プロバイダ・評価を通した単一実行"""

    def test_success_record(self):
        provider = ScriptedProvider()
        record = execute_test_case(TC, MC, _context([provider]))

        assert record.success is True
        assert record.passed is True
        assert record.eval_type == "exact_match"
        assert record.provider == "fake"
        assert record.model == "llama3.2"
        assert record.latency_ms == 250
        assert record.from_cache is False
        assert record.system_prompt == "Be brief"
        assert provider.calls[0][0][0] == {"role": "system", "content": "Be brief"}

    def test_cost_from_pricing_table(self):
        record = execute_test_case(TC, MC, _context([ScriptedProvider()]))
        # llama3.2は無料モデル
        assert record.cost == 0.0

    def test_cache_hit_skips_provider(self, tmp_path):
        provider = ScriptedProvider()
        context = _context([provider], tmp_path)

        first = execute_test_case(TC, MC, context)
        second = execute_test_case(TC, MC, context)

        assert len(provider.calls) == 1
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.latency_ms == 0
        assert second.text == "Paris"
        assert second.passed is True

    def test_different_options_miss_cache(self, tmp_path):
        provider = ScriptedProvider()
        context = _context([provider], tmp_path)

        execute_test_case(TC, MC, context)
        execute_test_case(TC, ModelConfig(model="llama3.2", provider="fake", temperature=0.0), context)

        assert len(provider.calls) == 2

    def test_skip_evaluation(self):
        record = execute_test_case(TC, MC, _context([ScriptedProvider()], skip_evaluation=True))
        assert record.success is True
        assert record.passed is None
        assert record.eval_type == "none"

    def test_provider_error_propagates(self):
        provider = ScriptedProvider(responses=[ProviderStatusError("boom", 500)])
        with pytest.raises(ProviderStatusError):
            execute_test_case(TC, MC, _context([provider]))


class TestCompleteMessages:
    """キャッシュとレート制限を通した生のメッセージ送信"""

    MESSAGES = [
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
        {"role": "user", "content": "Capital of France?"},
    ]

    def test_sends_history_as_given(self):
        provider = ScriptedProvider()
        result, from_cache = complete_messages(
            provider, self.MESSAGES, CompletionOptions(model="llama3.2"), _context([provider])
        )

        assert provider.calls[0][0] == self.MESSAGES
        assert result.text == "Paris"
        assert result.cost == 0.0
        assert from_cache is False

    def test_cache_hit(self, tmp_path):
        provider = ScriptedProvider()
        context = _context([provider], tmp_path)
        options = CompletionOptions(model="llama3.2")

        complete_messages(provider, self.MESSAGES, options, context)
        result, from_cache = complete_messages(provider, self.MESSAGES, options, context)

        assert len(provider.calls) == 1
        assert from_cache is True
        assert result.latency_ms == 0

    def test_history_is_part_of_the_key(self, tmp_path):
        provider = ScriptedProvider()
        context = _context([provider], tmp_path)
        options = CompletionOptions(model="llama3.2")

        complete_messages(provider, self.MESSAGES, options, context)
        complete_messages(provider, self.MESSAGES[-1:], options, context)

        assert len(provider.calls) == 2


class TestIsRetryable:
    @pytest.mark.parametrize("error,expected", [
        (ProviderNotConfiguredError("Openai API key not configured"), False),
        (UnknownProviderError("Unknown provider: x"), False),
        (RuntimeError("Invalid API key"), False),
        (ProviderStatusError("Server error", 500), True),
        (TimeoutError("timed out"), True),
    ])
    def test_classification(self, error, expected):
        assert is_retryable(error) is expected


class TestRunWithRetry:
    """リトライ回数とバックオフ"""

    def _make_failure(self, error, retries=0):
        return {"error": str(error), "retries": retries}

    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_non_retryable_fails_immediately(self, mock_sleep):
        calls = []

        def execute():
            calls.append(1)
            raise ProviderNotConfiguredError("API key not configured")

        result = run_with_retry(execute, max_retries=2, base_delay_seconds=1.0, make_failure=self._make_failure)

        assert result == {"error": "API key not configured", "retries": 0}
        assert len(calls) == 1
        mock_sleep.assert_not_called()

    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_exhausted(self, mock_sleep):
        def execute():
            raise ProviderStatusError("Server error", 500)

        result = run_with_retry(execute, max_retries=2, base_delay_seconds=1.0, make_failure=self._make_failure)

        assert result["retries"] == 2
        # 線形バックオフ: 1秒, 2秒
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]


class TestExecuteWithRetry:
    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_succeeds_after_two_transient_failures(self, mock_sleep):
        provider = ScriptedProvider(responses=[
            ProviderStatusError("Server error", 500),
            ProviderStatusError("Server error", 500),
            "Paris",
        ])
        retried = []

        record = execute_with_retry(TC, MC, _context([provider]), on_retry=lambda n, e: retried.append(n))

        assert record.success is True
        assert record.retries == 2
        assert retried == [1, 2]
        assert mock_sleep.call_count == 2

    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_configuration_error_is_not_retried(self, mock_sleep):
        provider = ScriptedProvider(responses=[ProviderNotConfiguredError("Fake API key not configured")])

        record = execute_with_retry(TC, MC, _context([provider]))

        assert record.success is False
        assert record.retries == 0
        assert record.eval_reason == "Error: Fake API key not configured"
        assert len(provider.calls) == 1
        mock_sleep.assert_not_called()

    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_failure_record_after_exhaustion(self, mock_sleep):
        provider = ScriptedProvider(responses=[ProviderStatusError("Server error", 500)])

        record = execute_with_retry(TC, MC, _context([provider], max_retries=1))

        assert record.success is False
        assert record.passed is False
        assert record.score == 0.0
        assert record.eval_type == "error"
        assert record.retries == 1
        assert record.eval_reason == "Failed after 1 retries: Server error"
        assert record.provider == "fake"
        assert record.key == ("capital", "fake/llama3.2")

    @patch("evaltrace.use_cases.execution.time.sleep")
    def test_unknown_provider_failure_keeps_requested_name(self, mock_sleep):
        record = execute_with_retry(
            TC, ModelConfig(model="m", provider="missing"), _context([ScriptedProvider()])
        )
        assert record.success is False
        assert record.provider == "missing"
        assert record.retries == 0
