"""
ResponseCacheのテスト
"""

import json
from unittest.mock import patch

from evaltrace.domain.value_objects import CompletionOptions, CompletionResult, TokenUsage
from evaltrace.infrastructure.response_cache import ResponseCache, fingerprint

MESSAGES = [{"role": "user", "content": "Capital of France?"}]


def _result(text="Paris"):
    return CompletionResult(
        text=text,
        latency_ms=321,
        model="gpt-4o-mini",
        provider="openai",
        usage=TokenUsage.of(10, 2),
        cost=0.0001,
    )


class TestFingerprint:
    def test_model_argument_wins_over_options(self):
        options = CompletionOptions(model="ignored", temperature=0.0, max_tokens=64)
        a = fingerprint("openai", "gpt-4o-mini", MESSAGES, options)
        b = fingerprint("openai", "gpt-4o-mini", MESSAGES, CompletionOptions("other", 0.0, 64))
        assert a == b

    def test_temperature_changes_key(self):
        a = fingerprint("openai", "m", MESSAGES, CompletionOptions("m", 0.0, 64))
        b = fingerprint("openai", "m", MESSAGES, CompletionOptions("m", 0.5, 64))
        assert a != b


class TestResponseCache:
    """キャッシュの読み書き・期限切れ・破損エントリ"""

    def test_miss(self, tmp_path):
        assert ResponseCache(tmp_path).get("nothing") is None

    def test_put_then_get(self, tmp_path):
        cache = ResponseCache(tmp_path)
        cache.put("abc", _result())

        cached = cache.get("abc")

        assert cached == _result()
        entry = json.loads((tmp_path / "abc.json").read_text(encoding="utf-8"))
        assert isinstance(entry["timestamp"], int)
        assert entry["response"]["text"] == "Paris"

    def test_put_overwrites(self, tmp_path):
        cache = ResponseCache(tmp_path)
        cache.put("abc", _result("Paris"))
        cache.put("abc", _result("Lyon"))
        assert cache.get("abc").text == "Lyon"
        # 一時ファイルが残らない
        assert [p.name for p in tmp_path.iterdir()] == ["abc.json"]

    def test_expired_entry(self, tmp_path):
        cache = ResponseCache(tmp_path, ttl_seconds=60)
        with patch("evaltrace.infrastructure.response_cache.time.time", return_value=1_000.0):
            cache.put("abc", _result())
        with patch("evaltrace.infrastructure.response_cache.time.time", return_value=1_030.0):
            assert cache.get("abc") is not None
        with patch("evaltrace.infrastructure.response_cache.time.time", return_value=1_061.0):
            assert cache.get("abc") is None

    def test_malformed_entry_is_a_miss(self, tmp_path):
        (tmp_path / "bad.json").write_text("{truncated", encoding="utf-8")
        (tmp_path / "empty.json").write_text(json.dumps({"timestamp": 1}), encoding="utf-8")
        cache = ResponseCache(tmp_path)
        assert cache.get("bad") is None
        assert cache.get("empty") is None

    def test_write_failure_is_swallowed(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        cache = ResponseCache(blocker / "cache")
        cache.put("abc", _result())
        assert cache.get("abc") is None

    def test_clear_and_stats(self, tmp_path):
        cache = ResponseCache(tmp_path / "cache")
        assert cache.stats().entries == 0
        assert cache.clear() == 0

        cache.put("a", _result())
        cache.put("b", _result())
        stats = cache.stats()
        assert stats.entries == 2
        assert stats.size_bytes > 0

        assert cache.clear() == 2
        assert cache.stats().entries == 0
