"""ドメイン定数のテスト"""

from evaltrace.domain.constants import (
    DEFAULT_PROVIDER_MODELS,
    DEFAULT_RATE_LIMITS,
    EVAL_TYPES,
    FALLBACK_RATE_LIMIT,
    MODEL_PRICING,
    PROVIDER_PREFERENCE,
)


def test_provider_preference_order():
    """ローカルプロバイダが最優先であること"""
    assert PROVIDER_PREFERENCE == ["ollama", "openrouter", "openai", "anthropic", "google", "lmstudio"]


def test_every_preferred_provider_has_default_model():
    for name in PROVIDER_PREFERENCE:
        assert DEFAULT_PROVIDER_MODELS.get(name), f"{name} has no default model"


def test_rate_limits():
    assert DEFAULT_RATE_LIMITS["ollama"] == {"requests_per_minute": 1000, "tokens_per_minute": 1_000_000}
    assert DEFAULT_RATE_LIMITS["openai"] == {"requests_per_minute": 60, "tokens_per_minute": 90_000}
    assert DEFAULT_RATE_LIMITS["anthropic"]["tokens_per_minute"] == 100_000
    assert FALLBACK_RATE_LIMIT == {"requests_per_minute": 30, "tokens_per_minute": 50_000}


def test_model_pricing_has_input_output():
    """MODEL_PRICINGの各エントリがinput/outputキーを持つこと"""
    for model, pricing in MODEL_PRICING.items():
        assert "input" in pricing, f"{model} missing input pricing"
        assert "output" in pricing, f"{model} missing output pricing"


def test_default_models_of_paid_providers_have_pricing():
    for name in ("openai", "anthropic", "google", "openrouter"):
        assert DEFAULT_PROVIDER_MODELS[name] in MODEL_PRICING


def test_eval_types_include_existence():
    assert "existence" in EVAL_TYPES
    assert len(EVAL_TYPES) == len(set(EVAL_TYPES))
