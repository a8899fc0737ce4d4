"""
Domain Constants

Centrally manages constants shared across the evaluation harness.
"""

# Sampling defaults applied when neither the test case nor the model config overrides them
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048

# Provider preference order when no provider is named
PROVIDER_PREFERENCE = ["ollama", "openrouter", "openai", "anthropic", "google", "lmstudio"]

# Default model per provider
DEFAULT_PROVIDER_MODELS = {
    "ollama": "llama3.2",
    "openrouter": "meta-llama/llama-3.1-8b-instruct",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
    "google": "gemini-1.5-flash",
    "lmstudio": "qwen2.5-7b-instruct",
}

# Per-provider rate limits (requests / tokens per minute)
DEFAULT_RATE_LIMITS = {
    "ollama": {"requests_per_minute": 1000, "tokens_per_minute": 1_000_000},  # local
    "lmstudio": {"requests_per_minute": 1000, "tokens_per_minute": 1_000_000},  # local
    "openai": {"requests_per_minute": 60, "tokens_per_minute": 90_000},
    "anthropic": {"requests_per_minute": 60, "tokens_per_minute": 100_000},
    "google": {"requests_per_minute": 60, "tokens_per_minute": 100_000},
    "openrouter": {"requests_per_minute": 60, "tokens_per_minute": 100_000},
}
FALLBACK_RATE_LIMIT = {"requests_per_minute": 30, "tokens_per_minute": 50_000}

# Model pricing (USD / 1M tokens)
MODEL_PRICING = {
    # OpenAI
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4-turbo": {"input": 10.00, "output": 30.00},
    "gpt-4": {"input": 30.00, "output": 60.00},
    "gpt-3.5-turbo": {"input": 0.50, "output": 1.50},
    "o1": {"input": 15.00, "output": 60.00},
    "o1-mini": {"input": 3.00, "output": 12.00},
    # Anthropic
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    "claude-3-opus-20240229": {"input": 15.00, "output": 75.00},
    "claude-3-sonnet-20240229": {"input": 3.00, "output": 15.00},
    "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0},
    "claude-haiku-4-5-20251001": {"input": 0.80, "output": 4.0},
    # Google
    "gemini-1.5-pro": {"input": 1.25, "output": 5.00},
    "gemini-1.5-flash": {"input": 0.075, "output": 0.30},
    "gemini-2.0-flash-exp": {"input": 0.10, "output": 0.40},
    "gemini-2.5-pro": {"input": 1.25, "output": 5.0},
    "gemini-2.5-flash": {"input": 0.075, "output": 0.30},
    # OpenRouter
    "openai/gpt-4o": {"input": 2.50, "output": 10.00},
    "anthropic/claude-3.5-sonnet": {"input": 3.00, "output": 15.00},
    "meta-llama/llama-3.1-70b-instruct": {"input": 0.52, "output": 0.75},
    "meta-llama/llama-3.1-8b-instruct": {"input": 0.055, "output": 0.055},
    "mistralai/mixtral-8x7b-instruct": {"input": 0.24, "output": 0.24},
    "google/gemini-pro-1.5": {"input": 1.25, "output": 5.00},
    # Ollama (free/local)
    "llama3.2": {"input": 0.0, "output": 0.0},
    "llama3.1": {"input": 0.0, "output": 0.0},
    "qwen3": {"input": 0.0, "output": 0.0},
    "mistral": {"input": 0.0, "output": 0.0},
    "codellama": {"input": 0.0, "output": 0.0},
}

# Evaluation type tags
EVAL_TYPES = [
    "exact_match",
    "contains",
    "regex",
    "tool_call",
    "json_match",
    "llm_judge",
    "semantic_similarity",
    "safety",
    "custom",
    "existence",
]

# Wildcard value in json_match expectations (key must exist, any value)
JSON_WILDCARD = "*"
