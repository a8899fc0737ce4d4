"""
Evaluation Harness Configuration

Manages loading from environment variables and default values.
Environment variables are read once here; every component receives the
resulting HarnessConfig as a parameter.
"""

import os
from dataclasses import dataclass, field, asdict


def _env_bool(key: str, default: bool) -> bool:
    """Convert an environment variable to bool"""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_str(key: str, default: str) -> str:
    """Get an environment variable as a string"""
    return os.environ.get(key, default)


def _env_optional(key: str) -> str | None:
    """Get an environment variable, treating empty strings as unset"""
    val = os.environ.get(key)
    return val if val else None


@dataclass
class RetryConfig:
    """Retry orchestrator configuration"""
    max_retries: int = 2
    retry_delay_seconds: float = 1.0


@dataclass
class SchedulerConfig:
    """Batch scheduler configuration"""
    parallel: bool = False
    concurrency: int = 3


@dataclass
class CacheConfig:
    """Response cache configuration"""
    enabled: bool = True
    cache_dir: str = ".cache"
    ttl_seconds: float = 86400.0


@dataclass
class RateLimitConfig:
    """Rate limiter configuration"""
    retry_after_seconds: float = 1.0
    max_poll_seconds: float = 5.0
    # Per-provider overrides: {"openai": {"requests_per_minute": 30, "tokens_per_minute": 40000}}
    limits: dict[str, dict[str, int]] = field(default_factory=dict)


@dataclass
class LLMJudgeConfig:
    """LLM judge configuration"""
    enabled: bool = True
    provider: str = "ollama"
    model: str = "qwen3:8b"
    temperature: float = 0.1
    max_tokens: int = 200
    pass_threshold: float = 0.7


@dataclass
class SimilarityConfig:
    """Semantic similarity configuration"""
    threshold: float = 0.7
    openai_model: str = "text-embedding-3-small"
    ollama_model: str = "nomic-embed-text"


@dataclass
class ProviderConfig:
    """Provider credentials and endpoints"""
    default_provider: str | None = None
    timeout_seconds: int = 60
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    google_api_key: str | None = None
    gcp_project_id: str | None = None
    gcp_location: str = "global"
    ollama_base_url: str = "http://localhost:11434"
    lmstudio_base_url: str = "http://localhost:1234/v1"
    lmstudio_api_key: str = "lm-studio"


@dataclass
class StorageConfig:
    """Output locations"""
    traces_dir: str = "traces"
    results_dir: str = "results"


@dataclass
class HarnessConfig:
    """Overall evaluation harness configuration"""
    retry: RetryConfig = field(default_factory=RetryConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    llm_judge: LLMJudgeConfig = field(default_factory=LLMJudgeConfig)
    similarity: SimilarityConfig = field(default_factory=SimilarityConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary format"""
        return {"harness_config": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "HarnessConfig":
        """Create from dictionary (handles presence/absence of harness_config key)"""
        config_data = data.get("harness_config", data)
        return cls(
            retry=RetryConfig(**config_data.get("retry", {})),
            scheduler=SchedulerConfig(**config_data.get("scheduler", {})),
            cache=CacheConfig(**config_data.get("cache", {})),
            rate_limit=RateLimitConfig(**config_data.get("rate_limit", {})),
            llm_judge=LLMJudgeConfig(**config_data.get("llm_judge", {})),
            similarity=SimilarityConfig(**config_data.get("similarity", {})),
            providers=ProviderConfig(**config_data.get("providers", {})),
            storage=StorageConfig(**config_data.get("storage", {})),
        )

    def public_dict(self) -> dict:
        """Dictionary form with credentials masked (safe to print or persist)"""
        data = asdict(self)
        for key, value in data["providers"].items():
            if key.endswith("_api_key") and value:
                data["providers"][key] = "***"
        return data


def load_config() -> HarnessConfig:
    """
    Load configuration from environment variables

    Uses default values when environment variables are not set.

    Returns:
        HarnessConfig
    """
    retry = RetryConfig(
        max_retries=_env_int("HARNESS_MAX_RETRIES", 2),
        retry_delay_seconds=_env_float("HARNESS_RETRY_DELAY_SECONDS", 1.0),
    )
    scheduler = SchedulerConfig(
        parallel=_env_bool("HARNESS_PARALLEL", False),
        concurrency=_env_int("HARNESS_PARALLEL_LIMIT", 3),
    )
    cache = CacheConfig(
        enabled=_env_bool("HARNESS_USE_CACHE", True),
        cache_dir=_env_str("HARNESS_CACHE_DIR", ".cache"),
        ttl_seconds=_env_float("HARNESS_CACHE_TTL_SECONDS", 86400.0),
    )
    rate_limit = RateLimitConfig(
        retry_after_seconds=_env_float("HARNESS_RATE_LIMIT_RETRY_AFTER_SECONDS", 1.0),
        max_poll_seconds=_env_float("HARNESS_RATE_LIMIT_MAX_POLL_SECONDS", 5.0),
    )
    llm_judge = LLMJudgeConfig(
        enabled=_env_bool("LLM_JUDGE_ENABLED", True),
        provider=_env_str("LLM_JUDGE_PROVIDER", "ollama"),
        model=_env_str("LLM_JUDGE_MODEL", "qwen3:8b"),
        pass_threshold=_env_float("LLM_JUDGE_PASS_THRESHOLD", 0.7),
    )
    similarity = SimilarityConfig(
        threshold=_env_float("SIMILARITY_THRESHOLD", 0.7),
    )
    providers = ProviderConfig(
        default_provider=_env_optional("DEFAULT_PROVIDER"),
        timeout_seconds=_env_int("HARNESS_TIMEOUT_SECONDS", 60),
        anthropic_api_key=_env_optional("ANTHROPIC_API_KEY"),
        openai_api_key=_env_optional("OPENAI_API_KEY"),
        openai_base_url=_env_str("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openrouter_api_key=_env_optional("OPENROUTER_API_KEY"),
        google_api_key=_env_optional("GOOGLE_API_KEY"),
        gcp_project_id=_env_optional("GCP_PROJECT_ID"),
        gcp_location=_env_str("GCP_LOCATION", "global"),
        ollama_base_url=_env_str("OLLAMA_BASE_URL", "http://localhost:11434"),
        lmstudio_base_url=_env_str("LMSTUDIO_BASE_URL", "http://localhost:1234/v1"),
        lmstudio_api_key=_env_str("LMSTUDIO_API_KEY", "lm-studio"),
    )
    storage = StorageConfig(
        traces_dir=_env_str("HARNESS_TRACES_DIR", "traces"),
        results_dir=_env_str("HARNESS_RESULTS_DIR", "results"),
    )
    return HarnessConfig(
        retry=retry,
        scheduler=scheduler,
        cache=cache,
        rate_limit=rate_limit,
        llm_judge=llm_judge,
        similarity=similarity,
        providers=providers,
        storage=storage,
    )
