"""
Provider package

Provides a unified interface to each LLM provider.
"""

from evaltrace.infrastructure.providers.anthropic_provider import AnthropicProvider
from evaltrace.infrastructure.providers.base import (
    NoProviderAvailableError,
    Provider,
    ProviderConfigurationError,
    ProviderConnectionError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderStatusError,
    ProviderTimeoutError,
    UnknownProviderError,
    stream_or_complete,
)
from evaltrace.infrastructure.providers.google_genai import GoogleGenAIProvider
from evaltrace.infrastructure.providers.openai_compatible import OpenAICompatibleProvider
from evaltrace.infrastructure.providers.registry import ProviderRegistry, build_default_providers

__all__ = [
    # interface
    "Provider",
    "stream_or_complete",
    # errors
    "NoProviderAvailableError",
    "ProviderConfigurationError",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderNotConfiguredError",
    "ProviderRateLimitError",
    "ProviderStatusError",
    "ProviderTimeoutError",
    "UnknownProviderError",
    # implementations
    "AnthropicProvider",
    "GoogleGenAIProvider",
    "OpenAICompatibleProvider",
    # registry
    "ProviderRegistry",
    "build_default_providers",
]
