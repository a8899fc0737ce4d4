"""
Provider registry

Builds every known provider from HarnessConfig and resolves them by name.
Constructed once by the runner and passed explicitly to the pipeline.
"""

from __future__ import annotations

import logging

from evaltrace.domain.constants import PROVIDER_PREFERENCE
from evaltrace.domain.entities import ProviderHealth
from evaltrace.harness_config import HarnessConfig
from evaltrace.infrastructure.providers.anthropic_provider import AnthropicProvider
from evaltrace.infrastructure.providers.base import (
    NoProviderAvailableError,
    Provider,
    UnknownProviderError,
)
from evaltrace.infrastructure.providers.google_genai import GoogleGenAIProvider
from evaltrace.infrastructure.providers.openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)


def build_default_providers(config: HarnessConfig) -> dict[str, Provider]:
    """
    Create the shipped providers from configuration

    Args:
        config: HarnessConfig

    Returns:
        Mapping of provider name to provider instance
    """
    pc = config.providers
    timeout = pc.timeout_seconds
    return {
        "ollama": OpenAICompatibleProvider(
            "ollama",
            base_url=pc.ollama_base_url.rstrip("/") + "/v1",
            requires_api_key=False,
            timeout_seconds=timeout,
        ),
        "openrouter": OpenAICompatibleProvider(
            "openrouter",
            base_url=pc.openrouter_base_url,
            api_key=pc.openrouter_api_key,
            timeout_seconds=timeout,
            price_locally=True,
        ),
        "openai": OpenAICompatibleProvider(
            "openai",
            base_url=pc.openai_base_url,
            api_key=pc.openai_api_key,
            timeout_seconds=timeout,
            price_locally=True,
        ),
        "anthropic": AnthropicProvider(api_key=pc.anthropic_api_key, timeout_seconds=timeout),
        "google": GoogleGenAIProvider(
            api_key=pc.google_api_key,
            project_id=pc.gcp_project_id,
            location=pc.gcp_location,
            timeout_seconds=timeout,
        ),
        "lmstudio": OpenAICompatibleProvider(
            "lmstudio",
            base_url=pc.lmstudio_base_url,
            api_key=pc.lmstudio_api_key,
            requires_api_key=False,
            timeout_seconds=timeout,
        ),
    }


class ProviderRegistry:
    """Name-keyed collection of providers"""

    def __init__(self, config: HarnessConfig, providers: dict[str, Provider] | None = None) -> None:
        """
        Args:
            config: HarnessConfig (default provider and credentials)
            providers: Pre-built providers; built from config when omitted
        """
        self._config = config
        self._providers: dict[str, Provider] = (
            dict(providers) if providers is not None else build_default_providers(config)
        )

    def register(self, name: str, provider: Provider) -> None:
        """Add or replace a provider"""
        self._providers[name] = provider

    def get(self, name: str) -> Provider:
        """
        Look up a provider by name

        Raises:
            UnknownProviderError: If nothing is registered under the name
        """
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProviderError(f"Unknown provider: {name}") from None

    def names(self) -> list[str]:
        return list(self._providers)

    def check_all(self) -> list[ProviderHealth]:
        """Check availability of every registered provider"""
        results = []
        for name, provider in self._providers.items():
            try:
                results.append(ProviderHealth(name=name, available=bool(provider.is_available())))
            except Exception as e:
                logger.warning("Availability check for %s failed: %s", name, e)
                results.append(ProviderHealth(name=name, available=False, error=str(e)))
        return results

    def _is_available(self, name: str) -> bool:
        provider = self._providers.get(name)
        if provider is None:
            return False
        try:
            return bool(provider.is_available())
        except Exception as e:
            logger.warning("Availability check for %s failed: %s", name, e)
            return False

    def default(self) -> Provider:
        """
        Resolve the default provider

        The configured DEFAULT_PROVIDER wins when available; otherwise the first
        available provider in preference order.

        Raises:
            NoProviderAvailableError: If no provider is available
        """
        preferred = self._config.providers.default_provider
        if preferred and self._is_available(preferred):
            return self._providers[preferred]
        if preferred:
            logger.warning("Default provider %s is not available, falling back", preferred)

        order = PROVIDER_PREFERENCE + [n for n in self._providers if n not in PROVIDER_PREFERENCE]
        for name in order:
            if self._is_available(name):
                return self._providers[name]

        raise NoProviderAvailableError(
            "No LLM provider available. Configure an API key or start a local model server."
        )
