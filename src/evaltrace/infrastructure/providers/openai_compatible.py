"""
OpenAI-compatible API provider

Serves OpenAI itself plus every backend exposing the same chat completions API
(OpenRouter, Ollama, LMStudio).
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

import openai
from openai import OpenAI

from evaltrace.cost_calc import calculate_cost
from evaltrace.domain.constants import DEFAULT_PROVIDER_MODELS
from evaltrace.domain.value_objects import CompletionOptions, CompletionResult, TokenUsage
from evaltrace.infrastructure.providers.base import (
    ProviderConnectionError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderStatusError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)

# Timeout for availability checks against local servers
_AVAILABILITY_TIMEOUT_SECONDS = 2.0


class OpenAICompatibleProvider:
    """Provider using an OpenAI-compatible chat completions endpoint"""

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str | None = None,
        requires_api_key: bool = True,
        timeout_seconds: int = 60,
        default_model: str | None = None,
        price_locally: bool = False,
    ):
        """
        Args:
            name: Provider name (openai, openrouter, ollama, lmstudio)
            base_url: API endpoint
            api_key: API key (local servers accept any placeholder)
            requires_api_key: Whether a missing key makes the provider unusable
            timeout_seconds: Per-call timeout in seconds (default: 60)
            default_model: Model used when options do not name one
            price_locally: Whether the pricing table applies (False for free local servers)
        """
        self.name = name
        self.base_url = base_url
        self.requires_api_key = requires_api_key
        self.timeout_seconds = timeout_seconds
        self.default_model = default_model or DEFAULT_PROVIDER_MODELS.get(name, "")
        self.price_locally = price_locally

        if requires_api_key and not api_key:
            self.client = None
        else:
            # SDK retries are disabled: the retry orchestrator owns backoff
            self.client = OpenAI(
                base_url=base_url,
                api_key=api_key or "not-needed",
                timeout=timeout_seconds,
                max_retries=0,
            )

    @contextmanager
    def _translate_errors(self):
        """Map SDK exceptions onto the provider error hierarchy"""
        label = self.name.capitalize()
        try:
            yield
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(f"{label} request timed out: {e}") from e
        except openai.APIConnectionError as e:
            raise ProviderConnectionError(f"{label} connection error ({self.base_url}): {e}") from e
        except openai.AuthenticationError as e:
            raise ProviderNotConfiguredError(f"{label} API key rejected: {e}") from e
        except openai.RateLimitError as e:
            raise ProviderRateLimitError(f"{label} error: 429 - {e}") from e
        except openai.APIStatusError as e:
            raise ProviderStatusError(f"{label} error: {e.status_code} - {e}", e.status_code) from e

    def _require_client(self) -> OpenAI:
        if self.client is None:
            raise ProviderNotConfiguredError(f"{self.name.capitalize()} API key not configured")
        return self.client

    def _cost(self, model: str, usage: TokenUsage | None) -> float | None:
        if not self.price_locally:
            return None
        return calculate_cost(model, usage)

    def complete(self, messages: list[dict], options: CompletionOptions) -> CompletionResult:
        """
        Send messages and retrieve the response

        Raises:
            ProviderNotConfiguredError: If a required API key is missing
            ProviderError: On timeout, connection failure, or non-success status
        """
        client = self._require_client()
        model = options.model or self.default_model

        start_time = time.time()
        with self._translate_errors():
            response = client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        latency_ms = int((time.time() - start_time) * 1000)

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""

        usage = None
        if response.usage:
            usage = TokenUsage.of(response.usage.prompt_tokens, response.usage.completion_tokens)

        return CompletionResult(
            text=text,
            latency_ms=latency_ms,
            model=model,
            provider=self.name,
            usage=usage,
            cost=self._cost(model, usage),
        )

    def stream_complete(self, messages: list[dict], options: CompletionOptions, on_chunk) -> CompletionResult:
        """Stream the response, passing each text chunk to on_chunk"""
        client = self._require_client()
        model = options.model or self.default_model

        parts: list[str] = []
        usage = None
        start_time = time.time()
        with self._translate_errors():
            stream = client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )
            for chunk in stream:
                if chunk.choices:
                    delta = chunk.choices[0].delta.content
                    if delta:
                        parts.append(delta)
                        on_chunk(delta)
                if getattr(chunk, "usage", None):
                    usage = TokenUsage.of(chunk.usage.prompt_tokens, chunk.usage.completion_tokens)
        latency_ms = int((time.time() - start_time) * 1000)

        return CompletionResult(
            text="".join(parts),
            latency_ms=latency_ms,
            model=model,
            provider=self.name,
            usage=usage,
            cost=self._cost(model, usage),
        )

    def get_models(self) -> list[dict]:
        if self.client is None:
            return []
        try:
            return [{"id": m.id, "name": m.id} for m in self.client.models.list()]
        except openai.OpenAIError as e:
            logger.warning("%s get_models failed: %s", self.name, e)
            return []

    def is_available(self) -> bool:
        if self.client is None:
            return False
        if self.requires_api_key:
            return True
        # Local servers: available only when reachable
        try:
            self.client.with_options(timeout=_AVAILABILITY_TIMEOUT_SECONDS).models.list()
            return True
        except openai.OpenAIError:
            return False
