"""
Anthropic Claude provider
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

import anthropic
from anthropic import Anthropic

from evaltrace.cost_calc import calculate_cost
from evaltrace.domain.constants import DEFAULT_PROVIDER_MODELS
from evaltrace.domain.value_objects import CompletionOptions, CompletionResult, TokenUsage
from evaltrace.infrastructure.providers.base import (
    ProviderConnectionError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderStatusError,
    ProviderTimeoutError,
    split_system_message,
)

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors():
    """Map SDK exceptions onto the provider error hierarchy"""
    try:
        yield
    except anthropic.APITimeoutError as e:
        raise ProviderTimeoutError(f"Anthropic request timed out: {e}") from e
    except anthropic.APIConnectionError as e:
        raise ProviderConnectionError(f"Anthropic connection error: {e}") from e
    except anthropic.AuthenticationError as e:
        raise ProviderNotConfiguredError(f"Anthropic API key rejected: {e}") from e
    except anthropic.RateLimitError as e:
        raise ProviderRateLimitError(f"Anthropic error: 429 - {e}") from e
    except anthropic.APIStatusError as e:
        raise ProviderStatusError(f"Anthropic error: {e.status_code} - {e}", e.status_code) from e


class AnthropicProvider:
    """Claude provider using the Anthropic API"""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: int = 60,
        default_model: str | None = None,
    ):
        """
        Args:
            api_key: Anthropic API key
            timeout_seconds: Per-call timeout in seconds (default: 60)
            default_model: Model used when options do not name one
        """
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.default_model = default_model or DEFAULT_PROVIDER_MODELS["anthropic"]
        # SDK retries are disabled: the retry orchestrator owns backoff
        self.client = (
            Anthropic(api_key=api_key, timeout=timeout_seconds, max_retries=0)
            if api_key else None
        )

    def _require_client(self) -> Anthropic:
        if self.client is None:
            raise ProviderNotConfiguredError("Anthropic API key not configured")
        return self.client

    def _request_kwargs(self, messages: list[dict], options: CompletionOptions) -> dict:
        system, conversation = split_system_message(messages)
        kwargs = {
            "model": options.model or self.default_model,
            "messages": conversation,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    def _to_result(self, response, model: str, latency_ms: int) -> CompletionResult:
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        usage = TokenUsage.of(
            getattr(response.usage, "input_tokens", 0),
            getattr(response.usage, "output_tokens", 0),
        )
        return CompletionResult(
            text=text,
            latency_ms=latency_ms,
            model=model,
            provider=self.name,
            usage=usage,
            cost=calculate_cost(model, usage),
        )

    def complete(self, messages: list[dict], options: CompletionOptions) -> CompletionResult:
        """
        Send messages and retrieve the response

        Raises:
            ProviderNotConfiguredError: If no API key is configured
            ProviderError: On timeout, connection failure, or non-success status
        """
        client = self._require_client()
        kwargs = self._request_kwargs(messages, options)

        start_time = time.time()
        with _translate_errors():
            response = client.messages.create(**kwargs)
        latency_ms = int((time.time() - start_time) * 1000)

        return self._to_result(response, kwargs["model"], latency_ms)

    def stream_complete(self, messages: list[dict], options: CompletionOptions, on_chunk) -> CompletionResult:
        """Stream the response, passing each text chunk to on_chunk"""
        client = self._require_client()
        kwargs = self._request_kwargs(messages, options)

        start_time = time.time()
        with _translate_errors():
            with client.messages.stream(**kwargs) as stream:
                for text in stream.text_stream:
                    on_chunk(text)
                response = stream.get_final_message()
        latency_ms = int((time.time() - start_time) * 1000)

        return self._to_result(response, kwargs["model"], latency_ms)

    def get_models(self) -> list[dict]:
        if self.client is None:
            return []
        try:
            return [
                {"id": m.id, "name": getattr(m, "display_name", m.id)}
                for m in self.client.models.list()
            ]
        except anthropic.APIError as e:
            logger.warning("Anthropic get_models failed: %s", e)
            return []

    def is_available(self) -> bool:
        return self.client is not None
