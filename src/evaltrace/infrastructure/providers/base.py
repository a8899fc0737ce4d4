"""
Provider interface and errors

Defines the capability interface every provider conforms to, and the error
hierarchy the retry orchestrator uses to tell fatal failures from transient ones.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from evaltrace.domain.value_objects import CompletionOptions, CompletionResult


class ProviderError(Exception):
    """Base class for provider failures"""
    pass


class ProviderConfigurationError(ProviderError):
    """Non-retryable: the provider cannot be used as configured"""
    pass


class ProviderNotConfiguredError(ProviderConfigurationError):
    """Missing credentials or endpoint"""
    pass


class UnknownProviderError(ProviderConfigurationError):
    """No provider registered under the requested name"""
    pass


class NoProviderAvailableError(ProviderError):
    """No provider is available at all"""
    pass


class ProviderTimeoutError(ProviderError):
    """The call exceeded the configured timeout"""
    pass


class ProviderConnectionError(ProviderError):
    """The backend could not be reached"""
    pass


class ProviderStatusError(ProviderError):
    """The backend returned a non-success status"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderRateLimitError(ProviderStatusError):
    """The backend signalled a rate limit (HTTP 429)"""

    def __init__(self, message: str, status_code: int | None = 429):
        super().__init__(message, status_code)


@runtime_checkable
class Provider(Protocol):
    """Capability interface for LLM providers"""

    name: str
    default_model: str

    def complete(self, messages: list[dict], options: CompletionOptions) -> CompletionResult:
        """Send messages and return the completion"""
        ...

    def get_models(self) -> list[dict]:
        """List models offered by the provider"""
        ...

    def is_available(self) -> bool:
        """True when credentials are present and the service is reachable"""
        ...


def stream_or_complete(
    provider: Provider,
    messages: list[dict],
    options: CompletionOptions,
    on_chunk: Callable[[str], None] | None = None,
) -> CompletionResult:
    """Stream when the provider supports it, otherwise fall back to complete()"""
    stream = getattr(provider, "stream_complete", None)
    if stream is not None and on_chunk is not None:
        return stream(messages, options, on_chunk)
    result = provider.complete(messages, options)
    if on_chunk is not None:
        on_chunk(result.text)
    return result


def split_system_message(messages: list[dict]) -> tuple[str | None, list[dict]]:
    """Separate system instructions from the conversation messages"""
    system_parts = []
    conversation = []
    for msg in messages:
        if msg.get("role") == "system":
            system_parts.append(msg.get("content", ""))
        else:
            conversation.append({"role": msg["role"], "content": msg.get("content", "")})
    system = "\n\n".join(system_parts) if system_parts else None
    return system, conversation
