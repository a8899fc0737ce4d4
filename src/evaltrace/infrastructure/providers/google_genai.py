"""
Google GenAI provider (Gemini API or Vertex AI)
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from google import genai
from google.genai import errors as genai_errors
from google.genai.types import Content, GenerateContentConfig, HttpOptions, Part

from evaltrace.cost_calc import calculate_cost
from evaltrace.domain.constants import DEFAULT_PROVIDER_MODELS
from evaltrace.domain.value_objects import CompletionOptions, CompletionResult, TokenUsage
from evaltrace.infrastructure.providers.base import (
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderStatusError,
    split_system_message,
)

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors():
    """Map SDK exceptions onto the provider error hierarchy"""
    try:
        yield
    except genai_errors.APIError as e:
        if e.code == 429:
            raise ProviderRateLimitError(f"Google error: 429 - {e}") from e
        if e.code in (401, 403):
            raise ProviderNotConfiguredError(f"Google credentials rejected: {e}") from e
        raise ProviderStatusError(f"Google error: {e.code} - {e}", e.code) from e


def _usage_from(metadata) -> TokenUsage | None:
    if not metadata:
        return None
    return TokenUsage.of(
        getattr(metadata, "prompt_token_count", 0) or 0,
        getattr(metadata, "candidates_token_count", 0) or 0,
    )


class GoogleGenAIProvider:
    """Provider using the Google GenAI SDK (API key or Vertex AI project)"""

    name = "google"

    def __init__(
        self,
        api_key: str | None = None,
        project_id: str | None = None,
        location: str = "global",
        timeout_seconds: int = 60,
        default_model: str | None = None,
    ):
        """
        Args:
            api_key: Gemini API key (takes precedence over Vertex AI)
            project_id: GCP project ID for Vertex AI
            location: Vertex AI region (default: global)
            timeout_seconds: Per-call timeout in seconds (default: 60)
            default_model: Model used when options do not name one
        """
        self.default_model = default_model or DEFAULT_PROVIDER_MODELS["google"]
        self.timeout_seconds = timeout_seconds

        # Timeout is configured via HttpOptions (milliseconds)
        http_options = HttpOptions(timeout=timeout_seconds * 1000)
        if api_key:
            self.client = genai.Client(api_key=api_key, http_options=http_options)
        elif project_id:
            self.client = genai.Client(
                vertexai=True,
                project=project_id,
                location=location,
                http_options=http_options,
            )
        else:
            self.client = None

    def _require_client(self):
        if self.client is None:
            raise ProviderNotConfiguredError("Google API key not configured (set GOOGLE_API_KEY or GCP_PROJECT_ID)")
        return self.client

    @staticmethod
    def _build_request(messages: list[dict], options: CompletionOptions) -> tuple[list[Content], GenerateContentConfig]:
        system, conversation = split_system_message(messages)
        contents = [
            Content(
                role="model" if msg["role"] == "assistant" else "user",
                parts=[Part(text=msg["content"])],
            )
            for msg in conversation
        ]
        config = GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
            system_instruction=system,
        )
        return contents, config

    def complete(self, messages: list[dict], options: CompletionOptions) -> CompletionResult:
        """
        Send messages and retrieve the response

        Raises:
            ProviderNotConfiguredError: If neither an API key nor a project is configured
            ProviderError: On a non-success status
        """
        client = self._require_client()
        model = options.model or self.default_model
        contents, config = self._build_request(messages, options)

        start_time = time.time()
        with _translate_errors():
            response = client.models.generate_content(model=model, contents=contents, config=config)
        latency_ms = int((time.time() - start_time) * 1000)

        usage = _usage_from(getattr(response, "usage_metadata", None))
        return CompletionResult(
            text=response.text or "",
            latency_ms=latency_ms,
            model=model,
            provider=self.name,
            usage=usage,
            cost=calculate_cost(model, usage),
        )

    def stream_complete(self, messages: list[dict], options: CompletionOptions, on_chunk) -> CompletionResult:
        """Stream the response, passing each text chunk to on_chunk"""
        client = self._require_client()
        model = options.model or self.default_model
        contents, config = self._build_request(messages, options)

        parts: list[str] = []
        usage = None
        start_time = time.time()
        with _translate_errors():
            for chunk in client.models.generate_content_stream(model=model, contents=contents, config=config):
                if chunk.text:
                    parts.append(chunk.text)
                    on_chunk(chunk.text)
                usage = _usage_from(getattr(chunk, "usage_metadata", None)) or usage
        latency_ms = int((time.time() - start_time) * 1000)

        return CompletionResult(
            text="".join(parts),
            latency_ms=latency_ms,
            model=model,
            provider=self.name,
            usage=usage,
            cost=calculate_cost(model, usage),
        )

    def get_models(self) -> list[dict]:
        if self.client is None:
            return []
        try:
            return [
                {"id": m.name, "name": getattr(m, "display_name", None) or m.name}
                for m in self.client.models.list()
            ]
        except genai_errors.APIError as e:
            logger.warning("Google get_models failed: %s", e)
            return []

    def is_available(self) -> bool:
        return self.client is not None
