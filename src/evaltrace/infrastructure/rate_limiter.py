"""
Rate Limiter

Per-provider token bucket admission control over request rate and token throughput.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, TypeVar

from evaltrace.domain.constants import DEFAULT_RATE_LIMITS, FALLBACK_RATE_LIMIT
from evaltrace.harness_config import RateLimitConfig
from evaltrace.infrastructure.providers.base import ProviderRateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_rate_limit_error(error: BaseException) -> bool:
    """True when an error signals that the backend is rate limiting us"""
    if isinstance(error, ProviderRateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    message = str(error).lower()
    return "429" in message or "rate limit" in message


class TokenBucketRateLimiter:
    """
    Token bucket rate limiter

    Two buckets (requests and tokens) refill continuously in proportion to
    elapsed time and are capped at their per-minute ceilings. The lock guards
    bucket state only; it is never held while sleeping or during the wrapped call.
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        tokens_per_minute: int = 100_000,
        *,
        retry_after_seconds: float = 1.0,
        max_poll_seconds: float = 5.0,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """
        Args:
            requests_per_minute: Request bucket ceiling
            tokens_per_minute: Token bucket ceiling
            retry_after_seconds: Poll interval while waiting for capacity
            max_poll_seconds: Upper bound on a single poll sleep
            clock: Monotonic clock (default: time.monotonic)
            sleep: Sleep function (default: time.sleep)
        """
        self.requests_per_minute = requests_per_minute
        self.tokens_per_minute = tokens_per_minute
        self.retry_after_seconds = retry_after_seconds
        self.max_poll_seconds = max_poll_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep

        self._lock = threading.Lock()
        self._request_tokens = float(requests_per_minute)
        self._token_bucket = float(tokens_per_minute)
        self._last_refill = self._clock()

    def _refill(self) -> None:
        # Caller holds the lock
        now = self._clock()
        elapsed_minutes = max(0.0, now - self._last_refill) / 60
        self._request_tokens = min(
            self.requests_per_minute,
            self._request_tokens + self.requests_per_minute * elapsed_minutes,
        )
        self._token_bucket = min(
            self.tokens_per_minute,
            self._token_bucket + self.tokens_per_minute * elapsed_minutes,
        )
        self._last_refill = now

    @property
    def available_requests(self) -> float:
        with self._lock:
            self._refill()
            return self._request_tokens

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._token_bucket

    def can_admit(self, estimated_tokens: int = 1000) -> bool:
        """Whether one request of the estimated size fits right now"""
        # An estimate above the ceiling would never fit; cap it so a full bucket admits it
        needed = min(estimated_tokens, self.tokens_per_minute)
        with self._lock:
            self._refill()
            return self._request_tokens >= 1 and self._token_bucket >= needed

    def consume(self, tokens: int) -> None:
        """Debit one request and the given token count (buckets may go into debt)"""
        with self._lock:
            self._refill()
            self._request_tokens -= 1
            self._token_bucket -= tokens

    def wait_for_capacity(self, estimated_tokens: int = 1000) -> None:
        """Block until can_admit() holds, polling at the configured interval"""
        while not self.can_admit(estimated_tokens):
            self._sleep(min(self.retry_after_seconds, self.max_poll_seconds))

    def admit(self, fn: Callable[[], T], estimated_tokens: int = 1000) -> T:
        """
        Run fn under admission control

        After a rate-limit failure the call is re-invoked once after waiting
        2 x retry_after; a second rate-limit failure propagates to the caller.

        Args:
            fn: Call to run (typically a provider completion)
            estimated_tokens: Estimated tokens, debited when fn reports no usage

        Returns:
            fn's return value
        """
        try:
            return self._admit_once(fn, estimated_tokens)
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            logger.warning("Rate limited, retrying once after %.1fs: %s", self.retry_after_seconds * 2, e)
            self._sleep(self.retry_after_seconds * 2)
        return self._admit_once(fn, estimated_tokens)

    def _admit_once(self, fn: Callable[[], T], estimated_tokens: int) -> T:
        self.wait_for_capacity(estimated_tokens)
        result = fn()
        usage = getattr(result, "usage", None)
        actual = getattr(usage, "total_tokens", 0) or estimated_tokens
        self.consume(actual)
        return result


class RateLimiterRegistry:
    """One rate limiter per provider, created on first use"""

    def __init__(self, config: RateLimitConfig | None = None, **limiter_kwargs) -> None:
        self._config = config or RateLimitConfig()
        self._limiter_kwargs = limiter_kwargs
        self._limiters: dict[str, TokenBucketRateLimiter] = {}
        self._lock = threading.Lock()

    def limits_for(self, provider: str) -> dict[str, int]:
        """Effective limits: config overrides, then provider defaults, then the fallback"""
        limits = dict(DEFAULT_RATE_LIMITS.get(provider, FALLBACK_RATE_LIMIT))
        limits.update(self._config.limits.get(provider, {}))
        return limits

    def for_provider(self, provider: str) -> TokenBucketRateLimiter:
        with self._lock:
            limiter = self._limiters.get(provider)
            if limiter is None:
                limits = self.limits_for(provider)
                limiter = TokenBucketRateLimiter(
                    requests_per_minute=limits["requests_per_minute"],
                    tokens_per_minute=limits["tokens_per_minute"],
                    retry_after_seconds=self._config.retry_after_seconds,
                    max_poll_seconds=self._config.max_poll_seconds,
                    **self._limiter_kwargs,
                )
                self._limiters[provider] = limiter
            return limiter
