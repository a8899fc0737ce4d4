"""
Response Cache

Content-addressed file store of completion results keyed by request fingerprint.
Entries expire lazily at read time once older than the TTL.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from evaltrace.domain.value_objects import CompletionOptions, CompletionRequest, CompletionResult

logger = logging.getLogger(__name__)


def fingerprint(provider: str, model: str, messages: list[dict], options: CompletionOptions) -> str:
    """
    Compute the cache key of a request

    Args:
        provider: Provider name
        model: Model name (takes precedence over options.model)
        messages: Exact message sequence
        options: Sampling options (temperature, max_tokens)

    Returns:
        32 hex characters of SHA-256 over the canonical JSON of the request
    """
    request = CompletionRequest(
        provider=provider,
        messages=tuple(dict(m) for m in messages),
        options=CompletionOptions(
            model=model,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        ),
    )
    return request.fingerprint()


@dataclass
class CacheStats:
    """Cache directory statistics"""
    entries: int
    size_bytes: int


class ResponseCache:
    """File-backed response cache (one JSON file per fingerprint)"""

    fingerprint = staticmethod(fingerprint)

    def __init__(self, cache_dir: str | Path = ".cache", ttl_seconds: float = 86400.0) -> None:
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_seconds

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> CompletionResult | None:
        """
        Read an entry

        Returns:
            The cached result, or None when absent, malformed or expired
        """
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                entry = json.load(f)
            timestamp_ms = float(entry["timestamp"])
            result = CompletionResult.from_dict(entry["response"])
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable cache entry %s: %s", path.name, e)
            return None

        age_seconds = time.time() - timestamp_ms / 1000
        if age_seconds > self.ttl_seconds:
            return None
        return result

    def put(self, key: str, result: CompletionResult) -> None:
        """Write an entry (best-effort: I/O failures are logged and swallowed)"""
        entry = {
            "timestamp": int(time.time() * 1000),
            "response": result.to_dict(),
        }
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entry, f, ensure_ascii=False)
                os.replace(tmp_name, self._path(key))
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    def clear(self) -> int:
        """Delete every entry, returning the number removed"""
        if not self.cache_dir.exists():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Could not delete cache entry %s: %s", path.name, e)
        return removed

    def stats(self) -> CacheStats:
        if not self.cache_dir.exists():
            return CacheStats(entries=0, size_bytes=0)
        files = list(self.cache_dir.glob("*.json"))
        return CacheStats(
            entries=len(files),
            size_bytes=sum(p.stat().st_size for p in files),
        )
