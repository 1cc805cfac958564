"""Short-lived cache of sampling results keyed by request content."""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .logging_setup import get_logger
from .models import EventCode, SamplingRequest, SamplingResult

log = get_logger("cache")

DEFAULT_TTL_SECONDS = 300.0

# Only ``save`` is left out: saved runs bypass the cache entirely.
CACHE_KEY_EXCLUDED_FIELDS = {"save"}


def cache_key(request: SamplingRequest) -> str:
    """Stable digest over every request field that shapes the result.

    Args:
        request (SamplingRequest): Validated sampling request.

    Returns:
        str: 32 hex characters of the SHA-256 of the canonical JSON.
    """
    payload = request.model_dump(mode="json", exclude=CACHE_KEY_EXCLUDED_FIELDS)
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]


@dataclass
class _CacheEntry:
    value: SamplingResult
    expires_at: float


class PlanCache:
    """Thread-safe TTL map of cache keys to sampling results.

    Concurrent writers for the same key simply overwrite each other; any
    computed value for a key is a valid one.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> SamplingResult | None:
        """Return a copy of the live entry for ``key``, if any."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= self._clock():
                return None
            return entry.value.model_copy(deep=True)

    def put(self, key: str, value: SamplingResult) -> None:
        with self._lock:
            self._entries[key] = _CacheEntry(
                value=value.model_copy(deep=True),
                expires_at=self._clock() + self.ttl_seconds,
            )
        log.info(EventCode.CACHE_STORED.value, cache_key=key)

    def sweep(self) -> int:
        """Drop expired entries.

        Returns:
            int: Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if entry.expires_at <= now
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            log.info(EventCode.CACHE_SWEPT.value, removed=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
