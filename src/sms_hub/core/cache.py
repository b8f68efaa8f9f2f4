# src/sms_hub/core/cache.py

"""
In-memory key/value cache with per-entry TTL.

Expired entries are evicted lazily (on get/has) or on demand via
sweep_expired(). There is no background sweeper and no locking: the app runs
on a single event loop and all mutations are synchronous.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

NEVER_EXPIRES = -1


@dataclass(slots=True)
class CacheEntry:
    value: Any
    expires_at: float | None  # None -> never expires

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class ExpiringCache:
    """
    TTL cache.

    ttl semantics for set():
    - None -> default TTL given at construction
    - -1   -> never expires
    - 0    -> expires immediately (the entry is stored but never readable)
    - n    -> expires n seconds from now
    """

    def __init__(
        self,
        default_ttl: float = 3600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._default_ttl = float(default_ttl)
        self._clock = clock

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if ttl == NEVER_EXPIRES:
            expires_at = None
        else:
            seconds = self._default_ttl if ttl is None else float(ttl)
            expires_at = self._clock() + seconds
        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._live_entry(key)
        return default if entry is None else entry.value

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def size(self) -> int:
        # May include expired entries that were not read since they expired.
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)
