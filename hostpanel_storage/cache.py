"""
Read-through cache for the user registry.

The user registry is read on nearly every authenticated request, so one
designated path gets a short-lived in-process copy. Every other path goes
straight to the remote client.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .remote.client import ContentStoreClient
from .remote.types import USERS_PATH

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


@dataclass
class CacheEntry:
    """A cached snapshot and the clock reading when it was fetched."""

    value: Any
    fetched_at: float


class CollectionCache:
    """
    Time-bounded read cache for exactly one remote path.

    Features:
    - Entry valid while ``clock() - fetched_at < ttl_seconds``
    - Dropped unconditionally on any write attempt to the path (the cache
      registers itself as a write listener on the client)
    - Reads return deep copies so callers can edit them in place
    - A fetch that started before an invalidation never repopulates the
      cache with its result
    """

    def __init__(
        self,
        client: ContentStoreClient,
        path: str = USERS_PATH,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            client: Remote client to read through
            path: The designated hot path
            ttl_seconds: Entry lifetime in seconds
            clock: Monotonic clock, injectable for tests
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")

        self.client = client
        self.path = path
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: CacheEntry | None = None
        self._generation = 0
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

        client.add_write_listener(self.invalidate)

    def _fresh_entry(self) -> CacheEntry | None:
        entry = self._entry
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            self._entry = None
            return None
        return entry

    async def read(self, path: str) -> Any:
        """
        Read ``path``, serving the designated path from cache when fresh.

        Args:
            path: Remote path

        Returns:
            Whatever ContentStoreClient.fetch returns
        """
        if path != self.path:
            return await self.client.fetch(path)

        entry = self._fresh_entry()
        if entry is not None:
            self._hits += 1
            logger.debug(f"Served {path} from cache")
            return copy.deepcopy(entry.value)

        self._misses += 1
        generation = self._generation
        value = await self.client.fetch(path)

        if isinstance(value, (list, dict)) and generation == self._generation:
            self._entry = CacheEntry(value=copy.deepcopy(value), fetched_at=self._clock())
        return value

    def invalidate(self, path: str) -> None:
        """Drop the entry if ``path`` is the designated path."""
        if path != self.path:
            return
        self._entry = None
        self._generation += 1
        self._invalidations += 1

    def clear(self) -> None:
        """Drop the entry regardless of path."""
        self.invalidate(self.path)

    def is_cached(self) -> bool:
        """Return True if a non-expired entry exists."""
        return self._fresh_entry() is not None

    def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with cache metrics
        """
        return {
            "path": self.path,
            "cached": self._entry is not None,
            "hits": self._hits,
            "misses": self._misses,
            "invalidations": self._invalidations,
            "ttl_seconds": self.ttl_seconds,
        }
