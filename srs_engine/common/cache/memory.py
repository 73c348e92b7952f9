"""
Memory Cache Module

This module implements a thread-safe in-memory cache with TTL expiry and LRU
eviction. Keys are tuples so that every entry belonging to one learner can be
invalidated with a single prefix.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from .entry import CacheEntry

# Setup logging
logger = logging.getLogger(__name__)

# Type variables
V = TypeVar('V')


class MemoryCache(Generic[V]):
    """
    In-memory cache.

    Features:
    - Thread-safe operations
    - LRU eviction when reaching maximum size
    - Lazy expiry on read plus explicit cleanup
    - Prefix invalidation for tuple keys
    - Generation counts per first key component, for conditional writes
    - Statistics tracking
    """

    def __init__(self, max_size: int = 1000, default_ttl: Optional[float] = None, name: str = "memory"):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries to store
            default_ttl: TTL applied when ``set`` is called without one
            name: Name used in statistics and logs
        """
        self._cache: "OrderedDict[Tuple[Hashable, ...], CacheEntry[V]]" = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._name = name
        self._generations: Dict[Hashable, int] = {}

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._invalidations = 0
        self._stale_writes = 0

    @property
    def name(self) -> str:
        """Get the name of this cache."""
        return self._name

    def get(self, key: Tuple[Hashable, ...]) -> Optional[V]:
        """
        Get a value from the cache.

        Args:
            key: The cache key

        Returns:
            The cached value, or None on a miss
        """
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired():
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                return None

            entry.access()
            self._cache.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: Tuple[Hashable, ...], value: V, ttl: Optional[float] = None) -> None:
        """
        Set a value in the cache.

        Args:
            key: The cache key
            value: The value to cache
            ttl: Time-to-live in seconds (defaults to the cache's default)
        """
        with self._lock:
            entry = CacheEntry(value, ttl if ttl is not None else self._default_ttl)
            if key not in self._cache and len(self._cache) >= self._max_size:
                self._evict_entries()
            self._cache[key] = entry
            self._cache.move_to_end(key)

    def generation(self, head: Hashable) -> int:
        """Number of prefix invalidations so far for keys starting with ``head``."""
        with self._lock:
            return self._generations.get(head, 0)

    def set_if_generation(
        self,
        key: Tuple[Hashable, ...],
        value: V,
        generation: int,
        ttl: Optional[float] = None
    ) -> bool:
        """
        Set a value only if no invalidation touched ``key[0]`` since
        ``generation`` was read.

        Args:
            key: The cache key
            value: The value to cache
            generation: Result of ``generation(key[0])`` taken before computing the value
            ttl: Time-to-live in seconds

        Returns:
            True if the value was stored
        """
        with self._lock:
            if self._generations.get(key[0], 0) != generation:
                self._stale_writes += 1
                return False
            self.set(key, value, ttl)
            return True

    def delete(self, key: Tuple[Hashable, ...]) -> bool:
        """
        Delete a value from the cache.

        Returns:
            True if the key was found and deleted, False otherwise
        """
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def invalidate_prefix(self, *prefix: Hashable) -> int:
        """
        Delete every entry whose key starts with ``prefix`` and advance the
        generation of ``prefix[0]``.

        Args:
            *prefix: Leading key components, e.g. a learner id

        Returns:
            Number of entries removed
        """
        size = len(prefix)
        with self._lock:
            doomed = [key for key in self._cache if key[:size] == prefix]
            for key in doomed:
                del self._cache[key]
            self._invalidations += len(doomed)
            if prefix:
                self._generations[prefix[0]] = self._generations.get(prefix[0], 0) + 1
        if doomed:
            logger.debug(f"{self._name}: invalidated {len(doomed)} entries for {prefix}")
        return len(doomed)

    def clear(self) -> None:
        """Clear all values from the cache."""
        with self._lock:
            self._cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the cache.

        Returns:
            Dictionary containing cache statistics
        """
        with self._lock:
            total = self._hits + self._misses
            return {
                'backend': self._name,
                'size': len(self._cache),
                'max_size': self._max_size,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0,
                'evictions': self._evictions,
                'expirations': self._expirations,
                'invalidations': self._invalidations,
                'stale_writes': self._stale_writes
            }

    def _evict_entries(self) -> None:
        """Evict least recently used entries until there is room for one more."""
        while len(self._cache) >= self._max_size:
            self._cache.popitem(last=False)
            self._evictions += 1

    def __len__(self) -> int:
        """Return the number of entries in the cache."""
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: Tuple[Hashable, ...]) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            return entry is not None and not entry.is_expired()
