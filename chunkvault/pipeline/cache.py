"""
Transform Cache

Memoizes decoded (decrypted + decompressed) plaintext by artifact location
so repeated reconstructions skip the expensive transforms.

Design Decision: Eviction
=========================

Options Considered:
1. Unbounded map, cleared by hand
   - Fine only with periodic wholesale clears
2. LRU bounded by entry count
   - Simple, but 10MB and 10KB entries count the same
3. LRU bounded by total bytes
   - Memory use is predictable

Decision: Injectable policy, byte-bounded LRU by default
- NoEviction for callers that clear on a schedule
- Locations carry a write generation, so a cached entry never goes stale

Concurrency: two readers missing on the same location may both decode it.
That duplicates work but is harmless; the map update happens under a lock
and both writers store identical bytes.
"""

import logging
import threading
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, List, Optional

from ..config import Config

logger = logging.getLogger(__name__)


class EvictionPolicy:
    """Decides which cache entries to drop. Called with the cache lock held."""

    def on_get(self, key: str):
        pass

    def on_put(self, key: str, size: int):
        pass

    def on_remove(self, key: str):
        pass

    def clear(self):
        pass

    def victims(self) -> List[str]:
        """Keys to evict right now."""
        return []


class NoEviction(EvictionPolicy):
    """Keep everything until clear() is called."""


class LRUPolicy(EvictionPolicy):
    """Least-recently-used eviction bounded by total bytes and/or entry count."""

    def __init__(self, max_bytes: Optional[int] = None,
                 max_entries: Optional[int] = None):
        if max_bytes is None and max_entries is None:
            raise ValueError('LRUPolicy needs max_bytes or max_entries')
        self.max_bytes = max_bytes
        self.max_entries = max_entries
        self._order: 'OrderedDict[str, int]' = OrderedDict()
        self._bytes = 0

    def on_get(self, key: str):
        if key in self._order:
            self._order.move_to_end(key)

    def on_put(self, key: str, size: int):
        if key in self._order:
            self._bytes -= self._order.pop(key)
        self._order[key] = size
        self._bytes += size

    def on_remove(self, key: str):
        if key in self._order:
            self._bytes -= self._order.pop(key)

    def clear(self):
        self._order.clear()
        self._bytes = 0

    def _over(self, entries: int, total: int) -> bool:
        if self.max_entries is not None and entries > self.max_entries:
            return True
        if self.max_bytes is not None and total > self.max_bytes:
            return True
        return False

    def victims(self) -> List[str]:
        evict = []
        entries = len(self._order)
        total = self._bytes
        for key, size in self._order.items():
            if not self._over(entries, total):
                break
            evict.append(key)
            entries -= 1
            total -= size
        return evict


class TransformCache:
    """
    Location -> decoded plaintext.

    Owned by whoever builds the Reassembler and passed in explicitly;
    there is no module-level instance.
    """

    def __init__(self, policy: Optional[EvictionPolicy] = None):
        self.policy = policy or NoEviction()
        self._entries: Dict[str, bytes] = {}
        self._lock = threading.Lock()

        # Statistics
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, location: str) -> bool:
        return location in self._entries

    def get(self, location: str) -> Optional[bytes]:
        with self._lock:
            data = self._entries.get(location)
            if data is None:
                self.misses += 1
                return None
            self.hits += 1
            self.policy.on_get(location)
            return data

    def put(self, location: str, plaintext: bytes):
        with self._lock:
            self._entries[location] = plaintext
            self.policy.on_put(location, len(plaintext))
            for victim in self.policy.victims():
                self._entries.pop(victim, None)
                self.policy.on_remove(victim)
                self.evictions += 1
                logger.debug(f"Evicted {victim} from transform cache")

    async def get_or_load(self, location: str,
                          loader: Callable[[], Awaitable[bytes]]) -> bytes:
        """Return the cached plaintext, or run loader() and cache its result."""
        cached = self.get(location)
        if cached is not None:
            return cached

        plaintext = await loader()
        self.put(location, plaintext)
        return plaintext

    def invalidate(self, location: str) -> bool:
        with self._lock:
            if self._entries.pop(location, None) is None:
                return False
            self.policy.on_remove(location)
            return True

    def clear(self):
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
            self.policy.clear()

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._entries.values())

    def get_stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            keys = sorted(self._entries)
        return {
            'size': len(keys),
            'keys': keys,
            'bytes': self.total_bytes,
            'hits': self.hits,
            'misses': self.misses,
            'evictions': self.evictions,
        }


def create_cache(config: Config) -> TransformCache:
    """Build a cache with the policy named in the configuration."""
    if config.cache_policy == 'unbounded':
        return TransformCache(NoEviction())
    return TransformCache(LRUPolicy(max_bytes=config.cache_max_bytes))
