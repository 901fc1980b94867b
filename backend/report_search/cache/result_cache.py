"""
Topic-tagged result cache.

Entries are grouped into topics ("reports", "filter-options"), each with
its own freshness window. Invalidating a topic drops every entry under it
at once; there is no per-facet invalidation.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set, Tuple
import logging

from ..common.errors import CacheUnavailable
from ..config.search_config import CACHE_CONFIG

logger = logging.getLogger('search')

REPORTS_TOPIC = 'reports'
FILTER_OPTIONS_TOPIC = 'filter-options'


@dataclass(frozen=True)
class CacheEntry:
    """A serialized result and the window it stays fresh for."""
    value: str
    topic: str
    created_at: float
    window: float

    def is_fresh(self, now: float) -> bool:
        return now - self.created_at < self.window


class CacheBackend(ABC):
    """Port for cache storage."""

    @abstractmethod
    def get(self, key: str) -> Tuple[Optional[str], bool]:
        """Return (value, fresh); (None, False) when nothing is stored."""
        pass

    @abstractmethod
    def set(self, key: str, value: str, topic: str, window: float):
        """Store a value under a topic, replacing any previous entry."""
        pass

    @abstractmethod
    def invalidate(self, topic: str) -> int:
        """Drop every entry of a topic, returning how many were dropped."""
        pass


class InMemoryCache(CacheBackend):
    """
    Bounded in-process cache backend.

    Stale entries are kept until overwritten, evicted or invalidated so
    callers can still see them flagged as not fresh. Beyond ``max_entries``
    the oldest write is evicted first.
    """

    def __init__(
        self,
        max_entries: int = CACHE_CONFIG['max_entries'],
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_entries = max_entries
        self.clock = clock
        self.entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self.topics: Dict[str, Set[str]] = {}
        self.lock = threading.Lock()

    def get(self, key: str) -> Tuple[Optional[str], bool]:
        with self.lock:
            entry = self.entries.get(key)
            if entry is None:
                return None, False
            return entry.value, entry.is_fresh(self.clock())

    def set(self, key: str, value: str, topic: str, window: float):
        with self.lock:
            self._discard(key)
            self.entries[key] = CacheEntry(
                value=value,
                topic=topic,
                created_at=self.clock(),
                window=window
            )
            self.topics.setdefault(topic, set()).add(key)

            while len(self.entries) > self.max_entries:
                oldest = next(iter(self.entries))
                self._discard(oldest)

    def invalidate(self, topic: str) -> int:
        with self.lock:
            keys = self.topics.pop(topic, set())
            for key in keys:
                self.entries.pop(key, None)
            return len(keys)

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return {topic: len(keys) for topic, keys in self.topics.items()}

    def _discard(self, key: str):
        entry = self.entries.pop(key, None)
        if entry is not None:
            self.topics.get(entry.topic, set()).discard(key)


class ResultCache:
    """
    Read-through cache over a CacheBackend.

    Backend failures never fail a request: reads fall back to computing the
    value and the write is skipped. Concurrent misses on one key may each
    compute; computations are read-only so that only costs time.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        windows: Optional[Dict[str, float]] = None
    ):
        self.backend = backend or InMemoryCache()
        self.windows = dict(windows or CACHE_CONFIG['topics'])
        self.hits = 0
        self.misses = 0
        self.stats_lock = threading.Lock()

    def window(self, topic: str) -> float:
        return self.windows[topic]

    def get_or_compute(self, topic: str, key: str, compute: Callable[[], str]) -> str:
        """
        Return the fresh cached value for key, or compute and store it.

        Args:
            topic: Invalidation scope of the entry
            key: Canonical request key
            compute: Produces the serialized value on a miss

        Returns:
            Serialized value
        """
        window = self.window(topic)
        cache_ok = True

        try:
            value, fresh = self._backend_call(self.backend.get, key)
            if value is not None and fresh:
                with self.stats_lock:
                    self.hits += 1
                logger.debug(f"Cache hit: {key}")
                return value
        except CacheUnavailable as e:
            cache_ok = False
            logger.warning(f"Cache read failed, computing directly: {e}")

        with self.stats_lock:
            self.misses += 1
        value = compute()

        if cache_ok:
            try:
                self._backend_call(self.backend.set, key, value, topic, window)
            except CacheUnavailable as e:
                logger.warning(f"Cache write skipped: {e}")

        return value

    def invalidate(self, topic: str) -> int:
        """
        Discard every entry of a topic, regardless of freshness.

        Raises:
            KeyError: If the topic is unknown
        """
        if topic not in self.windows:
            raise KeyError(topic)

        dropped = self._backend_call(self.backend.invalidate, topic)
        logger.info(f"Invalidated cache topic '{topic}': {dropped} entries dropped")
        return dropped

    def stats(self) -> Dict[str, Any]:
        with self.stats_lock:
            hits, misses = self.hits, self.misses
        return {
            'hits': hits,
            'misses': misses,
            'topics': {topic: int(window) for topic, window in self.windows.items()},
        }

    @staticmethod
    def _backend_call(method, *args):
        try:
            return method(*args)
        except CacheUnavailable:
            raise
        except Exception as e:
            raise CacheUnavailable(str(e)) from e
