"""
Caching of expensive model evaluations.

A tolerance sweep re-runs the same averaging problem several times, and the
adaptive engine revisits many identical sample points between runs. Wrapping
the model in a ``ModelCache`` lets those runs share evaluations. Entries are
content-addressed by the rounded parameter tuple plus the configuration.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from polyavg.core.constants import CACHE_DECIMALS
from polyavg.core.logging_config import get_logger

logger = get_logger("core.cache")


class LRUCache:
    """
    Least Recently Used (LRU) cache with size limit and TTL support.

    This cache automatically evicts least recently used items when
    the cache exceeds max_size, and expires items older than ttl_seconds.
    """

    def __init__(self, max_size: int = 4096, ttl_seconds: Optional[float] = None):
        """
        Initialize LRU cache.

        Parameters
        ----------
        max_size : int
            Maximum number of items to cache
        ttl_seconds : float, optional
            Time-to-live in seconds. If None, items never expire.
        """
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.cache: OrderedDict[Hashable, Tuple[Any, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self.cache

    def __len__(self) -> int:
        with self._lock:
            return len(self.cache)

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Get item from cache.

        Returns
        -------
        Any or None
            Cached value, or None if not found or expired
        """
        with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            value, timestamp = entry
            if self.ttl_seconds is not None and time.time() - timestamp > self.ttl_seconds:
                del self.cache[key]
                self.misses += 1
                logger.debug(f"Cache entry expired: {key}")
                return None

            self.cache.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        """Set item in cache, evicting the least recently used entry if full."""
        with self._lock:
            if key in self.cache:
                self.cache.move_to_end(key)
            self.cache[key] = (value, time.time())

            if len(self.cache) > self.max_size:
                oldest_key, _ = self.cache.popitem(last=False)
                logger.debug(f"Evicted cache entry: {oldest_key}")

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self.cache.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns
        -------
        dict
            size, max_size, hits, misses, hit_rate
        """
        with self._lock:
            total = self.hits + self.misses
            hit_rate = self.hits / total if total > 0 else 0.0

            return {
                "size": len(self.cache),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": hit_rate,
            }


def parameter_key(parameters, decimals: int = CACHE_DECIMALS) -> Tuple:
    """Rounded ``(name, value)`` tuple identifying a parameter vector."""
    return tuple((name, round(float(parameters[name]), decimals)) for name in parameters.keys())


class ModelCache:
    """
    Memoizing wrapper around a model callable.

    Parameters
    ----------
    model : callable
        ``model(parameters, configuration)``
    max_size : int
        Maximum cached spectra
    decimals : int
        Rounding applied to parameter values before keying

    Example
    -------
    >>> cached = ModelCache(my_model)
    >>> for tol in (1e-2, 1e-3, 1e-4):
    ...     AveragingDriver(cached, params, weights, relative_tol=tol).average()
    >>> cached.stats()["hit_rate"]
    """

    def __init__(self, model: Callable, max_size: int = 4096, decimals: int = CACHE_DECIMALS):
        self.model = model
        self.decimals = decimals
        self._cache = LRUCache(max_size=max_size)

    def __call__(self, parameters, configuration=None):
        key = (parameter_key(parameters, self.decimals), _configuration_key(configuration))
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = self.model(parameters, configuration)
        self._cache.set(key, result)
        return result

    def stats(self) -> Dict[str, Any]:
        return self._cache.stats()

    def clear(self) -> None:
        self._cache.clear()
        logger.info("Model cache cleared")


def _configuration_key(configuration: Any) -> Hashable:
    if configuration is None:
        return None
    try:
        hash(configuration)
        return configuration
    except TypeError:
        # unhashable configs (dicts) are keyed by identity
        return ("id", id(configuration))
