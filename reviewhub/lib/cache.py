"""Read-through cache with a pluggable backend.

Values are stored as JSON text with a short TTL, so whatever a caller gets
back is a detached copy that can be mutated freely. Keys are registered
under a logical prefix when they are written so a whole family of
parameterised keys (e.g. every public listing) can be dropped at once.

A failing backend never fails a request: errors are logged and the lookup
behaves like a miss.
"""
import json
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional, Set, Tuple

from reviewhub.lib.logging import get_logger
from reviewhub.lib.metrics import get_metrics_collector


logger = get_logger(__name__)


class CacheBackend(ABC):
    """Abstract base class for key/value stores with expiry."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored payload, or None if absent or expired."""
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class InMemoryCacheBackend(CacheBackend):
    """Process-local store for development and tests.

    Entries are (payload, expires_at) pairs; expired entries are dropped
    lazily on read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = Lock()
        self._store: Dict[str, Tuple[str, float]] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if self._clock() >= expires_at:
                # Clean up expired entry
                del self._store[key]
                return None
            return payload

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._store[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


def build_cache_key(prefix: str, method: str, filters: Optional[Mapping[str, Any]] = None) -> str:
    """
    Deterministic key for a cached call.

    None-valued filters are dropped so that omitted and explicitly-null
    parameters share one entry.

    Example:
        >>> build_cache_key("analytics", "summary", {"days": 7, "channel": None})
        'analytics:summary:{"days": 7}'
    """
    cleaned = {k: v for k, v in (filters or {}).items() if v is not None}
    return f"{prefix}:{method}:{json.dumps(cleaned, sort_keys=True, default=str)}"


class CacheService:
    """
    Cache facade used by the services.

    Usage:
        cache = CacheService(InMemoryCacheBackend(), default_ttl=300)
        stats = cache.get_or_set("reviews:statistics", compute_stats, ttl=300)
        cache.invalidate_prefix("reviews:approved")
    """

    def __init__(self, backend: CacheBackend, default_ttl: int = 300):
        self.backend = backend
        self.default_ttl = default_ttl
        self._registry_lock = Lock()
        # prefix -> keys written under it
        self._registry: Dict[str, Set[str]] = {}

    @staticmethod
    def _namespace(key: str) -> str:
        return key.split(":", 1)[0]

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None on miss (or backend failure)."""
        metrics = get_metrics_collector()
        namespace = self._namespace(key)
        try:
            payload = self.backend.get(key)
            value = json.loads(payload) if payload is not None else None
        except Exception as e:
            logger.warning(
                "Cache read failed, treating as miss",
                extra={"cache_key": key, "error": str(e)},
            )
            metrics.increment_cache("error", namespace=namespace)
            return None

        if payload is None:
            metrics.increment_cache("miss", namespace=namespace)
            self._forget(key)
            return None

        metrics.increment_cache("hit", namespace=namespace)
        return value

    def _forget(self, key: str) -> None:
        # Expired or evicted keys leave the registry on the next miss
        with self._registry_lock:
            for prefix, keys in list(self._registry.items()):
                keys.discard(key)
                if not keys:
                    del self._registry[prefix]

    def set(self, key: str, value: Any, ttl: Optional[int] = None, prefix: Optional[str] = None) -> None:
        """
        Store a JSON-serializable value.

        Args:
            key: Cache key
            value: Value to store
            ttl: Seconds to live (defaults to default_ttl)
            prefix: Logical prefix to register the key under for bulk invalidation
        """
        try:
            self.backend.set(key, json.dumps(value, default=str), ttl or self.default_ttl)
        except Exception as e:
            logger.warning(
                "Cache write failed, value not cached",
                extra={"cache_key": key, "error": str(e)},
            )
            return

        if prefix:
            with self._registry_lock:
                self._registry.setdefault(prefix, set()).add(key)

    def get_or_set(
        self,
        key: str,
        compute: Callable[[], Any],
        ttl: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> Any:
        """Return the cached value, computing and writing it through on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached

        value = compute()
        self.set(key, value, ttl=ttl, prefix=prefix)
        # Round-trip so hits and misses hand back the same shape
        return json.loads(json.dumps(value, default=str))

    def invalidate(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception as e:
            logger.warning(
                "Cache delete failed",
                extra={"cache_key": key, "error": str(e)},
            )

    def invalidate_prefix(self, prefix: str) -> int:
        """
        Delete every key registered under prefix.

        Returns:
            Number of keys that were registered
        """
        with self._registry_lock:
            keys = self._registry.pop(prefix, set())

        for key in keys:
            self.invalidate(key)

        if keys:
            logger.debug("Invalidated cache prefix", extra={"prefix": prefix, "keys": len(keys)})
        return len(keys)

    def registered_keys(self, prefix: str) -> Set[str]:
        with self._registry_lock:
            return set(self._registry.get(prefix, set()))

    def clear(self) -> None:
        with self._registry_lock:
            self._registry.clear()
        try:
            self.backend.clear()
        except Exception as e:
            logger.warning("Cache clear failed", extra={"error": str(e)})
