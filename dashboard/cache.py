"""TTL cache for gateway responses."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class CacheInterface(ABC):
    """Abstract cache interface. TTL is fixed per entry when it is stored."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get cached value if it exists and has not expired."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store value with a time-to-live."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all entries."""
        pass

    @abstractmethod
    def stats(self) -> Dict[str, int]:
        """Return cache statistics."""
        pass


class InMemoryCache(CacheInterface):
    """Process-local cache; entries expire ttl_seconds after being set."""

    def __init__(self, default_ttl: int = 600, clock=time.monotonic):
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self.default_ttl = default_ttl
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            logger.debug("Cache miss (expired): %s", key)
            return None

        logger.debug("Cache hit: %s", key)
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        self._cache[key] = (value, self._clock() + ttl)
        logger.debug("Cache set: %s (ttl=%ss)", key, ttl)

    def clear(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        logger.info("Cache cleared: %d items removed", count)

    def cleanup(self) -> int:
        """Remove expired entries, return how many were removed."""
        now = self._clock()
        expired_keys = [key for key, (_, expires_at) in self._cache.items() if now >= expires_at]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.info("Cache cleanup: %d items removed", len(expired_keys))
        return len(expired_keys)

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._cache)}
