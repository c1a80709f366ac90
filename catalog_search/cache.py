"""Cache-aside layer with Redis primary and in-memory fallback.

Backends only know about JSON-compatible payloads and raise on failure.
:class:`SearchCache` is what the search and ingestion paths talk to: it owns
key derivation and the fixed TTL, and turns every backend failure into a cache
miss so that a broken cache never fails a search.
"""
from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

import redis
from pydantic import ValidationError

from .config import Settings
from .models import SearchResult, SortMode

logger = logging.getLogger(__name__)

SEARCH_PREFIX = "search:"
SUGGEST_PREFIX = "autocomplete:"

T = TypeVar("T")

# Everything the cache medium can throw at us that should read as a miss.
_DEGRADED_ERRORS = (redis.RedisError, OSError, ValueError, TypeError, asyncio.TimeoutError)


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def delete_prefix(self, prefix: str) -> int: ...


@dataclass
class RedisCache:
    client: redis.Redis
    scan_count: int = 500

    def get(self, key: str) -> Optional[Any]:
        data = self.client.get(key)
        if data is None:
            return None
        return json.loads(data)

    def set(self, key: str, value: Any, ttl: int) -> None:
        self.client.setex(key, ttl, json.dumps(value))

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        batch: List[Any] = []
        for key in self.client.scan_iter(match=f"{prefix}*", count=self.scan_count):
            batch.append(key)
            if len(batch) >= self.scan_count:
                deleted += self.client.delete(*batch)
                batch = []
        if batch:
            deleted += self.client.delete(*batch)
        return deleted


class InMemoryCache:
    def __init__(self) -> None:
        self._store: Dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._store.get(key)
            if value is None:
                return None
            expires_at, payload = value
            if expires_at < time.time():
                self._store.pop(key, None)
                return None
            return payload

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._store[key] = (time.time() + ttl, value)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._store if key.startswith(prefix)]
            for key in keys:
                del self._store[key]
            return len(keys)


def build_cache_backend(config: Settings) -> CacheBackend:
    try:
        client = redis.Redis(
            host=config.redis_host,
            port=config.redis_port,
            db=config.redis_db,
            socket_timeout=config.cache_timeout_seconds,
            socket_connect_timeout=config.cache_timeout_seconds,
        )
        client.ping()
        logger.info("Using Redis cache at %s:%s", config.redis_host, config.redis_port)
        return RedisCache(client)
    except redis.RedisError:
        logger.warning("Redis not available, using in-memory cache")
        return InMemoryCache()


def normalize_text(value: str) -> str:
    return value.strip().casefold()


def search_key(query: str, page: int, limit: int, sort: SortMode) -> str:
    return f"{SEARCH_PREFIX}{normalize_text(query)}:{page}:{limit}:{SortMode(sort).value}"


def suggestion_key(prefix: str, limit: int) -> str:
    return f"{SUGGEST_PREFIX}{normalize_text(prefix)}:{limit}"


class SearchCache:
    """Cache-aside access used by the search engine and ingestion runs."""

    def __init__(self, backend: CacheBackend, config: Settings) -> None:
        self.backend = backend
        self.ttl = config.cache_ttl_seconds
        self.timeout = config.cache_timeout_seconds

    async def _guarded(self, action: str, key: str, fn: Callable[..., T], *args: Any) -> Optional[T]:
        """Run a backend call off-loop; any failure degrades to ``None``."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except _DEGRADED_ERRORS as exc:
            logger.warning("cache %s degraded key=%r: %r", action, key, exc)
            return None

    async def get_search(self, key: str) -> Optional[SearchResult]:
        payload = await self._guarded("get", key, self.backend.get, key)
        if payload is None:
            logger.debug("cache_miss key=%r", key)
            return None
        try:
            result = SearchResult.model_validate(payload)
        except ValidationError as exc:
            logger.warning("cache payload rejected key=%r: %s", key, exc)
            return None
        logger.debug("cache_hit key=%r", key)
        return result

    async def set_search(self, key: str, result: SearchResult) -> None:
        await self._guarded("set", key, self.backend.set, key, result.model_dump(mode="json"), self.ttl)

    async def get_suggestions(self, key: str) -> Optional[List[str]]:
        payload = await self._guarded("get", key, self.backend.get, key)
        if payload is None:
            return None
        if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
            logger.warning("cache payload rejected key=%r: not a list of strings", key)
            return None
        return payload

    async def set_suggestions(self, key: str, suggestions: List[str]) -> None:
        await self._guarded("set", key, self.backend.set, key, list(suggestions), self.ttl)

    async def invalidate(self, prefix: str) -> int:
        deleted = await self._guarded("invalidate", prefix, self.backend.delete_prefix, prefix)
        if deleted:
            logger.info("Invalidated %s cache keys with prefix %r", deleted, prefix)
        return deleted or 0

    async def invalidate_all(self) -> int:
        return await self.invalidate(SEARCH_PREFIX) + await self.invalidate(SUGGEST_PREFIX)
