# Overview: Read-model caching with store-scoped, key-exact invalidation.

"""
Derived read models (sales listings, product search listings) are cached per
store with a short TTL.

Every key written for a store is also recorded in that store's index set,
storepos:store:<id>:keys. Invalidation enumerates the index and deletes each
concrete key, so it works the same on every backend and never depends on
wildcard deletes.

CacheReader and CacheInvalidator own the degradation policy: any backend
failure is logged and treated as a cache miss / no-op. Callers never branch
on cache availability.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Protocol
from urllib.parse import quote

logger = logging.getLogger(__name__)

KEY_PREFIX = "storepos"


def store_index_key(store_id: int) -> str:
    return f"{KEY_PREFIX}:store:{store_id}:keys"


def _params(params: dict) -> str:
    return "&".join(f"{key}={quote(str(params[key]), safe='')}" for key in sorted(params) if params[key] is not None)


def sales_list_key(store_id: int, filters: dict, page: int, limit: int) -> str:
    return f"{KEY_PREFIX}:store:{store_id}:sales?{_params(dict(filters, page=page, limit=limit))}"


def product_list_key(store_id: int, params: dict) -> str:
    return f"{KEY_PREFIX}:store:{store_id}:products?{_params(params)}"


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...

    def delete(self, *keys: str) -> int: ...

    def index_add(self, index_key: str, key: str, ttl: int) -> None: ...

    def index_members(self, index_key: str) -> set[str]: ...


class InMemoryCacheBackend:
    """
    Process-local TTL cache used when no Redis is configured.

    Expired entries and index members are swept on write, at most once per
    `sweep_interval` seconds, so keys that are never read again do not pile up.
    """

    def __init__(self, clock=time.monotonic, sweep_interval: float = 30.0):
        self._clock = clock
        self._values: dict[str, tuple[str, float]] = {}
        # index key -> {member key: expires_at}
        self._indexes: dict[str, dict[str, float]] = {}
        self._lock = threading.Lock()
        self.sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval
        for key in [k for k, (_, expires_at) in self._values.items() if now >= expires_at]:
            del self._values[key]
        for index_key in list(self._indexes):
            members = self._indexes[index_key]
            for key in [k for k, expires_at in members.items() if now >= expires_at]:
                del members[key]
            if not members:
                del self._indexes[index_key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._values[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._values[key] = (value, now + ttl)

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._values.pop(key, None) is not None:
                    removed += 1
                if self._indexes.pop(key, None) is not None:
                    removed += 1
        return removed

    def index_add(self, index_key: str, key: str, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._indexes.setdefault(index_key, {})[key] = now + ttl

    def index_members(self, index_key: str) -> set[str]:
        with self._lock:
            now = self._clock()
            members = self._indexes.get(index_key, {})
            return {key for key, expires_at in members.items() if now < expires_at}


class RedisCacheBackend:
    def __init__(self, client):
        self.client = client

    @staticmethod
    def _text(value):
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def get(self, key: str) -> str | None:
        return self._text(self.client.get(key))

    def set(self, key: str, value: str, ttl: int) -> None:
        self.client.set(key, value, ex=ttl)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self.client.delete(*keys))

    def index_add(self, index_key: str, key: str, ttl: int) -> None:
        pipe = self.client.pipeline()
        pipe.sadd(index_key, key)
        # The index must outlive every key it lists
        pipe.expire(index_key, ttl * 2)
        pipe.execute()

    def index_members(self, index_key: str) -> set[str]:
        return {self._text(member) for member in self.client.smembers(index_key)}


class CacheReader:
    def __init__(self, backend: CacheBackend, default_ttl: int = 120):
        self.backend = backend
        self.default_ttl = default_ttl

    def get_json(self, key: str) -> Any | None:
        try:
            raw = self.backend.get(key)
        except Exception:
            logger.warning("Cache read failed for %s; serving uncached", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def set_json(self, store_id: int, key: str, value: Any, ttl: int | None = None) -> bool:
        ttl = ttl or self.default_ttl
        try:
            self.backend.set(key, json.dumps(value), ttl)
            self.backend.index_add(store_index_key(store_id), key, ttl)
        except Exception:
            logger.warning("Cache write failed for %s", key, exc_info=True)
            return False
        return True


class CacheInvalidator:
    def __init__(self, backend: CacheBackend):
        self.backend = backend

    def invalidate_store(self, store_id: int) -> int:
        """
        Delete every cached read model registered for the store.

        Returns the number of concrete keys removed; 0 when the backend is
        unavailable. Never raises.
        """
        index_key = store_index_key(store_id)
        try:
            keys = sorted(self.backend.index_members(index_key))
            removed = self.backend.delete(*keys) if keys else 0
            self.backend.delete(index_key)
        except Exception:
            logger.warning("Cache invalidation failed for store %s", store_id, exc_info=True)
            return 0
        logger.debug("Invalidated %d cached key(s) for store %s", removed, store_id)
        return removed
