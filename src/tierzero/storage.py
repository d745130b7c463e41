"""
Durable key-value stores backing the result cache and the sync queue.

Values are JSON strings. Every backend failure surfaces as StoreError so the
components above can apply their own degradation policy.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import diskcache
import redis.asyncio as redis

from .config import Settings
from .errors import StoreError

logger = logging.getLogger(__name__)


class DurableStore(ABC):
    """Async get/set/delete/list_keys over string keys and JSON string values."""

    name = "abstract"

    async def connect(self) -> None:
        """Open backend resources. Optional for backends that open lazily."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """Keys starting with prefix, sorted ascending."""


class MemoryStore(DurableStore):
    """Process-local store. Not durable across restarts."""

    name = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> List[str]:
        return sorted(key for key in self._data if key.startswith(prefix))


class DiskStore(DurableStore):
    """diskcache-backed store; sqlite runs with synchronous=FULL and no eviction."""

    name = "disk"

    def __init__(self, path: str | Path, *, max_workers: int = 1) -> None:
        self._path = Path(path)
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._cache: diskcache.Cache | None = None

    async def connect(self) -> None:
        await self._run(lambda cache: None)
        logger.info("Disk store opened at %s", self._path)

    async def close(self) -> None:
        if self._cache is not None:
            await self._run(lambda cache: cache.close())
            self._cache = None
        self._executor.shutdown(wait=True)

    async def get(self, key: str) -> Optional[str]:
        return await self._run(lambda cache: cache.get(key))

    async def set(self, key: str, value: str) -> None:
        await self._run(lambda cache: cache.set(key, value))

    async def delete(self, key: str) -> None:
        await self._run(lambda cache: cache.delete(key))

    async def list_keys(self, prefix: str = "") -> List[str]:
        return await self._run(
            lambda cache: sorted(
                key for key in cache.iterkeys() if isinstance(key, str) and key.startswith(prefix)
            )
        )

    def _ensure_cache(self) -> diskcache.Cache:
        if self._cache is None:
            self._path.mkdir(parents=True, exist_ok=True)
            self._cache = diskcache.Cache(
                str(self._path),
                eviction_policy="none",
                sqlite_synchronous=2,
            )
        return self._cache

    def _call(self, fn: Callable[[diskcache.Cache], Any]) -> Any:
        return fn(self._ensure_cache())

    async def _run(self, fn: Callable[[diskcache.Cache], Any]) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, partial(self._call, fn))
        except Exception as exc:
            raise StoreError(f"disk store at {self._path} failed: {exc}") from exc


class RedisStore(DurableStore):
    """redis.asyncio-backed store; the client reconnects on its own after outages."""

    name = "redis"

    def __init__(self, url: str, *, connect_timeout: float = 5.0) -> None:
        self._url = url
        self._client: redis.Redis = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
        )

    async def connect(self) -> None:
        try:
            await self._client.ping()
            logger.info("Redis connected successfully")
        except (redis.RedisError, OSError) as exc:
            logger.warning("Redis unreachable at %s: %s. Store operations will fail until it returns", self._url, exc)

    async def close(self) -> None:
        await self._client.aclose()

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except (redis.RedisError, OSError) as exc:
            raise StoreError(f"redis get {key} failed: {exc}") from exc

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value)
        except (redis.RedisError, OSError) as exc:
            raise StoreError(f"redis set {key} failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (redis.RedisError, OSError) as exc:
            raise StoreError(f"redis delete {key} failed: {exc}") from exc

    async def list_keys(self, prefix: str = "") -> List[str]:
        try:
            return sorted([key async for key in self._client.scan_iter(match=f"{prefix}*")])
        except (redis.RedisError, OSError) as exc:
            raise StoreError(f"redis scan {prefix}* failed: {exc}") from exc


def create_store(settings: Settings) -> DurableStore:
    if settings.store_backend == "memory":
        return MemoryStore()
    if settings.store_backend == "redis":
        return RedisStore(settings.redis_url)
    return DiskStore(settings.store_path)
