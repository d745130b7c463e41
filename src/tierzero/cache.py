from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from pydantic import ValidationError

from .errors import CacheIOError, StoreError
from .features import FEATURE_DIM
from .models import CacheEntry, FeatureVector, Verdict, new_id
from .storage import DurableStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity, defined as 0 when either vector has zero norm."""
    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(a_arr) * np.linalg.norm(b_arr))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / denom)


@dataclass(frozen=True)
class _Snapshot:
    entries: tuple[CacheEntry, ...]
    matrix: np.ndarray
    norms: np.ndarray

    @classmethod
    def build(cls, entries: Sequence[CacheEntry], dimension: int) -> "_Snapshot":
        matrix = np.array([entry.vector for entry in entries], dtype=float).reshape(-1, dimension)
        return cls(tuple(entries), matrix, np.linalg.norm(matrix, axis=1))


class ResultCache:
    """
    Capacity-bounded verdict cache indexed by feature-vector similarity.

    Entries are persisted under the cache key range of the durable store and
    mirrored in an immutable in-memory snapshot ordered by creation. Lookups
    read the current snapshot without locking; writers build a new snapshot
    under the lock and swap it in.
    """

    def __init__(
        self,
        store: DurableStore,
        *,
        capacity: int = 10_000,
        threshold: float = 0.8,
        dimension: int = FEATURE_DIM,
        prefix: str = CACHE_PREFIX,
    ) -> None:
        if capacity < 1:
            raise ValueError("ResultCache capacity must be positive")
        self._store = store
        self._capacity = capacity
        self._threshold = threshold
        self._dimension = dimension
        self._prefix = prefix
        self._lock = asyncio.Lock()
        self._snapshot = _Snapshot.build([], dimension)

    def __len__(self) -> int:
        return len(self._snapshot.entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    def entries(self) -> tuple[CacheEntry, ...]:
        return self._snapshot.entries

    async def load(self) -> int:
        """Rebuild the index from the store, trimming anything past capacity."""
        async with self._lock:
            try:
                entries = await self._read_all()
            except StoreError as exc:
                logger.warning("Cache store unavailable during load, starting empty: %s", exc)
                entries = []
            entries.sort(key=lambda entry: entry.id)
            overflow = entries[: max(0, len(entries) - self._capacity)]
            entries = entries[len(overflow):]
            self._snapshot = _Snapshot.build(entries, self._dimension)
            await self._evict(overflow)
        logger.info("Result cache loaded %d entries", len(entries))
        return len(entries)

    async def insert(self, vector: FeatureVector, verdict: Verdict) -> str | None:
        """Persist a verdict; returns its id, or None when the store is unavailable."""
        values = tuple(float(v) for v in vector)
        if len(values) != self._dimension:
            raise ValueError(f"expected a {self._dimension}-dimensional vector, got {len(values)}")
        entry_id, created_at = new_id()
        entry = CacheEntry(id=entry_id, vector=values, verdict=verdict, created_at=created_at)

        async with self._lock:
            try:
                await self._write(entry)
            except CacheIOError as exc:
                logger.warning("Cache insert skipped: %s", exc)
                return None

            current = self._snapshot
            drop = max(0, len(current.entries) + 1 - self._capacity)
            evicted = current.entries[:drop]
            row = np.asarray(values, dtype=float).reshape(1, self._dimension)
            matrix = np.vstack([current.matrix[drop:], row])
            norms = np.append(current.norms[drop:], np.linalg.norm(row))
            self._snapshot = _Snapshot(current.entries[drop:] + (entry,), matrix, norms)
            await self._evict(evicted)
        return entry_id

    async def lookup(self, vector: FeatureVector) -> CacheEntry | None:
        """Most similar entry at or above the threshold; earliest-created wins ties."""
        snapshot = self._snapshot
        if not snapshot.entries:
            return None
        query = np.asarray(vector, dtype=float)
        if query.shape != (self._dimension,):
            return None
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0.0:
            return None

        denom = snapshot.norms * query_norm
        dots = snapshot.matrix @ query
        similarities = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
        # argmax returns the first maximum, i.e. the oldest entry among equals.
        best = int(np.argmax(similarities))
        similarity = float(similarities[best])
        if similarity < self._threshold:
            return None
        logger.debug("Cache hit %s (similarity %.3f)", snapshot.entries[best].id, similarity)
        return snapshot.entries[best]

    async def clear(self) -> None:
        async with self._lock:
            self._snapshot = _Snapshot.build([], self._dimension)
            try:
                for key in await self._store.list_keys(self._prefix):
                    await self._store.delete(key)
            except StoreError as exc:
                raise CacheIOError(f"cache clear failed: {exc}") from exc
        logger.info("Result cache cleared")

    def _key(self, entry_id: str) -> str:
        return f"{self._prefix}{entry_id}"

    async def _write(self, entry: CacheEntry) -> None:
        try:
            await self._store.set(self._key(entry.id), entry.model_dump_json())
        except StoreError as exc:
            raise CacheIOError(str(exc)) from exc

    async def _read_all(self) -> list[CacheEntry]:
        entries: list[CacheEntry] = []
        for key in await self._store.list_keys(self._prefix):
            raw = await self._store.get(key)
            if raw is None:
                continue
            try:
                entry = CacheEntry.model_validate_json(raw)
            except ValidationError as exc:
                logger.warning("Skip unreadable cache record %s: %s", key, exc.errors()[:1])
                continue
            if len(entry.vector) != self._dimension:
                logger.warning("Skip cache record %s with %d features", key, len(entry.vector))
                continue
            entries.append(entry)
        return entries

    async def _evict(self, entries: Sequence[CacheEntry]) -> None:
        for entry in entries:
            try:
                await self._store.delete(self._key(entry.id))
            except StoreError as exc:
                # The index no longer holds it; load() trims leftovers by age.
                logger.warning("Failed to evict cache entry %s: %s", entry.id, exc)
        if entries:
            logger.debug("Evicted %d cache entries", len(entries))
