from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List

from pydantic import ValidationError

from .errors import QueuePersistError, StoreError
from .models import QueueItem, QueueKind, new_id
from .storage import DurableStore

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "queue:"


class SyncQueue:
    """
    Ordered record of remote operations awaiting delivery.

    Every item lives in the store under its own key, so an item is either
    fully written or absent. The store is the source of truth; nothing is
    held in memory between calls.
    """

    def __init__(self, store: DurableStore, *, prefix: str = QUEUE_PREFIX) -> None:
        self._store = store
        self._prefix = prefix
        self._lock = asyncio.Lock()

    async def enqueue(self, kind: QueueKind | str, payload: Any) -> str:
        """Durably append an operation. Raises QueuePersistError if it was not captured."""
        kind = QueueKind(kind)
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise QueuePersistError(f"payload for {kind.value} is not JSON serializable: {exc}") from exc

        item_id, enqueued_at = new_id()
        item = QueueItem(id=item_id, kind=kind, payload=payload, enqueued_at=enqueued_at)
        async with self._lock:
            try:
                await self._store.set(self._key(item_id), item.model_dump_json())
            except StoreError as exc:
                logger.error("Failed to persist %s operation: %s", kind.value, exc)
                raise QueuePersistError(str(exc)) from exc
        logger.info("Queued %s operation %s", kind.value, item_id)
        return item_id

    async def list_pending(self) -> List[QueueItem]:
        """Items still eligible for replay, oldest first."""
        return [item for item in await self._read_all() if not item.dead_lettered]

    async def list_dead_letters(self) -> List[QueueItem]:
        return [item for item in await self._read_all() if item.dead_lettered]

    async def get(self, item_id: str) -> QueueItem | None:
        raw = await self._store.get(self._key(item_id))
        return self._parse(item_id, raw) if raw is not None else None

    async def depth(self) -> int:
        return len(await self.list_pending())

    async def record_failure(self, item_id: str, error: str, *, retry_ceiling: int) -> QueueItem | None:
        """
        Count a failed delivery attempt. The item is dead-lettered once its
        attempts exceed retry_ceiling. Returns the updated item, or None if it
        is no longer queued.
        """
        async with self._lock:
            item = await self.get(item_id)
            if item is None:
                return None
            attempts = item.attempts + 1
            updated = item.model_copy(
                update={
                    "attempts": attempts,
                    "last_error": error[:500],
                    "dead_lettered": attempts > retry_ceiling,
                }
            )
            await self._store.set(self._key(item_id), updated.model_dump_json())
        if updated.dead_lettered:
            logger.error(
                "Dead-lettered %s operation %s after %d attempts: %s",
                updated.kind.value,
                item_id,
                attempts,
                error,
            )
        return updated

    async def remove(self, item_id: str) -> None:
        """Delete an item; removing an unknown id is a no-op."""
        async with self._lock:
            await self._store.delete(self._key(item_id))

    async def clear(self) -> None:
        async with self._lock:
            for key in await self._store.list_keys(self._prefix):
                await self._store.delete(key)
        logger.info("Sync queue cleared")

    def _key(self, item_id: str) -> str:
        return f"{self._prefix}{item_id}"

    async def _read_all(self) -> List[QueueItem]:
        items: List[QueueItem] = []
        for key in await self._store.list_keys(self._prefix):
            raw = await self._store.get(key)
            if raw is None:
                continue
            item = self._parse(key, raw)
            if item is not None:
                items.append(item)
        items.sort(key=lambda item: item.id)
        return items

    @staticmethod
    def _parse(key: str, raw: str) -> QueueItem | None:
        try:
            return QueueItem.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Skip unreadable queue record %s: %s", key, exc.errors()[:1])
            return None
