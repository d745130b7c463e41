from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Optional

from .connectivity import ConnectivityObserver, ConnectivityState
from .errors import PayloadError, StoreError, TransportError
from .models import QueueItem, SyncReport
from .sync_queue import SyncQueue
from .transport import Transport

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    BACKOFF = "backoff"


class SyncCoordinator:
    """
    Replays the sync queue when connectivity returns.

    Idle/Backoff move to Syncing on an Online transition, a manual trigger,
    or (from Backoff) when the backoff timer fires. Starting while online, or
    queueing an item while online and not backing off, also wakes a pass.
    A pass walks a snapshot of the pending items oldest-first, one at a time,
    so each item is attempted at most once per pass and a failure never holds
    up the items behind it. Passes are serialized.
    """

    def __init__(
        self,
        queue: SyncQueue,
        transport: Transport,
        observer: ConnectivityObserver,
        *,
        send_timeout: float = 15.0,
        backoff_seconds: float = 30.0,
        retry_ceiling: int = 5,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self._observer = observer
        self._send_timeout = send_timeout
        self._backoff_seconds = backoff_seconds
        self._retry_ceiling = retry_ceiling

        self._state = SyncState.IDLE
        self._pass_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._channel: Optional[asyncio.Queue[ConnectivityState]] = None
        self._tasks: list[asyncio.Task] = []
        self._backoff_handle: Optional[asyncio.TimerHandle] = None
        self.last_report: Optional[SyncReport] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._channel = self._observer.subscribe()
        if self._observer.online:
            # Drain items left over from a previous run.
            self._wake.set()
        self._tasks = [
            asyncio.create_task(self._watch_connectivity(self._channel), name="tierzero-connectivity-watch"),
            asyncio.create_task(self._run(), name="tierzero-sync-loop"),
        ]
        logger.info("Sync coordinator started (connectivity: %s)", self._observer.state.value)

    async def shutdown(self) -> None:
        """Stop the loop; an in-flight delivery is aborted and its item stays queued."""
        self._cancel_backoff()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._channel is not None:
            self._observer.unsubscribe(self._channel)
            self._channel = None
        logger.info("Sync coordinator stopped")

    def notify(self) -> None:
        """A new item was queued. Schedule a pass if online and not backing off."""
        if self._observer.online and self._state is not SyncState.BACKOFF:
            self._wake.set()

    async def trigger_sync(self) -> SyncReport:
        """Run a pass now, whatever the current state."""
        return await self.run_pass()

    async def run_pass(self) -> SyncReport:
        async with self._pass_lock:
            self._cancel_backoff()
            self._state = SyncState.SYNCING
            report = SyncReport()
            try:
                items = await self._queue.list_pending()
            except StoreError as exc:
                logger.warning("Sync pass aborted, queue unreadable: %s", exc)
                report.error = str(exc)
                self._finish(report)
                return report

            try:
                for item in items:
                    report.attempted += 1
                    if await self._deliver(item, report):
                        report.delivered += 1
                    else:
                        report.failed += 1
            except asyncio.CancelledError:
                self._state = SyncState.BACKOFF
                logger.info("Sync pass cancelled after %d of %d items", report.attempted, len(items))
                raise

            self._finish(report)
            return report

    async def _deliver(self, item: QueueItem, report: SyncReport) -> bool:
        try:
            await asyncio.wait_for(
                self._transport.send(item.kind, item.payload),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            error = f"timed out after {self._send_timeout:g}s"
        except (TransportError, PayloadError) as exc:
            error = str(exc)
        except Exception as exc:
            logger.exception("Transport raised unexpectedly for %s", item.id)
            error = f"unexpected transport error: {exc}"
        else:
            try:
                await self._queue.remove(item.id)
            except StoreError as exc:
                logger.error("Delivered %s but could not remove it, it will be replayed: %s", item.id, exc)
            return True

        logger.warning("Delivery of %s operation %s failed: %s", item.kind.value, item.id, error)
        try:
            updated = await self._queue.record_failure(item.id, error, retry_ceiling=self._retry_ceiling)
        except StoreError as exc:
            logger.error("Could not record failed attempt for %s: %s", item.id, exc)
            return False
        if updated is not None and updated.dead_lettered:
            report.dead_lettered += 1
        return False

    def _finish(self, report: SyncReport) -> None:
        self.last_report = report
        if report.clean:
            self._state = SyncState.IDLE
        else:
            self._state = SyncState.BACKOFF
            self._arm_backoff()
        logger.info(
            "Sync pass finished: %d attempted, %d delivered, %d failed, %d dead-lettered -> %s",
            report.attempted,
            report.delivered,
            report.failed,
            report.dead_lettered,
            self._state.value,
        )

    def _arm_backoff(self) -> None:
        self._cancel_backoff()
        loop = asyncio.get_running_loop()
        self._backoff_handle = loop.call_later(self._backoff_seconds, self._backoff_elapsed)

    def _cancel_backoff(self) -> None:
        if self._backoff_handle is not None:
            self._backoff_handle.cancel()
            self._backoff_handle = None

    def _backoff_elapsed(self) -> None:
        self._backoff_handle = None
        logger.info("Backoff of %gs elapsed", self._backoff_seconds)
        self._wake.set()

    async def _watch_connectivity(self, channel: asyncio.Queue[ConnectivityState]) -> None:
        while True:
            state = await channel.get()
            if state is ConnectivityState.ONLINE:
                logger.info("Connectivity restored, scheduling sync (state: %s)", self._state.value)
                self._wake.set()

    async def _run(self) -> None:
        while True:
            await self._wake.wait()
            self._wake.clear()
            try:
                await self.run_pass()
            except Exception:
                logger.exception("Sync pass crashed")
                self._state = SyncState.BACKOFF
                self._arm_backoff()
