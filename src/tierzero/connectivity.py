from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)


class ConnectivityState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ConnectivityObserver:
    """
    Fan-out of connectivity transitions.

    Each subscriber gets its own queue and receives every transition in
    order. Publishing the current state again is not a transition and is
    dropped.
    """

    def __init__(self, initial: ConnectivityState = ConnectivityState.ONLINE) -> None:
        self._state = ConnectivityState(initial)
        self._subscribers: List[asyncio.Queue[ConnectivityState]] = []

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def online(self) -> bool:
        return self._state is ConnectivityState.ONLINE

    def subscribe(self) -> asyncio.Queue[ConnectivityState]:
        channel: asyncio.Queue[ConnectivityState] = asyncio.Queue()
        self._subscribers.append(channel)
        return channel

    def unsubscribe(self, channel: asyncio.Queue[ConnectivityState]) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(channel)

    def publish(self, state: ConnectivityState | str) -> bool:
        state = ConnectivityState(state)
        if state is self._state:
            return False
        self._state = state
        logger.info("Connectivity changed: %s", state.value)
        for channel in list(self._subscribers):
            channel.put_nowait(state)
        return True


class HealthProbe:
    """Poll a health endpoint and publish the result as connectivity transitions."""

    def __init__(
        self,
        observer: ConnectivityObserver,
        url: str,
        *,
        interval: float = 30.0,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._observer = observer
        self._url = url
        self._interval = interval
        self._timeout = timeout
        self._client = client
        self._task: asyncio.Task | None = None

    async def check(self) -> ConnectivityState:
        try:
            if self._client is not None:
                response = await self._client.get(self._url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._url)
            state = ConnectivityState.ONLINE if response.is_success else ConnectivityState.OFFLINE
        except httpx.HTTPError as exc:
            logger.debug("Health probe %s failed: %s", self._url, exc)
            state = ConnectivityState.OFFLINE
        self._observer.publish(state)
        return state

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="tierzero-health-probe")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self._interval)
