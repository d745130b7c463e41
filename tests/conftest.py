import asyncio
import sys
from pathlib import Path
from typing import Any, List, Tuple

import pytest


# Ensure project src is on path for imports in tests
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for p in (ROOT, SRC):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from tierzero.connectivity import ConnectivityObserver, ConnectivityState  # noqa: E402
from tierzero.errors import StoreError, TransportError  # noqa: E402
from tierzero.models import QueueKind  # noqa: E402
from tierzero.storage import MemoryStore  # noqa: E402
from tierzero.transport import Transport  # noqa: E402


class FakeTransport(Transport):
    """Records deliveries; `outcomes` is consumed one entry per send (None = success)."""

    def __init__(self, outcomes=None, delay: float = 0.0):
        self.sent: List[Tuple[QueueKind, Any]] = []
        self.attempts: List[Tuple[QueueKind, Any]] = []
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.fail_when = None
        self.closed = False

    async def send(self, kind, payload):
        self.attempts.append((kind, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_when is not None and self.fail_when(kind, payload):
            raise TransportError("rejected by test")
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if outcome is not None:
                raise outcome
        self.sent.append((kind, payload))

    async def aclose(self):
        self.closed = True


class FailingStore(MemoryStore):
    """MemoryStore whose operations can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key):
        if self.fail_reads:
            raise StoreError("read failure")
        return await super().get(key)

    async def list_keys(self, prefix=""):
        if self.fail_reads:
            raise StoreError("scan failure")
        return await super().list_keys(prefix)

    async def set(self, key, value):
        if self.fail_writes:
            raise StoreError("write failure")
        await super().set(key, value)

    async def delete(self, key):
        if self.fail_writes:
            raise StoreError("delete failure")
        await super().delete(key)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def observer():
    return ConnectivityObserver(ConnectivityState.OFFLINE)
