"""
OfflineAnalyzer - the facade the host application talks to.

Wires the extractor, scorer, result cache, sync queue and sync coordinator
over one durable store. The host owns the instance and calls init()/shutdown()
around its own lifetime.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from .cache import ResultCache
from .config import Settings, get_settings
from .connectivity import ConnectivityObserver, HealthProbe
from .coordinator import SyncCoordinator, SyncState
from .features import FeatureExtractor
from .models import QueueItem, QueueKind, SyncReport, Verdict
from .scorer import HeuristicScorer
from .storage import DurableStore, create_store
from .sync_queue import SyncQueue
from .transport import HttpTransport, Transport

logger = logging.getLogger(__name__)


class AnalyzerStats:
    """Counters for the analyze path."""

    def __init__(self):
        self.analyses = 0
        self.cache_hits = 0
        self.degraded = 0
        self.enqueued = 0
        self.total_processing_time = 0.0

    def as_dict(self) -> dict:
        average = self.total_processing_time / self.analyses if self.analyses else 0.0
        return {
            "analyses": self.analyses,
            "cache_hits": self.cache_hits,
            "cache_hit_rate": f"{(self.cache_hits / self.analyses * 100):.1f}%" if self.analyses else "N/A",
            "degraded": self.degraded,
            "enqueued": self.enqueued,
            "average_processing_time": f"{average * 1000:.2f}ms",
        }


class OfflineAnalyzer:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[DurableStore] = None,
        transport: Optional[Transport] = None,
        observer: Optional[ConnectivityObserver] = None,
        extractor: Optional[FeatureExtractor] = None,
        scorer: Optional[HeuristicScorer] = None,
    ) -> None:
        self.settings = settings or get_settings()
        s = self.settings

        self.store = store or create_store(s)
        self.transport = transport or HttpTransport(s.api_base_url, timeout=s.send_timeout)
        self.observer = observer or ConnectivityObserver()
        self.extractor = extractor or FeatureExtractor(
            max_length=s.max_text_length,
            long_text_words=s.long_text_words,
        )
        self.scorer = scorer or HeuristicScorer()
        self.cache = ResultCache(
            self.store,
            capacity=s.cache_capacity,
            threshold=s.similarity_threshold,
            dimension=self.extractor.dimension,
        )
        self.queue = SyncQueue(self.store)
        self.coordinator = SyncCoordinator(
            self.queue,
            self.transport,
            self.observer,
            send_timeout=s.send_timeout,
            backoff_seconds=s.backoff_seconds,
            retry_ceiling=s.retry_ceiling,
        )
        self.probe: Optional[HealthProbe] = None
        if s.probe_interval > 0:
            self.probe = HealthProbe(
                self.observer,
                s.api_base_url.rstrip("/") + s.health_path,
                interval=s.probe_interval,
            )
        self.stats = AnalyzerStats()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def init(self) -> None:
        if self._started:
            return
        await self.store.connect()
        await self.cache.load()
        self.coordinator.start()
        if self.probe is not None:
            self.probe.start()
        self._started = True
        logger.info(
            "Offline analyzer ready (store=%s, cache=%d entries, queue=%d pending)",
            self.store.name,
            len(self.cache),
            await self.safe_queue_depth(),
        )

    async def shutdown(self) -> None:
        if not self._started:
            return
        self._started = False
        if self.probe is not None:
            await self.probe.stop()
        await self.coordinator.shutdown()
        await self.transport.aclose()
        await self.store.close()
        logger.info("Offline analyzer stopped")

    async def analyze(self, text: Any) -> Verdict:
        """
        Score text offline, reusing the verdict of a similar earlier analysis.

        Never raises: anything that goes wrong internally yields the degraded
        verdict.
        """
        started = time.perf_counter()
        self.stats.analyses += 1
        try:
            vector = self.extractor.extract(text)
            hit = await self.cache.lookup(vector)
            if hit is not None:
                self.stats.cache_hits += 1
                return hit.verdict
            verdict = self.scorer.score(vector)
            if any(vector):
                # Zero vectors never match, so they are not cached.
                await self.cache.insert(vector, verdict)
            return verdict
        except Exception as exc:
            logger.exception("Offline analysis failed, returning degraded verdict")
            self.stats.degraded += 1
            return self.scorer.degraded(type(exc).__name__)
        finally:
            self.stats.total_processing_time += time.perf_counter() - started

    async def enqueue_for_later(self, kind: QueueKind | str, payload: Any) -> str:
        """Durably queue a remote operation; raises QueuePersistError if it was not captured."""
        item_id = await self.queue.enqueue(kind, payload)
        self.stats.enqueued += 1
        self.coordinator.notify()
        return item_id

    async def trigger_sync(self) -> SyncReport:
        return await self.coordinator.trigger_sync()

    async def queue_depth(self) -> int:
        return await self.queue.depth()

    async def pending(self) -> list[QueueItem]:
        return await self.queue.list_pending()

    async def dead_letters(self) -> list[QueueItem]:
        return await self.queue.list_dead_letters()

    @property
    def sync_state(self) -> SyncState:
        return self.coordinator.state

    async def safe_queue_depth(self) -> int:
        try:
            return await self.queue_depth()
        except Exception as exc:
            logger.warning("Queue depth unavailable: %s", exc)
            return -1
