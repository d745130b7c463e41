"""
Unit tests for the similarity result cache
"""

import pytest

from tierzero.cache import ResultCache, cosine_similarity
from tierzero.errors import CacheIOError
from tierzero.features import FEATURE_DIM
from tierzero.scorer import HeuristicScorer
from tierzero.storage import DiskStore

scorer = HeuristicScorer()


def unit(index, dim=FEATURE_DIM):
    vector = [0.0] * dim
    vector[index] = 1.0
    return tuple(vector)


def test_cosine_similarity():
    assert cosine_similarity((1.0, 0.0), (1.0, 0.0)) == pytest.approx(1.0)
    assert cosine_similarity((1.0, 0.0), (0.0, 1.0)) == pytest.approx(0.0)
    assert cosine_similarity((0.0, 0.0), (1.0, 1.0)) == 0.0


@pytest.mark.asyncio
async def test_lookup_hit_returns_stored_verdict(memory_store):
    cache = ResultCache(memory_store, capacity=10)
    vector = unit(0)
    verdict = scorer.score(vector)
    entry_id = await cache.insert(vector, verdict)

    hit = await cache.lookup(vector)
    assert hit is not None
    assert hit.id == entry_id
    assert hit.verdict == verdict


@pytest.mark.asyncio
async def test_threshold_is_inclusive(memory_store):
    cache = ResultCache(memory_store, capacity=10, threshold=0.8, dimension=2)
    await cache.insert((1.0, 0.0), scorer.degraded())
    # cos = 0.8 exactly for (4, 3) against (1, 0)
    assert await cache.lookup((4.0, 3.0)) is not None
    assert await cache.lookup((3.0, 4.0)) is None


@pytest.mark.asyncio
async def test_zero_vectors_never_match(memory_store):
    cache = ResultCache(memory_store, capacity=10, dimension=2)
    await cache.insert((0.0, 0.0), scorer.degraded())
    assert await cache.lookup((0.0, 0.0)) is None
    assert await cache.lookup((1.0, 0.0)) is None


@pytest.mark.asyncio
async def test_empty_cache_misses(memory_store):
    cache = ResultCache(memory_store)
    assert await cache.lookup(unit(1)) is None


@pytest.mark.asyncio
async def test_ties_prefer_oldest_entry(memory_store):
    cache = ResultCache(memory_store, capacity=10, dimension=2)
    first = await cache.insert((1.0, 0.0), scorer.score(unit(0)))
    await cache.insert((2.0, 0.0), scorer.score(unit(1)))
    hit = await cache.lookup((1.0, 0.0))
    assert hit.id == first


@pytest.mark.asyncio
async def test_best_match_wins(memory_store):
    cache = ResultCache(memory_store, capacity=10, dimension=2)
    await cache.insert((1.0, 0.5), scorer.degraded())
    best = await cache.insert((1.0, 0.05), scorer.degraded())
    assert (await cache.lookup((1.0, 0.0))).id == best


@pytest.mark.asyncio
async def test_insert_rejects_wrong_dimension(memory_store):
    cache = ResultCache(memory_store)
    with pytest.raises(ValueError):
        await cache.insert((1.0, 0.0), scorer.degraded())


@pytest.mark.asyncio
async def test_eviction_keeps_capacity_and_drops_oldest(memory_store):
    capacity, extra = 5, 3
    cache = ResultCache(memory_store, capacity=capacity, dimension=2)
    ids = [await cache.insert((1.0, float(i)), scorer.degraded()) for i in range(capacity + extra)]

    assert len(cache) == capacity
    assert [entry.id for entry in cache.entries()] == ids[extra:]
    keys = await memory_store.list_keys("cache:")
    assert keys == [f"cache:{entry_id}" for entry_id in ids[extra:]]


@pytest.mark.asyncio
async def test_clear(memory_store):
    cache = ResultCache(memory_store, dimension=2)
    await cache.insert((1.0, 0.0), scorer.degraded())
    await cache.clear()
    assert len(cache) == 0
    assert await memory_store.list_keys("cache:") == []
    assert await cache.lookup((1.0, 0.0)) is None


@pytest.mark.asyncio
async def test_entries_survive_restart(tmp_path):
    store = DiskStore(tmp_path / "store")
    cache = ResultCache(store, dimension=2)
    verdict = scorer.score(unit(0))
    entry_id = await cache.insert((1.0, 0.0), verdict)
    await store.close()

    reopened = DiskStore(tmp_path / "store")
    restored = ResultCache(reopened, dimension=2)
    assert await restored.load() == 1
    hit = await restored.lookup((1.0, 0.0))
    assert hit.id == entry_id
    assert hit.verdict == verdict
    await reopened.close()


@pytest.mark.asyncio
async def test_load_trims_to_capacity(memory_store):
    writer = ResultCache(memory_store, capacity=10, dimension=2)
    ids = [await writer.insert((1.0, float(i)), scorer.degraded()) for i in range(6)]

    reader = ResultCache(memory_store, capacity=4, dimension=2)
    assert await reader.load() == 4
    assert [entry.id for entry in reader.entries()] == ids[2:]
    assert len(await memory_store.list_keys("cache:")) == 4


@pytest.mark.asyncio
async def test_load_skips_unreadable_records(memory_store):
    await memory_store.set("cache:0000000000000000001-deadbeef", "{not json")
    cache = ResultCache(memory_store, dimension=2)
    await cache.insert((1.0, 0.0), scorer.degraded())

    reloaded = ResultCache(memory_store, dimension=2)
    assert await reloaded.load() == 1


@pytest.mark.asyncio
async def test_write_failure_degrades_to_noop(failing_store):
    cache = ResultCache(failing_store, dimension=2)
    failing_store.fail_writes = True
    assert await cache.insert((1.0, 0.0), scorer.degraded()) is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_load_failure_starts_empty(failing_store):
    failing_store.fail_reads = True
    cache = ResultCache(failing_store, dimension=2)
    assert await cache.load() == 0


@pytest.mark.asyncio
async def test_lookup_does_not_touch_store(failing_store):
    cache = ResultCache(failing_store, dimension=2)
    await cache.insert((1.0, 0.0), scorer.degraded())
    failing_store.fail_reads = True
    failing_store.fail_writes = True
    assert await cache.lookup((1.0, 0.0)) is not None


@pytest.mark.asyncio
async def test_clear_failure_raises(failing_store):
    cache = ResultCache(failing_store, dimension=2)
    failing_store.fail_reads = True
    with pytest.raises(CacheIOError):
        await cache.clear()


def test_capacity_must_be_positive(memory_store):
    with pytest.raises(ValueError):
        ResultCache(memory_store, capacity=0)
