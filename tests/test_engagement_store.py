from unittest.mock import AsyncMock

import pytest

from verified_media.core.errors import PersistenceError
from verified_media.services.config import EngagementConfig
from verified_media.services.engagement_store import EngagementStore
from verified_media.services.storage import MemoryStore


async def track(store, selection_id, source="Wikipedia"):
    await store.record_selection(selection_id, source_name=source, confidence=80, verdict="APPROVED")


@pytest.mark.asyncio
async def test_selection_starts_without_metrics(memory_store):
    store = EngagementStore(memory_store)
    await track(store, "s1")

    records = await store.records()
    assert len(records) == 1
    assert records[0].selection_id == "s1"
    assert records[0].likes is None
    assert not records[0].has_metrics


@pytest.mark.asyncio
async def test_record_engagement_updates_once(memory_store):
    store = EngagementStore(memory_store)
    await track(store, "s1")

    assert await store.record_engagement("s1", {"likes": 12, "retweets": 3, "replies": 1, "impressions": 900})
    assert not await store.record_engagement("s1", {"likes": 50})

    record = (await store.records())[0]
    assert (record.likes, record.retweets, record.replies, record.impressions) == (12, 3, 1, 900)
    assert record.updated_at is not None


@pytest.mark.asyncio
async def test_unknown_selection_is_not_updated(memory_store):
    store = EngagementStore(memory_store)
    assert not await store.record_engagement("missing", {"likes": 1})


@pytest.mark.asyncio
async def test_log_is_capped_fifo():
    store = EngagementStore(MemoryStore(), EngagementConfig(max_records=100))
    for i in range(105):
        await track(store, f"s{i}")

    records = await store.records()
    assert len(records) == 100
    assert records[0].selection_id == "s5"
    assert records[-1].selection_id == "s104"


@pytest.mark.asyncio
async def test_recent_sources_window(memory_store):
    store = EngagementStore(memory_store)
    for i, source in enumerate(["A", "B", "C", "D", "E", "F", "G"]):
        await track(store, f"s{i}", source)

    assert await store.recent_sources() == ["C", "D", "E", "F", "G"]
    assert await store.recent_sources(limit=2) == ["F", "G"]


@pytest.mark.asyncio
async def test_read_failure_behaves_as_empty():
    backing = MemoryStore()
    backing.get = AsyncMock(side_effect=PersistenceError("locked"))
    store = EngagementStore(backing)

    assert await store.records() == []
    assert await store.recent_sources() == []


@pytest.mark.asyncio
async def test_write_failure_reports_not_updated(memory_store):
    store = EngagementStore(memory_store)
    await track(store, "s1")
    memory_store.set = AsyncMock(side_effect=PersistenceError("read-only"))

    assert await store.record_engagement("s1", {"likes": 3}) is False


@pytest.mark.asyncio
async def test_stats(memory_store):
    store = EngagementStore(memory_store)
    await track(store, "s1")
    await track(store, "s2")
    await track(store, "s3")
    await store.record_engagement("s1", {"likes": 10, "retweets": 2, "replies": 2})
    await store.record_engagement("s2", {"likes": 20})

    stats = await store.stats()
    assert stats["total_selections"] == 3
    assert stats["with_metrics"] == 2
    assert stats["avg_likes"] == 15.0
    assert stats["avg_engagement"] == pytest.approx((17 + 20) / 2, abs=0.1)


@pytest.mark.asyncio
@pytest.mark.parametrize("metrics", [
    {"likes": "1.2k"},
    {"likes": 10, "retweets": -1},
    {"likes": 2.5},
])
async def test_invalid_metrics_leave_record_untouched(memory_store, metrics):
    store = EngagementStore(memory_store)
    await track(store, "s1")

    assert await store.record_engagement("s1", metrics) is False

    record = (await store.records())[0]
    assert not record.has_metrics
    assert await store.record_engagement("s1", {"likes": "7"}) is True
    assert (await store.records())[0].likes == 7
