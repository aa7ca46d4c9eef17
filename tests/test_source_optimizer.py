from datetime import datetime, timezone

import pytest

from verified_media.core.schemas import EngagementRecord
from verified_media.processing.source_optimizer import (
    SourceOptimizer,
    compute_source_performance,
    score_priority,
)
from verified_media.services.engagement_store import EngagementStore

SOURCES = ["Library of Congress", "Smithsonian", "Wikimedia Commons", "Wikipedia"]


def record(source, likes=None, retweets=0, replies=0, n=0):
    return EngagementRecord(
        selection_id=f"{source}-{n}",
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        source_name=source,
        confidence=80,
        verdict="APPROVED",
        likes=likes,
        retweets=retweets if likes is not None else None,
        replies=replies if likes is not None else None,
    )


def test_cold_start_is_uniform():
    assert score_priority("Wikipedia", {}, []) == 50.0


def test_high_confidence_uses_average_engagement():
    records = [record("Wikipedia", likes=4, retweets=1, n=i) for i in range(5)]  # 6 each
    performance = compute_source_performance(records)

    assert performance["Wikipedia"].confidence == "high"
    assert score_priority("Wikipedia", performance, []) == pytest.approx(60.0)


def test_medium_confidence_is_discounted():
    records = [record("Wikipedia", likes=6, n=i) for i in range(3)]
    performance = compute_source_performance(records)

    assert performance["Wikipedia"].confidence == "medium"
    assert score_priority("Wikipedia", performance, []) == pytest.approx(42.0)


def test_single_sample_uses_base_score():
    performance = compute_source_performance([record("Wikipedia", likes=9)])

    assert performance["Wikipedia"].confidence == "low"
    assert score_priority("Wikipedia", performance, []) == 50.0


def test_records_without_metrics_are_ignored():
    performance = compute_source_performance([record("Wikipedia", n=i) for i in range(6)])
    assert performance == {}


def test_engagement_score_weights():
    r = record("Wikipedia", likes=10, retweets=3, replies=2)
    assert r.engagement_score == 10 + 6 + 3


def test_score_is_clamped():
    records = [record("Wikipedia", likes=50, n=i) for i in range(5)]
    assert score_priority("Wikipedia", compute_source_performance(records), []) == 100.0


def test_exploration_penalty():
    assert score_priority("A", {}, ["A", "B", "A"]) < score_priority("B", {}, [])
    assert score_priority("A", {}, ["A", "A"]) == pytest.approx(50 * 0.8 * 0.8)


def test_exploration_penalty_with_identical_history():
    records = [record(name, likes=5, n=i) for name in ("A", "B") for i in range(5)]
    performance = compute_source_performance(records)

    assert score_priority("A", performance, ["A", "A"]) < score_priority("B", performance, [])


@pytest.mark.asyncio
async def test_order_ties_keep_registry_order(memory_store):
    optimizer = SourceOptimizer(EngagementStore(memory_store), SOURCES)
    assert await optimizer.order([]) == SOURCES


@pytest.mark.asyncio
async def test_order_prefers_engaging_sources_and_penalizes_recent(memory_store):
    store = EngagementStore(memory_store)
    for i in range(5):
        await store.record_selection(f"wiki-{i}", source_name="Wikipedia", confidence=80, verdict="APPROVED")
        await store.record_engagement(f"wiki-{i}", {"likes": 8})
    optimizer = SourceOptimizer(store, SOURCES)

    assert await optimizer.order([]) == ["Wikipedia", "Library of Congress", "Smithsonian", "Wikimedia Commons"]

    # 80 * 0.8^3 = 40.96 drops below the untouched 50s
    order = await optimizer.order(["Wikipedia"] * 3)
    assert order[-1] == "Wikipedia"


@pytest.mark.asyncio
async def test_order_is_deterministic(memory_store):
    store = EngagementStore(memory_store)
    await store.record_selection("s1", source_name="Smithsonian", confidence=80, verdict="APPROVED")
    optimizer = SourceOptimizer(store, SOURCES)

    recent = ["Smithsonian", "Wikipedia"]
    assert await optimizer.order(recent) == await optimizer.order(recent)


@pytest.mark.asyncio
async def test_ranked_sources(memory_store):
    store = EngagementStore(memory_store)
    for name, likes in (("Wikipedia", 3), ("Smithsonian", 9)):
        await store.record_selection(name, source_name=name, confidence=80, verdict="APPROVED")
        await store.record_engagement(name, {"likes": likes})
    optimizer = SourceOptimizer(store, SOURCES)

    ranked = await optimizer.ranked_sources()
    assert [p.source for p in ranked] == ["Smithsonian", "Wikipedia"]
    assert await optimizer.priority("Smithsonian") == 50.0
