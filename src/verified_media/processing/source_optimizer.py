"""
Source Optimizer - ranks image sources by historical engagement.

Exploitation comes from average engagement once a source has enough
samples; exploration comes from a compounding penalty for every recent use,
so a single strong source cannot win every selection.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from verified_media.core.schemas import EngagementRecord
from verified_media.services.engagement_store import EngagementStore

logger = logging.getLogger(__name__)

BASE_PRIORITY = 50.0
ENGAGEMENT_SCALE = 10.0
MEDIUM_CONFIDENCE_DISCOUNT = 0.7
RECENCY_PENALTY = 0.8
HIGH_CONFIDENCE_SAMPLES = 5
MEDIUM_CONFIDENCE_SAMPLES = 2


@dataclass(frozen=True)
class SourcePerformance:
    source: str
    avg_engagement: float
    count: int

    @property
    def confidence(self) -> str:
        if self.count >= HIGH_CONFIDENCE_SAMPLES:
            return "high"
        if self.count >= MEDIUM_CONFIDENCE_SAMPLES:
            return "medium"
        return "low"


def compute_source_performance(records: Iterable[EngagementRecord]) -> Dict[str, SourcePerformance]:
    """Average engagement per source over records that have metrics."""
    totals: Dict[str, List[float]] = {}
    for record in records:
        if not record.has_metrics:
            continue
        totals.setdefault(record.source_name or "unknown", []).append(record.engagement_score)

    return {
        source: SourcePerformance(source=source, avg_engagement=sum(scores) / len(scores), count=len(scores))
        for source, scores in totals.items()
    }


def score_priority(
    source_name: str,
    performance: Dict[str, SourcePerformance],
    recent_sources: Sequence[str],
) -> float:
    priority = BASE_PRIORITY

    stats = performance.get(source_name)
    if stats is not None:
        if stats.confidence == "high":
            priority = stats.avg_engagement * ENGAGEMENT_SCALE
        elif stats.confidence == "medium":
            priority = stats.avg_engagement * ENGAGEMENT_SCALE * MEDIUM_CONFIDENCE_DISCOUNT
        # low confidence: no learning signal yet

    recent_uses = sum(1 for s in recent_sources if s == source_name)
    if recent_uses:
        priority *= RECENCY_PENALTY ** recent_uses

    return max(0.0, min(100.0, priority))


class SourceOptimizer:
    """
    Orders the configured sources for fetching.
    The result depends only on the engagement log and recent_sources.
    """

    def __init__(self, engagement_store: EngagementStore, source_names: Sequence[str]):
        self.engagement_store = engagement_store
        self.source_names = list(source_names)

    async def performance(self) -> Dict[str, SourcePerformance]:
        return compute_source_performance(await self.engagement_store.records())

    async def priority(self, source_name: str, recent_sources: Sequence[str] = ()) -> float:
        return score_priority(source_name, await self.performance(), recent_sources)

    async def order(self, recent_sources: Sequence[str] = ()) -> List[str]:
        performance = await self.performance()
        scored = [(name, score_priority(name, performance, recent_sources)) for name in self.source_names]

        # sorted() is stable, so ties keep registry order
        scored.sort(key=lambda item: item[1], reverse=True)

        logger.info(
            "Optimal source order: " + ", ".join(f"{name} ({score:.1f})" for name, score in scored)
        )
        return [name for name, _ in scored]

    async def ranked_sources(self) -> List[SourcePerformance]:
        performance = await self.performance()
        return sorted(performance.values(), key=lambda p: p.avg_engagement, reverse=True)

    async def log_source_stats(self) -> None:
        for stats in await self.ranked_sources():
            logger.info(
                f"{stats.source}: {stats.avg_engagement:.1f} avg engagement "
                f"({stats.count} selections, {stats.confidence} confidence)"
            )
