"""
Learned style preference: which image styles drew the best engagement.
"""
import logging
from typing import Dict, List, Sequence

from verified_media.core.entities import StyleProfile
from verified_media.core.schemas import EngagementRecord
from verified_media.services.engagement_store import EngagementStore

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50.0
STYLE_DIMENSIONS = ("type", "era", "color_scheme")
MIN_SAMPLES = 2
ENGAGEMENT_SCALE = 5.0
DIVERSITY_WINDOW = 5
OVERUSE_WINDOW = 3
OVERUSE_PENALTY = 0.7


def style_performance(records: Sequence[EngagementRecord]) -> Dict[str, Dict[str, Dict[str, float]]]:
    """Average engagement per dimension value, over styled records with metrics."""
    totals: Dict[str, Dict[str, List[float]]] = {dim: {} for dim in STYLE_DIMENSIONS}

    for record in records:
        if not record.has_metrics or not record.style:
            continue
        for dim in STYLE_DIMENSIONS:
            value = record.style.get(dim)
            if value:
                totals[dim].setdefault(value, []).append(record.engagement_score)

    return {
        dim: {
            value: {"avg_engagement": sum(scores) / len(scores), "count": len(scores)}
            for value, scores in values.items()
        }
        for dim, values in totals.items()
    }


def diversity_score(styles: Sequence[Dict[str, str]]) -> float:
    """0-100; low means the recent images look alike."""
    recent = list(styles)[-DIVERSITY_WINDOW:]
    if len(recent) < 2:
        return 100.0

    unique = [len({s.get(dim) for s in recent}) for dim in STYLE_DIMENSIONS]
    avg_unique = sum(unique) / len(unique)
    return min(100.0, avg_unique / len(recent) * 100)


def preference_score(profile: StyleProfile, records: Sequence[EngagementRecord]) -> float:
    performance = style_performance(records)

    contributions = []
    for dim, value in profile.as_dict().items():
        stats = performance.get(dim, {}).get(value)
        if stats and stats["count"] >= MIN_SAMPLES:
            contributions.append(stats["avg_engagement"] * ENGAGEMENT_SCALE)

    score = sum(contributions) / len(contributions) if contributions else DEFAULT_SCORE

    styles = [r.style for r in records if r.style]
    if diversity_score(styles) < 50:
        recent_types = [s.get("type") for s in styles[-OVERUSE_WINDOW:]]
        if recent_types.count(profile.type) >= 2:
            logger.info(f"Penalizing {profile.type} - used too recently")
            score *= OVERUSE_PENALTY

    return max(0.0, min(100.0, score))


class StylePreferences:

    def __init__(self, engagement_store: EngagementStore):
        self.engagement_store = engagement_store

    async def score(self, profile: StyleProfile) -> float:
        return preference_score(profile, await self.engagement_store.records())
