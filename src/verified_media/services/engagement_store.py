"""
EngagementStore - Append-only log of past selections and their engagement.
Source of truth for source ranking and style preference learning.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from verified_media.core.schemas import EngagementMetrics, EngagementRecord
from verified_media.services.config import EngagementConfig
from verified_media.services.storage import KeyValueStore

logger = logging.getLogger(__name__)

MAX_RECORDS = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngagementStore:

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[EngagementConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.kv = store
        self.config = config or EngagementConfig(max_records=MAX_RECORDS)
        self.clock = clock
        self._lock = asyncio.Lock()

    async def records(self) -> List[EngagementRecord]:
        """All retained records, oldest first. Unreadable state reads as empty."""
        try:
            raw = await self.kv.get(self.config.document_key)
        except Exception as e:
            logger.warning(f"Engagement log read failed, treating as empty: {e}")
            return []

        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Engagement document is not a list, treating as empty")
            return []

        records: List[EngagementRecord] = []
        for item in raw:
            try:
                records.append(EngagementRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Dropping unreadable engagement record: {e.error_count()} errors")
        return records

    async def _save(self, records: List[EngagementRecord]) -> bool:
        try:
            await self.kv.set(
                self.config.document_key,
                [record.model_dump(mode="json") for record in records],
            )
            return True
        except Exception as e:
            logger.error(f"Error saving engagement log: {e}")
            return False

    async def record_selection(
        self,
        selection_id: str,
        *,
        source_name: str,
        confidence: float,
        verdict: str,
        style: Optional[Dict[str, str]] = None,
    ) -> None:
        """Append a selection with empty metrics. Oldest records drop first past the cap."""
        async with self._lock:
            records = await self.records()
            records.append(EngagementRecord(
                selection_id=selection_id,
                timestamp=self.clock(),
                source_name=source_name,
                confidence=confidence,
                verdict=verdict,
                style=style,
            ))

            if len(records) > self.config.max_records:
                records = records[-self.config.max_records:]

            if await self._save(records):
                logger.info(f"Tracked selection {selection_id} ({source_name}, {confidence}%)")

    async def record_engagement(self, selection_id: str, metrics: Dict[str, Any]) -> bool:
        """
        Attach engagement metrics to a past selection.
        Returns False when the selection is unknown, already has metrics,
        or the metrics are not non-negative counts.
        """
        try:
            reported = EngagementMetrics.model_validate(metrics)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid metrics for {selection_id}: {e.error_count()} errors")
            return False

        async with self._lock:
            records = await self.records()
            record = next((r for r in records if r.selection_id == selection_id), None)

            if record is None:
                logger.warning(f"No selection {selection_id} in engagement log")
                return False
            if record.has_metrics:
                logger.warning(f"Selection {selection_id} already has engagement metrics")
                return False

            record.likes = reported.likes
            record.retweets = reported.retweets
            record.replies = reported.replies
            record.impressions = reported.impressions
            record.updated_at = self.clock()

            saved = await self._save(records)
            if saved:
                logger.info(f"Updated metrics for {selection_id}")
            return saved

    async def recent_sources(self, limit: Optional[int] = None) -> List[str]:
        """Source names of the most recent selections, oldest first."""
        limit = limit or self.config.recent_window
        records = await self.records()
        return [r.source_name for r in records[-limit:] if r.source_name]

    async def stats(self) -> Dict[str, Any]:
        records = await self.records()
        with_metrics = [r for r in records if r.has_metrics]

        if not with_metrics:
            return {
                "total_selections": len(records),
                "with_metrics": 0,
                "avg_likes": 0.0,
                "avg_retweets": 0.0,
                "avg_replies": 0.0,
                "avg_engagement": 0.0,
            }

        count = len(with_metrics)
        avg_likes = sum(r.likes or 0 for r in with_metrics) / count
        avg_retweets = sum(r.retweets or 0 for r in with_metrics) / count
        avg_replies = sum(r.replies or 0 for r in with_metrics) / count

        return {
            "total_selections": len(records),
            "with_metrics": count,
            "avg_likes": round(avg_likes, 1),
            "avg_retweets": round(avg_retweets, 1),
            "avg_replies": round(avg_replies, 1),
            "avg_engagement": round(sum(r.engagement_score for r in with_metrics) / count, 1),
        }
