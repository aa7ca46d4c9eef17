"""
ResultCache - Content-addressed store of previously accepted image selections.

Entries are keyed by a normalized event fingerprint and only record the
metadata of the winning image, never its bytes. The whole mapping is kept
as a single document in the injected KeyValueStore.

The cache is an optimization: read failures behave like an empty cache and
write failures are logged and swallowed.
"""
import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from verified_media.core.entities import Event
from verified_media.core.schemas import CacheEntry
from verified_media.services.config import CacheConfig
from verified_media.services.storage import KeyValueStore

logger = logging.getLogger(__name__)

MAX_CACHE_ENTRIES = 500
MAX_CACHE_AGE_DAYS = 90
EVICTION_HEADROOM = 1.1
KEY_MAX_WORDS = 8
KEY_MIN_WORD_LENGTH = 4

_PUNCTUATION = re.compile(r"[^A-Za-z0-9_\s]")


def derive_key(event: Event) -> str:
    """
    Build the cache key: year plus the first eight words of four or more
    characters from the lowercased description, keeping only ASCII word
    characters and whitespace.
    """
    normalized = _PUNCTUATION.sub("", event.description.lower())
    words = [w for w in normalized.split() if len(w) >= KEY_MIN_WORD_LENGTH]
    return f"{event.year}_{'_'.join(words[:KEY_MAX_WORDS])}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ResultCache:

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.kv = store
        self.config = config or CacheConfig(
            max_entries=MAX_CACHE_ENTRIES,
            max_age_days=MAX_CACHE_AGE_DAYS,
        )
        self.clock = clock
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    async def _load(self) -> Dict[str, CacheEntry]:
        try:
            raw = await self.kv.get(self.config.document_key)
        except Exception as e:
            logger.warning(f"Cache read failed, treating as empty: {e}")
            return {}

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.warning("Cache document is not a mapping, treating as empty")
            return {}

        entries: Dict[str, CacheEntry] = {}
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry.model_validate(value)
            except ValidationError as e:
                logger.warning(f"Dropping unreadable cache entry '{key}': {e.error_count()} errors")
        return entries

    async def _save(self, entries: Dict[str, CacheEntry]) -> None:
        document = {key: entry.model_dump(mode="json") for key, entry in entries.items()}
        try:
            await self.kv.set(self.config.document_key, document)
        except Exception as e:
            logger.error(f"Error saving cache: {e}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def peek(self, event: Event) -> Optional[CacheEntry]:
        """Look up an event without touching usage counters."""
        entries = await self._load()
        return entries.get(derive_key(event))

    async def touch(self, key: str) -> Optional[CacheEntry]:
        """Mark an entry as used and persist the change."""
        async with self._lock:
            entries = await self._load()
            entry = entries.get(key)
            if entry is None:
                return None
            entry.last_used = self.clock()
            entry.use_count += 1
            await self._save(entries)
            return entry

    async def lookup(self, event: Event) -> Optional[CacheEntry]:
        """
        Return the cached selection for an event.
        A hit updates last_used and use_count and persists them before returning.
        """
        key = derive_key(event)
        entry = await self.touch(key)
        if entry is None:
            logger.debug(f"Cache miss for '{key}'")
            return None

        logger.info(
            f"Cache hit for '{key}' (used {entry.use_count} times, confidence: {entry.confidence}%)"
        )
        return entry

    async def store(self, event: Event, selection_info: Dict[str, Any]) -> None:
        """
        Upsert the selection for an event. Overwriting resets use_count.
        Eviction runs first when the store has outgrown its headroom.
        """
        key = derive_key(event)
        now = self.clock()

        async with self._lock:
            entries = await self._load()

            if len(entries) > self.config.max_entries * EVICTION_HEADROOM:
                entries = self._evict_entries(entries, now)

            try:
                entries[key] = CacheEntry(
                    key=key,
                    source=selection_info["source"],
                    confidence=float(selection_info.get("confidence", 0)),
                    verdict=str(selection_info.get("verdict", "")),
                    style_info=dict(selection_info.get("style_info") or {}),
                    cached_at=now,
                    last_used=now,
                    use_count=1,
                    event_year=event.year,
                    event_description=event.description[:self.config.description_prefix],
                    image_url=selection_info.get("image_url"),
                    search_term=selection_info.get("search_term"),
                )
            except (KeyError, ValidationError) as e:
                logger.error(f"Error caching image for '{key}': {e}")
                return

            await self._save(entries)

        logger.info(f"Cached image for '{key}' (confidence: {entries[key].confidence}%)")

    async def evict(self) -> int:
        """Apply age and capacity eviction now. Returns the number of removed entries."""
        async with self._lock:
            entries = await self._load()
            kept = self._evict_entries(entries, self.clock())
            removed = len(entries) - len(kept)
            if removed:
                await self._save(kept)
                logger.info(f"Evicted {removed} cache entries ({len(kept)} remain)")
            return removed

    def _evict_entries(self, entries: Dict[str, CacheEntry], now: datetime) -> Dict[str, CacheEntry]:
        max_age = timedelta(days=self.config.max_age_days)

        valid = [
            (key, entry) for key, entry in entries.items()
            if now - _as_aware(entry.cached_at) < max_age
        ]

        # Still too many: keep only the most recently used
        if len(valid) > self.config.max_entries:
            valid.sort(key=lambda item: _as_aware(item[1].last_used), reverse=True)
            valid = valid[:self.config.max_entries]

        return dict(valid)

    async def clear(self) -> None:
        async with self._lock:
            await self._save({})
        logger.info("Cache cleared")

    async def stats(self) -> Dict[str, Any]:
        entries = list((await self._load()).values())
        if not entries:
            return {"total_entries": 0, "total_uses": 0, "avg_confidence": 0.0, "oldest_entry": None}

        return {
            "total_entries": len(entries),
            "total_uses": sum(e.use_count for e in entries),
            "avg_confidence": round(sum(e.confidence for e in entries) / len(entries), 1),
            "oldest_entry": min(_as_aware(e.cached_at) for e in entries).isoformat(),
        }
