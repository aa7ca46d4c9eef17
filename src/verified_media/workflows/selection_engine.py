import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from verified_media.core.entities import (
    Accepted,
    Candidate,
    CandidateMetadata,
    Event,
    FetchedImage,
    Rejected,
    ScoredCandidate,
    SelectionOutcome,
    Verdict,
    VerificationResult,
)
from verified_media.core.schemas import CacheEntry
from verified_media.core.scoring import passes_threshold, rank_candidates
from verified_media.ingestion.base import ImageSource
from verified_media.processing.quality_filter import check_image_quality, filter_by_quality
from verified_media.processing.source_optimizer import SourceOptimizer
from verified_media.processing.verifier import MediaVerifier
from verified_media.services.config import Config, get_enabled_sources
from verified_media.services.engagement_store import EngagementStore
from verified_media.services.result_cache import ResultCache, derive_key
from verified_media.workflows.base import MediaSelector

logger = logging.getLogger(__name__)

NO_CANDIDATES = "no image found from any source"
NO_QUALITY_CANDIDATES = "all candidates failed quality checks"
BELOW_THRESHOLD = "best candidate did not pass verification"
SELECTION_ERROR = "selection error"


class SelectionState(str, Enum):
    CACHE_CHECK = "CACHE_CHECK"
    FETCHING = "FETCHING"
    FILTERING = "FILTERING"
    SCORING = "SCORING"
    DECIDING = "DECIDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


def build_search_term(event: Event, max_words: int = 8) -> str:
    return " ".join(event.description.split()[:max_words])


class SelectionEngine(MediaSelector):
    """
    Picks the best verified image for an event from the configured sources.

    A cache hit short-circuits the pipeline when its source can still serve
    a usable image. Otherwise the top ranked sources are fetched in
    parallel, pre-filtered, verified and ranked. Only an APPROVED verdict
    at or above the confidence floor is accepted.
    """

    name = "selection-engine"

    def __init__(
        self,
        sources: Dict[str, ImageSource],
        cache: ResultCache,
        engagement: EngagementStore,
        optimizer: SourceOptimizer,
        verifier: MediaVerifier,
        config: Config,
    ):
        self.sources = sources
        self.cache = cache
        self.engagement = engagement
        self.optimizer = optimizer
        self.verifier = verifier
        self.config = config

        registry = [src for src in get_enabled_sources(config) if src.name in sources]
        self.source_order: List[str] = [src.name for src in registry]
        self.source_timeouts: Dict[str, float] = {src.name: src.timeout_seconds for src in registry}

        self.top_sources = config.selection.top_sources
        self.parallel_timeout = config.selection.parallel_timeout_ms / 1000.0
        self.min_confidence = config.selection.min_confidence

    def _enter(self, state: SelectionState, event: Event) -> None:
        logger.debug(f"[{self.name}] {event.year}: {state.value}")

    async def select_image(self, event: Event, generated_text: str) -> SelectionOutcome:
        try:
            return await self._select(event, generated_text)
        except Exception as e:
            logger.exception(f"[{self.name}] Selection error for {event.year}: {e}")
            self._enter(SelectionState.REJECTED, event)
            return Rejected(reason=f"{SELECTION_ERROR}: {e}")

    async def _select(self, event: Event, generated_text: str) -> SelectionOutcome:
        logger.info(f"[{self.name}] Selecting image for {event.year}: {event.description[:60]}")

        self._enter(SelectionState.CACHE_CHECK, event)
        cached = await self._from_cache(event)
        if cached is not None:
            self._enter(SelectionState.ACCEPTED, event)
            return cached

        self._enter(SelectionState.FETCHING, event)
        search_term = build_search_term(event, self.config.selection.search_term_words)
        candidates = await self._fetch_candidates(event, search_term)

        if not candidates:
            logger.info(f"[{self.name}] No images found from any source")
            self._enter(SelectionState.REJECTED, event)
            return Rejected(reason=NO_CANDIDATES)

        self._enter(SelectionState.FILTERING, event)
        candidates = filter_by_quality(candidates, self.config.quality)

        if not candidates:
            self._enter(SelectionState.REJECTED, event)
            return Rejected(reason=NO_QUALITY_CANDIDATES)

        self._enter(SelectionState.SCORING, event)
        scored = await asyncio.gather(
            *(self.verifier.score(candidate, event, generated_text) for candidate in candidates)
        )

        self._enter(SelectionState.DECIDING, event)
        ranked = rank_candidates(scored, self.source_order)
        for item in ranked:
            logger.info(
                f"[{self.name}] {item.source_name}: combined {item.combined_score:.1f} "
                f"({item.verification.verdict.value}, {item.verification.confidence}%, "
                f"style {item.style_score:.1f})"
            )

        best = ranked[0]
        if not passes_threshold(best.verification, self.min_confidence):
            logger.info(
                f"[{self.name}] Rejected best candidate {best.source_name}: "
                f"{best.verification.verdict.value} ({best.verification.confidence}%)"
            )
            self._enter(SelectionState.REJECTED, event)
            return Rejected(
                reason=BELOW_THRESHOLD,
                best_attempt=best.summary(),
                attempts=[item.summary() for item in ranked],
            )

        outcome = await self._accept(event, best)
        self._enter(SelectionState.ACCEPTED, event)
        return outcome

    # ------------------------------------------------------------------
    # Cache fast path
    # ------------------------------------------------------------------

    async def _from_cache(self, event: Event) -> Optional[Accepted]:
        entry = await self.cache.lookup(event)
        if entry is None:
            return None

        source = self.sources.get(entry.source)
        if source is None:
            logger.info(f"[{self.name}] Cached source {entry.source} is no longer enabled")
            return None

        verdict = _as_verdict(entry)
        if verdict is None or not passes_threshold(VerificationResult(verdict, entry.confidence), self.min_confidence):
            logger.info(
                f"[{self.name}] Cached selection from {entry.source} no longer passes "
                f"({entry.verdict}, {entry.confidence}%), running full selection"
            )
            return None

        search_term = entry.search_term or build_search_term(event, self.config.selection.search_term_words)
        fetched = await self._fetch_one(entry.source, source, search_term, event.year)
        if fetched is None:
            logger.info(f"[{self.name}] Re-fetch from {entry.source} failed, running full selection")
            return None

        check = check_image_quality(fetched.image_bytes, self.config.quality)
        if not check.passed:
            logger.info(f"[{self.name}] Re-fetched image from {entry.source} failed quality: {check.reason}")
            return None

        selection_id = await self._record_selection(
            source_name=entry.source,
            confidence=entry.confidence,
            verdict=entry.verdict,
            style_info=entry.style_info,
        )
        return Accepted(
            image_bytes=fetched.image_bytes,
            source=entry.source,
            confidence=entry.confidence,
            verdict=verdict,
            style_info=dict(entry.style_info),
            selection_id=selection_id,
            from_cache=True,
            metadata=fetched.metadata,
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_one(
        self,
        name: str,
        source: ImageSource,
        search_term: str,
        year: Optional[int],
    ) -> Optional[FetchedImage]:
        timeout = self.source_timeouts.get(name, self.parallel_timeout)
        try:
            return await asyncio.wait_for(source.fetch(search_term, year), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] {name} timed out after {timeout:.0f}s")
        except Exception as e:
            logger.warning(f"[{self.name}] {name} failed: {e}")
        return None

    async def _fetch_candidates(self, event: Event, search_term: str) -> List[Candidate]:
        recent = await self.engagement.recent_sources()
        ordered = await self.optimizer.order(recent)
        selected = [name for name in ordered if name in self.sources][:self.top_sources]

        logger.info(f"[{self.name}] Fetching from top {len(selected)} sources in parallel: {', '.join(selected)}")

        tasks = {
            name: asyncio.create_task(self._fetch_one(name, self.sources[name], search_term, event.year))
            for name in selected
        }
        if not tasks:
            return []

        _, pending = await asyncio.wait(tasks.values(), timeout=self.parallel_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"[{self.name}] {len(pending)} sources missed the {self.parallel_timeout:.0f}s deadline")
            await asyncio.gather(*pending, return_exceptions=True)

        candidates: List[Candidate] = []
        for name, task in tasks.items():
            if task.cancelled() or task.exception() is not None:
                continue
            fetched = task.result()
            if fetched is None or not fetched.image_bytes:
                continue
            candidates.append(Candidate(
                source_name=name,
                image_bytes=fetched.image_bytes,
                metadata=fetched.metadata or CandidateMetadata(search_term=search_term),
            ))

        logger.info(f"[{self.name}] Found {len(candidates)} candidates from {len(selected)} sources")
        return candidates

    # ------------------------------------------------------------------
    # Acceptance and feedback
    # ------------------------------------------------------------------

    async def _accept(self, event: Event, best: ScoredCandidate) -> Accepted:
        verification = best.verification
        style_info = best.style.as_dict()

        await self.cache.store(event, {
            "source": best.source_name,
            "confidence": verification.confidence,
            "verdict": verification.verdict.value,
            "style_info": style_info,
            "image_url": best.candidate.metadata.url,
            "search_term": best.candidate.metadata.search_term,
        })

        selection_id = await self._record_selection(
            source_name=best.source_name,
            confidence=verification.confidence,
            verdict=verification.verdict.value,
            style_info=style_info,
        )

        logger.info(
            f"[{self.name}] Accepted {best.source_name} for '{derive_key(event)}' "
            f"({verification.confidence}%, selection {selection_id})"
        )
        return Accepted(
            image_bytes=best.candidate.image_bytes,
            source=best.source_name,
            confidence=verification.confidence,
            verdict=verification.verdict,
            style_info=style_info,
            selection_id=selection_id,
            metadata=best.candidate.metadata,
        )

    async def _record_selection(
        self,
        source_name: str,
        confidence: float,
        verdict: str,
        style_info: Dict[str, str],
    ) -> str:
        selection_id = uuid.uuid4().hex
        await self.engagement.record_selection(
            selection_id,
            source_name=source_name,
            confidence=confidence,
            verdict=verdict,
            style=style_info or None,
        )
        return selection_id

    async def record_engagement(self, selection_id: str, metrics: Dict[str, Any]) -> bool:
        """Feed engagement metrics for a past selection back to the optimizer."""
        return await self.engagement.record_engagement(selection_id, metrics)

    async def stats(self) -> Dict[str, Any]:
        return {
            "cache": await self.cache.stats(),
            "engagement": await self.engagement.stats(),
            "sources": [
                {"source": p.source, "avg_engagement": round(p.avg_engagement, 1),
                 "count": p.count, "confidence": p.confidence}
                for p in await self.optimizer.ranked_sources()
            ],
        }


def _as_verdict(entry: CacheEntry) -> Optional[Verdict]:
    try:
        return Verdict(entry.verdict)
    except ValueError:
        return None
