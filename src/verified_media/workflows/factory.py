"""
Engine Factory - Wires a SelectionEngine from configuration.
"""
import logging
from typing import Dict, Optional

from verified_media.ingestion.base import ImageSource
from verified_media.ingestion.source_factory import create_sources_from_config
from verified_media.processing.source_optimizer import SourceOptimizer
from verified_media.processing.style_preferences import StylePreferences
from verified_media.processing.verifier import MediaVerifier
from verified_media.services.config import Config, get_source_names
from verified_media.services.engagement_store import EngagementStore
from verified_media.services.llm import OllamaVisionClient
from verified_media.services.result_cache import ResultCache
from verified_media.services.storage import KeyValueStore, create_store
from verified_media.workflows.selection_engine import SelectionEngine

logger = logging.getLogger(__name__)


def create_engine_from_config(
    config: Config,
    llm: Optional[OllamaVisionClient] = None,
    store: Optional[KeyValueStore] = None,
    sources: Optional[Dict[str, ImageSource]] = None,
) -> SelectionEngine:
    """
    Factory function to build a selection engine from configuration.

    Args:
        config: Validated configuration
        llm: Vision client override (defaults to one built from config.ollama)
        store: Document store override (defaults to config.storage)
        sources: Image sources override, keyed by registry name

    Returns:
        Configured SelectionEngine
    """
    store = store or create_store(config.storage)

    if sources is None:
        sources = create_sources_from_config(config)

    llm = llm or OllamaVisionClient(
        base_url=config.ollama.base_url,
        model=config.ollama.model,
        temperature=config.ollama.temperature,
        max_retries=config.ollama.max_retries,
        timeout=config.ollama.timeout,
    )

    cache = ResultCache(store, config.cache)
    engagement = EngagementStore(store, config.engagement)
    source_names = [name for name in get_source_names(config) if name in sources]

    engine = SelectionEngine(
        sources=sources,
        cache=cache,
        engagement=engagement,
        optimizer=SourceOptimizer(engagement, source_names),
        verifier=MediaVerifier(llm, StylePreferences(engagement)),
        config=config,
    )

    logger.info(f"Created selection engine with sources: {', '.join(source_names) or 'none'}")
    return engine
