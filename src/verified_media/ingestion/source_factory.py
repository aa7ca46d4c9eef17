"""
Source Factory - Creates image source adapters from the source registry.
"""
import logging
from typing import Dict

from verified_media.ingestion.base import ImageSource
from verified_media.ingestion.library_of_congress import LibraryOfCongressSource
from verified_media.ingestion.smithsonian import SmithsonianSource
from verified_media.ingestion.wikimedia_commons import WikimediaCommonsSource
from verified_media.ingestion.wikipedia import WikipediaSource
from verified_media.services.config import Config, SourceConfig, get_enabled_sources

logger = logging.getLogger(__name__)


def create_image_source(source_config: SourceConfig) -> ImageSource:
    """
    Create an image source from configuration.

    Args:
        source_config: Registry entry for the source

    Returns:
        Configured ImageSource instance

    Raises:
        ValueError: If source type is unknown
    """
    source_type = source_config.type.lower()
    timeout = source_config.timeout_seconds

    if source_type == "wikipedia":
        source: ImageSource = WikipediaSource(timeout=timeout)

    elif source_type == "commons":
        source = WikimediaCommonsSource(timeout=timeout)

    elif source_type == "loc":
        source = LibraryOfCongressSource(timeout=timeout)

    elif source_type == "smithsonian":
        source = SmithsonianSource(api_key=source_config.api_key, timeout=timeout)

    else:
        raise ValueError(f"Unknown source type: {source_type}")

    # Registry names are authoritative for ranking and caching
    source.name = source_config.name
    return source


def create_sources_from_config(config: Config) -> Dict[str, ImageSource]:
    """
    Create all enabled image sources, keyed by registry name.
    """
    sources: Dict[str, ImageSource] = {}

    for source_config in get_enabled_sources(config):
        try:
            sources[source_config.name] = create_image_source(source_config)
            logger.info(f"Created {source_config.type} source: {source_config.name}")
        except Exception as e:
            logger.error(f"Failed to create source {source_config.name}: {e}")

    return sources
