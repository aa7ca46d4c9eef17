"""
Loads and handles config from config.yml
API keys (SMITHSONIAN_API_KEY) and the Ollama URL override are loaded from .env
"""
import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from verified_media.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SourceConfig(BaseModel):
    """Configuration for a single image source in the registry."""
    name: str  # Library of Congress, Smithsonian, Wikimedia Commons, Wikipedia
    type: str  # loc, smithsonian, commons, wikipedia
    enabled: bool = True
    priority_rank: int = 99
    reliability_score: int = Field(default=50, ge=0, le=100)
    timeout_ms: int = 10000
    api_key: Optional[str] = None  # Smithsonian only

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class QualityConfig(BaseModel):
    """Thresholds for the cheap pre-filter that runs before any AI call."""
    min_width: int = 600
    min_height: int = 600
    min_file_size: int = 30 * 1024
    max_file_size: int = 5 * 1024 * 1024
    min_aspect_ratio: float = 0.33
    max_aspect_ratio: float = 3.0
    reject_formats: List[str] = ["svg"]


class CacheConfig(BaseModel):
    max_entries: int = 500
    max_age_days: int = 90
    description_prefix: int = 100
    document_key: str = "image-cache"


class EngagementConfig(BaseModel):
    max_records: int = 100
    recent_window: int = 5
    document_key: str = "image-engagement"


class SelectionConfig(BaseModel):
    top_sources: int = 3
    parallel_timeout_ms: int = 20000
    min_confidence: float = 70
    search_term_words: int = 8


class StorageConfig(BaseModel):
    backend: str = "sqlite"  # sqlite, file, memory
    path: str = "data/media.db"


class OllamaConfig(BaseModel):
    base_url: str = "http://localhost:11434"
    model: str = "llama3.2-vision"
    temperature: float = 0.3
    timeout: float = 120.0
    max_retries: int = 3


class Config(BaseModel):
    sources: List[SourceConfig] = []
    quality: QualityConfig = QualityConfig()
    cache: CacheConfig = CacheConfig()
    engagement: EngagementConfig = EngagementConfig()
    selection: SelectionConfig = SelectionConfig()
    storage: StorageConfig = StorageConfig()
    ollama: OllamaConfig = OllamaConfig()


STORAGE_BACKENDS = ("sqlite", "file", "memory")


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> str:
    """Get the path to config.yml, handling different working directories."""
    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    raise ConfigurationError("Cannot find resources/config.yml")


def _parse_source_config(name: str, data: Dict[str, Any]) -> SourceConfig:
    """Parse a single registry entry from YAML data."""
    source_type = data.get("type", "").lower()
    api_key = data.get("api_key")
    if source_type == "smithsonian" and not api_key:
        api_key = os.getenv("SMITHSONIAN_API_KEY")

    return SourceConfig(
        name=name,
        type=source_type,
        enabled=_bool(data.get("enabled", True)),
        priority_rank=int(data.get("priority", 99)),
        reliability_score=int(data.get("reliability_score", 50)),
        timeout_ms=int(data.get("timeout_ms", 10000)),
        api_key=api_key,
    )


def parse_config(data: Dict[str, Any]) -> Config:
    """Build a validated Config from already-loaded YAML data."""
    sources = []
    for name, source_data in (data.get("sources") or {}).items():
        try:
            sources.append(_parse_source_config(name, source_data or {}))
        except Exception as e:
            logger.error(f"Failed to parse source '{name}': {e}")

    ollama = OllamaConfig(**(data.get("ollama") or {}))
    if os.getenv("OLLAMA_BASE_URL"):
        ollama.base_url = os.environ["OLLAMA_BASE_URL"]

    config = Config(
        sources=sources,
        quality=QualityConfig(**(data.get("quality") or {})),
        cache=CacheConfig(**(data.get("cache") or {})),
        engagement=EngagementConfig(**(data.get("engagement") or {})),
        selection=SelectionConfig(**(data.get("selection") or {})),
        storage=StorageConfig(**(data.get("storage") or {})),
        ollama=ollama,
    )
    validate_config(config)
    return config


def validate_config(config: Config) -> None:
    """Raise ConfigurationError for settings the engine cannot start without."""
    if not get_enabled_sources(config):
        raise ConfigurationError("At least one image source must be enabled")

    if config.storage.backend not in STORAGE_BACKENDS:
        raise ConfigurationError(
            f"Unknown storage backend: {config.storage.backend} (expected one of {', '.join(STORAGE_BACKENDS)})"
        )

    if config.selection.top_sources < 1:
        raise ConfigurationError("selection.top_sources must be at least 1")


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and secrets from .env."""
    # Load .env for API keys
    load_dotenv()

    config_path = path or _get_config_path()

    try:
        with open(config_path, 'r') as file:
            data = yaml.safe_load(file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

    return parse_config(data)


def get_enabled_sources(config: Config) -> List[SourceConfig]:
    """Enabled sources in registry order (priority rank, then declaration order)."""
    enabled = [src for src in config.sources if src.enabled]
    return sorted(enabled, key=lambda src: src.priority_rank)


def get_source_names(config: Config) -> List[str]:
    return [src.name for src in get_enabled_sources(config)]
