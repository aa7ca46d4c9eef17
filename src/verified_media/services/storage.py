"""
Key-value document storage used for the result cache and the engagement log.
"""
import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from verified_media.core.errors import ConfigurationError
from verified_media.services.config import StorageConfig


class KeyValueStore(ABC):
    """
    Base interface for all document stores.
    Values are JSON-serializable documents, persisted as a whole per key.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored document, or None if the key is absent."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list(self, prefix: str = "") -> List[str]:
        """Return stored keys starting with prefix, sorted."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """
    In-process store. Documents are serialized on write so callers never
    share mutable state with the store, same as a persistent backend.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        self._lock = asyncio.Lock()
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value, default=str)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value, default=str)
        async with self._lock:
            self._data[key] = raw

    async def list(self, prefix: str = "") -> List[str]:
        async with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)


def create_store(config: StorageConfig) -> KeyValueStore:
    """
    Create a document store from configuration.

    Raises:
        ConfigurationError: If the backend type is unknown
    """
    backend = config.backend.lower()

    if backend == "memory":
        return MemoryStore()

    elif backend == "sqlite":
        from verified_media.services.database import SqliteStore
        return SqliteStore(config.path)

    elif backend == "file":
        from verified_media.services.file_store import FileStore
        return FileStore(config.path)

    else:
        raise ConfigurationError(f"Unknown storage backend: {config.backend}")
