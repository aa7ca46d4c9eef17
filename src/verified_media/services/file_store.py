"""
JSON file document store.
Each key is written to <directory>/<key>.json using async file I/O.
"""
import json
import logging
import os
import re
from typing import Any, List, Optional

import aiofiles

from verified_media.core.errors import PersistenceError
from verified_media.services.storage import KeyValueStore

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[\w.-]+$")


class FileStore(KeyValueStore):

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        if not _SAFE_KEY.match(key):
            raise PersistenceError(f"Invalid document key: {key!r}")
        return os.path.join(self.directory, f"{key}.json")

    async def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
            return json.loads(content)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    async def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(json.dumps(value, indent=2, default=str))
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    async def list(self, prefix: str = "") -> List[str]:
        if not os.path.isdir(self.directory):
            return []
        keys = [
            name[:-len(".json")]
            for name in os.listdir(self.directory)
            if name.endswith(".json")
        ]
        return sorted(k for k in keys if k.startswith(prefix))

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Failed to delete {path}: {e}") from e
