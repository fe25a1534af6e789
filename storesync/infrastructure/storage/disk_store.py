"""Persistent key-value store on local disk, backed by `diskcache`.

diskcache is SQLite-backed and safe across threads and processes, so the
blocking calls are pushed to a worker thread with `asyncio.to_thread` to
keep the event loop responsive.
"""

import asyncio
import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import diskcache as dc

from storesync.domain.interfaces.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORE_DIR = Path.home() / ".storesync" / "offline_queue"


class DiskKeyValueStore(KeyValueStore):
    """KeyValueStore over a diskcache.Cache directory. Entries never expire."""

    def __init__(self, directory: Union[str, Path] = DEFAULT_STORE_DIR, timeout: float = 1.0):
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._cache = dc.Cache(str(self.directory), timeout=timeout)
        except OSError as e:
            logger.error(f"Failed to open disk store at {self.directory}: {e}")
            raise
        logger.info(f"Initialized disk store at: {self._cache.directory}")

    async def put(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._cache.set, key, value)

    async def get(self, key: str, default: Optional[Any] = None) -> Optional[Any]:
        return await asyncio.to_thread(self._cache.get, key, default)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._cache.delete, key)

    def _list_all(self, prefix: str) -> Dict[str, Any]:
        result = {}
        for key in self._cache.iterkeys():
            if isinstance(key, str) and key.startswith(prefix):
                value = self._cache.get(key)
                if value is not None:
                    result[key] = value
        return result

    async def list_all(self, prefix: str = "") -> Dict[str, Any]:
        return await asyncio.to_thread(self._list_all, prefix)

    async def close(self) -> None:
        await asyncio.to_thread(self._cache.close)


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store with the same semantics; used in tests and dry runs.

    Values are deep-copied in and out so callers cannot mutate stored state,
    matching what a serializing store would do.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def get(self, key: str, default: Optional[Any] = None) -> Optional[Any]:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_all(self, prefix: str = "") -> Dict[str, Any]:
        return {k: copy.deepcopy(v) for k, v in self._data.items() if k.startswith(prefix)}
