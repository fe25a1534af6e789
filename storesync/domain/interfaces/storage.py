"""Interface for durable local key-value storage.

Backs the offline queue (and, outside this package, settings and cart
persistence). Values must be JSON-compatible. Methods are coroutines because
disk access is a suspension point for the event loop.
"""

import abc
from typing import Any, Dict, Optional


class KeyValueStore(abc.ABC):
    """Abstract Base Class for a persistent key-value store."""

    @abc.abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Stores `value` under `key`, replacing any previous value."""

    @abc.abstractmethod
    async def get(self, key: str, default: Optional[Any] = None) -> Optional[Any]:
        """Returns the stored value or `default`."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Removes `key` (no-op when absent)."""

    @abc.abstractmethod
    async def list_all(self, prefix: str = "") -> Dict[str, Any]:
        """Returns every key/value pair whose key starts with `prefix`."""

    async def close(self) -> None:
        """Releases underlying resources."""
